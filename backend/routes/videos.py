"""Video generation API routes: create, status, download redirect, model listing.

POST /api/videos/create
  → Normalizes the request for the chosen model and creates the provider job.
  → Returns 202 { id, status: "queued" } immediately; the client polls status.

GET /api/videos/status?id=...
  → One provider status check, reduced to the canonical status vocabulary.

GET /api/videos/download?url=...
  → 302 to the asset when it is hosted on a trusted media CDN.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional
from urllib.parse import urlsplit

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from pev.config import get_settings
from pev.errors import (
    InvalidRequestError,
    MissingCredentialError,
    PollTransientError,
    RateLimitExceededError,
    SubmissionError,
    UnknownModelError,
)
from pev.generation import JobPoller, JobSubmitter, get_poller, get_submitter
from pev.jobs import GenerationRequest
from pev.providers import list_profiles

logger = logging.getLogger(__name__)
router = APIRouter()
settings = get_settings()


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class CreateVideoRequest(BaseModel):
    prompt: str = ""
    width: int = 1920
    height: int = 1080
    n_seconds: float = 12
    model: Optional[str] = None


class CreateVideoResponse(BaseModel):
    id: str
    status: str = "queued"
    model: str
    message: str = ""


class VideoStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: str
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    error: Optional[str] = None
    logs: Optional[str] = None


class ResolutionInfo(BaseModel):
    width: int
    height: int
    label: str


class ModelInfo(BaseModel):
    id: str
    name: str
    durations: list[int]
    resolutions: list[ResolutionInfo]
    max_duration: int
    requires_openai_key: bool


# ---------------------------------------------------------------------------
# Dependencies (overridden in tests)
# ---------------------------------------------------------------------------

async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=60.0) as client:
        yield client


def _require_token() -> None:
    if not settings.replicate_api_token:
        logger.error("REPLICATE_API_TOKEN is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error: REPLICATE_API_TOKEN is not set",
        )


def get_video_submitter(client: httpx.AsyncClient = Depends(get_http_client)) -> JobSubmitter:
    _require_token()
    return get_submitter(client, settings)


def get_video_poller(client: httpx.AsyncClient = Depends(get_http_client)) -> JobPoller:
    _require_token()
    return get_poller(client, settings)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("/videos/create", response_model=CreateVideoResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_video(
    body: CreateVideoRequest,
    submitter: JobSubmitter = Depends(get_video_submitter),
):
    """Create a generation job and return its id without waiting for the video."""
    model = body.model or settings.pev_default_model
    request = GenerationRequest.model_construct(
        prompt=body.prompt,
        model=model,
        width=body.width,
        height=body.height,
        duration_seconds=body.n_seconds,
    )
    try:
        job = await submitter.submit_request(request)
    except (UnknownModelError, InvalidRequestError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except MissingCredentialError as e:
        logger.error("Missing provider credential: %s", e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except RateLimitExceededError as e:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(e))
    except SubmissionError as e:
        logger.warning("Provider rejected job creation: %s", e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return CreateVideoResponse(
        id=job.job_id,
        model=model,
        message=f"Video generation started with {model}. Poll /api/videos/status for updates.",
    )


@router.get(
    "/videos/status",
    response_model=VideoStatusResponse,
    response_model_exclude_none=True,
)
async def video_status(
    id: Optional[str] = Query(None, description="Job id returned by /videos/create"),
    poller: JobPoller = Depends(get_video_poller),
):
    """Current canonical status of one job."""
    if not id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Job id is required (?id=...)")
    try:
        snapshot = await poller.poll(id)
    except PollTransientError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return VideoStatusResponse(
        id=id,
        status=snapshot.status.value,
        video_url=snapshot.result_url,
        error=snapshot.error,
        logs=snapshot.logs,
    )


def is_trusted_media_url(url: str, trusted_hosts: list[str]) -> bool:
    """True for https URLs on a trusted host or one of its subdomains."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    host = (parts.hostname or "").lower()
    if parts.scheme != "https" or not host:
        return False
    return any(host == t or host.endswith(f".{t}") for t in trusted_hosts)


@router.get("/videos/download")
async def download_video(url: Optional[str] = Query(None, description="Asset URL to redirect to")):
    """Redirect to a generated video hosted on the provider CDN."""
    if not url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Video URL is required (?url=https://...)")
    if not is_trusted_media_url(url, settings.trusted_host_list):
        logger.warning("Rejected download redirect to untrusted URL: %s", url[:200])
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid video URL. Must be from the provider CDN.",
        )
    return RedirectResponse(
        url,
        status_code=status.HTTP_302_FOUND,
        headers={"Cache-Control": "private, max-age=3600"},
    )


@router.get("/models", response_model=list[ModelInfo])
async def models():
    """Registered generation models and what they accept."""
    return [
        ModelInfo(
            id=p.model_id,
            name=p.display_name,
            durations=list(p.supported_durations),
            resolutions=[ResolutionInfo(width=r.width, height=r.height, label=r.label) for r in p.supported_resolutions],
            max_duration=p.max_duration,
            requires_openai_key=p.requires_secondary_credential,
        )
        for p in list_profiles()
    ]

"""Job submission: create a provider prediction, retrying only on rate limits."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from pev.errors import RateLimitExceededError, SubmissionError
from pev.jobs.models import GenerationRequest, Job, JobStatus
from pev.providers import build_request_payload, get_profile
from pev.providers.replicate import normalize_status

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryState:
    """Per-call retry bookkeeping; never shared between submissions."""

    max_attempts: int
    attempt: int = 0
    delays: list[float] = field(default_factory=list)
    last_body: str = ""

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


def parse_retry_after(body: str, default: float) -> float:
    """Seconds to wait, from a JSON ``retry_after`` field (rounded up)."""
    try:
        data = json.loads(body)
    except ValueError:
        return default
    if isinstance(data, dict):
        value = data.get("retry_after")
        if isinstance(value, (int, float)) and value > 0:
            return float(math.ceil(value))
    return default


class JobSubmitter:
    """Creates generation jobs on Replicate."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_token: str | None,
        api_url: str = "https://api.replicate.com/v1",
        secondary_credential: str | None = None,
        max_attempts: int = 3,
        default_retry_after: float = 10.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self._client = client
        self._api_token = api_token
        self._api_url = api_url.rstrip("/")
        self._secondary_credential = secondary_credential
        self._max_attempts = max_attempts
        self._default_retry_after = default_retry_after
        self._sleep = sleep

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        return build_request_payload(
            request.model,
            request.prompt,
            request.width,
            request.height,
            request.duration_seconds,
            secondary_credential=self._secondary_credential,
        )

    async def submit_request(self, request: GenerationRequest) -> Job:
        """Normalize ``request`` and create the job. Adapter errors raise before any I/O."""
        return await self.submit(request.model, self.build_payload(request))

    async def submit(self, model: str, payload: dict[str, Any]) -> Job:
        """POST the prediction and return the created job in its reported status.

        429 responses are retried after ``retry_after`` seconds (default 10)
        up to ``max_attempts`` total attempts; every other non-2xx fails fast.
        """
        get_profile(model)
        state = RetryState(max_attempts=self._max_attempts)
        headers = {
            "Authorization": f"Token {self._api_token}",
            "Content-Type": "application/json",
        }
        while True:
            state.attempt += 1
            try:
                response = await self._client.post(
                    f"{self._api_url}/predictions", json=payload, headers=headers
                )
            except httpx.HTTPError as e:
                raise SubmissionError(f"Failed to create video ({model}): {e}") from e

            if response.is_success:
                job = _read_job(response, model)
                logger.info("Job created: %s (model: %s, status: %s)", job.job_id, model, job.status.value)
                return job

            body = response.text
            if response.status_code != 429:
                raise SubmissionError(
                    f"Failed to create video ({model}): {response.status_code} {body[:300]}",
                    status_code=response.status_code,
                    body=body,
                )

            state.last_body = body
            if state.exhausted:
                raise RateLimitExceededError(state.attempt, body)
            delay = parse_retry_after(body, self._default_retry_after)
            state.delays.append(delay)
            logger.info(
                "Rate limited (attempt %d/%d). Retrying in %ss...",
                state.attempt, state.max_attempts, delay,
            )
            await self._sleep(delay)


def _read_job(response: httpx.Response, model: str) -> Job:
    try:
        data = response.json()
    except ValueError as e:
        raise SubmissionError(
            "Provider accepted the job but returned invalid JSON",
            status_code=response.status_code,
            body=response.text,
        ) from e
    job_id = data.get("id") if isinstance(data, dict) else None
    if not job_id:
        raise SubmissionError(
            "Invalid response from provider: missing job id",
            status_code=response.status_code,
            body=response.text,
        )
    status = normalize_status(data["status"]) if data.get("status") else JobStatus.QUEUED
    return Job(job_id=str(job_id), model=model, status=status)

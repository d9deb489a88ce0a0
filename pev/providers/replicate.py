"""Replicate prediction bodies, reduced to canonical snapshots at the boundary."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from pev.jobs.models import JobSnapshot, JobStatus

logger = logging.getLogger(__name__)

# Vendor wording -> canonical status
STATUS_MAP: dict[str, JobStatus] = {
    "queued": JobStatus.QUEUED,
    "pending": JobStatus.QUEUED,
    "starting": JobStatus.STARTING,
    "booting": JobStatus.STARTING,
    "processing": JobStatus.PROCESSING,
    "in_progress": JobStatus.PROCESSING,
    "running": JobStatus.PROCESSING,
    "succeeded": JobStatus.SUCCEEDED,
    "completed": JobStatus.SUCCEEDED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
    "canceled": JobStatus.CANCELED,
    "cancelled": JobStatus.CANCELED,
}


class ReplicatePrediction(BaseModel):
    """Subset of a Replicate prediction we read. Never leaves this module."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    status: str = "processing"
    output: str | list[Any] | dict[str, Any] | None = None
    error: str | None = None
    logs: str | None = None


def normalize_status(vendor_status: str) -> JobStatus:
    status = STATUS_MAP.get((vendor_status or "").strip().lower())
    if status is None:
        logger.warning("Unknown vendor status %r, treating as processing", vendor_status)
        return JobStatus.PROCESSING
    return status


def extract_result_url(output: str | list[Any] | dict[str, Any] | None) -> str | None:
    """Single canonical URL from a string, list (first element) or ``{"video": ...}``.

    Multi-candidate outputs are reduced to their first element; the others
    are logged and dropped.
    """
    if output is None:
        return None
    if isinstance(output, str):
        return output or None
    if isinstance(output, list):
        if not output:
            return None
        if len(output) > 1:
            logger.warning("Provider returned %d outputs; using the first", len(output))
        first = output[0]
        return first if isinstance(first, str) and first else None
    if isinstance(output, dict):
        video = output.get("video")
        return video if isinstance(video, str) and video else None
    return None


def to_snapshot(body: dict[str, Any]) -> JobSnapshot:
    """Decode a prediction body into a ``JobSnapshot``."""
    prediction = ReplicatePrediction.model_validate(body)
    status = normalize_status(prediction.status)
    result_url = extract_result_url(prediction.output) if status == JobStatus.SUCCEEDED else None
    error = None
    if status == JobStatus.SUCCEEDED and not result_url:
        status = JobStatus.FAILED
        error = "Provider reported success without an output URL"
    elif status in (JobStatus.FAILED, JobStatus.CANCELED):
        error = prediction.error or f"Video generation {status.value}"
    return JobSnapshot(status=status, result_url=result_url, error=error, logs=prediction.logs)

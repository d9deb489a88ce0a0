"""Generation job schema, canonical status and persisted record."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED})


class PartName(str, Enum):
    """Slot a job occupies in a session. Single-part sessions use PART_A."""

    PART_A = "partA"
    PART_B = "partB"


class GenerationRequest(BaseModel):
    """User-supplied generation intent, normalized later by the provider adapter."""

    prompt: str = Field(min_length=1)
    model: str = "wan-2.5"
    width: int = 1920
    height: int = 1080
    duration_seconds: float = 12


class JobSnapshot(BaseModel):
    """Canonical result of one status check."""

    status: JobStatus
    result_url: str | None = None
    error: str | None = None
    logs: str | None = None


class Job(BaseModel):
    """One provider-side generation job.

    ``job_id`` is None only when the creation request itself failed.
    Once the status is terminal the job no longer accepts snapshots.
    """

    job_id: str | None = None
    model: str = ""
    status: JobStatus = JobStatus.QUEUED
    result_url: str | None = None
    error: str | None = None
    logs: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED and bool(self.result_url)

    def apply(self, snapshot: JobSnapshot) -> Job:
        """Return a copy updated from ``snapshot`` (self when already terminal)."""
        if self.is_terminal:
            return self
        return self.model_copy(
            update={
                "status": snapshot.status,
                "result_url": snapshot.result_url or self.result_url,
                "error": snapshot.error,
                "logs": snapshot.logs if snapshot.logs is not None else self.logs,
                "updated_at": _utcnow(),
            }
        )

    @classmethod
    def submission_failed(cls, model: str, error: str) -> Job:
        return cls(model=model, status=JobStatus.FAILED, error=error)


class PersistedJobRecord(BaseModel):
    """Per-part record kept in local storage: ``{id, status, videoUrl, timestamp}``."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: JobStatus
    video_url: str | None = Field(default=None, alias="videoUrl")
    timestamp: float = Field(default_factory=time.time)

    def is_fresh(self, ttl_seconds: float, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return (now - self.timestamp) <= ttl_seconds

    def to_job(self, model: str = "") -> Job:
        return Job(job_id=self.id, model=model, status=self.status, result_url=self.video_url)

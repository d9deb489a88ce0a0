"""Job status polling."""

from __future__ import annotations

import logging

import httpx

from pev.errors import PollTransientError
from pev.jobs.models import Job, JobSnapshot
from pev.providers.replicate import to_snapshot

logger = logging.getLogger(__name__)


class JobPoller:
    """Reads a prediction and reduces it to a canonical ``JobSnapshot``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_token: str | None,
        api_url: str = "https://api.replicate.com/v1",
    ):
        self._client = client
        self._api_token = api_token
        self._api_url = api_url.rstrip("/")

    async def poll(self, job_id: str) -> JobSnapshot:
        """One status check. Any transport, HTTP or decode failure is transient."""
        try:
            response = await self._client.get(
                f"{self._api_url}/predictions/{job_id}",
                headers={"Authorization": f"Token {self._api_token}"},
            )
        except httpx.HTTPError as e:
            raise PollTransientError(f"Status check for {job_id} failed: {e}") from e
        if not response.is_success:
            raise PollTransientError(
                f"Status check for {job_id} failed: {response.status_code} {response.text[:200]}"
            )
        try:
            body = response.json()
        except ValueError as e:
            raise PollTransientError(f"Status check for {job_id} returned invalid JSON") from e
        if not isinstance(body, dict):
            raise PollTransientError(f"Status check for {job_id} returned unexpected body")
        try:
            snapshot = to_snapshot(body)
        except ValueError as e:
            raise PollTransientError(f"Status check for {job_id} returned an unreadable prediction: {e}") from e
        logger.debug("Job %s: %s", job_id, snapshot.status.value)
        return snapshot

    async def refresh(self, job: Job) -> Job:
        """Return ``job`` updated from one poll; unchanged on transient failure."""
        if job.is_terminal or not job.job_id:
            return job
        try:
            snapshot = await self.poll(job.job_id)
        except PollTransientError as e:
            logger.warning("%s; keeping last known status %s", e, job.status.value)
            return job
        return job.apply(snapshot)

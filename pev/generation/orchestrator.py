"""Dual-part orchestration: single or staggered parallel jobs, polling, stitching.

A session moves through ``idle → single`` or ``idle → parallel →
stitching → completed``. Partial failure ends the session in ``parallel``
with a ``degraded`` outcome so the surviving part stays visible.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import Callable, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from pev.errors import InvalidRequestError, StitchError, SubmissionError
from pev.generation.poller import JobPoller
from pev.generation.submitter import JobSubmitter, Sleep
from pev.jobs.models import GenerationRequest, Job, PartName
from pev.jobs.store import JobStateStore, MemoryStateBackend
from pev.notify import CompletionNotifier
from pev.stitch.engine import StitchResult

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    IDLE = "idle"
    SINGLE = "single"
    PARALLEL = "parallel"
    STITCHING = "stitching"
    COMPLETED = "completed"


class SessionOutcome(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DEGRADED = "degraded"


class DualPartSession(BaseModel):
    """One user-visible generation, made of one or two jobs."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    part_a: Optional[Job] = None
    part_b: Optional[Job] = None
    phase: SessionPhase = SessionPhase.IDLE
    outcome: SessionOutcome = SessionOutcome.PENDING
    stitch_result: Optional[StitchResult] = None
    stitch_error: Optional[str] = None
    resumed: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.outcome != SessionOutcome.PENDING

    @property
    def in_flight(self) -> bool:
        """True while a provider job is still running."""
        return any(not job.is_terminal for _, job in self.parts())

    def parts(self) -> list[tuple[PartName, Job]]:
        found = []
        if self.part_a is not None:
            found.append((PartName.PART_A, self.part_a))
        if self.part_b is not None:
            found.append((PartName.PART_B, self.part_b))
        return found

    @property
    def result_urls(self) -> list[str]:
        """URLs of every part that finished successfully."""
        return [job.result_url for _, job in self.parts() if job.succeeded]


class Stitcher(Protocol):
    async def stitch(self, url_a: str, url_b: str) -> StitchResult: ...


UpdateCallback = Callable[[DualPartSession], None]


class VideoOrchestrator:
    """Drives one session at a time against a submitter and a poller.

    Persisted records are read once at construction; a hydrated session
    resumes polling and never submits again.
    """

    def __init__(
        self,
        submitter: JobSubmitter,
        poller: JobPoller,
        stitcher: Stitcher | None = None,
        store: JobStateStore | None = None,
        notifier: CompletionNotifier | None = None,
        poll_interval: float = 5.0,
        stagger: float = 2.0,
        sleep: Sleep = asyncio.sleep,
        on_update: UpdateCallback | None = None,
    ):
        self.submitter = submitter
        self.poller = poller
        self.stitcher = stitcher
        self.store = store or JobStateStore(MemoryStateBackend())
        self.notifier = notifier or CompletionNotifier()
        self.poll_interval = poll_interval
        self.stagger = stagger
        self._sleep = sleep
        self._on_update = on_update
        self._epoch = 0
        self._task: asyncio.Task | None = None
        self.session = self._hydrate()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _hydrate(self) -> DualPartSession:
        record_a = self.store.load(PartName.PART_A)
        record_b = self.store.load(PartName.PART_B)
        if record_a is None:
            if record_b is not None:
                logger.info("Clearing orphan partB record for job %s", record_b.id)
                self.store.clear(PartName.PART_B)
            return DualPartSession()

        part_b = record_b.to_job() if record_b is not None else None
        session = DualPartSession(
            part_a=record_a.to_job(),
            part_b=part_b,
            phase=SessionPhase.PARALLEL if part_b is not None else SessionPhase.SINGLE,
            resumed=True,
        )
        logger.info(
            "Resuming %s session: partA=%s%s",
            session.phase.value,
            record_a.id,
            f" partB={record_b.id}" if record_b is not None else "",
        )
        return session

    def _update(self, **changes) -> DualPartSession:
        return self._replace(self.session.model_copy(update=changes))

    def _replace(self, session: DualPartSession) -> DualPartSession:
        self.session = session
        if self._on_update is not None:
            try:
                self._on_update(self.session)
            except Exception as e:
                logger.warning("Session update callback failed: %s", e)
        return self.session

    def _set_part(self, part: PartName, job: Job) -> None:
        field = "part_a" if part == PartName.PART_A else "part_b"
        self._update(**{field: job})
        if job.job_id:
            self.store.save(part, job.job_id, job.status, job.result_url)

    def _finish(self, phase: SessionPhase, outcome: SessionOutcome, **extra) -> None:
        self._update(phase=phase, outcome=outcome, **extra)
        logger.info("Session %s: %s / %s", self.session.session_id, phase.value, outcome.value)
        if phase == SessionPhase.COMPLETED:
            self.store.clear_all()
        self.notifier.notify(self.session)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def start(
        self, part_a: GenerationRequest, part_b: GenerationRequest | None = None
    ) -> DualPartSession:
        """Submit one job, or two with partB staggered behind partA.

        Every request is validated before the first network call, so adapter
        errors leave the session idle.
        """
        if self.session.phase != SessionPhase.IDLE:
            raise InvalidRequestError(
                f"A {self.session.phase.value} session is already active; reset it first"
            )
        payload_a = self.submitter.build_payload(part_a)
        payload_b = self.submitter.build_payload(part_b) if part_b is not None else None

        epoch = self._epoch
        if part_b is None:
            self._update(phase=SessionPhase.SINGLE)
            await self._submit(PartName.PART_A, part_a.model, payload_a, epoch)
        else:
            self._update(phase=SessionPhase.PARALLEL)
            await asyncio.gather(
                self._submit(PartName.PART_A, part_a.model, payload_a, epoch),
                self._submit(PartName.PART_B, part_b.model, payload_b, epoch, delay=self.stagger),
            )
        if epoch == self._epoch:
            await self._evaluate(epoch)
        return self.session

    async def _submit(
        self, part: PartName, model: str, payload: dict, epoch: int, delay: float = 0.0
    ) -> None:
        if delay:
            await self._sleep(delay)
            if epoch != self._epoch:
                return
        try:
            job = await self.submitter.submit(model, payload)
        except SubmissionError as e:
            logger.error("Submitting %s failed: %s", part.value, e)
            job = Job.submission_failed(model, str(e))
        if epoch != self._epoch:
            logger.info("Ignoring %s submission from a reset session", part.value)
            return
        self._set_part(part, job)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def tick(self) -> DualPartSession:
        """Poll every in-flight job once, then apply any resulting transition."""
        if self.session.phase == SessionPhase.IDLE or self.session.is_terminal:
            return self.session
        epoch = self._epoch
        pending = [(part, job) for part, job in self.session.parts() if not job.is_terminal]
        if pending:
            await asyncio.gather(*(self._refresh(part, job, epoch) for part, job in pending))
        if epoch == self._epoch:
            await self._evaluate(epoch)
        return self.session

    async def _refresh(self, part: PartName, job: Job, epoch: int) -> None:
        updated = await self.poller.refresh(job)
        if epoch != self._epoch or updated is job:
            return
        if updated.status != job.status:
            logger.info("Job %s (%s): %s -> %s", job.job_id, part.value, job.status.value, updated.status.value)
        self._set_part(part, updated)

    async def _evaluate(self, epoch: int) -> None:
        session = self.session
        if session.is_terminal or session.phase in (SessionPhase.IDLE, SessionPhase.STITCHING):
            return

        if session.phase == SessionPhase.SINGLE:
            job = session.part_a
            if job is None or not job.is_terminal:
                return
            if job.succeeded:
                self._finish(SessionPhase.COMPLETED, SessionOutcome.SUCCEEDED)
            else:
                self._finish(SessionPhase.SINGLE, SessionOutcome.FAILED)
            return

        part_a, part_b = session.part_a, session.part_b
        if part_a is None or part_b is None or not (part_a.is_terminal and part_b.is_terminal):
            return
        if part_a.succeeded and part_b.succeeded:
            await self._stitch(part_a.result_url, part_b.result_url, epoch)
        elif part_a.succeeded or part_b.succeeded:
            self._finish(SessionPhase.PARALLEL, SessionOutcome.DEGRADED)
        else:
            self._finish(SessionPhase.PARALLEL, SessionOutcome.FAILED)

    async def _stitch(self, url_a: str, url_b: str, epoch: int) -> None:
        self._update(phase=SessionPhase.STITCHING)
        result: StitchResult | None = None
        error: str | None = None
        if self.stitcher is None:
            error = "Stitching is not available"
        else:
            try:
                result = await self.stitcher.stitch(url_a, url_b)
            except (StitchError, OSError) as e:
                logger.warning("Stitching failed, exposing both parts: %s", e)
                error = str(e)
            except Exception as e:
                logger.exception("Unexpected stitching error, exposing both parts")
                error = f"Stitching failed: {e}"

        if epoch != self._epoch:
            if result is not None:
                result.discard()
            return
        if result is not None:
            self._finish(SessionPhase.COMPLETED, SessionOutcome.SUCCEEDED, stitch_result=result)
        else:
            self._finish(SessionPhase.COMPLETED, SessionOutcome.DEGRADED, stitch_error=error)

    async def run(self) -> DualPartSession:
        """Tick every ``poll_interval`` seconds until the session is terminal."""
        while self.session.phase != SessionPhase.IDLE and not self.session.is_terminal:
            await self.tick()
            if self.session.is_terminal:
                break
            await self._sleep(self.poll_interval)
        return self.session

    def start_polling(self) -> asyncio.Task:
        """Run the poll loop as a task; returns the existing one if still running."""
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self.run())
        return self._task

    async def wait(self) -> DualPartSession:
        """Wait for the poll loop; returns early (with the idle session) after a reset."""
        task = self.start_polling()
        await asyncio.wait({task})
        if not task.cancelled():
            return task.result()
        return self.session

    def reset(self) -> DualPartSession:
        """Cancel polling, drop every result and record, return to idle."""
        self._epoch += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if self.session.stitch_result is not None:
            self.session.stitch_result.discard()
        self.store.clear_all()
        logger.info("Session %s reset", self.session.session_id)
        return self._replace(DualPartSession())

"""Tests for the dual-part orchestrator: submission, polling, stitching, recovery, reset."""

import asyncio
import json
import time

import httpx
import pytest
from conftest import API_URL, VIDEO_A, VIDEO_B, FakeReplicate, RecordingSleep, run

from pev.errors import InvalidRequestError, StitchError, UnknownModelError
from pev.generation import (
    JobPoller,
    JobSubmitter,
    SessionOutcome,
    SessionPhase,
    VideoOrchestrator,
)
from pev.jobs import GenerationRequest, JobStateStore, JobStatus, MemoryStateBackend
from pev.notify import CompletionNotifier, NullNotificationBackend
from pev.stitch import StitchResult

PROCESSING = {"status": "processing"}
SUCCEEDED_A = {"status": "succeeded", "output": [VIDEO_A]}
SUCCEEDED_B = {"status": "succeeded", "output": VIDEO_B}
FAILED = {"status": "failed", "error": "Content flagged by safety filter"}

KEY_A = "pev:video-job:partA"
KEY_B = "pev:video-job:partB"


class FakeStitcher:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, str]] = []
        self.results: list[StitchResult] = []

    async def stitch(self, url_a: str, url_b: str) -> StitchResult:
        self.calls.append((url_a, url_b))
        if self.fail:
            raise StitchError("All stitching strategies failed", {"crossfade": "x", "simple-concat": "y"})
        result = StitchResult(data=b"merged", strategy="crossfade", duration_seconds=23.2)
        self.results.append(result)
        return result


class InvalidUrlStitcher(FakeStitcher):
    async def stitch(self, url_a: str, url_b: str) -> StitchResult:
        self.calls.append((url_a, url_b))
        raise httpx.InvalidURL("Invalid non-printable ASCII character in URL")

class GatedReplicate(FakeReplicate):
    """Status checks block until ``gate`` is set."""

    gate: asyncio.Event

    async def gated_handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            await self.gate.wait()
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.gated_handler))


class Harness:
    """One orchestrator wired to a scripted Replicate and in-memory storage."""

    def __init__(self, replicate=None, backend=None, stitcher=None):
        self.replicate = replicate or FakeReplicate()
        self.backend = backend or MemoryStateBackend()
        self.stitcher = stitcher or FakeStitcher()
        self.sleep = RecordingSleep()
        self.notification_backend = NullNotificationBackend()
        self.updates = []

    def build(self, client) -> VideoOrchestrator:
        return VideoOrchestrator(
            JobSubmitter(client, "r8_test", api_url=API_URL, sleep=self.sleep),
            JobPoller(client, "r8_test", api_url=API_URL),
            stitcher=self.stitcher,
            store=JobStateStore(self.backend),
            notifier=CompletionNotifier(self.notification_backend),
            sleep=self.sleep,
            on_update=self.updates.append,
        )

    def phases(self) -> list[SessionPhase]:
        seen = []
        for session in self.updates:
            if not seen or seen[-1] != session.phase:
                seen.append(session.phase)
        return seen

    def generate(self, part_a, part_b=None):
        async def go():
            async with self.replicate.client() as client:
                orchestrator = self.build(client)
                await orchestrator.start(part_a, part_b)
                return await orchestrator.wait()

        return run(go())

    def resume(self):
        async def go():
            async with self.replicate.client() as client:
                orchestrator = self.build(client)
                hydrated = orchestrator.session
                return hydrated, await orchestrator.wait()

        return run(go())


def _request(prompt="A nurse explains daily glucose checks", model="wan-2.5", seconds=10):
    return GenerationRequest(prompt=prompt, model=model, duration_seconds=seconds)


def _seed(backend, key, job_id, status, age_seconds=3600.0, video_url=None):
    record = {"id": job_id, "status": status, "timestamp": time.time() - age_seconds}
    if video_url:
        record["videoUrl"] = video_url
    backend.items[key] = json.dumps(record)


class TestSingle:

    def test_single_success_completes(self):
        h = Harness(FakeReplicate(scripts=[[PROCESSING, SUCCEEDED_A]]))
        session = h.generate(_request())
        assert session.phase == SessionPhase.COMPLETED
        assert session.outcome == SessionOutcome.SUCCEEDED
        assert session.part_a.result_url == VIDEO_A
        assert session.part_b is None
        assert session.stitch_result is None
        assert h.phases() == [SessionPhase.SINGLE, SessionPhase.COMPLETED]
        assert h.sleep.delays == [5.0]
        assert h.backend.items == {}
        assert h.stitcher.calls == []

    def test_single_failure(self):
        h = Harness(FakeReplicate(scripts=[[FAILED]]))
        session = h.generate(_request())
        assert session.phase == SessionPhase.SINGLE
        assert session.outcome == SessionOutcome.FAILED
        assert session.part_a.error == "Content flagged by safety filter"

    def test_submission_failure_recorded_on_job(self):
        h = Harness(FakeReplicate(create_responses=[(500, {"detail": "upstream exploded"})]))
        session = h.generate(_request())
        assert session.outcome == SessionOutcome.FAILED
        assert session.part_a.job_id is None
        assert session.part_a.status == JobStatus.FAILED
        assert "upstream exploded" in session.part_a.error
        assert h.backend.items == {}

    def test_requested_duration_snapped(self):
        h = Harness(FakeReplicate(scripts=[[SUCCEEDED_A]]))
        h.generate(_request(seconds=7))
        assert h.replicate.created[0]["payload"]["input"]["duration"] == 10


class TestParallel:

    def test_both_succeed_stitches(self):
        h = Harness(FakeReplicate(scripts=[[PROCESSING, SUCCEEDED_A], [SUCCEEDED_B]]))
        session = h.generate(_request(), _request("Part two"))
        assert h.phases() == [SessionPhase.PARALLEL, SessionPhase.STITCHING, SessionPhase.COMPLETED]
        assert session.outcome == SessionOutcome.SUCCEEDED
        assert session.stitch_result.strategy == "crossfade"
        assert h.stitcher.calls == [(VIDEO_A, VIDEO_B)]
        assert h.backend.items == {}

    def test_part_b_staggered(self):
        h = Harness(FakeReplicate(scripts=[[SUCCEEDED_A], [SUCCEEDED_B]]))
        h.generate(_request(), _request("Part two"))
        assert h.sleep.delays[0] == 2.0
        prompts = [c["payload"]["input"]["prompt"] for c in h.replicate.created]
        assert prompts == ["A nurse explains daily glucose checks", "Part two"]

    def test_completion_order_irrelevant(self):
        """Part B finishing first still stitches A then B, once."""
        h = Harness(FakeReplicate(scripts=[[PROCESSING, PROCESSING, SUCCEEDED_A], [SUCCEEDED_B]]))
        session = h.generate(_request(), _request("Part two"))
        assert session.outcome == SessionOutcome.SUCCEEDED
        assert h.stitcher.calls == [(VIDEO_A, VIDEO_B)]

    def test_partial_failure_degrades_without_stitch(self):
        h = Harness(FakeReplicate(scripts=[[SUCCEEDED_A], [FAILED]]))
        session = h.generate(_request(), _request("Part two"))
        assert session.phase == SessionPhase.PARALLEL
        assert session.outcome == SessionOutcome.DEGRADED
        assert session.result_urls == [VIDEO_A]
        assert session.part_b.error == "Content flagged by safety filter"
        assert h.stitcher.calls == []
        assert SessionPhase.STITCHING not in h.phases()

    def test_both_failed(self):
        h = Harness(FakeReplicate(scripts=[[FAILED], [FAILED]]))
        session = h.generate(_request(), _request("Part two"))
        assert session.phase == SessionPhase.PARALLEL
        assert session.outcome == SessionOutcome.FAILED
        assert session.result_urls == []

    def test_stitch_failure_exposes_both_parts(self):
        h = Harness(FakeReplicate(scripts=[[SUCCEEDED_A], [SUCCEEDED_B]]), stitcher=FakeStitcher(fail=True))
        session = h.generate(_request(), _request("Part two"))
        assert session.phase == SessionPhase.COMPLETED
        assert session.outcome == SessionOutcome.DEGRADED
        assert session.stitch_result is None
        assert "All stitching strategies failed" in session.stitch_error
        assert session.result_urls == [VIDEO_A, VIDEO_B]

    def test_each_part_persisted_in_its_own_slot(self):
        h = Harness(FakeReplicate(scripts=[[PROCESSING], [PROCESSING]]))

        async def go():
            async with h.replicate.client() as client:
                orchestrator = h.build(client)
                await orchestrator.start(_request(), _request("Part two"))
                await orchestrator.tick()
                return orchestrator.session

        session = run(go())
        assert session.phase == SessionPhase.PARALLEL
        assert json.loads(h.backend.items[KEY_A])["id"] == "pred-1"
        assert json.loads(h.backend.items[KEY_B])["id"] == "pred-2"
        assert json.loads(h.backend.items[KEY_A])["status"] == "processing"


class TestValidation:

    def test_adapter_errors_raise_before_network(self):
        h = Harness()

        async def go():
            async with h.replicate.client() as client:
                orchestrator = h.build(client)
                with pytest.raises(UnknownModelError):
                    await orchestrator.start(_request(), _request(model="veo-9"))
                return orchestrator.session

        session = run(go())
        assert session.phase == SessionPhase.IDLE
        assert h.replicate.requests == []

    def test_start_refused_while_active(self):
        h = Harness(FakeReplicate(scripts=[[PROCESSING]]))

        async def go():
            async with h.replicate.client() as client:
                orchestrator = h.build(client)
                await orchestrator.start(_request())
                with pytest.raises(InvalidRequestError):
                    await orchestrator.start(_request())

        run(go())
        assert len(h.replicate.created) == 1


class TestRecovery:

    def test_resumes_processing_part_a(self):
        """A 1-hour-old processing record is polled, never resubmitted."""
        h = Harness(FakeReplicate(scripts=[[PROCESSING, SUCCEEDED_A]]))
        _seed(h.backend, KEY_A, "pred-1", "processing")
        hydrated, session = h.resume()
        assert hydrated.resumed
        assert hydrated.phase == SessionPhase.SINGLE
        assert hydrated.part_a.job_id == "pred-1"
        assert session.outcome == SessionOutcome.SUCCEEDED
        assert h.replicate.created == []
        assert all(r.method == "GET" for r in h.replicate.requests)

    def test_resumes_parallel_session(self):
        h = Harness(FakeReplicate(scripts=[[SUCCEEDED_A], [SUCCEEDED_B]]))
        _seed(h.backend, KEY_A, "pred-1", "processing")
        _seed(h.backend, KEY_B, "pred-2", "starting")
        hydrated, session = h.resume()
        assert hydrated.phase == SessionPhase.PARALLEL
        assert session.outcome == SessionOutcome.SUCCEEDED
        assert h.stitcher.calls == [(VIDEO_A, VIDEO_B)]

    def test_stale_record_ignored(self):
        h = Harness()
        _seed(h.backend, KEY_A, "pred-1", "processing", age_seconds=25 * 3600)
        hydrated, _ = h.resume()
        assert hydrated.phase == SessionPhase.IDLE
        assert h.replicate.requests == []
        assert h.backend.items == {}

    def test_orphan_part_b_cleared(self):
        h = Harness()
        _seed(h.backend, KEY_B, "pred-2", "processing")
        hydrated, _ = h.resume()
        assert hydrated.phase == SessionPhase.IDLE
        assert KEY_B not in h.backend.items

    def test_hydrated_succeeded_part_completes_without_polling(self):
        h = Harness()
        _seed(h.backend, KEY_A, "pred-1", "succeeded", video_url=VIDEO_A)
        _, session = h.resume()
        assert session.outcome == SessionOutcome.SUCCEEDED
        assert session.part_a.result_url == VIDEO_A
        assert h.replicate.requests == []

    def test_unexpected_stitch_error_finishes_degraded(self):
        """Any stitch failure ends the session with both parts exposed."""
        h = Harness(stitcher=InvalidUrlStitcher())
        _seed(h.backend, KEY_A, "pred-1", "succeeded", video_url=VIDEO_A)
        _seed(h.backend, KEY_B, "pred-2", "succeeded", video_url=VIDEO_B)
        _, session = h.resume()
        assert session.phase == SessionPhase.COMPLETED
        assert session.outcome == SessionOutcome.DEGRADED
        assert "non-printable" in session.stitch_error
        assert session.result_urls == [VIDEO_A, VIDEO_B]
        assert h.notification_backend.sent[0][0] == "Video parts ready"


class TestReset:

    def test_reset_cancels_polling_and_clears_records(self):
        h = Harness(FakeReplicate(scripts=[[PROCESSING], [PROCESSING]]))

        async def go():
            async with h.replicate.client() as client:
                orchestrator = h.build(client)
                await orchestrator.start(_request(), _request("Part two"))
                task = orchestrator.start_polling()
                for _ in range(5):
                    await asyncio.sleep(0)
                orchestrator.reset()
                await asyncio.wait({task})
                return orchestrator, task

        orchestrator, task = run(go())
        assert task.cancelled() or task.done()
        assert orchestrator.session.phase == SessionPhase.IDLE
        assert orchestrator.session.part_a is None
        assert h.backend.items == {}

    def test_late_results_ignored_after_reset(self):
        replicate = GatedReplicate(scripts=[[SUCCEEDED_A]])
        h = Harness(replicate)

        async def go():
            replicate.gate = asyncio.Event()
            async with replicate.client() as client:
                orchestrator = h.build(client)
                await orchestrator.start(_request())
                polling = asyncio.ensure_future(orchestrator.tick())
                for _ in range(3):
                    await asyncio.sleep(0)
                orchestrator.reset()
                replicate.gate.set()
                await polling
                return orchestrator.session

        session = run(go())
        assert session.phase == SessionPhase.IDLE
        assert session.part_a is None
        assert h.notification_backend.sent == []

    def test_reset_discards_stitch_result(self):
        h = Harness(FakeReplicate(scripts=[[SUCCEEDED_A], [SUCCEEDED_B]]))

        async def go():
            async with h.replicate.client() as client:
                orchestrator = h.build(client)
                await orchestrator.start(_request(), _request("Part two"))
                await orchestrator.wait()
                orchestrator.reset()
                return orchestrator.session

        session = run(go())
        assert session.phase == SessionPhase.IDLE
        assert h.stitcher.results[0].data == b""


class TestNotification:

    def test_notified_once_on_completion(self):
        h = Harness(FakeReplicate(scripts=[[SUCCEEDED_A], [SUCCEEDED_B]]))
        h.generate(_request(), _request("Part two"))
        assert len(h.notification_backend.sent) == 1
        assert h.notification_backend.sent[0][0] == "Video ready"

    def test_notified_on_degraded(self):
        h = Harness(FakeReplicate(scripts=[[SUCCEEDED_A], [FAILED]]))
        h.generate(_request(), _request("Part two"))
        assert h.notification_backend.sent == [
            ("Video partially ready", "One part failed; the other part is available.")
        ]

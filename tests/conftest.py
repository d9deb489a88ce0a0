"""Pytest configuration and shared fixtures."""

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from pev.errors import TranscoderError
from pev.jobs import JobStateStore, MemoryStateBackend
from pev.stitch import ClipInfo, reset_transcoder

API_URL = "https://api.replicate.com/v1"
VIDEO_A = "https://replicate.delivery/pbxt/part-a.mp4"
VIDEO_B = "https://replicate.delivery/pbxt/part-b.mp4"


def run(coro):
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


class RecordingSleep:
    """Async sleep replacement that records requested delays and only yields."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class FakeReplicate:
    """Scripted stand-in for the Replicate predictions API.

    ``scripts`` holds one list of prediction bodies per created job, in
    creation order; each GET advances one step and the last body repeats.
    ``create_responses`` (status, body) pairs are consumed by POSTs before
    successful creation responses are issued.
    """

    def __init__(self, scripts=None, create_responses=None):
        self.scripts = [list(s) for s in (scripts or [])]
        self.create_responses = list(create_responses or [])
        self.created: list[dict] = []
        self.polls: dict[str, int] = {}
        self.requests: list[httpx.Request] = []
        self.fail_polls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/predictions"):
            if self.create_responses:
                status, body = self.create_responses.pop(0)
                return httpx.Response(status, json=body)
            job_id = f"pred-{len(self.created) + 1}"
            self.created.append({"id": job_id, "payload": json.loads(request.content)})
            return httpx.Response(201, json={"id": job_id, "status": "starting"})
        if request.method == "GET" and "/predictions/" in path:
            if self.fail_polls:
                self.fail_polls -= 1
                return httpx.Response(503, text="upstream unavailable")
            job_id = path.rsplit("/", 1)[-1]
            index = int(job_id.split("-")[-1]) - 1 if job_id.startswith("pred-") else 0
            script = self.scripts[index] if index < len(self.scripts) else [{"status": "processing"}]
            step = self.polls.get(job_id, 0)
            self.polls[job_id] = step + 1
            body = dict(script[min(step, len(script) - 1)])
            body.setdefault("id", job_id)
            return httpx.Response(200, json=body)
        if request.method == "GET" and request.url.host == "replicate.delivery":
            return httpx.Response(200, content=b"\x00\x00\x00\x18ftypmp42" + path.encode())
        return httpx.Response(404, json={"detail": "not found"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class FakeTranscoder:
    """Transcoder double: probes from a duration table, fails chosen strategies."""

    def __init__(self, durations=None, has_audio=True, fail=()):
        self.durations = durations or {}
        self.has_audio = has_audio
        self.fail = set(fail)
        self.lock = asyncio.Lock()
        self.runs: list[list[str]] = []
        self.version = "ffmpeg version fake"

    async def probe(self, path: Path) -> ClipInfo:
        return ClipInfo(
            path=path,
            duration=self.durations.get(path.name, 12.0),
            has_audio=self.has_audio,
            width=1280,
            height=720,
        )

    async def run(self, args: list[str], timeout: float = 600.0) -> None:
        self.runs.append(args)
        strategy = "crossfade" if "xfade" in " ".join(args) else "simple-concat"
        if strategy in self.fail:
            raise TranscoderError(f"{strategy} forced failure")
        Path(args[-1]).write_bytes(f"merged by {strategy}".encode())


@pytest.fixture
def fake_replicate():
    return FakeReplicate()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def memory_backend():
    return MemoryStateBackend()


@pytest.fixture
def memory_store(memory_backend):
    return JobStateStore(memory_backend)


@pytest.fixture
def fake_transcoder():
    return FakeTranscoder()


@pytest.fixture(autouse=True)
def _fresh_transcoder_cache():
    """The transcoder is cached process-wide; isolate tests from each other."""
    reset_transcoder()
    yield
    reset_transcoder()

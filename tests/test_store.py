"""Tests for job state persistence: per-part records, freshness, degraded storage."""

import json

from pev.jobs import (
    FileStateBackend,
    JobStateStore,
    JobStatus,
    MemoryStateBackend,
    NullStateBackend,
    PartName,
    get_job_state_store,
)
from pev.jobs import store as store_module

HOUR = 3600.0


class Clock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_save_writes_local_storage_shape(memory_backend):
    clock = Clock()
    store = JobStateStore(memory_backend, clock=clock)
    store.save(PartName.PART_A, "pred-1", JobStatus.SUCCEEDED, "https://replicate.delivery/a.mp4")
    raw = json.loads(memory_backend.items["pev:video-job:partA"])
    assert raw == {
        "id": "pred-1",
        "status": "succeeded",
        "videoUrl": "https://replicate.delivery/a.mp4",
        "timestamp": clock.now,
    }


def test_in_flight_record_has_no_video_url(memory_backend):
    store = JobStateStore(memory_backend)
    store.save("partB", "pred-2", "processing")
    raw = json.loads(memory_backend.items["pev:video-job:partB"])
    assert "videoUrl" not in raw


def test_fresh_record_loaded(memory_backend):
    clock = Clock()
    store = JobStateStore(memory_backend, clock=clock)
    store.save(PartName.PART_A, "pred-1", JobStatus.PROCESSING)
    clock.now += HOUR
    record = store.load(PartName.PART_A)
    assert record is not None
    assert record.id == "pred-1"
    assert record.status == JobStatus.PROCESSING


def test_stale_record_treated_as_absent_and_removed(memory_backend):
    clock = Clock()
    store = JobStateStore(memory_backend, clock=clock)
    store.save(PartName.PART_A, "pred-1", JobStatus.PROCESSING)
    clock.now += 25 * HOUR
    assert store.load(PartName.PART_A) is None
    assert memory_backend.items == {}


def test_parts_are_independent(memory_backend):
    store = JobStateStore(memory_backend)
    store.save(PartName.PART_A, "pred-1", JobStatus.PROCESSING)
    store.save(PartName.PART_B, "pred-2", JobStatus.QUEUED)
    store.clear(PartName.PART_B)
    assert store.load(PartName.PART_A).id == "pred-1"
    assert store.load(PartName.PART_B) is None


def test_clear_all(memory_backend):
    store = JobStateStore(memory_backend)
    store.save(PartName.PART_A, "pred-1", JobStatus.PROCESSING)
    store.save(PartName.PART_B, "pred-2", JobStatus.PROCESSING)
    store.clear_all()
    assert memory_backend.items == {}


def test_corrupt_record_discarded(memory_backend):
    memory_backend.items["pev:video-job:partA"] = "{not json"
    store = JobStateStore(memory_backend)
    assert store.load(PartName.PART_A) is None
    assert "pev:video-job:partA" not in memory_backend.items


class BrokenBackend(MemoryStateBackend):
    def get_item(self, key):
        raise OSError("storage unavailable")

    def set_item(self, key, value):
        raise OSError("quota exceeded")

    def remove_item(self, key):
        raise OSError("storage unavailable")


def test_failing_backend_degrades_to_no_persistence():
    """Storage errors never reach the caller."""
    store = JobStateStore(BrokenBackend())
    store.save(PartName.PART_A, "pred-1", JobStatus.PROCESSING)
    assert store.load(PartName.PART_A) is None
    store.clear_all()


def test_null_backend_stores_nothing():
    store = JobStateStore(NullStateBackend())
    store.save(PartName.PART_A, "pred-1", JobStatus.PROCESSING)
    assert store.load(PartName.PART_A) is None


def test_file_backend_survives_new_store(tmp_path):
    JobStateStore(FileStateBackend(tmp_path)).save(PartName.PART_A, "pred-1", JobStatus.STARTING)
    record = JobStateStore(FileStateBackend(tmp_path)).load(PartName.PART_A)
    assert record is not None
    assert record.status == JobStatus.STARTING
    assert len(list(tmp_path.glob("*.json"))) == 1


def test_unusable_data_dir_falls_back_to_memory(tmp_path, monkeypatch):
    """A data dir that cannot be created still yields a working store."""
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    monkeypatch.setenv("PEV_DATA_DIR", str(blocker / "data"))
    monkeypatch.setattr(store_module, "_store", None)

    store = get_job_state_store()
    assert isinstance(store._backend, MemoryStateBackend)
    store.save(PartName.PART_A, "pred-1", JobStatus.PROCESSING)
    assert store.load(PartName.PART_A).id == "pred-1"
    assert blocker.read_text() == "not a directory"

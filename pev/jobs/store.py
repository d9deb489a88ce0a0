"""Job state persistence: per-part records in local storage, time-boxed recovery.

Storage is an optimisation, never a requirement: every backend call is
wrapped so a full disk, a read-only data dir or corrupt JSON degrades to
"no persistence" instead of reaching the orchestrator.
"""

from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import Callable, Protocol

from pydantic import ValidationError

from pev.config import get_settings
from pev.jobs.models import JobStatus, PartName, PersistedJobRecord

logger = logging.getLogger(__name__)

KEY_PREFIX = "pev:video-job:"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


class StateBackend(Protocol):
    """Key/value string storage (the local-storage contract)."""

    def get_item(self, key: str) -> str | None: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class FileStateBackend:
    """One JSON file per key. Survives restarts within the same data dir."""

    def __init__(self, directory: Path):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self._dir / f"{safe}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self._path(key).write_text(value, encoding="utf-8")

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class MemoryStateBackend:
    """Process-local storage, used in tests and when the data dir is unusable."""

    def __init__(self):
        self.items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class NullStateBackend:
    """Storage disabled: nothing is kept."""

    def get_item(self, key: str) -> str | None:
        return None

    def set_item(self, key: str, value: str) -> None:
        pass

    def remove_item(self, key: str) -> None:
        pass


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class JobStateStore:
    """Snapshot of in-flight job ids and last-known status, keyed by part."""

    def __init__(
        self,
        backend: StateBackend,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        prefix: str = KEY_PREFIX,
        clock: Callable[[], float] = time.time,
    ):
        self._backend = backend
        self._ttl = ttl_seconds
        self._prefix = prefix
        self._clock = clock

    def _key(self, part: PartName | str) -> str:
        return f"{self._prefix}{PartName(part).value}"

    def save(
        self,
        part: PartName | str,
        job_id: str,
        status: JobStatus | str,
        result_url: str | None = None,
    ) -> None:
        record = PersistedJobRecord(
            id=job_id,
            status=JobStatus(status),
            video_url=result_url,
            timestamp=self._clock(),
        )
        data = record.model_dump(mode="json", by_alias=True, exclude_none=True)
        try:
            self._backend.set_item(self._key(part), json.dumps(data))
        except Exception as e:
            logger.warning("Could not persist %s record (%s); continuing without persistence", part, e)

    def load(self, part: PartName | str) -> PersistedJobRecord | None:
        """Return the record for ``part`` or None if absent, unreadable or stale."""
        key = self._key(part)
        try:
            raw = self._backend.get_item(key)
        except Exception as e:
            logger.warning("Could not read %s record (%s)", part, e)
            return None
        if not raw:
            return None
        try:
            record = PersistedJobRecord.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning("Discarding corrupt %s record: %s", part, e)
            self.clear(part)
            return None
        if not record.is_fresh(self._ttl, now=self._clock()):
            logger.info("Ignoring stale %s record for job %s", part, record.id)
            self.clear(part)
            return None
        return record

    def clear(self, part: PartName | str) -> None:
        try:
            self._backend.remove_item(self._key(part))
        except Exception as e:
            logger.warning("Could not clear %s record (%s)", part, e)

    def clear_all(self) -> None:
        for part in PartName:
            self.clear(part)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_store: JobStateStore | None = None


def get_job_state_store() -> JobStateStore:
    """Return singleton store (file-based under PEV_DATA_DIR, else in-memory)."""
    global _store
    if _store is not None:
        return _store
    settings = get_settings()
    ttl = settings.record_ttl_hours * 3600
    try:
        _store = JobStateStore(FileStateBackend(settings.jobs_dir), ttl_seconds=ttl)
        logger.info("Using file-based job state store (%s)", settings.jobs_dir)
    except OSError as e:
        logger.warning("File job state store failed (%s), falling back to memory", e)
        _store = JobStateStore(MemoryStateBackend(), ttl_seconds=ttl)
    return _store

"""Generation job models and job state persistence."""

from pev.jobs.models import (
    GenerationRequest,
    Job,
    JobSnapshot,
    JobStatus,
    PartName,
    PersistedJobRecord,
    TERMINAL_STATUSES,
)
from pev.jobs.store import (
    FileStateBackend,
    JobStateStore,
    MemoryStateBackend,
    NullStateBackend,
    get_job_state_store,
)

__all__ = [
    "GenerationRequest",
    "Job",
    "JobSnapshot",
    "JobStatus",
    "PartName",
    "PersistedJobRecord",
    "TERMINAL_STATUSES",
    "FileStateBackend",
    "JobStateStore",
    "MemoryStateBackend",
    "NullStateBackend",
    "get_job_state_store",
]

"""In-memory batch job registry: per-item lifecycle and aggregate job state, with time-based expiry after completion."""
import copy
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from app.core.errors import InvalidTransitionError

# Job statuses
JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

# Item statuses
ITEM_PENDING = "pending"
ITEM_PROCESSING = "processing"
ITEM_COMPLETED = "completed"
ITEM_FAILED = "failed"

_ALLOWED_TRANSITIONS = {
    ITEM_PENDING: {ITEM_PROCESSING},
    ITEM_PROCESSING: {ITEM_COMPLETED, ITEM_FAILED},
    ITEM_COMPLETED: set(),
    ITEM_FAILED: set(),
}


@dataclass
class ItemRecord:
    """One screenshot inside a job. Status only moves forward: pending -> processing -> completed | failed."""

    filename: str
    status: str = ITEM_PENDING
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    cost: float = 0.0

    def transition(self, new_status: str) -> None:
        if new_status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidTransitionError(f"{self.filename}: {self.status} -> {new_status}")
        self.status = new_status

    @property
    def settled(self) -> bool:
        return self.status in (ITEM_COMPLETED, ITEM_FAILED)


@dataclass
class ProcessingJob:
    """A submitted batch: fixed list of items plus counters recomputed after every item settles.
    Why available: Returned by submit and polled by clients; the coordinator is its only writer."""

    id: str
    created_at: float
    total_items: int
    estimated_cost: float
    items: List[ItemRecord]
    status: str = JOB_PROCESSING  # processing | completed | failed
    completed_at: Optional[float] = None
    processed_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    actual_cost: float = 0.0
    error: Optional[str] = None
    force: bool = False

    def item(self, filename: str) -> ItemRecord:
        for it in self.items:
            if it.filename == filename:
                return it
        raise KeyError(filename)

    def recompute(self, now: float) -> None:
        """Refresh counters and actual cost from item states; flips to completed once every item has settled."""
        self.success_count = sum(1 for it in self.items if it.status == ITEM_COMPLETED)
        self.failure_count = sum(1 for it in self.items if it.status == ITEM_FAILED)
        self.processed_count = self.success_count + self.failure_count
        self.actual_cost = round(sum(it.cost for it in self.items if it.status == ITEM_COMPLETED), 6)
        if self.status == JOB_PROCESSING and self.processed_count == self.total_items:
            self.status = JOB_COMPLETED
            self.completed_at = now

    def snapshot(self) -> "ProcessingJob":
        return copy.deepcopy(self)


def new_job_id() -> str:
    return uuid.uuid4().hex


class JobRegistry:
    """Owns id -> ProcessingJob. Finished jobs are dropped retention_seconds after completed_at, keeping memory bounded.
    Why available: Replaces a module-level job map with an object the coordinator owns and tests can construct with a fake clock."""

    def __init__(self, retention_seconds: float = 3600, clock: Callable[[], float] = time.time):
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._jobs: Dict[str, ProcessingJob] = {}

    def add(self, job: ProcessingJob) -> None:
        self.purge_expired()
        self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[ProcessingJob]:
        self.purge_expired()
        return self._jobs.get(job_id)

    def purge_expired(self) -> int:
        """Remove jobs whose completion is older than the retention window. Returns the number removed."""
        now = self.clock()
        expired = [
            jid
            for jid, job in self._jobs.items()
            if job.completed_at is not None and now - job.completed_at >= self.retention_seconds
        ]
        for jid in expired:
            del self._jobs[jid]
        return len(expired)

    def clear(self) -> None:
        self._jobs.clear()

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

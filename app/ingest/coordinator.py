"""
Batch coordinator: validates a batch of screenshots, creates a job, and runs the items in concurrency-bounded waves.

Each wave launches up to concurrency_limit item pipelines and waits for all of them to settle before the next wave starts,
which caps simultaneous outbound calls to the analysis provider and the search service. Item failures are recorded on the item;
only a failure escaping the per-item boundary fails the job.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from app.core.config import Settings
from app.core.errors import BatchValidationError, JobLevelError, JobNotFoundError
from app.ingest.jobs import (
    ITEM_COMPLETED,
    ITEM_FAILED,
    ITEM_PROCESSING,
    JOB_FAILED,
    JOB_PROCESSING,
    ItemRecord,
    JobRegistry,
    ProcessingJob,
    new_job_id,
)
from app.ingest.processor import ProcessingResult, ScreenshotProcessor

logger = logging.getLogger(__name__)


@dataclass
class CoordinatorConfig:
    concurrency_limit: int = 3
    max_batch_size: int = 50
    unit_cost: float = 0.08
    job_retention_seconds: float = 3600

    @classmethod
    def from_settings(cls, settings: Settings) -> "CoordinatorConfig":
        return cls(
            concurrency_limit=settings.concurrency_limit,
            max_batch_size=settings.max_batch_size,
            unit_cost=settings.unit_cost,
            job_retention_seconds=settings.job_retention_seconds,
        )


def waves(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    """Split items into consecutive windows of at most size elements."""
    return [items[i : i + size] for i in range(0, len(items), size)]


def validate_batch(items: Any, max_batch_size: int) -> None:
    """Raise BatchValidationError unless items is a 1..max_batch_size list of mappings with non-empty, unique filenames and non-empty payloads.
    Why available: Submission is all-or-nothing; a bad batch must not create a job."""
    if not isinstance(items, (list, tuple)) or not items:
        raise BatchValidationError("Missing or empty files array")
    if len(items) > max_batch_size:
        raise BatchValidationError(
            "Batch size too large",
            [f"Maximum {max_batch_size} files per batch, got {len(items)}"],
        )

    details: List[str] = []
    seen: Dict[str, int] = {}
    for index, item in enumerate(items, start=1):
        if not isinstance(item, Mapping):
            details.append(f"File {index}: not an object")
            continue
        filename = item.get("filename")
        payload = item.get("payload")
        if not isinstance(filename, str) or not filename.strip() or not isinstance(payload, str) or not payload.strip():
            details.append(f"File {index}: Missing filename or payload")
            continue
        if filename in seen:
            details.append(f"File {index}: Duplicate filename {filename!r} (also file {seen[filename]})")
            continue
        seen[filename] = index

    if details:
        raise BatchValidationError("Validation errors", details)


class BatchCoordinator:
    """Owns the job registry and the background tasks that run jobs.
    Why available: Single writer of job state; the HTTP layer only submits batches and reads snapshots."""

    def __init__(
        self,
        processor: ScreenshotProcessor,
        config: Optional[CoordinatorConfig] = None,
        registry: Optional[JobRegistry] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.processor = processor
        self.config = config or CoordinatorConfig()
        self.clock = clock
        self.registry = registry or JobRegistry(self.config.job_retention_seconds, clock=clock)
        self._payloads: Dict[str, Dict[str, str]] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    # -------------------------
    # Submission / lookup
    # -------------------------

    def submit_batch(self, items: Sequence[Mapping[str, Any]], force: bool = False) -> ProcessingJob:
        """Validate and register a new job; every item starts pending. Returns a snapshot immediately, processing happens in run()/start()."""
        validate_batch(items, self.config.max_batch_size)

        job = ProcessingJob(
            id=new_job_id(),
            created_at=self.clock(),
            total_items=len(items),
            estimated_cost=round(len(items) * self.config.unit_cost, 6),
            items=[ItemRecord(filename=it["filename"], cost=self.config.unit_cost) for it in items],
            force=force,
        )
        self.registry.add(job)
        self._drop_orphan_payloads()
        self._payloads[job.id] = {it["filename"]: it["payload"] for it in items}
        logger.info("batch_submitted", extra={"job_id": job.id, "total_items": job.total_items})
        return job.snapshot()

    def _drop_orphan_payloads(self) -> None:
        """Forget payloads of jobs the registry no longer holds."""
        for jid in [j for j in self._payloads if j not in self.registry]:
            del self._payloads[jid]

    def get_job(self, job_id: str) -> ProcessingJob:
        """Snapshot of a job. Raises JobNotFoundError for unknown ids and for jobs purged after the retention window."""
        job = self.registry.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.snapshot()

    # -------------------------
    # Execution
    # -------------------------

    def start(self, job_id: str) -> asyncio.Task:
        """Run the job in a tracked background task. Must be called from a running event loop."""
        if job_id in self._tasks:
            return self._tasks[job_id]
        task = asyncio.create_task(self.run(job_id), name=f"batch-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, jid=job_id: self._tasks.pop(jid, None))
        return task

    async def submit_and_start(self, items: Sequence[Mapping[str, Any]], force: bool = False) -> ProcessingJob:
        job = self.submit_batch(items, force=force)
        self.start(job.id)
        return job

    async def wait(self, job_id: str) -> ProcessingJob:
        """Wait for a started job's task (if still running) and return the final snapshot."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self.get_job(job_id)

    async def run(self, job_id: str) -> ProcessingJob:
        """Process every item of a job in waves of concurrency_limit. A failure escaping the per-item boundary marks the job failed; completed items keep their results."""
        job = self.registry.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        payloads = self._payloads.pop(job_id, {})

        try:
            filenames = [it.filename for it in job.items]
            for index, wave in enumerate(waves(filenames, self.config.concurrency_limit)):
                logger.info("wave_started", extra={"job_id": job_id, "wave": index, "size": len(wave)})
                outcomes = await asyncio.gather(
                    *(self._run_item(job, name, payloads.get(name, "")) for name in wave),
                    return_exceptions=True,
                )
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        raise JobLevelError(str(outcome) or type(outcome).__name__) from outcome
        except asyncio.CancelledError:
            self._fail_job(job, "Job cancelled")
            raise
        except Exception as e:
            logger.exception("batch_failed", extra={"job_id": job_id})
            self._fail_job(job, str(e) or type(e).__name__)
        else:
            logger.info(
                "batch_finished",
                extra={"job_id": job_id, "success": job.success_count, "failed": job.failure_count},
            )
        return job.snapshot()

    async def _run_item(self, job: ProcessingJob, filename: str, payload: str) -> None:
        """Per-item boundary: any exception from the pipeline becomes a failed item. Errors raised by the update path itself propagate (coordinator defect)."""
        self._update_item(job, filename, ITEM_PROCESSING)
        try:
            result: ProcessingResult = await self.processor.process(filename, payload, force=job.force)
        except Exception as e:
            logger.warning("item_failed", exc_info=True, extra={"job_id": job.id, "fingerprint": filename})
            self._update_item(job, filename, ITEM_FAILED, error=str(e) or type(e).__name__)
            return
        self._update_item(job, filename, ITEM_COMPLETED, result=result.to_dict(), cost=result.cost)

    def _update_item(
        self,
        job: ProcessingJob,
        filename: str,
        status: str,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        cost: Optional[float] = None,
    ) -> None:
        """Single mutation path for job state: move one item forward, then recompute the job's counters."""
        item = job.item(filename)
        item.transition(status)
        if result is not None:
            item.result = result
        if error is not None:
            item.error = error
        if cost is not None:
            item.cost = cost
        job.recompute(self.clock())

    def _fail_job(self, job: ProcessingJob, message: str) -> None:
        if job.status == JOB_PROCESSING:
            job.status = JOB_FAILED
            job.error = message
            job.completed_at = self.clock()

    async def shutdown(self) -> None:
        """Cancel running jobs, wait for them to unwind, and fail jobs that were submitted but never started."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        # submitted but never started: fail them so retention can purge, and release their payloads
        for job_id in list(self._payloads):
            job = self.registry.get(job_id)
            if job is not None:
                self._fail_job(job, "Job cancelled before start")
        self._payloads.clear()

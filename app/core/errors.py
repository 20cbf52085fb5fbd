"""Domain errors raised by the batch coordinator, resolver and content store."""
from typing import List, Optional


class PipelineError(Exception):
    """Base class for errors raised by the processing pipeline."""


class BatchValidationError(PipelineError):
    """Submission rejected before any job is created (empty/oversized batch, missing fields, duplicate filenames).
    Why available: Lets the HTTP layer answer 400 with one detail line per offending item."""

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])


class ItemProcessingError(PipelineError):
    """Failure inside one item's pipeline. Recorded on that item; never aborts siblings."""


class JobLevelError(PipelineError):
    """Failure escaping per-item isolation. Marks the whole job failed."""


class JobNotFoundError(PipelineError):
    """Unknown or expired job id."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidTransitionError(PipelineError):
    """Item status moved backwards or skipped a state."""


class DuplicateFingerprintError(PipelineError):
    """Insert attempted for a fingerprint that is already stored. Records are replaced by delete-then-insert."""

    def __init__(self, fingerprint: str):
        super().__init__(f"Record already exists for fingerprint: {fingerprint}")
        self.fingerprint = fingerprint


class SearchServiceError(PipelineError):
    """External search service returned an error or an unreadable response."""

"""Error taxonomy for the job lifecycle."""
from __future__ import annotations


class JobError(Exception):
    """Base class for every failure surfaced by the job lifecycle."""

    category = "Job error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.category)


class StorageError(JobError):
    """Directory or file I/O failed; the operation is aborted."""

    category = "Storage error"


class SubmissionError(JobError):
    """Rejected input (empty content, missing upload, invalid name)."""

    category = "Invalid submission"


class JobNotFoundError(JobError):
    """No artifacts exist for the requested stem."""

    category = "Job not found"


class SchedulerError(JobError):
    """The deferred-execution facility failed or rejected a request.

    ``detail`` holds the facility's own text and is shown to the user verbatim.
    """

    category = "Scheduler error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = (detail or "").strip() or self.category
        super().__init__(self.detail)

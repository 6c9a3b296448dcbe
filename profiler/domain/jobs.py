"""Domain entities for the job lifecycle."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    DELETED = "deleted"
    ORPHANED = "orphaned"


@dataclass(slots=True, frozen=True)
class Progress:
    """Counts published by a running worker."""

    processed: int
    total: int


@dataclass(slots=True)
class JobRecord:
    """A submitted job as known at submission time."""

    stem: str
    principal: str
    input_path: Path
    state: JobState = JobState.QUEUED
    ticket: str | None = None
    message: str | None = None


@dataclass(slots=True)
class JobSummary:
    """State of one stem reconstructed from the artifacts on disk."""

    stem: str
    state: JobState
    progress: Progress | None = None
    artifacts: list[str] = field(default_factory=list)


@dataclass(slots=True)
class JobListing:
    queued: list[JobSummary] = field(default_factory=list)
    running: list[JobSummary] = field(default_factory=list)
    completed: list[JobSummary] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class PendingTicket:
    """One line of the scheduler queue listing."""

    ticket: str
    description: str
    executing: bool = False


@dataclass(slots=True)
class RemovalReport:
    """Outcome of a best-effort removal sweep; failures are not rolled back."""

    removed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    orphaned: list[JobSummary] = field(default_factory=list)

    def merge(self, other: "RemovalReport") -> None:
        self.removed.extend(other.removed)
        self.failed.extend(other.failed)
        self.orphaned.extend(other.orphaned)

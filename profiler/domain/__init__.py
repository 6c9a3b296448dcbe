"""Domain layer definitions."""

from .jobs import JobListing, JobRecord, JobState, JobSummary, PendingTicket, Progress, RemovalReport

__all__ = [
    "JobListing",
    "JobRecord",
    "JobState",
    "JobSummary",
    "PendingTicket",
    "Progress",
    "RemovalReport",
]

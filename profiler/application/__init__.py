"""Application services."""

from .jobs import JobService, classify, get_job_service, reset_job_service

__all__ = [
    "JobService",
    "classify",
    "get_job_service",
    "reset_job_service",
]

"""Shared request dependencies and error translation for the routers."""
from __future__ import annotations

from typing import NoReturn

from fastapi import Header, HTTPException, status

from profiler.core.errors import JobError, JobNotFoundError, SchedulerError, SubmissionError


async def get_principal(x_remote_user: str | None = Header(default=None)) -> str:
    """Principal authenticated by the front-end proxy."""

    if not x_remote_user or not x_remote_user.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authentication required")
    return x_remote_user.strip()


def raise_http_error(exc: JobError) -> NoReturn:
    """Translate a job error into an HTTP error without leaking paths."""

    if isinstance(exc, SchedulerError):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.detail) from exc
    if isinstance(exc, SubmissionError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, JobNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.category) from exc
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.category) from exc

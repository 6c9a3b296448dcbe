from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from profiler.application import get_job_service
from profiler.core.errors import JobError
from profiler.core.schema import PingRequest, SubmittedJobModel
from profiler.routes.deps import get_principal, raise_http_error

router = APIRouter(prefix="/ping", tags=["ping"])


@router.get("/hit-list")
async def get_hit_list(principal: str = Depends(get_principal)) -> dict:
    """Domains found on the public blocklist, available for pinging."""
    service = get_job_service()
    try:
        domains = await asyncio.to_thread(service.read_hit_list, principal)
    except JobError as exc:
        raise_http_error(exc)
    return {"items": domains, "retry": service.default_ping_retry, "pause": service.default_ping_pause}


@router.post("")
async def submit_ping(payload: PingRequest, principal: str = Depends(get_principal)) -> SubmittedJobModel:
    service = get_job_service()
    try:
        record = await asyncio.to_thread(
            service.submit_ping,
            principal,
            payload.domains,
            retry=payload.retry,
            pause=payload.pause,
        )
    except JobError as exc:
        raise_http_error(exc)
    return SubmittedJobModel.from_record(record)

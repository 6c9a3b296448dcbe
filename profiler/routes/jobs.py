from __future__ import annotations

import asyncio
import shutil
import tempfile
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse

from profiler.application import get_job_service
from profiler.core.errors import JobError
from profiler.core.schema import (
    CancelRequest,
    DeleteRequest,
    JobListingModel,
    JobSummaryModel,
    PendingQueueModel,
    RemovalReportModel,
    SubmitTextRequest,
    SubmittedJobModel,
)
from profiler.routes.deps import get_principal, raise_http_error

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("")
async def submit_text(payload: SubmitTextRequest, principal: str = Depends(get_principal)) -> SubmittedJobModel:
    """Queue a job for a pasted list of domains and addresses."""
    service = get_job_service()
    try:
        record = await asyncio.to_thread(service.submit_text, principal, payload.content)
    except JobError as exc:
        raise_http_error(exc)
    return SubmittedJobModel.from_record(record)


@router.post("/upload")
async def submit_upload(file: UploadFile = File(...), principal: str = Depends(get_principal)) -> SubmittedJobModel:
    """Queue a job for an uploaded list file."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file must have a filename")

    service = get_job_service()
    try:
        with tempfile.NamedTemporaryFile(prefix="upload_", delete=False) as buffer:
            shutil.copyfileobj(file.file, buffer)
        spooled = Path(buffer.name)
        try:
            record = await asyncio.to_thread(service.submit_file, principal, spooled, Path(file.filename).name)
        except JobError as exc:
            raise_http_error(exc)
        finally:
            spooled.unlink(missing_ok=True)
    finally:
        await file.close()
    return SubmittedJobModel.from_record(record)


@router.get("")
async def list_jobs(principal: str = Depends(get_principal)) -> JobListingModel:
    service = get_job_service()
    try:
        listing = await asyncio.to_thread(service.list_jobs, principal)
    except JobError as exc:
        raise_http_error(exc)
    return JobListingModel.from_listing(listing)


@router.delete("")
async def delete_jobs(payload: DeleteRequest, principal: str = Depends(get_principal)) -> RemovalReportModel:
    service = get_job_service()
    try:
        report = await asyncio.to_thread(service.delete_jobs, principal, payload.stems)
    except JobError as exc:
        raise_http_error(exc)
    return RemovalReportModel.from_report(report)


@router.post("/reconcile")
async def reconcile(principal: str = Depends(get_principal)) -> RemovalReportModel:
    """Remove working files orphaned by a host restart."""
    service = get_job_service()
    try:
        report = await asyncio.to_thread(service.reconcile, principal)
    except JobError as exc:
        raise_http_error(exc)
    return RemovalReportModel.from_report(report)


@router.get("/queue/pending")
async def list_pending(principal: str = Depends(get_principal)) -> PendingQueueModel:
    service = get_job_service()
    try:
        tickets = await asyncio.to_thread(service.list_pending)
    except JobError as exc:
        raise_http_error(exc)
    return PendingQueueModel.from_tickets(tickets)


@router.post("/queue/cancel")
async def cancel_pending(payload: CancelRequest, principal: str = Depends(get_principal)) -> dict:
    if not payload.tickets:
        raise HTTPException(status_code=400, detail="at least one ticket is required")
    service = get_job_service()
    try:
        await asyncio.to_thread(service.cancel_pending, payload.tickets)
    except JobError as exc:
        raise_http_error(exc)
    return {"cancelled": sorted(set(payload.tickets))}


@router.get("/files/{name}")
async def download_artifact(name: str, principal: str = Depends(get_principal)) -> FileResponse:
    service = get_job_service()
    try:
        path = service.artifact_path(principal, name)
    except JobError as exc:
        raise_http_error(exc)
    return FileResponse(path, filename=name)


@router.get("/{stem}")
async def get_job(stem: str, principal: str = Depends(get_principal)) -> JobSummaryModel:
    service = get_job_service()
    try:
        summary = await asyncio.to_thread(service.get_job, principal, stem)
    except JobError as exc:
        raise_http_error(exc)
    return JobSummaryModel.from_summary(summary)


@router.get("/{stem}/rows")
async def get_job_rows(stem: str, principal: str = Depends(get_principal)) -> dict:
    service = get_job_service()
    try:
        rows = await asyncio.to_thread(service.read_results, principal, stem)
    except JobError as exc:
        raise_http_error(exc)
    return {"stem": stem, "items": rows}

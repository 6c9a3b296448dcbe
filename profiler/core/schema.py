from __future__ import annotations

from pydantic import BaseModel, Field

from profiler.domain import JobListing, JobRecord, JobSummary, PendingTicket, RemovalReport


class SubmitTextRequest(BaseModel):
    content: str


class PingRequest(BaseModel):
    domains: list[str] = Field(default_factory=list)
    retry: int | None = Field(default=None, ge=0, le=99)
    pause: int | None = Field(default=None, ge=0, le=9999)


class DeleteRequest(BaseModel):
    stems: list[str] = Field(default_factory=list)


class CancelRequest(BaseModel):
    tickets: list[str] = Field(default_factory=list)


class ProgressModel(BaseModel):
    processed: int
    total: int


class JobSummaryModel(BaseModel):
    stem: str
    state: str
    progress: ProgressModel | None = None
    artifacts: list[str] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: JobSummary) -> "JobSummaryModel":
        progress = None
        if summary.progress is not None:
            progress = ProgressModel(processed=summary.progress.processed, total=summary.progress.total)
        return cls(
            stem=summary.stem,
            state=summary.state.value,
            progress=progress,
            artifacts=list(summary.artifacts),
        )


class JobListingModel(BaseModel):
    queued: list[JobSummaryModel] = Field(default_factory=list)
    running: list[JobSummaryModel] = Field(default_factory=list)
    completed: list[JobSummaryModel] = Field(default_factory=list)

    @classmethod
    def from_listing(cls, listing: JobListing) -> "JobListingModel":
        return cls(
            queued=[JobSummaryModel.from_summary(item) for item in listing.queued],
            running=[JobSummaryModel.from_summary(item) for item in listing.running],
            completed=[JobSummaryModel.from_summary(item) for item in listing.completed],
        )


class SubmittedJobModel(BaseModel):
    stem: str
    state: str
    ticket: str | None = None
    message: str | None = None

    @classmethod
    def from_record(cls, record: JobRecord) -> "SubmittedJobModel":
        return cls(stem=record.stem, state=record.state.value, ticket=record.ticket, message=record.message)


class PendingTicketModel(BaseModel):
    ticket: str
    description: str
    cancellable: bool


class PendingQueueModel(BaseModel):
    items: list[PendingTicketModel] = Field(default_factory=list)

    @classmethod
    def from_tickets(cls, tickets: list[PendingTicket]) -> "PendingQueueModel":
        return cls(
            items=[
                PendingTicketModel(ticket=item.ticket, description=item.description, cancellable=not item.executing)
                for item in tickets
            ]
        )


class RemovalReportModel(BaseModel):
    removed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    orphaned: list[JobSummaryModel] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: RemovalReport) -> "RemovalReportModel":
        return cls(
            removed=list(report.removed),
            failed=list(report.failed),
            orphaned=[JobSummaryModel.from_summary(item) for item in report.orphaned],
        )

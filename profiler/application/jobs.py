"""Job lifecycle orchestration.

A job exists only as files in its principal's directory; its state is derived
from which artifacts are present:

* ``<stem>`` (no extension): the submitted input, waiting for the worker.
* ``<stem>.count``: the worker is running and publishing progress.
* ``<stem>.csv``, ``<stem>.log``, ``<stem>.job``: results of a finished run.
* ``<stem>.busy``, ``<stem>.lock``, ``<stem>.mx``: transient worker markers.

The distinguished hit-list file (``spamhaus.txt`` by default) and its derived
``.csv`` are listed and deleted as a unit.
"""
from __future__ import annotations

import logging
import re
import shlex
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Sequence

from profiler.core.config import Settings, load_settings
from profiler.core.csvio import read_records_from_csv
from profiler.core.errors import JobNotFoundError, SchedulerError, StorageError, SubmissionError
from profiler.core.jobstore import Entry, JobDirectoryStore, check_component, split_name
from profiler.core.natsort import natural_key, natural_sorted
from profiler.domain import JobListing, JobRecord, JobState, JobSummary, PendingTicket, Progress, RemovalReport
from profiler.infrastructure import SchedulerBinding, get_scheduler
from profiler.workers.progress import PROGRESS_EXTENSION, read_progress

logger = logging.getLogger(__name__)

RESULT_EXTENSIONS = ("csv", "log", "job")
RESERVED_EXTENSIONS = frozenset({"busy", "lock", "mx"})
JOB_PREFIX = "job"
PING_PREFIX = "ping"
MAX_PING_RETRY = 99
MAX_PING_PAUSE = 9999

_UNSAFE_STEM_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def classify(extensions: set[str]) -> JobState | None:
    """Derive a job's state from the extensions present for its stem.

    The progress marker wins over results so a worker caught mid-way through
    writing its output still reads as running; a partial result set without a
    progress marker is treated the same way.
    """

    if PROGRESS_EXTENSION in extensions:
        return JobState.RUNNING
    present = [ext for ext in RESULT_EXTENSIONS if ext in extensions]
    if len(present) == len(RESULT_EXTENSIONS):
        return JobState.COMPLETED
    if present:
        return JobState.RUNNING
    if "" in extensions:
        return JobState.QUEUED
    return None


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")


def _upload_prefix(filename: str | None) -> str:
    base = _UNSAFE_STEM_CHARS.sub("_", Path(filename or "").stem).strip("_")[:48]
    return base or JOB_PREFIX


class JobService:
    """Coordinates submission, observation and clean-up of probing jobs."""

    def __init__(self, store: JobDirectoryStore, scheduler: SchedulerBinding, settings: Settings) -> None:
        self._store = store
        self._scheduler = scheduler
        self._settings = settings

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    @property
    def hit_list_name(self) -> str:
        return self._settings.hit_list_name

    @property
    def hit_list_results_name(self) -> str:
        return split_name(self.hit_list_name).stem + ".csv"

    @property
    def default_ping_retry(self) -> int:
        return self._settings.ping_retry

    @property
    def default_ping_pause(self) -> int:
        return self._settings.ping_pause

    def _is_hit_list(self, name: str) -> bool:
        return name in (self.hit_list_name, self.hit_list_results_name)

    def _worker_command(self, root: Path, input_path: Path, extra_flags: Sequence[str] = ()) -> str:
        argv = [
            self._settings.worker_command,
            *shlex.split(self._settings.worker_flags),
            "-j",
            str(root),
            *extra_flags,
            str(input_path),
        ]
        worker = " ".join(shlex.quote(arg) for arg in argv)
        return f"{worker}; rm -f {shlex.quote(str(input_path))}"

    def _schedule(self, principal: str, root: Path, input_path: Path, extra_flags: Sequence[str] = ()) -> JobRecord:
        record = JobRecord(stem=input_path.name, principal=principal, input_path=input_path)
        command = self._worker_command(root, input_path, extra_flags)
        try:
            ticket = self._scheduler.submit(command)
        except SchedulerError as exc:
            # The input stays on disk and shows up as queued until deleted.
            logger.warning("Scheduler refused job %s for %s: %s", record.stem, principal, exc.detail)
            raise
        record.ticket = ticket
        record.message = f"Started job {ticket}"
        logger.info("Queued job %s for %s as ticket %s", record.stem, principal, ticket)
        return record

    def _group(self, entries: Iterable[Entry]) -> dict[str, set[str]]:
        groups: dict[str, set[str]] = defaultdict(set)
        for entry in entries:
            if entry.stem.startswith(".") or self._is_hit_list(entry.name):
                continue
            groups[entry.stem].add(entry.extension)
        return groups

    def _summarise(self, root: Path, stem: str, extensions: set[str], state: JobState) -> JobSummary:
        summary = JobSummary(
            stem=stem,
            state=state,
            artifacts=[f"{stem}.{ext}" for ext in RESULT_EXTENSIONS if ext in extensions],
        )
        if PROGRESS_EXTENSION in extensions:
            summary.progress = read_progress(root / f"{stem}.{PROGRESS_EXTENSION}")
        return summary

    def _hit_list_summary(self, root: Path) -> JobSummary | None:
        if not (root / self.hit_list_name).is_file():
            return None
        artifacts = [self.hit_list_name]
        if (root / self.hit_list_results_name).is_file():
            artifacts.append(self.hit_list_results_name)
        return JobSummary(stem=self.hit_list_name, state=JobState.COMPLETED, artifacts=artifacts)

    # ------------------------------------------------------------------
    # submission
    # ------------------------------------------------------------------
    def submit_text(self, principal: str, content: str) -> JobRecord:
        if not content or not content.strip():
            raise SubmissionError("no domains or addresses given")
        root = self._store.ensure_root(principal)
        path = self._store.create_unique_file(root, f"{JOB_PREFIX}_{_timestamp()}_")
        try:
            self._store.write_text(path, content if content.endswith("\n") else content + "\n")
        except StorageError:
            self._store.remove(path)
            raise
        return self._schedule(principal, root, path)

    def submit_file(self, principal: str, source: Path, filename: str | None = None) -> JobRecord:
        source = Path(source)
        if not source.is_file():
            raise SubmissionError("uploaded file is missing")
        if source.stat().st_size == 0:
            raise SubmissionError("uploaded file is empty")
        root = self._store.ensure_root(principal)
        path = self._store.create_unique_file(root, f"{_upload_prefix(filename)}_{_timestamp()}_")
        try:
            self._store.place_file(source, path)
        except StorageError:
            self._store.remove(path)
            raise
        return self._schedule(principal, root, path)

    def submit_ping(
        self,
        principal: str,
        domains: Iterable[str],
        *,
        retry: int | None = None,
        pause: int | None = None,
    ) -> JobRecord:
        """Queue a blocklist ping of ``domains`` with per-job retry and pause (ms)."""

        selected = [domain.strip() for domain in domains if domain and domain.strip()]
        if not selected:
            raise SubmissionError("no domains selected")
        retry = self._settings.ping_retry if retry is None else retry
        pause = self._settings.ping_pause if pause is None else pause
        if not 0 <= retry <= MAX_PING_RETRY:
            raise SubmissionError(f"retry must be between 0 and {MAX_PING_RETRY}")
        if not 0 <= pause <= MAX_PING_PAUSE:
            raise SubmissionError(f"pause must be between 0 and {MAX_PING_PAUSE}")
        root = self._store.ensure_root(principal)
        path = self._store.create_unique_file(root, f"{PING_PREFIX}_{_timestamp()}_")
        self._store.write_text(path, "\n".join(selected) + "\n")
        return self._schedule(principal, root, path, (f"-r{retry}", f"-p{pause}"))

    def read_hit_list(self, principal: str) -> list[str]:
        path = self._store.ensure_root(principal) / self.hit_list_name
        if not path.is_file():
            return []
        try:
            lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as exc:
            raise StorageError("cannot read hit list") from exc
        return [line.strip() for line in lines if line.strip()]

    # ------------------------------------------------------------------
    # observation
    # ------------------------------------------------------------------
    def list_principals(self) -> list[str]:
        return self._store.principals()

    def list_jobs(self, principal: str) -> JobListing:
        """Classify every stem; each sequence is newest first in natural order."""

        root = self._store.ensure_root(principal)
        groups = self._group(self._store.list(root))
        listing = JobListing()
        buckets = {
            JobState.QUEUED: listing.queued,
            JobState.RUNNING: listing.running,
            JobState.COMPLETED: listing.completed,
        }
        for stem in natural_sorted(groups, reverse=True):
            state = classify(groups[stem])
            if state is None:
                continue
            buckets[state].append(self._summarise(root, stem, groups[stem], state))

        hit_list = self._hit_list_summary(root)
        if hit_list is not None:
            listing.completed.insert(0, hit_list)
        return listing

    def get_job(self, principal: str, stem: str) -> JobSummary:
        check_component(stem, "job name")
        root = self._store.ensure_root(principal)
        if self._is_hit_list(stem):
            summary = self._hit_list_summary(root)
        else:
            extensions = self._group(self._store.list(root)).get(stem, set())
            state = classify(extensions)
            summary = self._summarise(root, stem, extensions, state) if state else None
        if summary is None:
            raise JobNotFoundError(f"no job named {stem}")
        return summary

    def progress_of(self, principal: str, stem: str) -> Progress | None:
        check_component(stem, "job name")
        return read_progress(self._store.root_for(principal) / f"{stem}.{PROGRESS_EXTENSION}")

    def read_results(self, principal: str, stem: str) -> list[dict[str, str]]:
        """Return the rows of a job's structured output."""

        check_component(stem, "job name")
        root = self._store.ensure_root(principal)
        name = self.hit_list_results_name if self._is_hit_list(stem) else f"{stem}.csv"
        path = root / name
        if not path.is_file():
            raise JobNotFoundError(f"no results for {stem}")
        try:
            return read_records_from_csv(path)
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable results %s for %s: %s", name, principal, exc)
            raise StorageError("cannot read results") from exc

    def artifact_path(self, principal: str, name: str) -> Path:
        """Resolve a downloadable artifact by file name."""

        check_component(name, "artifact name")
        entry = split_name(name)
        if entry.extension not in RESULT_EXTENSIONS and not self._is_hit_list(name):
            raise JobNotFoundError(f"no artifact named {name}")
        path = self._store.ensure_root(principal) / name
        if not path.is_file():
            raise JobNotFoundError(f"no artifact named {name}")
        return path

    # ------------------------------------------------------------------
    # removal
    # ------------------------------------------------------------------
    def delete_job(self, principal: str, stem: str) -> RemovalReport:
        """Remove every artifact of ``stem``; repeating the call is a no-op."""

        check_component(stem, "job name")
        root = self._store.root_for(principal)
        if self._is_hit_list(stem):
            report = self._store.remove_entries(
                root, [split_name(self.hit_list_name), split_name(self.hit_list_results_name)]
            )
        else:
            report = self._store.remove_all_with_stem(
                root, stem, keep=(self.hit_list_name, self.hit_list_results_name)
            )
        if report.removed:
            logger.info(
                "Job %s for %s %s: %s", stem, principal, JobState.DELETED.value, ", ".join(report.removed)
            )
        return report

    def delete_jobs(self, principal: str, stems: Iterable[str]) -> RemovalReport:
        report = RemovalReport()
        for stem in stems:
            report.merge(self.delete_job(principal, stem))
        return report

    def reconcile(self, principal: str) -> RemovalReport:
        """Sweep working files left behind when the host restarted mid-job.

        Results, the hit list and reserved worker markers are kept; a progress
        file survives only alongside a reserved marker. Everything else,
        including inputs that were never consumed, is removed.
        """

        root = self._store.ensure_root(principal)
        entries = self._store.list(root)
        marked = {entry.stem for entry in entries if entry.extension in RESERVED_EXTENSIONS}
        stray: list[Entry] = []
        for entry in entries:
            if entry.extension in RESULT_EXTENSIONS or entry.extension in RESERVED_EXTENSIONS:
                continue
            if self._is_hit_list(entry.name):
                continue
            if entry.extension == PROGRESS_EXTENSION and entry.stem in marked:
                continue
            stray.append(entry)
        in_flight = (JobState.QUEUED, JobState.RUNNING)
        before = {stem: classify(exts) for stem, exts in self._group(entries).items()}
        report = self._store.remove_entries(root, stray)
        gone = set(report.removed)
        after = self._group(entry for entry in entries if entry.name not in gone)
        for stem, state in before.items():
            remaining = after.get(stem, set())
            if state in in_flight and classify(remaining) not in in_flight:
                report.orphaned.append(
                    JobSummary(
                        stem=stem,
                        state=JobState.ORPHANED,
                        artifacts=[f"{stem}.{ext}" for ext in RESULT_EXTENSIONS if ext in remaining],
                    )
                )
        logger.info(
            "Reconciled %s: %d orphaned job(s), %d stray file(s) removed, %d failure(s)",
            principal,
            len(report.orphaned),
            len(report.removed),
            len(report.failed),
        )
        return report

    # ------------------------------------------------------------------
    # scheduler queue
    # ------------------------------------------------------------------
    def list_pending(self) -> list[PendingTicket]:
        return self._scheduler.list_pending()

    def cancel_pending(self, tickets: Iterable[str]) -> None:
        """Cancel queued tickets; facility errors are collected and re-raised verbatim."""

        errors: list[str] = []
        for ticket in sorted(set(tickets), key=natural_key):
            try:
                self._scheduler.cancel(ticket)
            except SchedulerError as exc:
                logger.warning("Cancel of ticket %s failed: %s", ticket, exc.detail)
                errors.append(exc.detail)
            else:
                logger.info("Cancelled ticket %s", ticket)
        if errors:
            raise SchedulerError("\n".join(errors))


_service: JobService | None = None


def get_job_service() -> JobService:
    """Return the process-wide job service, building it on first use."""

    global _service
    if _service is None:
        settings = load_settings()
        store = JobDirectoryStore(
            settings.jobs_root,
            dir_mode=settings.dir_mode,
            file_mode=settings.file_mode,
        )
        _service = JobService(store, get_scheduler(timeout=settings.scheduler_timeout_s), settings)
    return _service


def reset_job_service() -> None:
    """Drop the cached service so the next call re-reads configuration (used in tests)."""

    global _service
    _service = None

"""Progress protocol shared by worker programs and the job service.

A running worker keeps ``<stem>.count`` holding ``"<processed> <total>"``,
rewriting it on every update. On normal completion it leaves ``<stem>.csv``,
``<stem>.log`` and ``<stem>.job`` behind and deletes the count file.
"""
from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from profiler.domain import Progress

logger = logging.getLogger(__name__)

PROGRESS_EXTENSION = "count"


def parse_progress(text: str) -> Progress | None:
    fields = text.split()
    if len(fields) < 2:
        return None
    try:
        processed, total = int(fields[0]), int(fields[1])
    except ValueError:
        return None
    if processed < 0 or total < 0:
        return None
    return Progress(processed=processed, total=total)


def read_progress(path: Path) -> Progress | None:
    """Read a progress file; absent or half-written files yield ``None``."""

    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    progress = parse_progress(text)
    if progress is None:
        logger.debug("Ignoring malformed progress in %s", path.name)
    return progress


class ProgressReporter:
    """Writer side of the protocol, for worker programs written in Python."""

    def __init__(self, job_dir: Path, stem: str) -> None:
        self._job_dir = Path(job_dir)
        self._stem = stem

    @property
    def count_path(self) -> Path:
        return self._job_dir / f"{self._stem}.{PROGRESS_EXTENSION}"

    def artifact_path(self, extension: str) -> Path:
        return self._job_dir / f"{self._stem}.{extension}"

    def update(self, processed: int, total: int) -> None:
        # Replace rather than rewrite so readers never see a torn line.
        scratch = self._job_dir / f".{self._stem}.{PROGRESS_EXTENSION}.tmp"
        scratch.write_text(f"{processed} {total}\n", encoding="utf-8")
        os.replace(scratch, self.count_path)

    def complete(self, *, csv_text: str, log_text: str, job_source: Path | None = None) -> None:
        self.artifact_path("csv").write_text(csv_text, encoding="utf-8")
        self.artifact_path("log").write_text(log_text, encoding="utf-8")
        if job_source is not None:
            shutil.copyfile(job_source, self.artifact_path("job"))
        else:
            self.artifact_path("job").touch()
        self.count_path.unlink(missing_ok=True)

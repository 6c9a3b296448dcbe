"""Per-principal job directories on durable storage.

Every job keeps its artifacts side by side as ``<stem>.<extension>``; the store
only knows about names, the meaning of each extension lives in the
application layer.
"""
from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Collection, NamedTuple

from profiler.core.errors import StorageError, SubmissionError
from profiler.domain import RemovalReport

logger = logging.getLogger(__name__)

_SAFE_COMPONENT = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.@-]*$")


class Entry(NamedTuple):
    stem: str
    extension: str

    @property
    def name(self) -> str:
        return f"{self.stem}.{self.extension}" if self.extension else self.stem


def split_name(name: str) -> Entry:
    """Split at the last dot; names without one have an empty extension."""

    stem, dot, extension = name.rpartition(".")
    if not dot or not stem:
        return Entry(name, "")
    return Entry(stem, extension)


def check_component(value: str, what: str) -> str:
    """Reject anything that is not a single, plain path component."""

    if not value or not _SAFE_COMPONENT.match(value) or ".." in value:
        raise SubmissionError(f"invalid {what}")
    return value


class JobDirectoryStore:
    def __init__(self, base: Path, *, dir_mode: int = 0o777, file_mode: int = 0o644) -> None:
        self._base = Path(base)
        self._dir_mode = dir_mode
        self._file_mode = file_mode

    @property
    def base(self) -> Path:
        return self._base

    def root_for(self, principal: str) -> Path:
        return self._base / check_component(principal, "principal")

    def principals(self) -> list[str]:
        """Names of the principal directories that exist under the base."""

        if not self._base.is_dir():
            return []
        try:
            return sorted(item.name for item in self._base.iterdir() if item.is_dir())
        except OSError as exc:
            raise StorageError("cannot list job directories") from exc

    def ensure_root(self, principal: str) -> Path:
        """Create the principal's directory on first use and return it."""

        root = self.root_for(principal)
        if root.is_dir():
            return root
        base_created = not self._base.exists()
        try:
            root.mkdir(parents=True, exist_ok=True)
            # The worker runs under the scheduler's account, not ours.
            root.chmod(self._dir_mode)
            if base_created:
                self._base.chmod(self._dir_mode)
        except OSError as exc:
            logger.error("Cannot create job directory %s: %s", root, exc)
            raise StorageError("cannot create job directory") from exc
        logger.info("Created job directory for %s", principal)
        return root

    def create_unique_file(self, root: Path, prefix: str) -> Path:
        """Allocate an empty file whose name no other file under ``root`` has."""

        try:
            fd, name = tempfile.mkstemp(prefix=prefix, dir=root)
        except OSError as exc:
            raise StorageError("cannot allocate job file") from exc
        os.close(fd)
        return Path(name)

    def write_text(self, path: Path, content: str) -> Path:
        try:
            path.write_text(content, encoding="utf-8")
            path.chmod(self._file_mode)
        except OSError as exc:
            raise StorageError("cannot write job file") from exc
        return path

    def place_file(self, source: Path, destination: Path) -> Path:
        """Move an uploaded file over a previously allocated destination."""

        try:
            shutil.move(str(source), str(destination))
            destination.chmod(self._file_mode)
        except OSError as exc:
            raise StorageError("cannot store uploaded file") from exc
        return destination

    def list(self, root: Path) -> list[Entry]:
        """Return every regular file under ``root``; order is unspecified."""

        if not root.is_dir():
            return []
        try:
            return [split_name(item.name) for item in root.iterdir() if item.is_file()]
        except OSError as exc:
            raise StorageError("cannot list job directory") from exc

    def remove(self, path: Path) -> bool:
        """Delete one file; an already missing file is not an error."""

        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"cannot remove {path.name}") from exc
        return True

    def remove_entries(self, root: Path, entries: list[Entry]) -> RemovalReport:
        report = RemovalReport()
        for entry in entries:
            try:
                if self.remove(root / entry.name):
                    report.removed.append(entry.name)
            except StorageError as exc:
                logger.warning("Removal of %s failed: %s", entry.name, exc.__cause__)
                report.failed.append(entry.name)
        return report

    def remove_all_with_stem(self, root: Path, stem: str, *, keep: Collection[str] = ()) -> RemovalReport:
        """Remove every artifact named exactly ``stem`` or ``stem.<ext>``, except names in ``keep``."""

        matches = [entry for entry in self.list(root) if entry.stem == stem and entry.name not in keep]
        return self.remove_entries(root, matches)

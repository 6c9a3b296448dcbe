"""Binding to the OS deferred-execution facility.

Production hands command lines to ``at`` and inspects the queue with ``atq``
and ``atrm``. The facility is treated as a black box: every call is bounded
by a timeout and every failure, including the tools being absent, surfaces as
:class:`SchedulerError` carrying the facility's own text.
"""
from __future__ import annotations

import itertools
import logging
import re
import subprocess
from typing import Protocol, Sequence

from profiler.core.errors import SchedulerError
from profiler.domain import PendingTicket

logger = logging.getLogger(__name__)

_SUBMITTED = re.compile(r"^job\s+(\S+)\s+at\b", re.MULTILINE)
_TICKET = re.compile(r"^[A-Za-z0-9]+$")

# In ``atq`` output the queue letter is the seventh field; ``=`` marks a job
# that has already started.
EXECUTING_MARK = "="
QUEUE_FIELD = 6


class SchedulerBinding(Protocol):
    """Contract for deferred-execution facilities."""

    def submit(self, command_line: str) -> str:
        """Queue ``command_line`` to run once, as soon as possible; return its ticket."""

    def cancel(self, ticket: str) -> None:
        """Remove a ticket that has not started yet."""

    def list_pending(self) -> list[PendingTicket]:
        """Return the facility's queue, one entry per line of its listing."""


def parse_queue_listing(text: str, *, queue_field: int = QUEUE_FIELD) -> list[PendingTicket]:
    entries: list[PendingTicket] = []
    for line in text.splitlines():
        fields = line.split()
        if not fields:
            continue
        executing = len(fields) > queue_field and fields[queue_field] == EXECUTING_MARK
        entries.append(PendingTicket(ticket=fields[0], description=line.rstrip(), executing=executing))
    return entries


class AtScheduler:
    """Scheduler backed by the ``at`` family of commands."""

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        at_command: str = "at",
        atq_command: str = "atq",
        atrm_command: str = "atrm",
    ) -> None:
        self._timeout = timeout
        self._at = at_command
        self._atq = atq_command
        self._atrm = atrm_command

    def _run(self, argv: Sequence[str], *, stdin: str | None = None) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                list(argv),
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise SchedulerError(f"{argv[0]}: command not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise SchedulerError(f"{argv[0]}: no response after {self._timeout:g}s") from exc
        except OSError as exc:
            raise SchedulerError(f"{argv[0]}: {exc.strerror or exc}") from exc

    def submit(self, command_line: str) -> str:
        logger.debug("Submitting to %s: %s", self._at, command_line)
        result = self._run([self._at, "-M", "now"], stdin=command_line + "\n")
        output = f"{result.stdout}{result.stderr}"
        match = _SUBMITTED.search(output)
        if result.returncode != 0 or match is None:
            raise SchedulerError(output or f"{self._at} exited with status {result.returncode}")
        return match.group(1)

    def cancel(self, ticket: str) -> None:
        if not _TICKET.match(ticket):
            raise SchedulerError(f"invalid ticket {ticket!r}")
        logger.debug("Removing ticket %s", ticket)
        result = self._run([self._atrm, ticket])
        output = f"{result.stdout}{result.stderr}".strip()
        if output or result.returncode != 0:
            raise SchedulerError(output or f"{self._atrm} exited with status {result.returncode}")

    def list_pending(self) -> list[PendingTicket]:
        result = self._run([self._atq])
        if result.returncode != 0:
            raise SchedulerError(result.stderr or f"{self._atq} exited with status {result.returncode}")
        return parse_queue_listing(result.stdout)


class InMemoryScheduler:
    """Scheduler double that records submissions instead of running them."""

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._pending: dict[str, str] = {}
        self._executing: set[str] = set()
        self.submitted: list[str] = []
        self.unavailable = False

    def _check_available(self) -> None:
        if self.unavailable:
            raise SchedulerError("Can't open /var/run/atd.pid to signal atd. No atd running?")

    def submit(self, command_line: str) -> str:
        self._check_available()
        ticket = str(next(self._counter))
        self._pending[ticket] = command_line
        self.submitted.append(command_line)
        return ticket

    def start(self, ticket: str) -> str:
        """Mark a ticket as picked up by the facility and return its command."""

        self._executing.add(ticket)
        return self._pending[ticket]

    def finish(self, ticket: str) -> None:
        self._executing.discard(ticket)
        self._pending.pop(ticket, None)

    def cancel(self, ticket: str) -> None:
        self._check_available()
        if ticket not in self._pending:
            raise SchedulerError(f"Cannot find jobid {ticket}")
        self.finish(ticket)

    def list_pending(self) -> list[PendingTicket]:
        self._check_available()
        lines = [
            f"{ticket}\tnow {EXECUTING_MARK if ticket in self._executing else 'a'} {command}"
            for ticket, command in self._pending.items()
        ]
        return parse_queue_listing("\n".join(lines), queue_field=2)


_scheduler: SchedulerBinding | None = None


def configure_scheduler(scheduler: SchedulerBinding | None) -> None:
    """Install the scheduler used by the job service; ``None`` restores the default."""

    global _scheduler
    _scheduler = scheduler


def get_scheduler(*, timeout: float = 10.0) -> SchedulerBinding:
    """Return the configured scheduler, falling back to ``at``."""

    if _scheduler is None:
        return AtScheduler(timeout=timeout)
    return _scheduler

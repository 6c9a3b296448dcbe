#!/usr/bin/env python
"""Sweep job directories after the host restarted while jobs were in flight."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from profiler.application import get_job_service
from profiler.core.errors import JobError


def main() -> int:
    parser = argparse.ArgumentParser(description="Remove orphaned working files from job directories")
    parser.add_argument("principals", nargs="*", help="users to reconcile (default: every user)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log every removal")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(message)s")

    service = get_job_service()
    principals = args.principals or service.list_principals()
    status = 0
    for principal in principals:
        try:
            report = service.reconcile(principal)
        except JobError as exc:
            print(f"{principal}: {exc}", file=sys.stderr)
            status = 1
            continue
        for summary in report.orphaned:
            print(f"{principal}: orphaned job {summary.stem}")
        for name in report.removed:
            print(f"{principal}: removed {name}")
        for name in report.failed:
            print(f"{principal}: could not remove {name}", file=sys.stderr)
            status = 1
    return status


if __name__ == "__main__":
    sys.exit(main())

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from profiler.application import JobService
from profiler.core.config import Settings
from profiler.core.jobstore import JobDirectoryStore
from profiler.infrastructure import InMemoryScheduler

WORKER = "/opt/smtp-profile/smtp-profile.sh"


@pytest.fixture()
def jobs_root(tmp_path) -> Path:
    root = tmp_path / "jobs"
    root.mkdir()
    return root


@pytest.fixture()
def scheduler() -> InMemoryScheduler:
    return InMemoryScheduler()


@pytest.fixture()
def settings(jobs_root) -> Settings:
    return Settings(
        jobs_root=jobs_root,
        worker_command=WORKER,
        worker_flags="-v",
        ping_retry=2,
        ping_pause=500,
    )


@pytest.fixture()
def store(jobs_root) -> JobDirectoryStore:
    return JobDirectoryStore(jobs_root)


@pytest.fixture()
def service(store, scheduler, settings) -> JobService:
    return JobService(store, scheduler, settings)


def write_artifacts(root: Path, stem: str, *extensions: str) -> None:
    root.mkdir(parents=True, exist_ok=True)
    for extension in extensions:
        name = f"{stem}.{extension}" if extension else stem
        (root / name).write_text("x\n", encoding="utf-8")

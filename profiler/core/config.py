"""Runtime configuration for the profiler job service.

Defaults are read from ``profiler/config/profiler.yaml`` (or the file named by
``PROFILER_CONFIG``); environment variables with the same key names override
individual values, which is how tests point ``JOBDIR`` at a temporary tree.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
DEFAULT_CONFIG = CONFIG_DIR / "profiler.yaml"


class Settings(BaseModel):
    """Typed settings; aliases keep the key names of the original INI file."""

    model_config = ConfigDict(populate_by_name=True)

    jobs_root: Path = Field(alias="JOBDIR")
    worker_command: str = Field(default="smtp-profile.sh", alias="WORKER_COMMAND")
    worker_flags: str = Field(default="-v", alias="WORKER_FLAGS")
    ping_retry: int = Field(default=3, ge=0, alias="PINGRETRY")
    ping_pause: int = Field(default=1000, ge=0, alias="PINGPAUSE")
    scheduler_timeout_s: float = Field(default=10.0, gt=0, alias="SCHEDULER_TIMEOUT_S")
    hit_list_name: str = Field(default="spamhaus.txt", alias="HIT_LIST_NAME")
    dir_mode: int = Field(default=0o777, alias="DIR_MODE")
    file_mode: int = Field(default=0o644, alias="FILE_MODE")

    @field_validator("jobs_root", mode="before")
    @classmethod
    def expand_root(cls, value: str | Path) -> Path:
        return Path(value).expanduser()

    @field_validator("dir_mode", "file_mode", mode="before")
    @classmethod
    def parse_mode(cls, value: int | str) -> int:
        if isinstance(value, int):
            return value
        return int(str(value).strip(), 8)


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp)
    return data if isinstance(data, dict) else {}


def load_settings() -> Settings:
    """Build settings from the YAML defaults merged with the environment."""

    env_path = os.getenv("PROFILER_CONFIG")
    path = Path(env_path).expanduser() if env_path else DEFAULT_CONFIG
    merged: dict[str, Any] = _read_config_file(path)
    for alias in (field.alias for field in Settings.model_fields.values()):
        value = os.getenv(alias)
        if value:
            merged[alias] = value
    return Settings(**merged)

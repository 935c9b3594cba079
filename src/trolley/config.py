"""Application configuration helpers."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENV_FILE_CANDIDATES = (Path(".env"), Path(".env.local"))


class Settings(BaseModel):
    """Global application settings loaded from environment variables or .env files."""

    database_path: Path = Field(
        default=Path("./data/trolley.db"),
        description="SQLite database location.",
    )
    api_token: Optional[str] = Field(
        default=None,
        description="Bearer token required for authenticated endpoints.",
    )
    log_level: str = Field(default="INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        default="plain",
        description="Logging format (plain/json).",
    )
    log_requests: bool = Field(
        default=True,
        description="Emit request access logs when true.",
    )
    undo_timeout_seconds: float = Field(
        default=4.0,
        gt=0,
        description="How long the undo affordance stays available after a swipe delete.",
    )
    my_list_position: str = Field(
        default="first",
        description="Where the My List group sits relative to store groups (first/last).",
    )
    rebuild_workers: int = Field(
        default=1,
        ge=1,
        description="Thread pool size used to regroup rows off the UI thread.",
    )
    sweep_enabled: bool = Field(
        default=False,
        description="Run the scheduled auto delete sweep when true.",
    )
    sweep_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Seconds between scheduled auto delete sweeps.",
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("my_list_position")
    @classmethod
    def _validate_position(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"first", "last"}:
            raise ValueError("my_list_position must be 'first' or 'last'")
        return normalized

    @property
    def my_list_first(self) -> bool:
        return self.my_list_position == "first"


def _coerce_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_env_file(path: Path) -> dict[str, str]:
    payload: dict[str, str] = {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, raw_value = line.split("=", 1)
                payload[key.strip()] = raw_value.strip()
    except FileNotFoundError:
        return {}
    return payload


def _load_env_file_values() -> dict[str, str]:
    values: dict[str, str] = {}
    for candidate in ENV_FILE_CANDIDATES:
        values.update(_parse_env_file(candidate))
    return values


def _load_from_env() -> dict[str, object]:
    """Load optional overrides from env vars (with .env fallbacks)."""

    file_values = _load_env_file_values()

    def _env(key: str) -> Optional[str]:
        return os.environ.get(key) or file_values.get(key)

    payload: dict[str, object] = {}
    if (db_path := _env("TROLLEY_DATABASE_PATH")):
        payload["database_path"] = Path(db_path)
    if (api_token := _env("TROLLEY_API_TOKEN")):
        payload["api_token"] = api_token
    if (log_level := _env("TROLLEY_LOG_LEVEL")):
        payload["log_level"] = log_level
    if (log_format := _env("TROLLEY_LOG_FORMAT")):
        payload["log_format"] = log_format
    if (log_requests := _env("TROLLEY_LOG_REQUESTS")):
        payload["log_requests"] = _coerce_bool(log_requests)
    if (undo_timeout := _env("TROLLEY_UNDO_TIMEOUT")):
        try:
            payload["undo_timeout_seconds"] = float(undo_timeout)
        except ValueError:
            pass
    if (my_list_position := _env("TROLLEY_MY_LIST_POSITION")):
        payload["my_list_position"] = my_list_position
    if (rebuild_workers := _env("TROLLEY_REBUILD_WORKERS")):
        try:
            payload["rebuild_workers"] = int(rebuild_workers)
        except ValueError:
            pass
    if (sweep_enabled := _env("TROLLEY_SWEEP_ENABLED")):
        payload["sweep_enabled"] = _coerce_bool(sweep_enabled)
    if (sweep_interval := _env("TROLLEY_SWEEP_INTERVAL")):
        try:
            payload["sweep_interval_seconds"] = float(sweep_interval)
        except ValueError:
            pass
    return payload


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings(**_load_from_env())

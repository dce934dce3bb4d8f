"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "t", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str
    access_token: Optional[str]
    sqlite_busy_timeout_seconds: float
    storage_retry_attempts: int
    storage_retry_backoff_seconds: float
    event_stream_poll_seconds: float
    seed_demo_reservations: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings once per process; tests call ``cache_clear`` to reload."""
    return Settings(
        app_name=os.getenv("RESERVATIONS_APP_NAME", "School Resource Reservations"),
        app_version=os.getenv("RESERVATIONS_APP_VERSION", "1.0.0"),
        database_path=Path(
            os.getenv(
                "RESERVATIONS_DB_PATH",
                str(PROJECT_ROOT / "data" / "reservations.db"),
            )
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        access_token=os.getenv("RESERVATIONS_ACCESS_TOKEN") or None,
        sqlite_busy_timeout_seconds=float(
            os.getenv("RESERVATIONS_SQLITE_BUSY_TIMEOUT", "5.0")
        ),
        storage_retry_attempts=int(os.getenv("RESERVATIONS_STORAGE_RETRIES", "3")),
        storage_retry_backoff_seconds=float(
            os.getenv("RESERVATIONS_STORAGE_BACKOFF", "0.05")
        ),
        event_stream_poll_seconds=float(
            os.getenv("RESERVATIONS_EVENT_POLL_SECONDS", "1.0")
        ),
        seed_demo_reservations=_env_bool("RESERVATIONS_SEED_DEMO", False),
    )

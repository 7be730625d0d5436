from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

_DB_NAME_ENV = "REALTIME_DB_NAME"
_DB_PATH_ENV = "REALTIME_DB_PERSISTENCE_PATH"
_BATCH_SIZE_ENV = "SYNC_BATCH_SIZE"
_BATCH_DELAY_ENV = "SYNC_BATCH_DELAY_SECONDS"
_FALLBACK_INTERVAL_ENV = "SYNC_FALLBACK_INTERVAL_MINUTES"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the sync service, read once from the environment."""

    database_name: str
    database_persistence_path: Optional[str]
    sync_batch_size: int
    sync_batch_delay: float
    fallback_interval_minutes: float
    log_level: str


def _raw_env(name: str) -> Optional[str]:
    """Return the stripped variable, or ``None`` when it is unset."""
    value = os.getenv(name)
    return value.strip() if value is not None else None


def _parsed_env(
    name: str,
    default: T,
    parse: Callable[[str], T],
    accept: Callable[[T], bool],
) -> T:
    raw = _raw_env(name)
    if not raw:
        return default
    try:
        parsed = parse(raw)
    except ValueError:
        return default
    return parsed if accept(parsed) else default


def _path_env(name: str, default: Optional[str]) -> Optional[str]:
    # Set but blank disables persistence.
    raw = _raw_env(name)
    if raw is None:
        return default
    return raw or None


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_name=_raw_env(_DB_NAME_ENV) or "telemetry",
        database_persistence_path=_path_env(_DB_PATH_ENV, "./tmp/realtime_db.json"),
        sync_batch_size=_parsed_env(_BATCH_SIZE_ENV, 20, int, lambda value: value > 0),
        sync_batch_delay=_parsed_env(_BATCH_DELAY_ENV, 3.0, float, lambda value: value >= 0),
        fallback_interval_minutes=_parsed_env(
            _FALLBACK_INTERVAL_ENV, 5.0, float, lambda value: value >= 0
        ),
        log_level=(_raw_env(_LOG_LEVEL_ENV) or "INFO").upper(),
    )

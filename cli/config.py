from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
# A sync pass sleeps between batches; one request may run for minutes.
DEFAULT_TIMEOUT = 120.0


def _positive_seconds(raw: Optional[str]) -> Optional[float]:
    try:
        seconds = float(raw) if raw and raw.strip() else None
    except ValueError:
        return None
    return seconds if seconds is not None and seconds > 0 else None


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls) -> "CLIConfig":
        """Read ``API_BASE_URL`` and ``CLI_REQUEST_TIMEOUT``, ignoring unusable values."""
        return cls(
            base_url=(os.getenv("API_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            request_timeout=_positive_seconds(os.getenv("CLI_REQUEST_TIMEOUT")) or DEFAULT_TIMEOUT,
        )


def load_config(
    base_url: Optional[str] = None,
    request_timeout: Optional[float] = None,
) -> CLIConfig:
    """Environment defaults, overridden by explicit command line options."""
    config = CLIConfig.from_env()
    if base_url:
        config = replace(config, base_url=base_url.rstrip("/"))
    if request_timeout is not None:
        config = replace(config, request_timeout=request_timeout)
    return config

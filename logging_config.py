from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Any, Iterable, List, Optional, Tuple

from settings import get_settings

_CONTEXT_KEYS: Tuple[str, ...] = (
    "history_key",
    "raw_timestamp",
    "entry_count",
    "synced",
    "skipped",
    "reason",
)

_configured = False


def _field(record: logging.LogRecord, name: str) -> Optional[Any]:
    return record.__dict__.get(name)


class SyncContextFormatter(logging.Formatter):
    """Render the sync context attached through ``extra`` after the message.

    The device partition collapses to ``device=<type>/<id>`` and batch progress to
    ``batch=<index>/<count>`` so a pass can be followed by grepping one device.
    Timestamps are rendered in UTC.
    """

    converter = time.gmtime

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        context_keys: Optional[Iterable[str]] = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.context_keys = tuple(context_keys) if context_keys is not None else _CONTEXT_KEYS

    def context_of(self, record: logging.LogRecord) -> List[str]:
        parts: List[str] = []
        device_id = _field(record, "device_id")
        if device_id is not None:
            device_type = _field(record, "device_type") or "?"
            parts.append(f"device={device_type}/{device_id}")
        batch_index = _field(record, "batch_index")
        if batch_index is not None:
            parts.append(f"batch={batch_index}/{_field(record, 'batch_count') or '?'}")
        for key in self.context_keys:
            value = _field(record, key)
            if value is not None:
                parts.append(f"{key}={value}")
        return parts

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        parts = self.context_of(record)
        return f"{message} | {' '.join(parts)}" if parts else message


def configure_logging(level: str | int | None = None) -> None:
    """Install the stream handler once per process; later calls are no-ops."""
    global _configured
    if _configured:
        return

    log_level = level if level is not None else get_settings().log_level
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "sync": {
                    "()": "logging_config.SyncContextFormatter",
                    "fmt": "%(asctime)sZ %(levelname)-7s %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "sync",
                    "level": log_level,
                }
            },
            # Request lines from the CLI client drown out sync progress.
            "loggers": {"httpx": {"level": "WARNING"}},
            "root": {"handlers": ["console"], "level": log_level},
        }
    )
    _configured = True

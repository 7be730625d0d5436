"""Classification of device timestamps of unknown unit and epoch."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional

REFERENCE_INSTANT_MS = 946_684_800_000
REFERENCE_INSTANT_SECONDS = 946_684_800
MIN_PLAUSIBLE_TIMESTAMP = 1_000_000
DAY_MS = 86_400_000


def coerce_number(raw: Any) -> Optional[float]:
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float)):
        value = raw
    elif isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            return None
    else:
        return None
    return value if math.isfinite(value) else None


def normalize_timestamp(raw: Any) -> Optional[float]:
    """Return ``raw`` as epoch milliseconds, or ``None`` when it is not plausible.

    Values under one million are treated as noise or relative counters.
    Values that look like seconds are scaled to milliseconds and kept only if
    the result is not earlier than the year 2000. Values already past the
    year 2000 in milliseconds are returned unchanged. Everything else is
    rejected.
    """
    value = coerce_number(raw)
    if not value:
        return None
    if value < MIN_PLAUSIBLE_TIMESTAMP:
        return None
    if value < REFERENCE_INSTANT_SECONDS:
        converted = value * 1000
        if converted >= REFERENCE_INSTANT_MS:
            return compact_number(converted)
        return None
    if value >= REFERENCE_INSTANT_MS:
        return compact_number(value)
    return None


def compact_number(value: Optional[float]) -> Optional[float]:
    """Collapse integral floats to ``int`` so keys and payloads stay stable."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def to_iso(timestamp_ms: float) -> Optional[str]:
    """Render epoch milliseconds as ``2023-11-14T22:13:20.000Z``.

    Returns ``None`` for instants outside the range ``datetime`` can represent.
    """
    try:
        moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return None
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_number(value: Any) -> str:
    """Render a number the way the device feed serializes it (``2.0`` -> ``"2"``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)

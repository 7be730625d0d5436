"""Reading stored history back for queries and export."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from functools import cmp_to_key
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from app.schemas import HistoryEntry
from datastore.realtime_db import MockRealtimeDatabase
from models.records import Partition
from services.errors import FetchFailure
from services.planner import now_ms
from services.timestamps import (
    DAY_MS,
    MIN_PLAUSIBLE_TIMESTAMP,
    coerce_number,
    normalize_timestamp,
)

logger = logging.getLogger(__name__)

DateBound = Union[date, datetime, str]


@dataclass(slots=True)
class HistoryQueryResult:
    entries: List[HistoryEntry] = field(default_factory=list)
    error: Optional[str] = None


def _day_start_ms(bound: DateBound) -> int:
    if isinstance(bound, datetime):
        moment = bound if bound.tzinfo else bound.replace(tzinfo=timezone.utc)
        return int(moment.timestamp() * 1000)
    if isinstance(bound, str):
        bound = date.fromisoformat(bound.strip())
    midnight = datetime.combine(bound, time.min, tzinfo=timezone.utc)
    return int(midnight.timestamp() * 1000)


def day_range(
    start_date: Optional[DateBound], end_date: Optional[DateBound]
) -> tuple[Optional[int], Optional[int]]:
    """Inclusive ``[start, end]`` bounds in epoch ms for whole-day filters."""
    start = _day_start_ms(start_date) if start_date else None
    end = _day_start_ms(end_date) + DAY_MS - 1 if end_date else None
    return start, end


def _sort_key(entry: Mapping[str, Any]) -> float:
    for name in ("originalTimestamp", "deviceTimestamp", "timestamp"):
        value = coerce_number(entry.get(name))
        if value:
            return value
    return 0


def _compare_newest_first(left: tuple[float, float], right: tuple[float, float]) -> int:
    left_key, left_ts = left
    right_key, right_ts = right
    if (
        left_key
        and right_key
        and left_key < MIN_PLAUSIBLE_TIMESTAMP
        and right_key < MIN_PLAUSIBLE_TIMESTAMP
    ):
        # Both look like device sequence counters; keep device-local order.
        return (right_key > left_key) - (right_key < left_key)
    return (right_ts > left_ts) - (right_ts < left_ts)


class HistoryReader:
    """Fetches a partition's history and renders it in presentation order."""

    def __init__(
        self, database: MockRealtimeDatabase, clock: Callable[[], int] = now_ms
    ) -> None:
        self.database = database
        self._clock = clock

    async def fetch_raw(self, partition: Partition) -> List[Dict[str, Any]]:
        """Return stored entries without normalization or filtering."""
        try:
            snapshot = await self.database.get(partition.path)
        except Exception as exc:  # noqa: BLE001 - any store error invalidates the baseline
            raise FetchFailure(partition.path, exc) from exc
        if snapshot is None:
            return []
        if not isinstance(snapshot, dict):
            raise FetchFailure(partition.path, TypeError("history node is not a mapping"))
        return [value for value in snapshot.values() if isinstance(value, dict)]

    async def fetch_filtered(
        self,
        device_id: str,
        device_type: str,
        start_date: Optional[DateBound] = None,
        end_date: Optional[DateBound] = None,
    ) -> HistoryQueryResult:
        partition = Partition(device_id=device_id, device_type=device_type)
        try:
            raw_entries = await self.fetch_raw(partition)
            start, end = day_range(start_date, end_date)
        except (FetchFailure, ValueError) as exc:
            logger.error(
                "History query failed: %s",
                exc,
                extra={"device_id": device_id, "device_type": device_type},
            )
            return HistoryQueryResult(entries=[], error=str(exc))

        now = self._clock()
        ranked: List[tuple[tuple[float, float], HistoryEntry]] = []
        for raw in raw_entries:
            timestamp = self._resolve_timestamp(raw, now)
            if start is not None and timestamp < start:
                continue
            if end is not None and timestamp > end:
                continue
            try:
                entry = HistoryEntry.model_validate({**raw, "timestamp": timestamp})
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed history entry: %s",
                    exc.errors()[0]["msg"] if exc.errors() else exc,
                    extra={"device_id": device_id, "device_type": device_type},
                )
                continue
            ranked.append(((_sort_key(raw), timestamp), entry))

        ranked.sort(key=cmp_to_key(lambda a, b: _compare_newest_first(a[0], b[0])))
        logger.info(
            "Returning %d history entries",
            len(ranked),
            extra={
                "device_id": device_id,
                "device_type": device_type,
                "entry_count": len(ranked),
            },
        )
        return HistoryQueryResult(entries=[entry for _, entry in ranked])

    @staticmethod
    def _resolve_timestamp(raw: Mapping[str, Any], now: int) -> float:
        stored = coerce_number(raw.get("timestamp"))
        candidate = (
            stored
            or coerce_number(raw.get("originalTimestamp"))
            or coerce_number(raw.get("deviceTimestamp"))
        )
        normalized = normalize_timestamp(candidate)
        if normalized is not None:
            return normalized
        # Lossy: entries with no usable time are presented as current.
        return now

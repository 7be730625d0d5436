"""Incremental, idempotent planning of history writes."""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from app.schemas import HistoryEntry
from models.records import ContainerGeometry, Number, Reading, SkipReason
from services.metrics import TankMetricsCalculator
from services.timestamps import (
    coerce_number,
    format_number,
    normalize_timestamp,
    to_iso,
)

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_INTERVAL_MS = 5 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def dedup_key(raw_timestamp: Any, distance: Any) -> str:
    return f"{format_number(raw_timestamp)}_{format_number(distance or 0)}"


def history_key(raw_timestamp: Any, distance: Any) -> str:
    """Storage key for an entry; ``.`` is not allowed in store path segments."""
    return dedup_key(raw_timestamp, distance).replace(".", "_")


def stored_raw_timestamp(entry: Mapping[str, Any]) -> float:
    """Device-reported timestamp of a stored entry, or 0 when it has none."""
    for name in ("originalTimestamp", "deviceTimestamp", "timestamp"):
        value = coerce_number(entry.get(name))
        if value:
            return value
    return 0


def latest_timestamp(existing_history: Iterable[Mapping[str, Any]]) -> float:
    """Watermark of a partition: the highest raw timestamp already stored."""
    return max((stored_raw_timestamp(entry) for entry in existing_history), default=0)


@dataclass(slots=True)
class PlannedWrite:
    history_key: str
    raw_timestamp: Number
    entry: HistoryEntry


@dataclass(slots=True)
class SyncPlan:
    writes: List[PlannedWrite] = field(default_factory=list)
    skip_reasons: Counter = field(default_factory=Counter)
    fabricated: int = 0

    @property
    def skipped(self) -> int:
        return sum(self.skip_reasons.values())


class DedupPlanner:
    """Select the readings that still need to be written and build their entries."""

    def __init__(
        self,
        calculator: TankMetricsCalculator,
        fallback_interval_ms: int = DEFAULT_FALLBACK_INTERVAL_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.calculator = calculator
        self.fallback_interval_ms = fallback_interval_ms
        self._clock = clock

    def plan(
        self,
        existing_history: Sequence[Mapping[str, Any]],
        candidates: Sequence[Reading],
        geometry: Optional[ContainerGeometry] = None,
    ) -> SyncPlan:
        plan = SyncPlan()
        watermark = latest_timestamp(existing_history)

        fresh: List[Reading] = []
        for reading in candidates:
            if not reading.timestamp:
                plan.skip_reasons[SkipReason.missing_timestamp.value] += 1
            elif reading.timestamp > watermark:
                fresh.append(reading)
            else:
                plan.skip_reasons[SkipReason.already_synced.value] += 1

        if not fresh:
            return plan

        seen_keys = {
            dedup_key(stored_raw_timestamp(entry), entry.get("distance"))
            for entry in existing_history
        }
        ordered = sorted(fresh, key=lambda item: item.timestamp or 0)
        total = len(ordered)
        now = self._clock()

        for position, reading in enumerate(ordered):
            raw_timestamp = reading.timestamp
            key = dedup_key(raw_timestamp, reading.distance)
            if key in seen_keys:
                plan.skip_reasons[SkipReason.duplicate.value] += 1
                logger.debug(
                    "Skipping duplicate reading",
                    extra={"raw_timestamp": raw_timestamp, "reason": SkipReason.duplicate.value},
                )
                continue
            seen_keys.add(key)

            normalized = normalize_timestamp(raw_timestamp)
            if normalized is None:
                # Unparseable device clock: space readings backwards from now so
                # their relative order survives. Absolute time is lost.
                normalized = now - (total - 1 - position) * self.fallback_interval_ms
                plan.fabricated += 1

            storage_key = history_key(raw_timestamp, reading.distance)
            try:
                entry = self._build_entry(reading, raw_timestamp, normalized, geometry)
            except (ValidationError, ValueError, OverflowError) as exc:
                plan.skip_reasons[SkipReason.invalid.value] += 1
                logger.warning(
                    "Skipping reading that does not form a valid history entry: %s",
                    exc,
                    extra={
                        "history_key": storage_key,
                        "raw_timestamp": raw_timestamp,
                        "reason": SkipReason.invalid.value,
                    },
                )
                continue

            plan.writes.append(
                PlannedWrite(history_key=storage_key, raw_timestamp=raw_timestamp, entry=entry)
            )

        if plan.fabricated:
            logger.warning(
                "Fabricated %d timestamps for readings with unparseable device time",
                plan.fabricated,
                extra={"entry_count": plan.fabricated},
            )
        return plan

    def _build_entry(
        self,
        reading: Reading,
        raw_timestamp: Number,
        normalized: Number,
        geometry: Optional[ContainerGeometry],
    ) -> HistoryEntry:
        iso_date = to_iso(normalized)
        if iso_date is None:
            raise ValueError(f"Timestamp {normalized} is outside the representable range.")
        distance = reading.distance
        payload: Dict[str, Any] = dict(reading.extra)
        if reading.push_key is not None:
            payload.setdefault("pushKey", reading.push_key)
        payload.update(
            {
                "distance": distance,
                "distance_meters": distance,
                "distance_cm": round(distance * 100, 1) if distance is not None else None,
                "originalTimestamp": raw_timestamp,
                "deviceTimestamp": raw_timestamp,
                "timestamp": normalized,
                "date": iso_date,
            }
        )

        metrics = self.calculator.derive(distance, geometry)
        if metrics is not None:
            payload.update(
                {
                    "waterLevel": metrics.water_level,
                    "currentVolume": metrics.current_volume,
                    "maxCapacity": metrics.max_capacity,
                    "fillPercentage": metrics.fill_percentage,
                    "capacity": metrics.capacity,
                }
            )
        return HistoryEntry.model_validate(payload)

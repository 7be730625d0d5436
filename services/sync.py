"""History synchronization orchestration for device telemetry."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from threading import Lock
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Sequence, Tuple

from app.schemas import HistoryEntry
from datastore.connection import build_default_connection
from datastore.realtime_db import MockRealtimeDatabase
from models.records import ContainerGeometry, Partition, Reading, SyncResult
from services.committer import BatchCommitter
from services.errors import FetchFailure
from services.history import HistoryReader
from services.metrics import TankMetricsCalculator
from services.planner import DedupPlanner, now_ms
from services.rate_limit import CancellationToken, FixedIntervalGate
from services.timestamps import (
    coerce_number,
    compact_number,
    format_number,
    normalize_timestamp,
    to_iso,
)
from settings import get_settings

logger = logging.getLogger(__name__)


class HistorySyncService:
    """Coordinates history reads, dedup planning, and rate-limited commits."""

    def __init__(
        self,
        database: MockRealtimeDatabase,
        reader: HistoryReader,
        planner: DedupPlanner,
        committer: BatchCommitter,
    ) -> None:
        self.database = database
        self.reader = reader
        self.planner = planner
        self.committer = committer
        self._partition_locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[str, str], int] = {}
        self._locks_guard = Lock()

    @asynccontextmanager
    async def _partition_lock(self, partition: Partition) -> AsyncIterator[None]:
        """Serialize passes per partition; the lock is dropped once no pass holds or awaits it."""
        key = (partition.device_type, partition.device_id)
        with self._locks_guard:
            lock = self._partition_locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._partition_locks[key] = lock
            self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            with self._locks_guard:
                self._lock_users[key] -= 1
                if not self._lock_users[key]:
                    del self._lock_users[key]
                    del self._partition_locks[key]

    async def sync_device_readings(
        self,
        device_id: str,
        device_type: str,
        readings: Sequence[Reading],
        geometry: Optional[ContainerGeometry] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SyncResult:
        """Persist readings not yet present in the device's history.

        Only one pass per partition runs at a time. Failures are reported in
        the returned result and never raised.
        """
        partition = Partition(device_id=device_id, device_type=device_type)
        context = {"device_id": device_id, "device_type": device_type}

        if not readings:
            logger.info("No readings to sync", extra=context)
            return SyncResult()

        async with self._partition_lock(partition):
            try:
                existing = await self.reader.fetch_raw(partition)
                plan = self.planner.plan(existing, readings, geometry)
                logger.info(
                    "Planned %d new entries from %d readings (%d existing)",
                    len(plan.writes),
                    len(readings),
                    len(existing),
                    extra=context,
                )
                commit = await self.committer.commit(partition, plan.writes, cancel_token)
            except FetchFailure as exc:
                logger.error("Sync aborted: %s", exc, extra=context)
                return SyncResult(error=str(exc))
            except Exception as exc:  # noqa: BLE001 - reported in the result, never raised
                logger.exception("Sync failed", extra=context)
                return SyncResult(error=str(exc))

        skip_reasons = dict(plan.skip_reasons)
        if commit.skipped:
            skip_reasons["write_failed"] = commit.skipped
        result = SyncResult(
            synced=commit.synced,
            skipped=plan.skipped + commit.skipped,
            cancelled=commit.cancelled,
            skip_reasons=skip_reasons,
        )
        logger.info(
            "Sync complete",
            extra={**context, "synced": result.synced, "skipped": result.skipped},
        )
        return result

    async def save_data_point(
        self, device_id: str, device_type: str, data: Mapping[str, Any]
    ) -> bool:
        """Write one data point keyed by its raw timestamp, bypassing dedup."""
        raw = compact_number(
            coerce_number(data.get("timestamp")) or coerce_number(data.get("deviceTimestamp"))
        )
        normalized = normalize_timestamp(raw) or now_ms()
        partition = Partition(device_id=device_id, device_type=device_type)
        key = format_number(raw or normalized).replace(".", "_")
        try:
            iso_date = to_iso(normalized)
            if iso_date is None:
                raise ValueError(f"Timestamp {normalized} is outside the representable range.")
            payload = {**data, "timestamp": normalized, "date": iso_date}
            if raw:
                payload.setdefault("originalTimestamp", raw)
            entry = HistoryEntry.model_validate(payload)
            await self.database.set(partition.entry_path(key), entry.to_store())
        except Exception:  # noqa: BLE001 - reported as a boolean outcome
            logger.exception(
                "Error saving history data point",
                extra={"device_id": device_id, "device_type": device_type, "history_key": key},
            )
            return False
        return True


@lru_cache
def build_default_sync_service() -> HistorySyncService:
    """Factory that wires the sync service with the default store and settings."""
    settings = get_settings()
    database = build_default_connection().open()
    planner = DedupPlanner(
        calculator=TankMetricsCalculator(),
        fallback_interval_ms=int(settings.fallback_interval_minutes * 60 * 1000),
    )
    committer = BatchCommitter(
        database=database,
        gate=FixedIntervalGate(settings.sync_batch_delay),
        batch_size=settings.sync_batch_size,
    )
    return HistorySyncService(
        database=database,
        reader=HistoryReader(database),
        planner=planner,
        committer=committer,
    )

"""Batched, rate-limited persistence of planned history writes."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from datastore.realtime_db import MockRealtimeDatabase
from models.records import CommitResult, Partition
from services.errors import WriteFailure
from services.planner import PlannedWrite
from services.rate_limit import CancellationToken, FixedIntervalGate

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20


def partition_batches(writes: Sequence[PlannedWrite], batch_size: int) -> List[List[PlannedWrite]]:
    if batch_size <= 0:
        raise ValueError("Batch size must be positive.")
    return [list(writes[start:start + batch_size]) for start in range(0, len(writes), batch_size)]


class BatchCommitter:
    """Writes planned entries in ordered batches separated by the rate gate."""

    def __init__(
        self,
        database: MockRealtimeDatabase,
        gate: FixedIntervalGate,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("Batch size must be positive.")
        self.database = database
        self.gate = gate
        self.batch_size = batch_size

    async def commit(
        self,
        partition: Partition,
        writes: Sequence[PlannedWrite],
        cancel_token: Optional[CancellationToken] = None,
    ) -> CommitResult:
        result = CommitResult()
        batches = partition_batches(writes, self.batch_size)
        batch_count = len(batches)

        for index, batch in enumerate(batches):
            if index:
                await self.gate.wait()
            if cancel_token is not None and cancel_token.cancelled:
                result.cancelled = True
                logger.info(
                    "Commit cancelled before batch %d/%d",
                    index + 1,
                    batch_count,
                    extra={
                        "device_id": partition.device_id,
                        "device_type": partition.device_type,
                        "batch_index": index + 1,
                        "batch_count": batch_count,
                    },
                )
                break

            outcomes = await asyncio.gather(
                *(self._write(partition, planned) for planned in batch)
            )
            written = sum(1 for ok in outcomes if ok)
            result.synced += written
            result.skipped += len(outcomes) - written
            logger.info(
                "Batch %d/%d committed",
                index + 1,
                batch_count,
                extra={
                    "device_id": partition.device_id,
                    "device_type": partition.device_type,
                    "batch_index": index + 1,
                    "batch_count": batch_count,
                    "synced": result.synced,
                },
            )

        return result

    async def _write(self, partition: Partition, planned: PlannedWrite) -> bool:
        path = partition.entry_path(planned.history_key)
        try:
            await self.database.set(path, planned.entry.to_store())
        except Exception as exc:  # noqa: BLE001 - one failed write must not abort the pass
            failure = WriteFailure(planned.history_key, exc)
            logger.warning(
                str(failure),
                extra={
                    "device_id": partition.device_id,
                    "device_type": partition.device_type,
                    "history_key": planned.history_key,
                    "reason": "write_failed",
                },
            )
            return False
        return True

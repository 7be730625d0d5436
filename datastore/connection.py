from __future__ import annotations

import logging
from functools import lru_cache
from threading import Lock
from typing import Dict

from datastore.realtime_db import (
    MockRealtimeDatabase,
    SnapshotHandler,
    StoreError,
    Subscription,
    build_default_database,
)

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Owns the database handle and every subscription opened through it."""

    def __init__(self, database: MockRealtimeDatabase) -> None:
        self._database = database
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = Lock()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def database(self) -> MockRealtimeDatabase:
        if not self._open:
            raise StoreError(f"Connection to {self._database.name!r} is not open.")
        return self._database

    def open(self) -> MockRealtimeDatabase:
        if not self._open:
            self._open = True
            logger.info("Opened connection to %s", self._database.name)
        return self._database

    def subscribe(self, path: str, handler: SnapshotHandler) -> Subscription:
        subscription = self.database.subscribe(path, handler)
        with self._lock:
            self._subscriptions[subscription.id] = subscription
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(subscription.id, None)
        subscription.unsubscribe()

    def active_subscriptions(self) -> list[Subscription]:
        with self._lock:
            return [sub for sub in self._subscriptions.values() if sub.active]

    def close(self) -> None:
        """Cancel every registered subscription and mark the connection closed."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.unsubscribe()
        if self._open:
            logger.info(
                "Closed connection to %s (%d subscriptions cancelled)",
                self._database.name,
                len(subscriptions),
            )
        self._open = False


@lru_cache
def build_default_connection() -> ConnectionManager:
    return ConnectionManager(build_default_database())

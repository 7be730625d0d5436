from __future__ import annotations

import asyncio
import copy
import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from settings import get_settings

logger = logging.getLogger(__name__)

SnapshotHandler = Callable[[Optional[Any]], None]


class StoreError(RuntimeError):
    """Raised when the store cannot complete a read or write."""


def _split_path(path: str) -> List[str]:
    parts = [part for part in path.strip("/").split("/") if part]
    for part in parts:
        if any(char in part for char in ".#$[]"):
            raise StoreError(f"Invalid character in path segment {part!r}.")
    return parts


def _is_related(watched: List[str], changed: List[str]) -> bool:
    shortest = min(len(watched), len(changed))
    return watched[:shortest] == changed[:shortest]


class Subscription:
    """Handle returned by :meth:`MockRealtimeDatabase.subscribe`."""

    def __init__(self, database: "MockRealtimeDatabase", path: str, handler: SnapshotHandler) -> None:
        self.id = str(uuid4())
        self.path = path
        self._database = database
        self._handler = handler
        self.active = True

    def deliver(self, snapshot: Optional[Any]) -> None:
        if not self.active:
            return
        try:
            self._handler(snapshot)
        except Exception:  # noqa: BLE001 - a broken listener must not break writers
            logger.exception("Snapshot handler for %s failed", self.path)

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._database._remove_subscription(self.id)


class MockRealtimeDatabase:
    """In-memory JSON tree addressed by slash separated paths.

    Mirrors the primitives of a hosted realtime database: point reads of a
    subtree, overwrite of a leaf or subtree (``None`` deletes), and
    subscriptions that receive a fresh snapshot after each related write.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._root: Dict[str, Any] = {}
        self._subscriptions: Dict[str, Subscription] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    async def get(self, path: str) -> Optional[Any]:
        parts = _split_path(path)
        with self._lock:
            node = self._resolve(parts)
            return copy.deepcopy(node)

    async def set(self, path: str, value: Any) -> None:
        parts = _split_path(path)
        if not parts:
            raise StoreError("Refusing to overwrite the database root.")
        payload = self._validate_value(value)
        # Off the event loop: persistence rewrites the whole file.
        snapshots = await asyncio.to_thread(self._apply, parts, payload)
        for subscription, snapshot in snapshots:
            subscription.deliver(snapshot)

    def _apply(self, parts: List[str], payload: Any) -> List[Tuple[Subscription, Optional[Any]]]:
        with self._lock:
            if payload is None:
                self._delete(parts)
            else:
                parent = self._root
                for part in parts[:-1]:
                    child = parent.get(part)
                    if not isinstance(child, dict):
                        child = {}
                        parent[part] = child
                    parent = child
                parent[parts[-1]] = payload
            self._persist()
            return [
                (sub, copy.deepcopy(self._resolve(_split_path(sub.path))))
                for sub in self._subscriptions.values()
                if _is_related(_split_path(sub.path), parts)
            ]

    def subscribe(self, path: str, handler: SnapshotHandler) -> Subscription:
        """Register ``handler`` for writes at, above, or below ``path``.

        The handler is invoked once immediately with the current snapshot.
        """
        parts = _split_path(path)
        subscription = Subscription(self, "/".join(parts), handler)
        with self._lock:
            self._subscriptions[subscription.id] = subscription
            snapshot = copy.deepcopy(self._resolve(parts))
        subscription.deliver(snapshot)
        return subscription

    @property
    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _remove_subscription(self, subscription_id: str) -> None:
        with self._lock:
            self._subscriptions.pop(subscription_id, None)

    def _resolve(self, parts: List[str]) -> Optional[Any]:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        if isinstance(node, dict) and not node:
            return None
        return node

    def _delete(self, parts: List[str]) -> None:
        trail = [self._root]
        node: Any = self._root
        for part in parts[:-1]:
            if not isinstance(node, dict) or part not in node:
                return
            node = node[part]
            trail.append(node)
        if not isinstance(node, dict):
            return
        node.pop(parts[-1], None)
        # Prune parents left empty, as the hosted store does.
        for depth in range(len(parts) - 1, 0, -1):
            if trail[depth]:
                break
            trail[depth - 1].pop(parts[depth - 1], None)

    @staticmethod
    def _validate_value(value: Any) -> Any:
        try:
            return json.loads(json.dumps(value, allow_nan=False))
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Value is not JSON serializable: {exc}") from exc

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.write_text(json.dumps(self._root, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        if isinstance(data, dict):
            self._root = data


@lru_cache
def build_default_database(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockRealtimeDatabase:
    settings = get_settings()
    database_name = settings.database_name if name is None else name
    database_path = settings.database_persistence_path if path is None else path
    persistence = Path(database_path) if database_path else None
    return MockRealtimeDatabase(name=database_name, persistence_path=persistence)

from __future__ import annotations

from typing import Iterable

import pytest

from datastore.connection import build_default_connection
from datastore.realtime_db import build_default_database
from services.sync import build_default_sync_service
from settings import get_settings

CACHES = (
    get_settings,
    build_default_database,
    build_default_connection,
    build_default_sync_service,
)


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


@pytest.fixture(autouse=True)
def fresh_caches() -> Iterable[None]:
    _clear_caches(CACHES)
    yield
    _clear_caches(CACHES)


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    database_path = tmp_path / "realtime_db.json"

    monkeypatch.setenv("REALTIME_DB_NAME", "custom-db")
    monkeypatch.setenv("REALTIME_DB_PERSISTENCE_PATH", str(database_path))
    monkeypatch.setenv("SYNC_BATCH_SIZE", "5")
    monkeypatch.setenv("SYNC_BATCH_DELAY_SECONDS", "0.5")
    monkeypatch.setenv("SYNC_FALLBACK_INTERVAL_MINUTES", "2")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = get_settings()
    service = build_default_sync_service()

    assert settings.log_level == "DEBUG"
    assert service.database.name == "custom-db"
    assert service.database.persistence_path == database_path
    assert service.committer.batch_size == 5
    assert service.committer.gate.interval == 0.5
    assert service.planner.fallback_interval_ms == 120_000
    assert build_default_connection().is_open is True
    assert build_default_connection().database is service.database


def test_invalid_values_fall_back_to_defaults(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("REALTIME_DB_PERSISTENCE_PATH", str(tmp_path / "db.json"))
    monkeypatch.setenv("SYNC_BATCH_SIZE", "0")
    monkeypatch.setenv("SYNC_BATCH_DELAY_SECONDS", "-1")
    monkeypatch.setenv("SYNC_FALLBACK_INTERVAL_MINUTES", "soon")
    monkeypatch.setenv("REALTIME_DB_NAME", "   ")

    settings = get_settings()

    assert settings.database_name == "telemetry"
    assert settings.sync_batch_size == 20
    assert settings.sync_batch_delay == 3.0
    assert settings.fallback_interval_minutes == 5.0


def test_blank_persistence_path_keeps_database_in_memory(monkeypatch) -> None:
    monkeypatch.setenv("REALTIME_DB_PERSISTENCE_PATH", "")

    database = build_default_database()

    assert get_settings().database_persistence_path is None
    assert database.persistence_path is None

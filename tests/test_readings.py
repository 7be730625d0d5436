from __future__ import annotations

from models.records import FlatReading, NestedReadingContainer
from services.readings import (
    classify_node,
    extract_readings,
    latest_reading,
    reading_from_mapping,
)


def test_reading_from_mapping_separates_extra_fields() -> None:
    reading = reading_from_mapping(
        {"timestamp": 1_700_000_000_000.0, "distance": "2.5", "battery": 88, "valveStates": []}
    )

    assert reading.timestamp == 1_700_000_000_000
    assert isinstance(reading.timestamp, int)
    assert reading.distance == 2.5
    assert reading.extra == {"battery": 88, "valveStates": []}
    assert reading.push_key is None


def test_classify_flat_node() -> None:
    node = {"distance": 1.2, "timestamp": 1_700_000_000_000, "rssi": -70}

    classified = classify_node(node)

    assert isinstance(classified, FlatReading)
    assert classified.reading.distance == 1.2
    assert classified.reading.extra == {"rssi": -70}


def test_classify_nested_node_keeps_push_keys() -> None:
    node = {
        "-Nabc": {"distance": 1.0, "timestamp": 100},
        "-Nabd": {"distance": 1.1, "timestamp": 200},
        "meta": {"firmware": "1.2.0"},
        "label": "north tank",
    }

    classified = classify_node(node)

    assert isinstance(classified, NestedReadingContainer)
    assert set(classified.readings) == {"-Nabc", "-Nabd"}
    assert classified.readings["-Nabd"].push_key == "-Nabd"


def test_classify_rejects_nodes_without_readings() -> None:
    assert classify_node(None) is None
    assert classify_node("DEVICE_001") is None
    assert classify_node({"meta": {"firmware": "1.2.0"}}) is None


def test_extract_readings_returns_newest_first() -> None:
    node = {
        "a": {"distance": 1.0, "timestamp": 100},
        "b": {"distance": 1.1, "timestamp": 300},
        "c": {"distance": 1.2},
        "d": {"distance": 1.3, "timestamp": 200},
    }

    readings = extract_readings(node)

    assert [reading.push_key for reading in readings] == ["b", "d", "a", "c"]
    assert latest_reading(node).push_key == "b"  # type: ignore[union-attr]


def test_latest_reading_of_empty_node_is_none() -> None:
    assert extract_readings({}) == []
    assert latest_reading({}) is None

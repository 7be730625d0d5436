"""Turn raw device telemetry nodes into :class:`Reading` values."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from models.records import FlatReading, NestedReadingContainer, Reading, ReadingNode
from services.timestamps import coerce_number, compact_number

_CORE_FIELDS = ("timestamp", "distance")


def _is_reading_mapping(value: Any) -> bool:
    return isinstance(value, Mapping) and any(
        value.get(name) is not None for name in _CORE_FIELDS
    )


def reading_from_mapping(payload: Mapping[str, Any], push_key: Optional[str] = None) -> Reading:
    """Split a reading payload into its core fields and the device extras."""
    extra = {key: value for key, value in payload.items() if key not in _CORE_FIELDS}
    distance = coerce_number(payload.get("distance"))
    return Reading(
        timestamp=compact_number(coerce_number(payload.get("timestamp"))),
        distance=float(distance) if distance is not None else None,
        extra=extra,
        push_key=push_key,
    )


def classify_node(node: Any) -> Optional[ReadingNode]:
    """Decide whether a device node is a single reading or a container of them."""
    if not isinstance(node, Mapping):
        return None
    if _is_reading_mapping(node):
        return FlatReading(reading=reading_from_mapping(node))

    readings = {
        str(key): reading_from_mapping(child, push_key=str(key))
        for key, child in node.items()
        if _is_reading_mapping(child)
    }
    if not readings:
        return None
    return NestedReadingContainer(readings=readings)


def _timestamp_or_zero(reading: Reading) -> float:
    return reading.timestamp or 0


def extract_readings(node: Any) -> List[Reading]:
    """Return every reading held by ``node``, newest first."""
    classified = classify_node(node)
    if classified is None:
        return []
    if isinstance(classified, FlatReading):
        return [classified.reading]
    return sorted(classified.readings.values(), key=_timestamp_or_zero, reverse=True)


def latest_reading(node: Any) -> Optional[Reading]:
    readings = extract_readings(node)
    return readings[0] if readings else None

"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


Number = Union[int, float]


@dataclass(frozen=True, slots=True)
class Partition:
    """History subtree scoped to a single device."""

    device_id: str
    device_type: str

    @property
    def path(self) -> str:
        return f"history/{self.device_type}/{self.device_id}"

    def entry_path(self, history_key: str) -> str:
        return f"{self.path}/{history_key}"


@dataclass(slots=True)
class Reading:
    """A single telemetry reading as reported by a device.

    ``timestamp`` keeps whatever unit the device used. Fields other than
    ``timestamp`` and ``distance`` are carried in ``extra`` untouched.
    """

    timestamp: Optional[Number] = None
    distance: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    push_key: Optional[str] = None


@dataclass(slots=True)
class FlatReading:
    """Device node that is itself a reading."""

    reading: Reading


@dataclass(slots=True)
class NestedReadingContainer:
    """Device node holding readings under opaque push keys."""

    readings: Dict[str, Reading] = field(default_factory=dict)


ReadingNode = Union[FlatReading, NestedReadingContainer]


class ContainerShape(str, Enum):
    cylinder = "cylinder"
    cuboid = "cuboid"
    other = "other"


@dataclass(frozen=True, slots=True)
class ContainerGeometry:
    shape: ContainerShape = ContainerShape.other
    diameter: Optional[float] = None
    length: Optional[float] = None
    breadth: Optional[float] = None
    height: Optional[float] = None
    sensor_height: Optional[float] = None
    capacity: Optional[float] = None


@dataclass(frozen=True, slots=True)
class TankMetrics:
    water_level: float
    current_volume: int
    max_capacity: int
    fill_percentage: float
    capacity: float


class SkipReason(str, Enum):
    already_synced = "already_synced"
    missing_timestamp = "missing_timestamp"
    duplicate = "duplicate"
    invalid = "invalid"
    write_failed = "write_failed"


@dataclass(slots=True)
class CommitResult:
    synced: int = 0
    skipped: int = 0
    cancelled: bool = False


@dataclass(slots=True)
class SyncResult:
    """Summary of a single sync pass returned to callers."""

    synced: int = 0
    skipped: int = 0
    cancelled: bool = False
    error: Optional[str] = None
    skip_reasons: Dict[str, int] = field(default_factory=dict)

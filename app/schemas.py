"""Pydantic schemas for persisted history and the HTTP API layer."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.records import ContainerGeometry, ContainerShape

Number = Union[int, float]


class HistoryEntry(BaseModel):
    """One immutable history record as stored under ``history/{type}/{id}/{key}``.

    Device-specific fields (flow rates, valve states, battery, ...) are kept as
    pydantic extras so they round-trip through the store unchanged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    distance: Optional[float] = None
    distance_meters: Optional[float] = None
    distance_cm: Optional[float] = None
    original_timestamp: Optional[Number] = Field(default=None, alias="originalTimestamp")
    device_timestamp: Optional[Number] = Field(default=None, alias="deviceTimestamp")
    timestamp: Optional[Number] = None
    date: Optional[str] = None
    water_level: Optional[float] = Field(default=None, alias="waterLevel")
    current_volume: Optional[int] = Field(default=None, alias="currentVolume")
    max_capacity: Optional[int] = Field(default=None, alias="maxCapacity")
    fill_percentage: Optional[float] = Field(default=None, alias="fillPercentage")
    capacity: Optional[float] = None

    def to_store(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used in the store."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class GeometryPayload(BaseModel):
    """Container dimensions used to derive fill metrics."""

    model_config = ConfigDict(populate_by_name=True)

    shape: ContainerShape = ContainerShape.other
    diameter: Optional[float] = Field(default=None, gt=0)
    length: Optional[float] = Field(default=None, gt=0)
    breadth: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    sensor_height: Optional[float] = Field(default=None, gt=0, alias="sensorHeight")
    capacity: Optional[float] = Field(default=None, ge=0)

    @field_validator("shape", mode="before")
    @classmethod
    def _unknown_shape_is_other(cls, value: Any) -> Any:
        # Unrecognized shapes interpolate linearly against the declared capacity.
        if value is None:
            return ContainerShape.other
        if isinstance(value, str):
            try:
                return ContainerShape(value)
            except ValueError:
                return ContainerShape.other
        return value

    def to_geometry(self) -> ContainerGeometry:
        return ContainerGeometry(
            shape=self.shape,
            diameter=self.diameter,
            length=self.length,
            breadth=self.breadth,
            height=self.height,
            sensor_height=self.sensor_height,
            capacity=self.capacity,
        )


class SyncRequest(BaseModel):
    """Readings to merge into a device's history.

    Either a flat list of readings or a raw device node (a single reading or
    readings keyed by push key) may be supplied.
    """

    readings: List[Dict[str, Any]] = Field(default_factory=list)
    node: Optional[Dict[str, Any]] = None
    geometry: Optional[GeometryPayload] = None


class SyncResponse(BaseModel):
    synced: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    cancelled: bool = False
    error: Optional[str] = None
    skip_reasons: Dict[str, int] = Field(default_factory=dict)


class HistoryResponse(BaseModel):
    """History entries for one device, newest first."""

    device_id: str
    device_type: str
    count: int = Field(..., ge=0)
    entries: List[HistoryEntry] = Field(default_factory=list)
    error: Optional[str] = None

"""Tank fill metrics derived from a raw ultrasonic distance reading."""

from __future__ import annotations

import math
from typing import Optional

from models.records import ContainerGeometry, ContainerShape, TankMetrics

DEFAULT_SENSOR_HEIGHT = 10.0
DEFAULT_CAPACITY = 20_000.0
LITRES_PER_CUBIC_METRE = 1000


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class TankMetricsCalculator:
    """Pure metric component that can be unit tested in isolation."""

    def derive(
        self, distance: Optional[float], geometry: Optional[ContainerGeometry]
    ) -> Optional[TankMetrics]:
        if distance is None or geometry is None:
            return None

        sensor_height = geometry.sensor_height or geometry.height or DEFAULT_SENSOR_HEIGHT
        water_level = max(0.0, min(sensor_height, sensor_height - distance))
        full_height = geometry.height or sensor_height

        if geometry.shape is ContainerShape.cylinder and geometry.diameter:
            base_area = math.pi * (geometry.diameter / 2) ** 2
            current_volume = base_area * water_level * LITRES_PER_CUBIC_METRE
            max_capacity = base_area * full_height * LITRES_PER_CUBIC_METRE
        elif geometry.shape is ContainerShape.cuboid and geometry.length and geometry.breadth:
            base_area = geometry.length * geometry.breadth
            current_volume = base_area * water_level * LITRES_PER_CUBIC_METRE
            max_capacity = base_area * full_height * LITRES_PER_CUBIC_METRE
        else:
            # Unknown geometry: interpolate linearly against the declared capacity.
            max_capacity = geometry.capacity or DEFAULT_CAPACITY
            max_height = geometry.height or DEFAULT_SENSOR_HEIGHT
            current_volume = (water_level / max_height) * max_capacity

        if max_capacity > 0:
            fill_percentage = min(100.0, max(0.0, current_volume / max_capacity * 100))
        else:
            fill_percentage = 0.0

        rounded_capacity = _round_half_up(max_capacity)
        return TankMetrics(
            water_level=round(water_level, 3),
            current_volume=_round_half_up(current_volume),
            max_capacity=rounded_capacity,
            fill_percentage=round(fill_percentage, 2),
            capacity=geometry.capacity or rounded_capacity,
        )

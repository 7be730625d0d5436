"""CSV rendering of history entries."""

from __future__ import annotations

import csv
import io
import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from app.schemas import HistoryEntry
from services.planner import now_ms
from services.timestamps import coerce_number

TANK_DEVICE_TYPE = "tanks"

TANK_HEADERS = [
    "Date",
    "Time",
    "Distance (m)",
    "Distance (cm)",
    "Water Level (m)",
    "Volume (L)",
    "Main Flow Rate (L/min)",
    "Household Supply (count)",
    "Pressure (PSI)",
    "Valve States",
]

VALVE_HEADERS = [
    "Timestamp",
    "Date",
    "Valve State",
    "Control Status",
    "Supply Flow (L/min)",
    "Avg Supply/HH (L/min)",
    "Total Households",
    "Households Served",
    "Battery (%)",
    "Pressure (PSI)",
    "Changes",
]


def safe_number(value: Any, decimals: int = 0) -> str:
    """Fixed-precision rendering; missing or non-finite values become ``""``."""
    if isinstance(value, bool):
        return ""
    number = coerce_number(value)
    if number is None or not math.isfinite(number):
        return ""
    return f"{float(number):.{decimals}f}"


def _moment(timestamp: Any, now: int) -> datetime:
    millis = coerce_number(timestamp) or now
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return datetime.fromtimestamp(now / 1000, tz=timezone.utc)


def _valve_states(states: Any) -> str:
    if not states:
        return "No data"
    if isinstance(states, dict):
        states = list(states.values())
    parts = []
    for state in states:
        if isinstance(state, dict):
            parts.append(f"{state.get('name')}:{state.get('state')}")
    return "; ".join(parts) or "No data"


def _tank_row(data: Dict[str, Any], now: int) -> List[str]:
    moment = _moment(data.get("timestamp"), now)
    return [
        moment.strftime("%d/%m/%Y"),
        moment.strftime("%H:%M:%S"),
        safe_number(data.get("distance"), 3),
        safe_number(data.get("distance_cm"), 1),
        safe_number(data.get("waterLevel"), 2),
        safe_number(data.get("currentVolume"), 0),
        safe_number(data.get("mainFlowRate"), 2),
        str(data.get("householdSupply") or 0),
        safe_number(data.get("pressureChange"), 1),
        _valve_states(data.get("valveStates")),
    ]


def _valve_row(data: Dict[str, Any], now: int) -> List[str]:
    timestamp = data.get("timestamp")
    return [
        str(timestamp or ""),
        data.get("date") or _moment(timestamp, now).isoformat(),
        data.get("valveState") or "unknown",
        "CLOSED" if data.get("active") else "OPEN",
        safe_number(data.get("supplyFlow"), 2),
        safe_number(data.get("avgSupplyPerHousehold"), 2),
        str(data.get("households") or ""),
        str(data.get("householdsServed") or 0),
        safe_number(data.get("battery"), 0),
        safe_number(data.get("pressure"), 1),
        data.get("changes") or "No changes",
    ]


def export_history_csv(
    entries: Sequence[HistoryEntry],
    device_type: str,
    clock: Callable[[], int] = now_ms,
) -> str:
    """Render ``entries`` with the column layout for ``device_type``."""
    if device_type == TANK_DEVICE_TYPE:
        headers, row_mapper = TANK_HEADERS, _tank_row
    else:
        headers, row_mapper = VALVE_HEADERS, _valve_row

    now = clock()
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for entry in entries:
        writer.writerow(row_mapper(entry.model_dump(by_alias=True), now))
    return buffer.getvalue()


def export_filename(device_name: str, timestamp_ms: Optional[int] = None) -> str:
    safe_name = re.sub(r"[^a-z0-9]", "_", device_name, flags=re.IGNORECASE)
    stamp = timestamp_ms if timestamp_ms is not None else now_ms()
    return f"{safe_name}-history-{stamp}.csv"

"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.schemas import HistoryResponse, SyncRequest, SyncResponse
from services.export import export_filename, export_history_csv
from services.readings import extract_readings, reading_from_mapping
from services.sync import HistorySyncService, build_default_sync_service

router = APIRouter()


def get_sync_service() -> HistorySyncService:
    return build_default_sync_service()


def _check_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must not be earlier than start_date.",
        )


@router.post(
    "/history/{device_type}/{device_id}/sync",
    response_model=SyncResponse,
    summary="Merge new device readings into the stored history.",
)
async def sync_history(
    device_type: str,
    device_id: str,
    payload: SyncRequest,
    service: HistorySyncService = Depends(get_sync_service),
) -> SyncResponse:
    readings = [reading_from_mapping(item) for item in payload.readings]
    if payload.node is not None:
        readings.extend(extract_readings(payload.node))
    if not readings:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No readings supplied.",
        )

    geometry = payload.geometry.to_geometry() if payload.geometry else None
    result = await service.sync_device_readings(device_id, device_type, readings, geometry)
    return SyncResponse(
        synced=result.synced,
        skipped=result.skipped,
        cancelled=result.cancelled,
        error=result.error,
        skip_reasons=result.skip_reasons,
    )


@router.get(
    "/history/{device_type}/{device_id}",
    response_model=HistoryResponse,
    summary="Fetch stored history, newest first, optionally limited to whole days.",
)
async def get_history(
    device_type: str,
    device_id: str,
    start_date: Optional[date] = Query(None, description="First day to include (YYYY-MM-DD)."),
    end_date: Optional[date] = Query(None, description="Last day to include (YYYY-MM-DD)."),
    service: HistorySyncService = Depends(get_sync_service),
) -> HistoryResponse:
    _check_range(start_date, end_date)
    result = await service.reader.fetch_filtered(device_id, device_type, start_date, end_date)
    return HistoryResponse(
        device_id=device_id,
        device_type=device_type,
        count=len(result.entries),
        entries=result.entries,
        error=result.error,
    )


@router.get(
    "/history/{device_type}/{device_id}/export",
    summary="Download stored history as CSV.",
    response_class=Response,
)
async def export_history(
    device_type: str,
    device_id: str,
    device_name: Optional[str] = Query(None, description="Label used for the file name."),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    service: HistorySyncService = Depends(get_sync_service),
) -> Response:
    _check_range(start_date, end_date)
    result = await service.reader.fetch_filtered(device_id, device_type, start_date, end_date)
    if result.error:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=result.error,
        )
    if not result.entries:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No history data to export for {device_type}/{device_id}.",
        )

    filename = export_filename(device_name or device_id)
    return Response(
        content=export_history_csv(result.entries, device_type),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}

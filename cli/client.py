from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig


def _date_params(start_date: Optional[date], end_date: Optional[date]) -> Dict[str, str]:
    params: Dict[str, str] = {}
    if start_date is not None:
        params["start_date"] = start_date.isoformat()
    if end_date is not None:
        params["end_date"] = end_date.isoformat()
    return params


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = response.text.strip()
    return str(detail) if detail else "no detail provided."


class ApiClient:
    """Thin httpx wrapper around the history sync endpoints."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        not_found: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        response = self._client.request(method, path, **kwargs)
        if not_found and response.status_code == 404:
            raise typer.BadParameter(not_found)
        if response.is_error:
            typer.secho(
                f"{method} {path} failed with status {response.status_code}: "
                f"{_error_detail(response)}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1)
        return response

    def sync_readings(self, device_type: str, device_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/history/{device_type}/{device_id}/sync", json=payload).json()

    def get_history(
        self,
        device_type: str,
        device_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        path = f"/history/{device_type}/{device_id}"
        return self._request("GET", path, params=_date_params(start_date, end_date)).json()

    def export_csv(
        self,
        device_type: str,
        device_id: str,
        device_name: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> str:
        path = f"/history/{device_type}/{device_id}/export"
        params = _date_params(start_date, end_date)
        if device_name:
            params["device_name"] = device_name
        missing = f"No history found for {device_type}/{device_id}."
        return self._request("GET", path, not_found=missing, params=params).text

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_history, render_sync_result

_DATE_FORMATS = ["%Y-%m-%d"]


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for syncing and exporting device telemetry history.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _as_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value is not None else None


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{path} is not valid JSON: {exc}") from exc


def _build_sync_payload(readings_data: Any, geometry_data: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    if isinstance(readings_data, list):
        payload["readings"] = readings_data
    elif isinstance(readings_data, dict):
        payload["node"] = readings_data
    else:
        raise typer.BadParameter("Readings file must hold a JSON list or object.")
    if geometry_data is not None:
        if not isinstance(geometry_data, dict):
            raise typer.BadParameter("Geometry file must hold a JSON object.")
        payload["geometry"] = geometry_data
    return payload


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Sync API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait for a request, including a full sync pass.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("sync")
def sync_command(
    ctx: typer.Context,
    readings_file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="JSON list of readings, or a raw device node keyed by push key.",
    ),
    device_id: str = typer.Option(..., "--device-id", "-d", help="Device identifier."),
    device_type: str = typer.Option("tanks", "--device-type", "-t", help="Device type partition."),
    geometry_file: Optional[Path] = typer.Option(
        None,
        "--geometry",
        "-g",
        exists=True,
        dir_okay=False,
        readable=True,
        help="JSON container geometry used to derive fill metrics.",
    ),
) -> None:
    """Merge new readings into a device's stored history."""
    state = _get_state(ctx)
    geometry = _load_json(geometry_file) if geometry_file else None
    payload = _build_sync_payload(_load_json(readings_file), geometry)
    typer.echo(f"Syncing {readings_file} to {device_type}/{device_id} at {state.config.base_url} ...")
    result = state.client.sync_readings(device_type, device_id, payload)
    render_sync_result(result)
    if result.get("error"):
        raise typer.Exit(code=1)


@app.command("history")
def history_command(
    ctx: typer.Context,
    device_type: str = typer.Argument(..., help="Device type partition, e.g. tanks."),
    device_id: str = typer.Argument(..., help="Device identifier."),
    start_date: Optional[datetime] = typer.Option(None, "--start", formats=_DATE_FORMATS),
    end_date: Optional[datetime] = typer.Option(None, "--end", formats=_DATE_FORMATS),
    limit: Optional[int] = typer.Option(20, "--limit", min=1, help="Entries to display."),
) -> None:
    """Show stored history for a device, newest first."""
    state = _get_state(ctx)
    payload = state.client.get_history(
        device_type, device_id, _as_date(start_date), _as_date(end_date)
    )
    render_history(payload, limit=limit)


@app.command("export")
def export_command(
    ctx: typer.Context,
    device_type: str = typer.Argument(..., help="Device type partition, e.g. tanks."),
    device_id: str = typer.Argument(..., help="Device identifier."),
    output: Path = typer.Option(..., "--output", "-o", dir_okay=False, help="Destination CSV path."),
    device_name: Optional[str] = typer.Option(None, "--name", help="Label for the export."),
    start_date: Optional[datetime] = typer.Option(None, "--start", formats=_DATE_FORMATS),
    end_date: Optional[datetime] = typer.Option(None, "--end", formats=_DATE_FORMATS),
) -> None:
    """Download stored history as CSV."""
    state = _get_state(ctx)
    content = state.client.export_csv(
        device_type,
        device_id,
        device_name=device_name,
        start_date=_as_date(start_date),
        end_date=_as_date(end_date),
    )
    output.write_text(content, encoding="utf-8")
    rows = max(0, len(content.splitlines()) - 1)
    typer.secho(f"Exported {rows} rows to {output}", fg=typer.colors.GREEN)

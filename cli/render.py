from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_sync_result(payload: Dict[str, Any]) -> None:
    echo_heading("Sync Result")
    echo_key_values(
        [
            ("synced", payload.get("synced")),
            ("skipped", payload.get("skipped")),
            ("cancelled", payload.get("cancelled")),
        ]
    )
    reasons = payload.get("skip_reasons") or {}
    if reasons:
        typer.echo("skip_reasons:")
        for reason, count in reasons.items():
            typer.echo(f"  - {reason}: {count}")

    error = payload.get("error")
    if error:
        typer.echo()
        typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)


def _format_metric(value: Any, suffix: str = "") -> str:
    if value is None:
        return "-"
    return f"{value}{suffix}"


def render_history(payload: Dict[str, Any], limit: int | None = None) -> None:
    echo_heading("History")
    echo_key_values(
        [
            ("device", f"{payload.get('device_type')}/{payload.get('device_id')}"),
            ("count", payload.get("count")),
        ]
    )
    error = payload.get("error")
    if error:
        typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)

    entries = payload.get("entries") or []
    typer.echo()
    if not entries:
        typer.echo("No history entries.")
        return

    shown = entries if limit is None else entries[:limit]
    for entry in shown:
        typer.echo(
            "  - {date} distance={distance} level={level} volume={volume} fill={fill}".format(
                date=entry.get("date") or entry.get("timestamp"),
                distance=_format_metric(entry.get("distance")),
                level=_format_metric(entry.get("waterLevel")),
                volume=_format_metric(entry.get("currentVolume")),
                fill=_format_metric(entry.get("fillPercentage"), "%"),
            )
        )
    if len(shown) < len(entries):
        typer.echo(f"  ... {len(entries) - len(shown)} more")

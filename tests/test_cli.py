from __future__ import annotations

import json
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
import pytest
import typer
from typer.testing import CliRunner

from cli.app import app
from cli.client import ApiClient
from cli.config import DEFAULT_TIMEOUT, CLIConfig, load_config


class StubClient:
    def __init__(self, config, sync_error: Optional[str] = None) -> None:
        self.config = config
        self.sync_calls: List[tuple[str, str, Dict[str, Any]]] = []
        self.history_calls: List[tuple[str, str, Optional[date], Optional[date]]] = []
        self.export_calls: List[Dict[str, Any]] = []
        self.sync_error = sync_error
        self.history_payload: Dict[str, Any] = {
            "device_id": "DEVICE_001",
            "device_type": "tanks",
            "count": 3,
            "entries": [
                {"date": "2023-11-14T22:15:20.000Z", "distance": 2.3, "waterLevel": 0.7},
                {"date": "2023-11-14T22:14:20.000Z", "distance": 2.4, "fillPercentage": 20},
                {"date": "2023-11-14T22:13:20.000Z", "distance": 2.5},
            ],
            "error": None,
        }
        self.closed = False

    def sync_readings(self, device_type: str, device_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.sync_calls.append((device_type, device_id, payload))
        return {
            "synced": 2,
            "skipped": 1,
            "cancelled": False,
            "error": self.sync_error,
            "skip_reasons": {"already_synced": 1},
        }

    def get_history(
        self,
        device_type: str,
        device_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        self.history_calls.append((device_type, device_id, start_date, end_date))
        return self.history_payload

    def export_csv(self, device_type: str, device_id: str, **kwargs: Any) -> str:
        self.export_calls.append({"device_type": device_type, "device_id": device_id, **kwargs})
        return "Date,Time\n14/11/2023,22:13:20\n14/11/2023,22:14:20\n"

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _install_stub(monkeypatch, stub: StubClient) -> None:
    def factory(config):
        stub.config = config
        return stub

    monkeypatch.setattr("cli.app.ApiClient", factory)


def test_sync_sends_reading_list(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)
    readings_path = tmp_path / "readings.json"
    readings_path.write_text(json.dumps([{"timestamp": 1_700_000_000_000, "distance": 2.5}]))
    geometry_path = tmp_path / "geometry.json"
    geometry_path.write_text(json.dumps({"shape": "cylinder", "diameter": 1, "height": 3}))

    result = runner.invoke(
        app,
        ["sync", str(readings_path), "--device-id", "DEVICE_001", "--geometry", str(geometry_path)],
    )

    assert result.exit_code == 0
    assert "Sync Result" in result.stdout
    assert "synced: 2" in result.stdout
    assert "already_synced: 1" in result.stdout
    device_type, device_id, payload = stub.sync_calls[0]
    assert (device_type, device_id) == ("tanks", "DEVICE_001")
    assert payload["readings"][0]["distance"] == 2.5
    assert payload["geometry"]["shape"] == "cylinder"
    assert stub.closed is True


def test_sync_sends_device_node_object(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)
    node_path = tmp_path / "node.json"
    node_path.write_text(json.dumps({"-Nabc": {"timestamp": 1_700_000_000_000, "distance": 1}}))

    result = runner.invoke(app, ["sync", str(node_path), "-d", "V1", "-t", "valves"])

    assert result.exit_code == 0
    device_type, _, payload = stub.sync_calls[0]
    assert device_type == "valves"
    assert "-Nabc" in payload["node"]
    assert "readings" not in payload


def test_sync_exits_non_zero_on_error(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None, sync_error="connection refused")
    _install_stub(monkeypatch, stub)
    readings_path = tmp_path / "readings.json"
    readings_path.write_text("[]")

    result = runner.invoke(app, ["sync", str(readings_path), "-d", "DEVICE_001"])

    assert result.exit_code == 1


def test_sync_rejects_invalid_json(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)
    readings_path = tmp_path / "readings.json"
    readings_path.write_text("not json")

    result = runner.invoke(app, ["sync", str(readings_path), "-d", "DEVICE_001"])

    assert result.exit_code != 0
    assert not stub.sync_calls


def test_history_command_applies_limit(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(
        app,
        ["history", "tanks", "DEVICE_001", "--start", "2023-11-14", "--limit", "2"],
    )

    assert result.exit_code == 0
    assert "count: 3" in result.stdout
    assert "level=0.7" in result.stdout
    assert "fill=20%" in result.stdout
    assert "... 1 more" in result.stdout
    assert stub.history_calls == [("tanks", "DEVICE_001", date(2023, 11, 14), None)]


def test_export_writes_file(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)
    output = tmp_path / "history.csv"

    result = runner.invoke(
        app,
        ["export", "tanks", "DEVICE_001", "--output", str(output), "--name", "North Tank"],
    )

    assert result.exit_code == 0
    assert "Exported 2 rows" in result.stdout
    assert output.read_text().startswith("Date,Time")
    assert stub.export_calls[0]["device_name"] == "North Tank"


def test_base_url_option_overrides_config(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(
        app,
        ["--base-url", "http://sync.local:9000/", "--timeout", "30", "history", "tanks", "D1"],
    )

    assert result.exit_code == 0
    assert stub.config.base_url == "http://sync.local:9000"
    assert stub.config.request_timeout == 30.0


def test_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://api.internal/")
    monkeypatch.setenv("CLI_REQUEST_TIMEOUT", "nope")

    config = load_config()

    assert config.base_url == "http://api.internal"
    assert config.request_timeout == DEFAULT_TIMEOUT
    assert load_config(request_timeout=5.0).request_timeout == 5.0


def _client_with(handler) -> ApiClient:
    client = ApiClient(CLIConfig(base_url="http://testserver"))
    client._client = httpx.Client(base_url="http://testserver", transport=httpx.MockTransport(handler))
    return client


def test_api_client_passes_date_params() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"count": 0, "entries": []})

    client = _client_with(handler)
    payload = client.get_history("tanks", "D1", start_date=date(2023, 11, 14))

    assert payload["count"] == 0
    assert seen["url"] == "http://testserver/history/tanks/D1?start_date=2023-11-14"


def test_api_client_export_not_found_is_bad_parameter() -> None:
    client = _client_with(lambda request: httpx.Response(404, json={"detail": "missing"}))

    with pytest.raises(typer.BadParameter):
        client.export_csv("tanks", "D1")


def test_api_client_error_exits_with_detail(capsys) -> None:
    client = _client_with(lambda request: httpx.Response(503, json={"detail": "store offline"}))

    with pytest.raises(typer.Exit):
        client.sync_readings("tanks", "D1", {"readings": []})

    assert "store offline" in capsys.readouterr().err

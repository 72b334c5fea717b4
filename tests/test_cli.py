from __future__ import annotations

from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.config import load_config


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.power_calls: List[bool] = []
        self.share_calls: List[tuple[str, str, float]] = []
        self.device_payload: Dict[str, Any] = {
            "id": "bulbA",
            "isOn": True,
            "energy": 995.0,
            "consumptionRate": 5.0,
            "lastSeen": "2024-01-01T00:00:00Z",
            "online": True,
            "connected": True,
        }
        self.closed = False

    def list_devices(self) -> List[Dict[str, Any]]:
        return [self.device_payload, {**self.device_payload, "id": "bulbB", "isOn": False, "online": False}]

    def get_device(self, device_id: str) -> Dict[str, Any]:
        return {**self.device_payload, "id": device_id}

    def set_power(self, on: bool) -> Dict[str, Any]:
        self.power_calls.append(on)
        if on and self.config.device_id == "bulbB":
            return {"ok": False, "deviceId": "bulbB", "isOn": False, "message": "No energy"}
        return {"ok": True, "deviceId": self.config.device_id, "isOn": on}

    def share(self, from_id: str, to_id: str, amount: float) -> Dict[str, Any]:
        self.share_calls.append((from_id, to_id, amount))
        return {
            "ok": True,
            "from": from_id,
            "to": to_id,
            "energyRemaining": 900.0,
            "energyReceived": amount,
        }

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def clients(monkeypatch) -> List[StubClient]:
    created: List[StubClient] = []

    def factory(config):
        client = StubClient(config)
        created.append(client)
        return client

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return created


def test_devices_command(runner: CliRunner, clients: List[StubClient]) -> None:
    result = runner.invoke(app, ["devices"])

    assert result.exit_code == 0
    stub = clients[0]
    assert "bulbA: on, energy=995.0, online" in result.stdout
    assert "bulbB: off" in result.stdout
    assert stub.closed is True


def test_show_command(runner: CliRunner, clients: List[StubClient]) -> None:
    result = runner.invoke(app, ["show", "bulbA"])

    assert result.exit_code == 0
    assert "Device bulbA" in result.stdout
    assert "energy: 995.0" in result.stdout


def test_power_commands_use_device_credentials(runner: CliRunner, clients: List[StubClient]) -> None:
    result = runner.invoke(app, ["--device-id", "bulbA", "--device-key", "123456", "off"])

    assert result.exit_code == 0
    stub = clients[0]
    assert "bulbA is now off." in result.stdout
    assert stub.power_calls == [False]
    assert stub.config.device_key == "123456"


def test_power_on_soft_failure_is_reported(runner: CliRunner, clients: List[StubClient]) -> None:
    result = runner.invoke(app, ["--device-id", "bulbB", "--device-key", "654321", "on"])

    assert result.exit_code == 0
    assert "unchanged: No energy" in result.stdout


def test_share_command(runner: CliRunner, clients: List[StubClient]) -> None:
    result = runner.invoke(app, ["--token", "abc", "share", "bulbA", "bulbB", "100"])

    assert result.exit_code == 0
    stub = clients[0]
    assert stub.share_calls == [("bulbA", "bulbB", 100.0)]
    assert "energy_remaining: 900.0" in result.stdout
    assert stub.config.token == "abc"


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://bulbs.local:9000/")
    monkeypatch.setenv("BULB_TOKEN", " tok ")
    monkeypatch.setenv("BULB_DEVICE_ID", "bulbA")
    monkeypatch.delenv("BULB_DEVICE_KEY", raising=False)
    monkeypatch.setenv("CLI_TIMEOUT", "not-a-number")

    config = load_config()

    assert config.base_url == "http://bulbs.local:9000"
    assert config.token == "tok"
    assert config.device_id == "bulbA"
    assert config.device_key is None
    assert config.timeout == 10.0

"""Shared test doubles for the device fleet."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from datastore.device_registry import DeviceRegistry
from models.devices import Device


class FakeConnection:
    """Records pushed messages instead of writing to a socket."""

    def __init__(self, fail_send: bool = False) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.close_code: Optional[int] = None
        self.fail_send = fail_send

    async def send(self, message: Dict[str, Any]) -> None:
        if self.fail_send:
            raise RuntimeError("socket is gone")
        self.sent.append(message)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code

    @property
    def closed(self) -> bool:
        return self.close_code is not None


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_registry(*devices: Device) -> DeviceRegistry:
    if not devices:
        devices = (
            Device(device_id="bulbA", shared_secret="123456", energy_balance=1000.0, consumption_rate=5.0),
            Device(device_id="bulbB", shared_secret="654321", energy_balance=0.0, consumption_rate=5.0),
        )
    return DeviceRegistry(devices)


@pytest.fixture
def registry() -> DeviceRegistry:
    return make_registry()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

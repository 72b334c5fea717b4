from __future__ import annotations

import json
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Tuple


_DEVICES_ENV = "BULB_DEVICES"
_DECAY_INTERVAL_ENV = "DECAY_INTERVAL_SECONDS"
_ONLINE_THRESHOLD_ENV = "ONLINE_THRESHOLD_SECONDS"
_JWT_SECRET_ENV = "JWT_SECRET"
_JWT_ALGORITHM_ENV = "JWT_ALGORITHM"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_HOST_ENV = "HOST"
_PORT_ENV = "PORT"


@dataclass(frozen=True)
class DeviceProvision:
    """Static provisioning entry for one device."""

    device_id: str
    shared_secret: str
    energy_balance: float = 0.0
    consumption_rate: float = 5.0
    is_on: bool = False


DEFAULT_DEVICES: Tuple[DeviceProvision, ...] = (
    DeviceProvision(device_id="bulbA", shared_secret="123456", energy_balance=100.0),
    DeviceProvision(device_id="bulbB", shared_secret="654321", energy_balance=0.0),
)


@dataclass(frozen=True)
class Settings:
    devices: Tuple[DeviceProvision, ...]
    decay_interval_seconds: float
    online_threshold_seconds: float
    jwt_secret: str
    jwt_algorithm: str
    log_level: str
    host: str
    port: int


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_port(default: int) -> int:
    value = os.getenv(_PORT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if 0 < parsed < 65536 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _parse_device(entry: Any) -> DeviceProvision:
    if not isinstance(entry, dict):
        raise ValueError(f"{_DEVICES_ENV} entries must be objects, got {entry!r}.")
    device_id = entry.get("id")
    key = entry.get("key")
    if not isinstance(device_id, str) or not device_id.strip():
        raise ValueError(f"{_DEVICES_ENV} entry is missing a device id: {entry!r}.")
    if not isinstance(key, str) or not key:
        raise ValueError(f"{_DEVICES_ENV} entry for {device_id!r} is missing a key.")

    energy = float(entry.get("energy", 0.0))
    rate = float(entry.get("rate", 5.0))
    if energy < 0:
        raise ValueError(f"Initial energy for {device_id!r} cannot be negative.")
    if rate < 0:
        raise ValueError(f"Consumption rate for {device_id!r} cannot be negative.")

    return DeviceProvision(
        device_id=device_id.strip(),
        shared_secret=key,
        energy_balance=energy,
        consumption_rate=rate,
        is_on=bool(entry.get("isOn", False)),
    )


def _read_devices(default: Tuple[DeviceProvision, ...]) -> Tuple[DeviceProvision, ...]:
    value = os.getenv(_DEVICES_ENV)
    if value is None or not value.strip():
        return default
    try:
        raw = json.loads(value)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{_DEVICES_ENV} is not valid JSON.") from exc
    if not isinstance(raw, list):
        raise ValueError(f"{_DEVICES_ENV} must be a JSON list of devices.")

    devices = tuple(_parse_device(entry) for entry in raw)
    ids = [device.device_id for device in devices]
    if len(set(ids)) != len(ids):
        raise ValueError(f"{_DEVICES_ENV} contains duplicate device ids.")
    return devices


@lru_cache
def get_settings() -> Settings:
    return Settings(
        devices=_read_devices(DEFAULT_DEVICES),
        decay_interval_seconds=_read_positive_float(_DECAY_INTERVAL_ENV, 60.0),
        online_threshold_seconds=_read_positive_float(_ONLINE_THRESHOLD_ENV, 30.0),
        jwt_secret=_read_str_env(_JWT_SECRET_ENV, "change-me"),
        jwt_algorithm=_read_str_env(_JWT_ALGORITHM_ENV, "HS256"),
        log_level=_read_log_level("INFO"),
        host=_read_str_env(_HOST_ENV, "0.0.0.0"),
        port=_read_port(8000),
    )

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 10.0

_BASE_URL_ENV = "API_BASE_URL"
_TIMEOUT_ENV = "CLI_TIMEOUT"
_TOKEN_ENV = "BULB_TOKEN"
_DEVICE_ID_ENV = "BULB_DEVICE_ID"
_DEVICE_KEY_ENV = "BULB_DEVICE_KEY"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    token: Optional[str] = None
    device_id: Optional[str] = None
    device_key: Optional[str] = None


def _read_float(value: Optional[str], default: float) -> float:
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


def _read_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def load_config(
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    token: Optional[str] = None,
    device_id: Optional[str] = None,
    device_key: Optional[str] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if timeout is None:
        timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    return CLIConfig(
        base_url=url.rstrip("/"),
        timeout=timeout,
        token=token or _read_optional(os.getenv(_TOKEN_ENV)),
        device_id=device_id or _read_optional(os.getenv(_DEVICE_ID_ENV)),
        device_key=device_key or _read_optional(os.getenv(_DEVICE_KEY_ENV)),
    )

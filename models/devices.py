"""Domain models for the device fleet."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class Device:
    """Mutable registry record for one physical bulb.

    Only the registry holds these; everything else works with ``DeviceSnapshot``.
    """

    device_id: str
    shared_secret: str
    is_on: bool = False
    energy_balance: float = 0.0
    consumption_rate: float = 0.0
    last_seen: Optional[datetime] = None

    def snapshot(self) -> "DeviceSnapshot":
        return DeviceSnapshot(
            device_id=self.device_id,
            is_on=self.is_on,
            energy_balance=self.energy_balance,
            consumption_rate=self.consumption_rate,
            last_seen=self.last_seen,
        )


@dataclass(frozen=True, slots=True)
class DeviceSnapshot:
    """Point-in-time copy of a device's state, without its secret."""

    device_id: str
    is_on: bool
    energy_balance: float
    consumption_rate: float
    last_seen: Optional[datetime]

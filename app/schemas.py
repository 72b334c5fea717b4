"""Pydantic schemas for the HTTP API and the device real-time channel."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, TypeAdapter

from models.devices import DeviceSnapshot


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# Inbound real-time frames


class AuthFrame(_WireModel):
    type: Literal["auth"]
    # Left untyped so a frame with bad credentials is an auth failure, not a parse error.
    id: Any = None
    key: Any = None


class HeartbeatFrame(_WireModel):
    type: Literal["heartbeat"]


class DeviceStatusFrame(_WireModel):
    type: Literal["device-status"]
    is_on: StrictBool = Field(..., alias="isOn")


InboundFrame = Annotated[
    Union[AuthFrame, HeartbeatFrame, DeviceStatusFrame],
    Field(discriminator="type"),
]

inbound_frame_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)


# Outbound real-time messages


class StatusMessage(_WireModel):
    """Full snapshot push."""

    type: Literal["status"] = "status"
    is_on: bool = Field(..., alias="isOn")
    energy: float

    @classmethod
    def from_snapshot(cls, snapshot: DeviceSnapshot) -> "StatusMessage":
        return cls(is_on=snapshot.is_on, energy=snapshot.energy_balance)


class EnergyUpdateMessage(_WireModel):
    """Balance-only push sent by the decay engine."""

    type: Literal["energy-update"] = "energy-update"
    energy: float


class ErrorMessage(_WireModel):
    type: Literal["error"] = "error"
    message: str


# HTTP control surface


class TransferRequest(_WireModel):
    """Owner-initiated transfer. Missing fields are rejected by the ledger."""

    from_id: Optional[str] = Field(default=None, alias="from")
    to_id: Optional[str] = Field(default=None, alias="to")
    amount: Optional[float] = None


class TransferResponse(_WireModel):
    ok: bool = True
    from_id: str = Field(..., alias="from")
    to_id: str = Field(..., alias="to")
    energy_remaining: float = Field(..., alias="energyRemaining")
    energy_received: float = Field(..., alias="energyReceived")


class PowerResponse(_WireModel):
    ok: bool
    device_id: str = Field(..., alias="deviceId")
    is_on: bool = Field(..., alias="isOn")
    message: Optional[str] = None


class DeviceView(_WireModel):
    """Public view of a device; never includes the shared secret."""

    id: str
    is_on: bool = Field(..., alias="isOn")
    energy: float
    consumption_rate: float = Field(..., alias="consumptionRate")
    last_seen: Optional[datetime] = Field(default=None, alias="lastSeen")
    online: bool
    connected: bool

"""Control operations that move or gate energy: power on/off and transfers."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Any, Optional, Tuple

from app.schemas import StatusMessage
from datastore.device_registry import DeviceRegistry
from models.devices import Device, DeviceSnapshot
from services.errors import (
    DeviceNotFoundError,
    ForbiddenError,
    InsufficientFundsError,
    MalformedRequestError,
)
from services.sessions import SessionTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PowerResult:
    ok: bool
    device_id: str
    is_on: bool
    message: Optional[str] = None


@dataclass(frozen=True)
class TransferResult:
    from_id: str
    to_id: str
    energy_remaining: float
    energy_received: float


class Ledger:
    """Applies control requests to the registry and notifies affected sessions."""

    def __init__(self, registry: DeviceRegistry, sessions: SessionTable) -> None:
        self.registry = registry
        self.sessions = sessions

    async def power_on(self, device_id: str) -> PowerResult:
        """Switch a device on unless it has no energy left.

        An empty device is a soft failure: ``ok`` is False and nothing changes.
        """

        def apply(device: Device) -> Tuple[bool, DeviceSnapshot]:
            if device.energy_balance <= 0:
                return False, device.snapshot()
            device.is_on = True
            return True, device.snapshot()

        switched, snapshot = self.registry.mutate(device_id, apply)
        if not switched:
            logger.info("Power-on refused", extra={"device_id": device_id, "reason": "no energy"})
            return PowerResult(ok=False, device_id=device_id, is_on=snapshot.is_on, message="No energy")

        logger.info("Device powered on", extra={"device_id": device_id})
        await self._push_status(snapshot)
        return PowerResult(ok=True, device_id=device_id, is_on=snapshot.is_on)

    async def power_off(self, device_id: str) -> PowerResult:
        def apply(device: Device) -> DeviceSnapshot:
            device.is_on = False
            return device.snapshot()

        snapshot = self.registry.mutate(device_id, apply)
        logger.info("Device powered off", extra={"device_id": device_id})
        await self._push_status(snapshot)
        return PowerResult(ok=True, device_id=device_id, is_on=snapshot.is_on)

    async def transfer(
        self,
        caller_bulb_id: str,
        from_id: Optional[str],
        to_id: Optional[str],
        amount: Any,
    ) -> TransferResult:
        result, receiver = self.apply_transfer(caller_bulb_id, from_id, to_id, amount)
        await self._push_status(receiver)
        return result

    def apply_transfer(
        self,
        caller_bulb_id: str,
        from_id: Optional[str],
        to_id: Optional[str],
        amount: Any,
    ) -> Tuple[TransferResult, DeviceSnapshot]:
        """Validate and commit a transfer; returns the result and the receiver's new state.

        Checks run in a fixed order and all of them finish before the balances
        are touched. The balance check and the debit/credit share one critical
        section over both devices.
        """

        from_id, to_id, value = self._validate_request(from_id, to_id, amount)

        if from_id not in self.registry or to_id not in self.registry:
            raise DeviceNotFoundError()
        if caller_bulb_id != from_id:
            raise ForbiddenError()

        with self.registry.locked(from_id, to_id) as devices:
            sender = devices[from_id]
            receiver = devices[to_id]
            if sender.energy_balance < value:
                raise InsufficientFundsError()

            sender.energy_balance -= value
            receiver.energy_balance += value
            if receiver.energy_balance > 0:
                receiver.is_on = True

            result = TransferResult(
                from_id=from_id,
                to_id=to_id,
                energy_remaining=sender.energy_balance,
                energy_received=receiver.energy_balance,
            )
            receiver_snapshot = receiver.snapshot()

        logger.info(
            "Energy transferred",
            extra={"from_id": from_id, "to_id": to_id, "amount": value},
        )
        return result, receiver_snapshot

    @staticmethod
    def _validate_request(
        from_id: Optional[str], to_id: Optional[str], amount: Any
    ) -> Tuple[str, str, float]:
        if not from_id or not to_id or amount is None:
            raise MalformedRequestError()
        if isinstance(amount, bool) or not isinstance(amount, Real):
            raise MalformedRequestError()
        value = float(amount)
        if not math.isfinite(value) or value <= 0:
            raise MalformedRequestError()
        return from_id, to_id, value

    async def _push_status(self, snapshot: DeviceSnapshot) -> None:
        await self.sessions.push(
            snapshot.device_id, StatusMessage.from_snapshot(snapshot).to_wire()
        )

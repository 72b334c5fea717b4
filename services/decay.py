"""Periodic energy consumption for powered-on devices."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from app.schemas import EnergyUpdateMessage, StatusMessage
from datastore.device_registry import DeviceRegistry
from models.devices import Device, DeviceSnapshot
from services.sessions import SessionTable

logger = logging.getLogger(__name__)


@dataclass
class DecaySummary:
    """What happened to each device during one tick."""

    debited: List[str] = field(default_factory=list)
    shutdown: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class DecayEngine:
    """Debits ``consumption_rate`` from every powered-on device once per tick.

    A device that would reach zero or below is clamped to zero and switched off.
    Each device is handled under its own lock, independently of the others.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        sessions: SessionTable,
        interval: float,
    ) -> None:
        self.registry = registry
        self.sessions = sessions
        self.interval = interval
        self._task: Optional[asyncio.Task[None]] = None

    async def tick(self) -> DecaySummary:
        summary = DecaySummary()

        for device_id in self.registry.ids():
            try:
                outcome = self.registry.mutate(device_id, self._consume)
                if outcome is None:
                    summary.skipped.append(device_id)
                    continue

                depleted, snapshot = outcome
                if depleted:
                    summary.shutdown.append(device_id)
                    logger.info(
                        "Device depleted and switched off",
                        extra={"device_id": device_id},
                    )
                    await self.sessions.push(
                        device_id, StatusMessage.from_snapshot(snapshot).to_wire()
                    )
                else:
                    summary.debited.append(device_id)
                    await self.sessions.push(
                        device_id,
                        EnergyUpdateMessage(energy=snapshot.energy_balance).to_wire(),
                    )
            except Exception:
                summary.failed.append(device_id)
                logger.exception("Decay failed for device", extra={"device_id": device_id})

        logger.debug(
            "Decay tick complete",
            extra={
                "debited": len(summary.debited),
                "shutdown": len(summary.shutdown),
                "failed": len(summary.failed),
            },
        )
        return summary

    @staticmethod
    def _consume(device: Device) -> Optional[Tuple[bool, DeviceSnapshot]]:
        if not device.is_on:
            return None

        remaining = device.energy_balance - device.consumption_rate
        if remaining <= 0:
            device.energy_balance = 0.0
            device.is_on = False
            return True, device.snapshot()

        device.energy_balance = remaining
        return False, device.snapshot()

    async def run_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("Decay tick failed")

    def start(self) -> asyncio.Task[None]:
        """Schedule the tick loop on the running event loop."""

        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self.run_forever(), name="decay-engine"
            )
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

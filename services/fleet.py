"""Wiring for the device fleet: one registry, one session table, and the
services that read and write them."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from app.schemas import DeviceView
from datastore.device_registry import DeviceRegistry
from services.decay import DecayEngine
from services.errors import DeviceNotFoundError
from services.identity import DeviceCredentialChecker, TokenVerifier
from services.ledger import Ledger
from services.presence import Clock, PresenceOracle, utcnow
from services.protocol import ProtocolHandler
from services.sessions import SessionTable
from settings import get_settings


class FleetService:
    """Owns the registry and session table and the components built on them."""

    def __init__(
        self,
        registry: DeviceRegistry,
        token_verifier: TokenVerifier,
        decay_interval: float = 60.0,
        online_threshold: float = 30.0,
        sessions: Optional[SessionTable] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.registry = registry
        self.sessions = sessions or SessionTable()
        self.tokens = token_verifier
        self.credentials = DeviceCredentialChecker(registry)
        self.presence = PresenceOracle(
            registry, threshold=timedelta(seconds=online_threshold), clock=clock
        )
        self.protocol = ProtocolHandler(
            registry, self.sessions, self.credentials, clock=clock
        )
        self.ledger = Ledger(registry, self.sessions)
        self.decay = DecayEngine(registry, self.sessions, interval=decay_interval)

    def describe(self, device_id: str) -> DeviceView:
        snapshot = self.registry.get(device_id)
        if snapshot is None:
            raise DeviceNotFoundError(f"Bulb {device_id!r} not found")
        return DeviceView(
            id=snapshot.device_id,
            is_on=snapshot.is_on,
            energy=snapshot.energy_balance,
            consumption_rate=snapshot.consumption_rate,
            last_seen=snapshot.last_seen,
            online=self.presence.is_online(device_id),
            connected=self.sessions.is_connected(device_id),
        )

    def describe_all(self) -> list[DeviceView]:
        return [self.describe(device_id) for device_id in self.registry.ids()]

    async def startup(self) -> None:
        self.decay.start()

    async def shutdown(self) -> None:
        await self.decay.stop()


@lru_cache
def build_default_fleet() -> FleetService:
    """Factory that wires the fleet from environment settings."""
    settings = get_settings()
    registry = DeviceRegistry.from_provisioning(settings.devices)
    verifier = TokenVerifier(settings.jwt_secret, settings.jwt_algorithm)
    return FleetService(
        registry=registry,
        token_verifier=verifier,
        decay_interval=settings.decay_interval_seconds,
        online_threshold=settings.online_threshold_seconds,
    )

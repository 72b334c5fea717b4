"""Device-facing real-time protocol.

Every connection starts unauthenticated. An ``auth`` frame with valid
credentials binds it to a device and registers it in the session table; any
other outcome of ``auth`` sends a single error message and closes the
connection. ``heartbeat`` and ``device-status`` frames are only honoured on the
connection that currently owns the device's session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import ValidationError

from app.schemas import (
    AuthFrame,
    DeviceStatusFrame,
    ErrorMessage,
    HeartbeatFrame,
    StatusMessage,
    inbound_frame_adapter,
)
from datastore.device_registry import DeviceRegistry
from models.devices import Device, DeviceSnapshot
from services.identity import DeviceCredentialChecker
from services.presence import Clock, utcnow
from services.sessions import Connection, Session, SessionTable

logger = logging.getLogger(__name__)

SUPERSEDED_CLOSE_CODE = 4000
UNAUTHORIZED_CLOSE_CODE = 4001


class ChannelState(str, Enum):
    unauthenticated = "unauthenticated"
    authenticated = "authenticated"
    closed = "closed"


@dataclass
class DeviceChannel:
    """Protocol state for one real-time connection."""

    connection: Connection
    state: ChannelState = ChannelState.unauthenticated
    session: Optional[Session] = None

    @property
    def device_id(self) -> Optional[str]:
        return self.session.device_id if self.session is not None else None


class ProtocolHandler:
    def __init__(
        self,
        registry: DeviceRegistry,
        sessions: SessionTable,
        credentials: DeviceCredentialChecker,
        clock: Clock = utcnow,
    ) -> None:
        self.registry = registry
        self.sessions = sessions
        self.credentials = credentials
        self._clock = clock

    def open(self, connection: Connection) -> DeviceChannel:
        return DeviceChannel(connection=connection)

    async def handle_frame(self, channel: DeviceChannel, raw: Union[str, bytes]) -> None:
        """Parse and dispatch one inbound frame. Malformed frames are logged and dropped."""

        if channel.state is ChannelState.closed:
            return

        try:
            frame = inbound_frame_adapter.validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "Ignoring malformed device frame",
                extra={
                    "device_id": channel.device_id,
                    "reason": exc.errors()[0]["msg"] if exc.errors() else "invalid frame",
                },
            )
            return

        if isinstance(frame, AuthFrame):
            await self.authenticate(channel, frame)
        elif isinstance(frame, HeartbeatFrame):
            self.heartbeat(channel)
        elif isinstance(frame, DeviceStatusFrame):
            self.report_status(channel, frame.is_on)

    async def authenticate(self, channel: DeviceChannel, frame: AuthFrame) -> None:
        device_id = frame.id if isinstance(frame.id, str) else None
        key = frame.key if isinstance(frame.key, str) else None

        if device_id is None or not self.credentials.check(device_id, key):
            logger.warning(
                "Device authentication failed",
                extra={"device_id": device_id, "reason": "bad credentials"},
            )
            self._release(channel)
            await self._reject(channel)
            return

        if channel.device_id is not None and channel.device_id != device_id:
            self._release(channel)

        session, superseded = self.sessions.register(device_id, channel.connection)
        channel.session = session
        channel.state = ChannelState.authenticated
        snapshot = self.registry.mutate(device_id, self._touch)

        logger.info(
            "Device authenticated",
            extra={"device_id": device_id, "session_id": session.session_id},
        )
        # Must precede any await: the snapshot is the first message on a new session.
        await self.sessions.push(device_id, StatusMessage.from_snapshot(snapshot).to_wire())

        if superseded is not None:
            await self._close_superseded(superseded)

    def heartbeat(self, channel: DeviceChannel) -> None:
        device_id = self._current_device(channel)
        if device_id is None:
            return
        self.registry.mutate(device_id, self._touch)

    def report_status(self, channel: DeviceChannel, is_on: bool) -> None:
        """Take the device's own report of its power state as authoritative."""

        device_id = self._current_device(channel)
        if device_id is None:
            return

        def apply(device: Device) -> None:
            device.is_on = is_on
            device.last_seen = self._clock()

        self.registry.mutate(device_id, apply)
        logger.debug("Device reported status", extra={"device_id": device_id})

    def close(self, channel: DeviceChannel) -> None:
        """Transport closed: release the session if it is still ours. Device state is kept."""

        self._release(channel)
        channel.state = ChannelState.closed

    def _touch(self, device: Device) -> DeviceSnapshot:
        device.last_seen = self._clock()
        return device.snapshot()

    def _current_device(self, channel: DeviceChannel) -> Optional[str]:
        if channel.state is not ChannelState.authenticated or channel.session is None:
            return None
        current = self.sessions.get(channel.session.device_id)
        if current is None or current.connection is not channel.connection:
            channel.state = ChannelState.closed
            return None
        return channel.session.device_id

    def _release(self, channel: DeviceChannel) -> None:
        session = channel.session
        if session is None:
            return
        if self.sessions.unregister(session.device_id, channel.connection):
            logger.info(
                "Device session released",
                extra={"device_id": session.device_id, "session_id": session.session_id},
            )
        channel.session = None

    async def _reject(self, channel: DeviceChannel) -> None:
        channel.state = ChannelState.closed
        try:
            await channel.connection.send(ErrorMessage(message="Unauthorized").to_wire())
            await channel.connection.close(code=UNAUTHORIZED_CLOSE_CODE)
        except Exception as exc:  # noqa: BLE001 - peer may already be gone
            logger.debug("Rejected connection already closed", extra={"reason": str(exc)})

    async def _close_superseded(self, session: Session) -> None:
        logger.info(
            "Closing superseded device session",
            extra={"device_id": session.device_id, "session_id": session.session_id},
        )
        try:
            await session.connection.close(code=SUPERSEDED_CLOSE_CODE)
        except Exception as exc:  # noqa: BLE001 - peer may already be gone
            logger.debug(
                "Superseded connection already closed",
                extra={"device_id": session.device_id, "reason": str(exc)},
            )

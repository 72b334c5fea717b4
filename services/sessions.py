"""Session table: which live connection currently represents each device."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, Optional, Protocol
from uuid import uuid4

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Transport handle able to push JSON messages to one device."""

    async def send(self, message: Dict[str, Any]) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


@dataclass(frozen=True)
class Session:
    device_id: str
    connection: Connection
    session_id: str = field(default_factory=lambda: f"sess-{uuid4().hex[:8]}")


class SessionTable:
    """Maps an authenticated device id to its live connection.

    The newest authenticated connection for a device wins; pushes go to the
    current session only and are never queued for absent devices.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = Lock()

    def register(self, device_id: str, connection: Connection) -> tuple[Session, Optional[Session]]:
        """Record ``connection`` for ``device_id``; return (new, superseded)."""

        session = Session(device_id=device_id, connection=connection)
        with self._lock:
            previous = self._sessions.get(device_id)
            self._sessions[device_id] = session
        if previous is not None and previous.connection is connection:
            previous = None
        return session, previous

    def unregister(self, device_id: str, connection: Connection) -> bool:
        """Drop the entry only if ``connection`` is still the registered one."""

        with self._lock:
            current = self._sessions.get(device_id)
            if current is None or current.connection is not connection:
                return False
            del self._sessions[device_id]
            return True

    def get(self, device_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(device_id)

    def is_connected(self, device_id: str) -> bool:
        with self._lock:
            return device_id in self._sessions

    def connected_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    async def push(self, device_id: str, message: Dict[str, Any]) -> bool:
        """Send ``message`` to the device's current session, if any."""

        session = self.get(device_id)
        if session is None:
            return False
        try:
            await session.connection.send(message)
        except Exception as exc:  # noqa: BLE001 - a dead socket must not fail the caller
            logger.warning(
                "Push to device session failed",
                extra={
                    "device_id": device_id,
                    "session_id": session.session_id,
                    "msg_type": message.get("type"),
                    "reason": str(exc) or exc.__class__.__name__,
                },
            )
            return False
        return True

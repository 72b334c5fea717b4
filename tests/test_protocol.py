"""Unit tests for the device real-time protocol state machine."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from conftest import FakeClock, FakeConnection
from datastore.device_registry import DeviceRegistry
from services.decay import DecayEngine
from services.identity import DeviceCredentialChecker
from services.protocol import (
    SUPERSEDED_CLOSE_CODE,
    UNAUTHORIZED_CLOSE_CODE,
    ChannelState,
    DeviceChannel,
    ProtocolHandler,
)
from services.sessions import SessionTable


@pytest.fixture
def sessions() -> SessionTable:
    return SessionTable()


@pytest.fixture
def handler(registry: DeviceRegistry, sessions: SessionTable, clock: FakeClock) -> ProtocolHandler:
    return ProtocolHandler(registry, sessions, DeviceCredentialChecker(registry), clock=clock)


def _send(handler: ProtocolHandler, channel: DeviceChannel, payload) -> None:
    raw = payload if isinstance(payload, (str, bytes)) else json.dumps(payload)
    asyncio.run(handler.handle_frame(channel, raw))


def _auth(handler: ProtocolHandler, device_id: str = "bulbA", key: str = "123456") -> DeviceChannel:
    channel = handler.open(FakeConnection())
    _send(handler, channel, {"type": "auth", "id": device_id, "key": key})
    return channel


def test_successful_auth_registers_session_and_pushes_snapshot(
    handler: ProtocolHandler, sessions: SessionTable, registry: DeviceRegistry, clock: FakeClock
) -> None:
    channel = _auth(handler)

    assert channel.state is ChannelState.authenticated
    assert channel.device_id == "bulbA"
    assert sessions.get("bulbA").connection is channel.connection  # type: ignore[union-attr]
    assert channel.connection.sent == [{"type": "status", "isOn": False, "energy": 1000.0}]
    assert registry.get("bulbA").last_seen == clock.now  # type: ignore[union-attr]


def test_wrong_key_sends_error_and_closes(
    handler: ProtocolHandler, sessions: SessionTable, registry: DeviceRegistry
) -> None:
    channel = _auth(handler, key="wrong")

    assert channel.state is ChannelState.closed
    assert channel.connection.sent == [{"type": "error", "message": "Unauthorized"}]
    assert channel.connection.close_code == UNAUTHORIZED_CLOSE_CODE
    assert sessions.get("bulbA") is None
    assert registry.get("bulbA").last_seen is None  # type: ignore[union-attr]


@pytest.mark.parametrize(
    "frame",
    [
        {"type": "auth", "id": "missing", "key": "123456"},
        {"type": "auth", "id": "bulbA"},
        {"type": "auth"},
        {"type": "auth", "id": 7, "key": 123456},
    ],
)
def test_auth_failures_never_create_sessions(
    handler: ProtocolHandler, sessions: SessionTable, frame
) -> None:
    channel = handler.open(FakeConnection())

    _send(handler, channel, frame)

    assert channel.state is ChannelState.closed
    assert channel.connection.sent[-1]["type"] == "error"
    assert sessions.connected_ids() == []


def test_frames_after_close_are_ignored(handler: ProtocolHandler) -> None:
    channel = _auth(handler, key="wrong")
    sent_before = list(channel.connection.sent)

    _send(handler, channel, {"type": "auth", "id": "bulbA", "key": "123456"})

    assert channel.connection.sent == sent_before
    assert channel.state is ChannelState.closed


def test_heartbeat_refreshes_last_seen_only(
    handler: ProtocolHandler, registry: DeviceRegistry, clock: FakeClock
) -> None:
    channel = _auth(handler)
    before = registry.get("bulbA")
    clock.advance(10)

    _send(handler, channel, {"type": "heartbeat"})

    after = registry.get("bulbA")
    assert after.last_seen == clock.now  # type: ignore[union-attr]
    assert after.is_on == before.is_on  # type: ignore[union-attr]
    assert after.energy_balance == before.energy_balance  # type: ignore[union-attr]


def test_messages_before_auth_are_silently_ignored(
    handler: ProtocolHandler, registry: DeviceRegistry
) -> None:
    channel = handler.open(FakeConnection())

    _send(handler, channel, {"type": "heartbeat"})
    _send(handler, channel, {"type": "device-status", "isOn": True})

    assert channel.state is ChannelState.unauthenticated
    assert channel.connection.sent == []
    assert not channel.connection.closed
    device = registry.get("bulbA")
    assert device.last_seen is None and device.is_on is False  # type: ignore[union-attr]


def test_device_status_overwrites_power_state(
    handler: ProtocolHandler, registry: DeviceRegistry, clock: FakeClock
) -> None:
    channel = _auth(handler)
    clock.advance(5)

    _send(handler, channel, {"type": "device-status", "isOn": True})

    device = registry.get("bulbA")
    assert device.is_on is True  # type: ignore[union-attr]
    assert device.last_seen == clock.now  # type: ignore[union-attr]
    assert device.energy_balance == 1000.0  # type: ignore[union-attr]

    _send(handler, channel, {"type": "device-status", "isOn": False})
    assert registry.get("bulbA").is_on is False  # type: ignore[union-attr]


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2, 3]",
        json.dumps({"type": "reboot"}),
        json.dumps({"no_type": True}),
        json.dumps({"type": "device-status", "isOn": "yes"}),
        json.dumps({"type": "device-status"}),
    ],
)
def test_malformed_frames_are_logged_and_ignored(
    handler: ProtocolHandler, registry: DeviceRegistry, caplog, raw
) -> None:
    channel = _auth(handler)
    before = registry.get("bulbA")

    with caplog.at_level(logging.WARNING, logger="services.protocol"):
        _send(handler, channel, raw)

    assert channel.state is ChannelState.authenticated
    assert not channel.connection.closed
    assert registry.get("bulbA") == before
    assert any("malformed" in record.getMessage() for record in caplog.records)


def test_new_connection_supersedes_old_one(
    handler: ProtocolHandler, sessions: SessionTable, registry: DeviceRegistry, clock: FakeClock
) -> None:
    old = _auth(handler)
    new = _auth(handler)

    assert old.connection.close_code == SUPERSEDED_CLOSE_CODE
    assert sessions.get("bulbA").connection is new.connection  # type: ignore[union-attr]

    asyncio.run(sessions.push("bulbA", {"type": "energy-update", "energy": 1.0}))
    assert old.connection.sent[-1]["type"] == "status"
    assert new.connection.sent[-1] == {"type": "energy-update", "energy": 1.0}

    # The superseded connection can no longer act for the device.
    clock.advance(5)
    _send(handler, old, {"type": "device-status", "isOn": True})
    assert old.state is ChannelState.closed
    assert registry.get("bulbA").is_on is False  # type: ignore[union-attr]


def test_stale_close_does_not_remove_newer_session(
    handler: ProtocolHandler, sessions: SessionTable
) -> None:
    old = _auth(handler)
    new = _auth(handler)

    handler.close(old)

    assert sessions.get("bulbA").connection is new.connection  # type: ignore[union-attr]

    handler.close(new)
    assert sessions.get("bulbA") is None


def test_close_keeps_device_state(handler: ProtocolHandler, registry: DeviceRegistry) -> None:
    channel = _auth(handler)
    _send(handler, channel, {"type": "device-status", "isOn": True})
    before = registry.get("bulbA")

    handler.close(channel)

    assert channel.state is ChannelState.closed
    assert registry.get("bulbA") == before


def test_reauth_as_other_device_moves_the_binding(
    handler: ProtocolHandler, sessions: SessionTable
) -> None:
    channel = _auth(handler)

    _send(handler, channel, {"type": "auth", "id": "bulbB", "key": "654321"})

    assert channel.device_id == "bulbB"
    assert sessions.connected_ids() == ["bulbB"]


def test_snapshot_reflects_balance_at_auth_time(
    handler: ProtocolHandler, registry: DeviceRegistry
) -> None:
    registry.mutate("bulbA", lambda device: setattr(device, "energy_balance", 42.5))

    channel = _auth(handler)

    assert channel.connection.sent[0]["energy"] == 42.5


class SlowClosingConnection(FakeConnection):
    """Blocks in ``close`` until the test releases it."""

    def __init__(self) -> None:
        super().__init__()
        self.closing = False
        self.release = asyncio.Event()

    async def close(self, code: int = 1000) -> None:
        self.closing = True
        await self.release.wait()
        await super().close(code)


def test_decay_during_supersede_does_not_leave_stale_snapshot(
    handler: ProtocolHandler, sessions: SessionTable, registry: DeviceRegistry
) -> None:
    registry.mutate("bulbA", lambda device: setattr(device, "is_on", True))
    decay = DecayEngine(registry, sessions, interval=60)
    auth = json.dumps({"type": "auth", "id": "bulbA", "key": "123456"})

    async def scenario() -> DeviceChannel:
        old = handler.open(SlowClosingConnection())
        await handler.handle_frame(old, auth)

        new = handler.open(FakeConnection())
        pending = asyncio.create_task(handler.handle_frame(new, auth))
        while not old.connection.closing:
            await asyncio.sleep(0)

        await decay.tick()
        old.connection.release.set()
        await pending
        return new

    new = asyncio.run(scenario())

    assert new.connection.sent == [
        {"type": "status", "isOn": True, "energy": 1000.0},
        {"type": "energy-update", "energy": 995.0},
    ]
    assert registry.get("bulbA").energy_balance == 995.0  # type: ignore[union-attr]


def test_failed_snapshot_send_is_logged_not_raised(
    handler: ProtocolHandler, sessions: SessionTable, caplog
) -> None:
    channel = handler.open(FakeConnection(fail_send=True))

    with caplog.at_level(logging.WARNING, logger="services.sessions"):
        _send(handler, channel, {"type": "auth", "id": "bulbA", "key": "123456"})

    assert channel.state is ChannelState.authenticated
    assert sessions.get("bulbA").connection is channel.connection  # type: ignore[union-attr]
    assert any("Push to device session failed" in record.getMessage() for record in caplog.records)

"""WebSocket endpoint for the device real-time channel.

  Device -> Server:  auth, heartbeat, device-status
  Server -> Device:  status, energy-update, error
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from app.api import get_fleet
from services.fleet import FleetService
from services.protocol import ChannelState

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketConnection:
    """Adapts a FastAPI WebSocket to the session table's connection interface."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, message: Dict[str, Any]) -> None:
        await self.websocket.send_json(message)

    async def close(self, code: int = 1000) -> None:
        if self.websocket.application_state is WebSocketState.DISCONNECTED:
            return
        await self.websocket.close(code=code)


@router.websocket("/")
@router.websocket("/ws")
async def device_channel(
    websocket: WebSocket,
    fleet: FleetService = Depends(get_fleet),
) -> None:
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    channel = fleet.protocol.open(connection)
    logger.info("New device connection")

    try:
        while channel.state is not ChannelState.closed:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await fleet.protocol.handle_frame(channel, raw)
    except WebSocketDisconnect:
        logger.info("Device disconnected mid-send", extra={"device_id": channel.device_id})
    except Exception:
        logger.exception("Error in device channel", extra={"device_id": channel.device_id})
    finally:
        device_id = channel.device_id
        fleet.protocol.close(channel)
        logger.info("Device connection closed", extra={"device_id": device_id})

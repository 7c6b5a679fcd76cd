"""WebSocket transport for room commands, chat and signaling."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..schemas.rooms import ClientFrame
from ..services.events import SignalingHub

router = APIRouter()

logger = logging.getLogger(__name__)


async def _pump(websocket: WebSocket, outbox: asyncio.Queue[dict[str, Any]]) -> None:
    """Write queued frames to the socket in the order they were produced."""

    while True:
        frame = await outbox.get()
        await websocket.send_json(frame)


@router.websocket("/ws")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """One socket per participant; frames are ``{event, data, ack?}``."""

    hub: SignalingHub = websocket.app.state.hub
    await websocket.accept()

    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def deliver(event: str, data: Any) -> None:
        outbox.put_nowait({"event": event, "data": data})

    connection = hub.connect(uuid4().hex, deliver)
    deliver("welcome", {"id": connection.connection_id, "name": connection.display_name})
    writer = asyncio.create_task(_pump(websocket, outbox))
    logger.debug("Connection %s opened", connection.connection_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                deliver("error", {"error": "Malformed frame"})
                continue
            if not isinstance(message, dict):
                continue
            try:
                frame = ClientFrame.model_validate(message)
            except ValidationError:
                deliver("error", {"error": "Malformed frame"})
                continue

            result = hub.dispatch(connection, frame.event, frame.data)
            if frame.ack is not None:
                outbox.put_nowait({"event": "ack", "ack": frame.ack, "data": result or {"ok": True}})
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(connection)
        writer.cancel()
        await asyncio.gather(writer, return_exceptions=True)
        logger.debug("Connection %s closed", connection.connection_id)

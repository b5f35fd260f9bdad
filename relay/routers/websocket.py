"""WebSocket endpoint carrying the presence/messaging protocol.

Provides:
- ``WS /ws``: accept, register with the presence hub, heartbeat, receive loop.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from relay.exceptions import RegistryInvariantError, TransportError, ValidationError
from relay.models import parse_frame
from relay.services import ws_messages

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HEARTBEAT_INTERVAL: float = 30.0  # seconds between heartbeat pings

# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

router = APIRouter()


# ---------------------------------------------------------------------------
# Heartbeat task
# ---------------------------------------------------------------------------


async def _heartbeat(websocket: WebSocket) -> None:
    """Send periodic ping frames to keep the connection alive.

    Runs as a background task per WebSocket connection. If sending fails
    (connection dead), the task ends and disconnect cleanup takes over.
    """
    try:
        while True:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            await websocket.send_json(ws_messages.ping())
    except Exception:
        # Connection closed or errored; the receive loop handles cleanup
        pass


# ---------------------------------------------------------------------------
# WS /ws
# ---------------------------------------------------------------------------


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint: accept, register, heartbeat, receive loop.

    Flow:
    1. Accept connection
    2. Register with the presence hub (``connected`` + ``messageHistory`` sent)
    3. Start heartbeat task
    4. Decode each text frame and dispatch it to the hub
    5. On disconnect or transport failure: cleanup via the hub
    """
    hub = websocket.app.state.presence_hub

    await websocket.accept()
    connection_id = await hub.connect(websocket)

    heartbeat_task = asyncio.create_task(_heartbeat(websocket))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = parse_frame(raw)
            except ValidationError as exc:
                await hub.reject(connection_id, exc)
                continue
            await hub.dispatch(connection_id, frame)
    except WebSocketDisconnect:
        pass
    except RegistryInvariantError:
        logger.critical("Presence registry invariant violated", exc_info=True)
        raise
    except Exception as exc:
        logger.warning("%s", TransportError(connection_id, exc).message)
    finally:
        heartbeat_task.cancel()
        # Presence cleanup must complete even if this task is being cancelled
        await asyncio.shield(hub.disconnect(connection_id))
        try:
            await heartbeat_task
        except asyncio.CancelledError:
            pass

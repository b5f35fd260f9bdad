"""Presence hub: single-writer façade over registry, lifecycle and routing.

Singleton instantiated in ``main.py`` lifespan. The WebSocket endpoint hands
every connect, inbound frame and disconnect to the hub, which applies it
under one ``asyncio.Lock`` so a registry mutation and the roster publish it
triggers complete before the next event is processed.

Recoverable errors (``RelayError``) are answered on the originating
connection only; ``RegistryInvariantError`` propagates.

A failed send drops the socket in the connection manager. Before the lock is
released the hub runs the normal disconnect path for every dropped id, so a
dead session never stays on the roster.

Outbound frames are awaited one by one while the lock is held. A client whose
socket buffer is full therefore delays every other event until its send
returns or fails. In exchange, a roster publish can never interleave with the
next registry mutation.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.websockets import WebSocket

from relay.exceptions import (
    AuthenticationRequiredError,
    RelayError,
    TargetNotFoundError,
    ValidationError,
)
from relay.models import InboundFrame
from relay.services import ws_messages
from relay.services.connection_manager import ConnectionManager
from relay.services.message_router import DEFAULT_HISTORY_SIZE, MessageHistory, MessageRouter
from relay.services.presence_registry import PresenceRegistry, utc_now
from relay.services.roster_publisher import RosterPublisher
from relay.services.session_lifecycle import SessionLifecycleManager
from relay.services.validation import DEFAULT_MAX_LENGTH

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], Awaitable[Any]]

MAINTENANCE_MESSAGE = "Server is shutting down for maintenance"


class PresenceHub:
    """Owns the presence state and dispatches inbound events."""

    def __init__(
        self,
        connections: ConnectionManager,
        *,
        history_size: int = DEFAULT_HISTORY_SIZE,
        history_replay_size: int = 20,
        max_field_length: int = DEFAULT_MAX_LENGTH,
    ) -> None:
        self.connections = connections
        self.registry = PresenceRegistry(max_username_length=max_field_length)
        self.history = MessageHistory(history_size)
        self.publisher = RosterPublisher(self.registry, connections)
        self.lifecycle = SessionLifecycleManager(
            self.registry, self.publisher, connections, max_field_length=max_field_length
        )
        self.router = MessageRouter(
            self.registry, self.lifecycle, self.history, connections, max_field_length=max_field_length
        )
        self._history_replay_size = history_replay_size
        # Held across the registry mutation and every send it triggers
        self._lock = asyncio.Lock()
        self._handlers: dict[str, Handler] = {
            "login": self.lifecycle.login,
            "updateStatus": self.lifecycle.update_status,
            "message": self.router.broadcast_message,
            "typing": self.router.typing,
            "chatMessage": self.router.chat_message,
        }

    @property
    def user_count(self) -> int:
        return self.registry.user_count

    # ---------------------------------------------------------------------
    # Connection lifecycle
    # ---------------------------------------------------------------------

    async def connect(self, websocket: WebSocket) -> str:
        """Register an accepted socket and greet it. Returns its connection id."""
        connection_id = uuid.uuid4().hex
        async with self._lock:
            await self.connections.connect(connection_id, websocket)
            self.lifecycle.on_connect(connection_id)
            await self.connections.send_to_connection(
                connection_id,
                ws_messages.connected(connection_id=connection_id, server_time=utc_now().isoformat()),
            )
            await self.connections.send_to_connection(
                connection_id,
                ws_messages.message_history(messages=self.history.recent(self._history_replay_size)),
            )
            await self._reap_dropped()
        logger.info("Connection %s opened (%d live)", connection_id, len(self.connections))
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        """Apply a transport-level close, whatever state the connection was in."""
        async with self._lock:
            await self.connections.disconnect(connection_id)
            await self.lifecycle.on_disconnect(connection_id)
            await self._reap_dropped()
        logger.info("Connection %s closed (%d live)", connection_id, len(self.connections))

    async def shutdown(self) -> None:
        """Tell every client the server is going away."""
        async with self._lock:
            await self.connections.broadcast(
                ws_messages.server_maintenance(
                    message=MAINTENANCE_MESSAGE, timestamp=utc_now().isoformat()
                )
            )
            await self._reap_dropped()

    # ---------------------------------------------------------------------
    # Inbound events
    # ---------------------------------------------------------------------

    async def dispatch(self, connection_id: str, frame: InboundFrame) -> None:
        """Run the handler for *frame* and answer the caller.

        Handlers that return a value (``chatMessage``) have it sent as the
        acknowledgement when the frame carried an ``ack`` id.
        """
        handler = self._handlers.get(frame.event)
        async with self._lock:
            try:
                if handler is None:
                    raise ValidationError(f"Unknown event: {frame.event}")
                result = await handler(connection_id, frame.data)
            except RelayError as exc:
                await self._reply_error(connection_id, frame, exc)
            else:
                if frame.ack is not None and result is not None:
                    await self.connections.send_to_connection(
                        connection_id, ws_messages.ack(ack_id=frame.ack, payload=result)
                    )
            await self._reap_dropped()

    async def reject(self, connection_id: str, exc: ValidationError) -> None:
        """Answer a frame that could not be decoded at all."""
        async with self._lock:
            await self.connections.send_to_connection(
                connection_id, ws_messages.error(kind="validation_error", message=exc.message)
            )
            await self._reap_dropped()

    async def _reap_dropped(self) -> None:
        # Cleanup publishes the roster, which can drop further sockets
        while dropped := self.connections.take_dropped():
            for connection_id in dropped:
                logger.info("Connection %s lost on send; cleaning up", connection_id)
                await self.lifecycle.on_disconnect(connection_id)

    async def _reply_error(self, connection_id: str, frame: InboundFrame, exc: RelayError) -> None:
        logger.info("Event %s from %s rejected: %s", frame.event, connection_id, exc.message)
        send = self.connections.send_to_connection

        if frame.ack is not None:
            failure = ws_messages.ack_failure(error=exc.message)
            await send(connection_id, ws_messages.ack(ack_id=frame.ack, payload=failure))

        if isinstance(exc, AuthenticationRequiredError):
            await send(connection_id, ws_messages.auth_error(message=exc.message))
        elif frame.event == "login":
            await send(connection_id, ws_messages.login_error(message=exc.message))
        elif frame.ack is None:
            kind = "target_not_found" if isinstance(exc, TargetNotFoundError) else "validation_error"
            await send(connection_id, ws_messages.error(kind=kind, message=exc.message))

"""WebSocket connection manager.

Singleton instantiated in ``main.py`` lifespan and handed to the presence
hub. Maps opaque connection ids to their live WebSocket and routes outbound
frames, either to one connection or to every connection.
"""

from __future__ import annotations

import logging

from starlette.websockets import WebSocket

from relay.exceptions import TransportError

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks live WebSocket connections by connection id and fans out frames."""

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}
        self._dropped: list[str] = []

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    async def connect(self, connection_id: str, websocket: WebSocket) -> None:
        """Register *websocket* under *connection_id*."""
        self._connections[connection_id] = websocket

    async def disconnect(self, connection_id: str) -> None:
        """Forget *connection_id*.

        Safe to call even if the connection is not tracked.
        """
        self._connections.pop(connection_id, None)

    async def send_to_connection(self, connection_id: str, message: dict) -> bool:
        """Send *message* as JSON to one connection.

        Returns False if the connection is unknown or the send failed; a
        failed socket is removed so later fan-outs skip it.
        """
        websocket = self._connections.get(connection_id)
        if websocket is None:
            return False
        try:
            await self.send_to_websocket(websocket, message, connection_id=connection_id)
        except TransportError as exc:
            logger.warning("%s", exc.message)
            self._drop(connection_id, websocket)
            return False
        return True

    async def broadcast(self, message: dict, *, exclude: str | None = None) -> None:
        """Send *message* to every connection except *exclude*.

        Delivery is best-effort. Dead sockets are removed and reported
        through ``take_dropped``.
        """
        dead: list[tuple[str, WebSocket]] = []
        for connection_id, websocket in list(self._connections.items()):
            if connection_id == exclude:
                continue
            try:
                await self.send_to_websocket(websocket, message, connection_id=connection_id)
            except TransportError as exc:
                logger.warning("%s", exc.message)
                dead.append((connection_id, websocket))

        for connection_id, websocket in dead:
            self._drop(connection_id, websocket)

    def take_dropped(self) -> list[str]:
        """Return and clear the ids dropped after a failed send since the last call."""
        dropped, self._dropped = self._dropped, []
        return dropped

    async def send_to_websocket(
        self,
        websocket: WebSocket,
        message: dict,
        *,
        connection_id: str | None = None,
    ) -> None:
        """Send *message* as JSON to a specific *websocket*.

        Raises ``TransportError`` if the socket is already closed.
        """
        try:
            await websocket.send_json(message)
        except Exception as exc:
            raise TransportError(connection_id, exc) from exc

    def _drop(self, connection_id: str, websocket: WebSocket) -> None:
        # Only drop if the id still maps to the same socket
        if self._connections.get(connection_id) is websocket:
            del self._connections[connection_id]
            self._dropped.append(connection_id)

"""Per-connection lifecycle: connect, login, status updates, disconnect.

Each connection moves through ``CONNECTED -> AUTHENTICATED -> DISCONNECTED``.
The username a connection logged in as lives in an explicit side table
(connection id -> ``ConnectionContext``) rather than on the socket object.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any

from relay.exceptions import AuthenticationRequiredError, ValidationError
from relay.models import parse_login, parse_status
from relay.services import ws_messages
from relay.services.connection_manager import ConnectionManager
from relay.services.presence_registry import PresenceRegistry, Session
from relay.services.roster_publisher import RosterPublisher
from relay.services.validation import DEFAULT_MAX_LENGTH

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"


@dataclass
class ConnectionContext:
    connection_id: str
    state: ConnectionState = ConnectionState.CONNECTED
    username: str | None = None


class SessionLifecycleManager:
    """Applies lifecycle events to the registry and republishes the roster."""

    def __init__(
        self,
        registry: PresenceRegistry,
        publisher: RosterPublisher,
        connections: ConnectionManager,
        *,
        max_field_length: int = DEFAULT_MAX_LENGTH,
    ) -> None:
        self._registry = registry
        self._publisher = publisher
        self._connections = connections
        self._max_field_length = max_field_length
        self._contexts: dict[str, ConnectionContext] = {}

    def state_of(self, connection_id: str) -> ConnectionState:
        context = self._contexts.get(connection_id)
        return context.state if context else ConnectionState.DISCONNECTED

    def username_for(self, connection_id: str) -> str | None:
        context = self._contexts.get(connection_id)
        return context.username if context else None

    def require_username(self, connection_id: str) -> str:
        """Return the caller's username or raise ``AuthenticationRequiredError``."""
        context = self._contexts.get(connection_id)
        if context is None or context.state is not ConnectionState.AUTHENTICATED:
            raise AuthenticationRequiredError()
        return context.username

    # -- Transitions --------------------------------------------------------

    def on_connect(self, connection_id: str) -> None:
        self._contexts[connection_id] = ConnectionContext(connection_id)

    async def login(self, connection_id: str, data: Any) -> None:
        """Authenticate *connection_id* under the supplied username.

        Raises ``ValidationError`` (connection stays ``CONNECTED``) when the
        names are invalid or the connection is already logged in.
        """
        context = self._contexts.get(connection_id)
        if context is None:
            raise ValidationError("Unknown connection")
        if context.state is ConnectionState.AUTHENTICATED:
            raise ValidationError(f"Already logged in as {context.username}")

        request = parse_login(data, max_length=self._max_field_length)
        session = Session(
            connection_id=connection_id,
            full_name=request.full_name,
            source_url=request.url,
            client_agent=request.user_agent,
        )
        username = self._registry.register(request.username, session)
        context.username = username
        context.state = ConnectionState.AUTHENTICATED
        logger.info("Connection %s logged in as %s", connection_id, username)

        await self._connections.send_to_connection(
            connection_id,
            ws_messages.login_success(username=username, session_id=connection_id),
        )
        await self._publisher.publish()

    async def update_status(self, connection_id: str, data: Any) -> None:
        """Refresh the caller's session; silent apart from the roster republish."""
        username = self.require_username(connection_id)
        request = parse_status(data, max_length=self._max_field_length)
        self._registry.touch(username, connection_id, status=request.status)
        await self._publisher.publish()

    async def on_disconnect(self, connection_id: str) -> None:
        """Move *connection_id* to ``DISCONNECTED`` and drop its presence."""
        context = self._contexts.pop(connection_id, None)
        if context is None:
            return
        context.state = ConnectionState.DISCONNECTED

        if context.username is not None:
            username = self._registry.mark_offline(connection_id)
            if username is not None:
                if self._registry.has_active_sessions(username):
                    self._registry.prune_offline(username)
                else:
                    self._registry.evict(username)
                    logger.info("User %s is now offline", username)
        await self._publisher.publish()

"""Message routing: public broadcasts, direct chat messages and typing indicators."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any

from relay.exceptions import TargetNotFoundError, ValidationError
from relay.models import ChatMessageRequest, TypingRequest, parse_payload
from relay.services import ws_messages
from relay.services.connection_manager import ConnectionManager
from relay.services.presence_registry import PresenceRegistry, utc_now
from relay.services.session_lifecycle import SessionLifecycleManager
from relay.services.validation import DEFAULT_MAX_LENGTH

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 100


class MessageHistory:
    """Bounded FIFO of recent broadcast messages."""

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self._messages: deque[dict] = deque(maxlen=max_size)

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def max_size(self) -> int:
        return self._messages.maxlen

    def append(self, message: dict) -> None:
        self._messages.append(message)

    def recent(self, limit: int | None = None) -> list[dict]:
        """Return up to *limit* most recent messages, oldest first."""
        messages = list(self._messages)
        if limit is None:
            return messages
        return messages[-limit:] if limit > 0 else []


class MessageRouter:
    """Delivers broadcast, direct and typing events."""

    def __init__(
        self,
        registry: PresenceRegistry,
        lifecycle: SessionLifecycleManager,
        history: MessageHistory,
        connections: ConnectionManager,
        *,
        max_field_length: int = DEFAULT_MAX_LENGTH,
    ) -> None:
        self._registry = registry
        self._lifecycle = lifecycle
        self._history = history
        self._connections = connections
        self._max_field_length = max_field_length

    async def broadcast_message(self, connection_id: str, data: Any) -> None:
        """Relay an arbitrary object to everyone and record it in history.

        Open to unauthenticated connections.
        """
        if not isinstance(data, dict):
            raise ValidationError("Message payload must be a JSON object")

        username = self._lifecycle.username_for(connection_id)
        if username is not None:
            self._registry.touch(username, connection_id)

        timestamp = utc_now().isoformat()
        message = {**data, "senderId": connection_id, "timestamp": timestamp}
        self._history.append(message)

        await self._connections.broadcast(ws_messages.new_message(message=message))
        await self._connections.send_to_connection(
            connection_id, ws_messages.message_received(timestamp=timestamp)
        )

    async def chat_message(self, connection_id: str, data: Any) -> dict:
        """Deliver a direct message to every online session of the target.

        Returns the acknowledgement payload. Raises ``TargetNotFoundError``
        when the target has no active session or no send to it succeeded.
        """
        sender = self._lifecycle.require_username(connection_id)
        request = parse_payload(ChatMessageRequest, data, max_length=self._max_field_length)

        recipients = self._registry.online_connection_ids(request.person)
        if not recipients:
            raise TargetNotFoundError(request.person)

        self._registry.touch(sender, connection_id)
        timestamp = utc_now().isoformat()
        delivered = 0
        for recipient in recipients:
            delivered += await self._connections.send_to_connection(
                recipient,
                ws_messages.chat_response(
                    sender=sender,
                    recipient=request.person,
                    message=request.message,
                    timestamp=timestamp,
                ),
            )
        if not delivered:
            raise TargetNotFoundError(request.person)

        await self._connections.send_to_connection(
            connection_id,
            ws_messages.chat_response(
                sender=sender,
                recipient=request.person,
                message=request.message,
                timestamp=timestamp,
                echo=True,
            ),
        )
        logger.debug("Direct message %s -> %s (%d sessions)", sender, request.person, len(recipients))
        return ws_messages.ack_success(timestamp=timestamp)

    async def typing(self, connection_id: str, data: Any) -> None:
        """Broadcast a typing indicator under the sender's own username."""
        username = self._lifecycle.require_username(connection_id)
        request = parse_payload(TypingRequest, data)
        self._registry.touch(username, connection_id)
        await self._connections.broadcast(
            ws_messages.typing(
                person=username,
                typing=request.typing,
                timestamp=utc_now().isoformat(),
            ),
            exclude=connection_id,
        )

"""Roster publishing: derive ``userList``/``userCount`` and fan them out."""

from __future__ import annotations

import logging

from relay.services import ws_messages
from relay.services.connection_manager import ConnectionManager
from relay.services.presence_registry import PresenceRegistry

logger = logging.getLogger(__name__)


class RosterPublisher:
    """Broadcasts the current roster. Never mutates the registry."""

    def __init__(self, registry: PresenceRegistry, connections: ConnectionManager) -> None:
        self._registry = registry
        self._connections = connections

    def roster(self) -> list[dict]:
        """Current ``userList`` payload."""
        self._registry.check_invariants()
        return [entry.to_dict() for entry in self._registry.snapshot()]

    async def publish(self) -> None:
        users = self.roster()
        count = self._registry.user_count
        logger.debug("Publishing roster: %d users", count)
        await self._connections.broadcast(ws_messages.user_list(users=users))
        await self._connections.broadcast(ws_messages.user_count(count=count))

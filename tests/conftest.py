"""Shared pytest fixtures for relay tests.

Provides:
- ``connections``: a fresh ``ConnectionManager``
- ``hub``: a ``PresenceHub`` over ``connections``
- ``connect``: coroutine fixture opening a fake client on ``hub``
"""

from __future__ import annotations

import pytest

from relay.services.connection_manager import ConnectionManager
from relay.services.presence_hub import PresenceHub

from tests.factories import make_ws


@pytest.fixture
def connections():
    return ConnectionManager()


@pytest.fixture
def hub(connections):
    """Presence hub with default limits (history 100, replay 20, fields 100)."""
    return PresenceHub(connections)


@pytest.fixture
def connect(hub):
    """Open a fake client on ``hub``; returns ``(connection_id, ws)``.

    The greeting frames (``connected``/``messageHistory``) are cleared from
    the mock so tests only see what follows.
    """

    async def _connect(*, name: str | None = None, keep_greeting: bool = False):
        ws = make_ws(name=name)
        connection_id = await hub.connect(ws)
        if not keep_greeting:
            ws.send_json.reset_mock()
        return connection_id, ws

    return _connect

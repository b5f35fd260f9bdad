"""Tests for the WebSocket ConnectionManager.

Covers:
- Connection tracking (connect registers, disconnect removes)
- send_to_connection routes to one socket and reports failures
- broadcast reaches every socket, honours ``exclude``, drops dead sockets
- send_to_websocket wraps send failures in TransportError
"""

from __future__ import annotations

import pytest

from relay.exceptions import TransportError
from relay.services.connection_manager import ConnectionManager
from tests.factories import make_dead_ws, make_ws


class TestConnect:
    """Verify ``connect`` / ``disconnect`` bookkeeping."""

    async def test_connection_registered(self):
        mgr = ConnectionManager()
        ws = make_ws()
        await mgr.connect("c1", ws)
        assert "c1" in mgr
        assert len(mgr) == 1

    async def test_disconnect_removes(self):
        mgr = ConnectionManager()
        await mgr.connect("c1", make_ws())
        await mgr.disconnect("c1")
        assert "c1" not in mgr
        assert len(mgr) == 0

    async def test_disconnect_unknown_no_error(self):
        mgr = ConnectionManager()
        # Should not raise
        await mgr.disconnect("nobody")


class TestSendToConnection:
    async def test_sends_to_target_only(self):
        mgr = ConnectionManager()
        ws1, ws2 = make_ws(), make_ws()
        await mgr.connect("c1", ws1)
        await mgr.connect("c2", ws2)
        msg = {"event": "ping", "data": None}
        assert await mgr.send_to_connection("c2", msg) is True
        ws2.send_json.assert_awaited_once_with(msg)
        ws1.send_json.assert_not_awaited()

    async def test_unknown_connection_returns_false(self):
        mgr = ConnectionManager()
        assert await mgr.send_to_connection("ghost", {"event": "ping"}) is False

    async def test_dead_connection_dropped(self):
        mgr = ConnectionManager()
        await mgr.connect("c1", make_dead_ws())
        assert await mgr.send_to_connection("c1", {"event": "ping"}) is False
        assert "c1" not in mgr

    async def test_dropped_id_reported_once(self):
        mgr = ConnectionManager()
        await mgr.connect("c1", make_dead_ws())
        await mgr.send_to_connection("c1", {"event": "ping"})
        assert mgr.take_dropped() == ["c1"]
        assert mgr.take_dropped() == []

    async def test_explicit_disconnect_not_reported(self):
        mgr = ConnectionManager()
        await mgr.connect("c1", make_ws())
        await mgr.disconnect("c1")
        assert mgr.take_dropped() == []


class TestBroadcast:
    async def test_reaches_everyone(self):
        mgr = ConnectionManager()
        sockets = [make_ws() for _ in range(3)]
        for index, ws in enumerate(sockets):
            await mgr.connect(f"c{index}", ws)
        msg = {"event": "userCount", "data": 2}
        await mgr.broadcast(msg)
        for ws in sockets:
            ws.send_json.assert_awaited_once_with(msg)

    async def test_exclude_skips_sender(self):
        mgr = ConnectionManager()
        sender, other = make_ws(), make_ws()
        await mgr.connect("sender", sender)
        await mgr.connect("other", other)
        await mgr.broadcast({"event": "typing"}, exclude="sender")
        sender.send_json.assert_not_awaited()
        other.send_json.assert_awaited_once()

    async def test_dead_socket_removed_others_still_served(self):
        mgr = ConnectionManager()
        alive, dead = make_ws(), make_dead_ws()
        await mgr.connect("dead", dead)
        await mgr.connect("alive", alive)
        msg = {"event": "newMessage", "data": {}}
        await mgr.broadcast(msg)
        alive.send_json.assert_awaited_once_with(msg)
        assert "dead" not in mgr
        assert "alive" in mgr
        assert mgr.take_dropped() == ["dead"]

    async def test_empty_manager_no_error(self):
        await ConnectionManager().broadcast({"event": "userCount", "data": 0})

    async def test_reconnected_id_not_dropped_by_stale_failure(self):
        """Dropping a dead socket never removes a newer socket under the same id."""
        mgr = ConnectionManager()
        dead = make_dead_ws()
        await mgr.connect("c1", dead)
        replacement = make_ws()
        mgr._drop("c1", replacement)
        assert mgr._connections["c1"] is dead


class TestSendToWebsocket:
    async def test_sends_json(self):
        mgr = ConnectionManager()
        ws = make_ws()
        await mgr.send_to_websocket(ws, {"event": "ping"})
        ws.send_json.assert_awaited_once_with({"event": "ping"})

    async def test_failure_raises_transport_error(self):
        mgr = ConnectionManager()
        ws = make_dead_ws(error=RuntimeError("socket closed"))
        with pytest.raises(TransportError) as exc_info:
            await mgr.send_to_websocket(ws, {"event": "ping"}, connection_id="c1")
        assert exc_info.value.connection_id == "c1"
        assert isinstance(exc_info.value.cause, RuntimeError)

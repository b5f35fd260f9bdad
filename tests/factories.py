"""Factory helpers for tests: fake WebSockets, sessions and inbound frames.

Fake sockets are ``AsyncMock`` objects whose ``send_json`` records every
outbound frame, so tests can inspect what a client would have received.
"""

from __future__ import annotations

from unittest.mock import AsyncMock
from uuid import uuid4

from relay.models import InboundFrame
from relay.services.presence_registry import Session


def make_ws(*, name: str | None = None) -> AsyncMock:
    """Create a mock WebSocket with an async ``send_json`` method."""
    ws = AsyncMock(name=name)
    ws.send_json = AsyncMock(name=f"{name}.send_json" if name else "send_json")
    return ws


def make_dead_ws(*, name: str | None = None, error: Exception | None = None) -> AsyncMock:
    """Create a mock WebSocket whose ``send_json`` always raises."""
    ws = make_ws(name=name)
    ws.send_json.side_effect = error or Exception("connection closed")
    return ws


def make_session(**overrides: object) -> Session:
    """Return a ``Session`` with a random connection id."""
    defaults: dict = {
        "connection_id": uuid4().hex,
        "full_name": "Test User",
        "source_url": "https://example.test/page",
        "client_agent": "pytest",
    }
    return Session(**{**defaults, **overrides})


def frame(event: str, data: object = None, ack: str | int | None = None) -> InboundFrame:
    return InboundFrame(event=event, data=data, ack=ack)


def login_frame(username: str, full_name: str = "Test User", **extra: object) -> InboundFrame:
    data = {"username": username, "fullName": full_name, "url": "https://example.test", "userAgent": "pytest"}
    data.update(extra)
    return frame("login", data)


def sent_frames(ws: AsyncMock) -> list[dict]:
    """Every frame passed to ``ws.send_json``, in order."""
    return [call.args[0] for call in ws.send_json.await_args_list]


def sent_events(ws: AsyncMock) -> list[str]:
    return [message["event"] for message in sent_frames(ws)]


def frames_named(ws: AsyncMock, event: str) -> list[dict]:
    return [message for message in sent_frames(ws) if message["event"] == event]


def last_frame(ws: AsyncMock, event: str) -> dict:
    matches = frames_named(ws, event)
    assert matches, f"no {event!r} frame sent; got {sent_events(ws)}"
    return matches[-1]

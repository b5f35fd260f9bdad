"""WebSocket message factory functions.

Each function returns a plain dict ``{"event": <name>, "data": <payload>}``.
Services build frames with these factories and hand them to
``ConnectionManager.send_to_connection()`` or ``ConnectionManager.broadcast()``.
"""

from __future__ import annotations

from typing import Any


def _frame(event: str, data: Any = None) -> dict:
    return {"event": event, "data": data}


# ---------------------------------------------------------------------------
# Connection scoped
# ---------------------------------------------------------------------------


def connected(*, connection_id: str, server_time: str) -> dict:
    """Greeting sent once, right after the socket is accepted."""
    return _frame("connected", {"connectionId": connection_id, "serverTime": server_time})


def message_history(*, messages: list[dict]) -> dict:
    """Recent broadcast messages replayed to a newly connected client."""
    return _frame("messageHistory", messages)


def ping() -> dict:
    """Heartbeat frame."""
    return _frame("ping")


def ack(*, ack_id: str | int, payload: dict) -> dict:
    """Reply to a frame that carried an ``ack`` id."""
    return {"event": "ack", "ack": ack_id, "data": payload}


def ack_success(*, timestamp: str) -> dict:
    return {"success": True, "timestamp": timestamp}


def ack_failure(*, error: str) -> dict:
    return {"success": False, "error": error}


def login_success(*, username: str, session_id: str) -> dict:
    return _frame("loginSuccess", {"username": username, "sessionId": session_id})


def login_error(*, message: str) -> dict:
    return _frame("loginError", {"message": message})


def auth_error(*, message: str) -> dict:
    """The event needs a logged-in connection."""
    return _frame("authError", {"message": message})


def error(*, kind: str, message: str) -> dict:
    """Generic per-connection error (bad frame, bad payload, unknown event)."""
    return _frame("error", {"type": kind, "message": message})


def message_received(*, timestamp: str) -> dict:
    """Confirmation to the sender of a broadcast ``message``."""
    return _frame(
        "messageReceived",
        {"status": "success", "message": "Message received!", "timestamp": timestamp},
    )


def chat_response(
    *,
    sender: str,
    recipient: str,
    message: str,
    timestamp: str,
    echo: bool = False,
) -> dict:
    """Direct message delivered to the target's sessions (or echoed to the sender)."""
    data: dict = {
        "from": sender,
        "to": recipient,
        "person": recipient,
        "message": message,
        "timestamp": timestamp,
        "type": "direct",
    }
    if echo:
        data["self"] = True
    return _frame("chatResponse", data)


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------


def new_message(*, message: dict) -> dict:
    return _frame("newMessage", message)


def typing(*, person: str, typing: bool, timestamp: str) -> dict:
    return _frame("typing", {"person": person, "typing": typing, "timestamp": timestamp})


def user_list(*, users: list[dict]) -> dict:
    return _frame("userList", users)


def user_count(*, count: int) -> dict:
    return _frame("userCount", count)


def server_maintenance(*, message: str, timestamp: str) -> dict:
    """Informational notice broadcast on graceful shutdown."""
    return _frame("serverMaintenance", {"message": message, "timestamp": timestamp})

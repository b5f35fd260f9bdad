"""Health check endpoint -- no auth required."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()

_start_time = time.monotonic()


@router.get("")
async def health_check(request: Request):
    """Return process uptime plus live connection and user counts."""
    uptime = time.monotonic() - _start_time

    hub = getattr(request.app.state, "presence_hub", None)
    if hub is None:
        return {
            "status": "degraded",
            "uptime_seconds": round(uptime, 1),
            "connections": 0,
            "users": 0,
            "version": "1.0.0",
        }

    return {
        "status": "ok",
        "uptime_seconds": round(uptime, 1),
        "connections": len(hub.connections),
        "users": hub.user_count,
        "version": "1.0.0",
    }

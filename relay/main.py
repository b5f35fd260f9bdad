"""FastAPI application entry point.

Application wiring: lifespan, middleware stack, router mounting.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from relay.config import get_settings
from relay.logging_setup import configure_logging
from relay.routers import health
from relay.routers.websocket import router as ws_router
from relay.services.connection_manager import ConnectionManager
from relay.services.presence_hub import PresenceHub

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the presence hub on startup; warn clients on shutdown."""
    settings = get_settings()
    configure_logging(settings.log_level)

    connection_manager = ConnectionManager()
    application.state.connection_manager = connection_manager
    application.state.presence_hub = PresenceHub(
        connection_manager,
        history_size=settings.history_size,
        history_replay_size=settings.history_replay_size,
        max_field_length=settings.max_field_length,
    )
    logger.info("Presence relay started")

    yield

    # -- Shutdown --
    await application.state.presence_hub.shutdown()
    logger.info("Presence relay stopped")


# ---------------------------------------------------------------------------
# Custom Middleware
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status_code, duration_ms for every HTTP request."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - start_time) * 1000

        logger.info(
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and return a standard JSON 500 response."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                "Unhandled exception on %s %s: %s",
                request.method,
                request.url.path,
                exc,
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "details": str(exc)},
            )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(title="Presence Relay", lifespan=lifespan)

# -- Middleware stack (applied in reverse order of add_middleware calls) --
# Order: CORS -> RequestLogging -> ErrorHandling

settings = get_settings()

# 1. CORS (outermost)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# 2. Request logging
app.add_middleware(RequestLoggingMiddleware)

# 3. Error handling (innermost)
app.add_middleware(ErrorHandlingMiddleware)

# -- Routers --
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(ws_router)


def run() -> None:
    """Serve the app with uvicorn on the configured host/port."""
    import uvicorn

    uvicorn.run(
        "relay.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        access_log=True,
    )


if __name__ == "__main__":
    run()

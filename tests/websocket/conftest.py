"""WebSocket test configuration.

Creates a minimal FastAPI test app that mounts the WebSocket and health
routers and carries a fresh presence hub, without the lifespan of
``relay.main``.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from relay.routers import health
from relay.routers.websocket import router as ws_router
from relay.services.connection_manager import ConnectionManager
from relay.services.presence_hub import PresenceHub


def create_test_app() -> FastAPI:
    """Build a minimal FastAPI app with the relay routers and a fresh hub."""
    test_app = FastAPI()
    test_app.include_router(health.router, prefix="/health")
    test_app.include_router(ws_router)
    test_app.state.presence_hub = PresenceHub(ConnectionManager())
    return test_app


@pytest.fixture
def ws_app():
    return create_test_app()


@pytest.fixture
def hub(ws_app):
    return ws_app.state.presence_hub


@pytest.fixture
def client(ws_app):
    """Starlette TestClient; one portal so every socket shares the app's event loop."""
    with TestClient(ws_app) as test_client:
        yield test_client

"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import httpx
import pytest
from fastapi import FastAPI

from gateway.core.config import Settings
from gateway.main import create_app


@asynccontextmanager
async def _test_lifespan(app: FastAPI):
    app.state.shutting_down = False
    yield


def build_test_app(settings: Settings) -> FastAPI:
    """Build the production app, minus its lifespan.

    The ``engine`` fixture initializes the database in the pytest-asyncio loop,
    which the in-process client shares.
    """
    app = create_app(settings)
    app.router.lifespan_context = _test_lifespan
    return app


@pytest.fixture
def app(settings, engine) -> FastAPI:
    return build_test_app(settings)


@pytest.fixture
async def client(app):
    """In-process client sharing the test's event loop and database."""
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def client_for(settings, engine):
    """Return a factory for clients on an app built with overridden settings.

    Usage: ``async with client_for(clerk_webhook_secret="") as client: ...``
    """

    def _client(raise_app_exceptions: bool = True, **overrides) -> httpx.AsyncClient:
        app = build_test_app(settings.model_copy(update=overrides))
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=raise_app_exceptions)
        return httpx.AsyncClient(transport=transport, base_url="http://testserver")

    return _client

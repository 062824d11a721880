"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
    from ._helpers import FakeClock
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401
    from _helpers import FakeClock  # type: ignore

from contextlib import asynccontextmanager

import httpx
import pytest

from app.clients import OAuthStateStore, SQLiteDatabase
from app.core.config import AppSettings, DatabaseSettings


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture()
def settings(tmp_path) -> AppSettings:
    return AppSettings(database=DatabaseSettings(path=str(tmp_path / "autopilot.db")))


@pytest.fixture()
def database(settings: AppSettings) -> SQLiteDatabase:
    return SQLiteDatabase(settings.database.path)


@pytest.fixture()
def state_store(database: SQLiteDatabase) -> OAuthStateStore:
    return OAuthStateStore(database)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
async def platform_http():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture()
def make_api_client(settings: AppSettings, platform_http: httpx.AsyncClient):
    """
    Build a service container, attach it to the app and yield an ASGI client.

    Usage: ``async with make_api_client() as (client, container): ...``
    """
    from app.dependencies import build_container
    from app.main import app

    @asynccontextmanager
    async def _factory(**overrides):
        container = build_container(settings, http_client=platform_http, **overrides)
        app.state.container = container
        try:
            async with httpx.AsyncClient(
                transport=httpx.ASGITransport(app=app), base_url="http://testserver"
            ) as client:
                yield client, container
        finally:
            del app.state.container

    return _factory

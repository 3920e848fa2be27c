"""Shared test fixtures for the kiss_tracker test suite."""
from __future__ import annotations

import pytest

from kiss_tracker.api.config import ApiSettings
from kiss_tracker.api.realtime.broadcaster import Broadcaster
from kiss_tracker.api.store.file_store import FileRecordStore
from kiss_tracker.api.store.sql_store import SqlRecordStore

FRONTEND_URL = "http://frontend.test"


def sqlite_url(path) -> str:
    return f"sqlite+aiosqlite:///{path}"


# ── Store fixtures ───────────────────────────────────────────────────


@pytest.fixture
async def file_store(tmp_path):
    s = FileRecordStore(tmp_path / "data")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
async def sql_store(tmp_path):
    s = SqlRecordStore(sqlite_url(tmp_path / "kiss.db"))
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture(params=["file", "sql"])
async def store(request, tmp_path):
    """Each contract test runs once per backend."""
    if request.param == "file":
        s = FileRecordStore(tmp_path / "data")
    else:
        s = SqlRecordStore(sqlite_url(tmp_path / "contract.db"))
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
async def broadcaster():
    b = Broadcaster(heartbeat_interval=30)
    yield b
    b.close_all()


# ── API fixtures ─────────────────────────────────────────────────────


@pytest.fixture
def settings(tmp_path):
    return ApiSettings(
        data_dir=str(tmp_path / "data"),
        database_url=None,
        frontend_url=FRONTEND_URL,
        heartbeat_interval=30,
    )


@pytest.fixture
async def app(settings):
    """Create a test FastAPI app with a fresh file-backed store."""
    from kiss_tracker.api.main import create_app

    application = create_app(settings)
    yield application

    application.state.broadcaster.close_all()
    await application.state.store.close()


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac


@pytest.fixture
async def created(client):
    """A tracking created through the API; returns the response ``data``."""
    resp = await client.post(
        "/api/tracking",
        json={
            "provider": "Love Express",
            "destination": "Her Heart",
            "eta": "2024-02-14T18:00:00.000Z",
        },
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    data["update_key"] = data["update_link"].split("key=", 1)[1]
    return data

"""Tests for app factory and basic middleware."""
import pytest

from kiss_tracker.api.config import ApiSettings
from kiss_tracker.api.main import create_app
from kiss_tracker.api.realtime.broadcaster import Broadcaster
from kiss_tracker.api.store.selector import StoreSelector


def test_create_app(settings):
    app = create_app(settings)
    assert app.title == "Kiss Tracker API"
    assert isinstance(app.state.store, StoreSelector)
    assert isinstance(app.state.broadcaster, Broadcaster)
    assert app.state.tracking_service.frontend_url == "http://frontend.test"


def test_routes_registered(settings):
    app = create_app(settings)
    paths = set(app.openapi()["paths"])
    expected = {
        "/",
        "/api/health",
        "/api/tracking",
        "/api/tracking/{tracking_number}",
        "/api/tracking/{tracking_number}/update",
        "/api/tracking/{tracking_number}/events",
        "/api/tracking/{tracking_number}/location",
        "/api/tracking/{tracking_number}/eta",
        "/api/tracking/{tracking_number}/destination",
        "/api/tracking/{tracking_number}/status",
    }
    for ep in expected:
        assert ep in paths, f"Missing route: {ep}"


def test_openapi_schema(settings):
    schema = create_app(settings).openapi()
    assert "/api/tracking" in schema["paths"]


@pytest.mark.asyncio
async def test_root_banner(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["data"]["message"] == "Kiss Tracker API is running"


@pytest.mark.asyncio
async def test_404_wrapped(client):
    resp = await client.get("/api/nonexistent")
    assert resp.status_code == 404
    body = resp.json()
    assert body["ok"] is False
    assert body["error"] == "Route not found"


@pytest.mark.asyncio
async def test_health_reports_file_backend(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["data"]["status"] == "ok"
    assert body["data"]["storage"]["backend"] == "file"
    assert body["data"]["storage"]["fallback"] is False
    assert body["meta"]["backend"] == "file"


@pytest.mark.asyncio
async def test_health_reports_fallback(tmp_path):
    from httpx import ASGITransport, AsyncClient

    settings = ApiSettings(
        data_dir=str(tmp_path / "data"),
        database_url="sqlite+aiosqlite:///" + str(tmp_path / "missing" / "dir" / "kiss.db"),
    )
    app = create_app(settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        resp = await ac.get("/api/health")
    await app.state.store.close()

    storage = resp.json()["data"]["storage"]
    assert storage["backend"] == "file"
    assert storage["fallback"] is True
    assert storage["reason"]


@pytest.mark.asyncio
async def test_cors_preflight(client):
    resp = await client.options(
        "/api/tracking",
        headers={"Origin": "http://frontend.test", "Access-Control-Request-Method": "POST"},
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "http://frontend.test"


@pytest.mark.asyncio
async def test_debug_listing_disabled_by_default(client, created):
    resp = await client.get("/api/debug/trackings")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_debug_listing_withholds_keys(tmp_path):
    from httpx import ASGITransport, AsyncClient

    app = create_app(ApiSettings(data_dir=str(tmp_path / "data"), database_url=None, enable_debug_routes=True))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        await ac.post("/api/tracking", json={"provider": "p", "destination": "d", "eta": "2024-02-14T18:00:00Z"})
        resp = await ac.get("/api/debug/trackings")
    await app.state.store.close()

    rows = resp.json()["data"]
    assert len(rows) == 1
    assert "update_key" not in rows[0]
    assert rows[0]["provider"] == "p"


def test_all_routers():
    from kiss_tracker.api.routers import all_routers

    prefixes = {r.prefix for r in all_routers()}
    assert prefixes == {"", "/api/tracking"}

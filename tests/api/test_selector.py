"""Tests for backend selection and the initialization gate."""
import asyncio

import pytest

from kiss_tracker.api.store.file_store import FileRecordStore
from kiss_tracker.api.store.selector import StoreSelector
from kiss_tracker.api.store.sql_store import SqlRecordStore

ETA = "2024-02-14T18:00:00Z"


@pytest.mark.asyncio
async def test_no_database_url_uses_file_backend(tmp_path):
    selector = StoreSelector(None, tmp_path / "data")
    assert selector.status()["backend"] == "pending"
    assert selector.ready is False

    await selector.initialize()
    status = selector.status()
    assert status == {"backend": "file", "ready": True, "fallback": False, "reason": None}
    assert isinstance(selector._store, FileRecordStore)


@pytest.mark.asyncio
async def test_reachable_database_uses_sql_backend(tmp_path):
    selector = StoreSelector(f"sqlite:///{tmp_path}/kiss.db", tmp_path / "data")
    await selector.initialize()
    try:
        assert selector.backend == "sql"
        assert isinstance(selector._store, SqlRecordStore)
        assert selector.status()["fallback"] is False
        assert not (tmp_path / "data").exists()
    finally:
        await selector.close()


@pytest.mark.parametrize(
    "url",
    [
        "sqlite+aiosqlite:////definitely/missing/dir/kiss.db",
        "nosuchdialect://host/db",
    ],
)
@pytest.mark.asyncio
async def test_unusable_database_falls_back_to_files(tmp_path, url):
    selector = StoreSelector(url, tmp_path / "data")
    await selector.initialize()

    status = selector.status()
    assert status["backend"] == "file"
    assert status["fallback"] is True
    assert status["reason"]
    assert "definitely" not in status["reason"]

    # callers see a working store regardless
    await selector.create_record("ABCD1234", "p", "d", ETA, "k" * 16)
    assert await selector.verify_credential("ABCD1234", "k" * 16) is True


@pytest.mark.asyncio
async def test_calls_before_initialize_wait_for_selection(tmp_path):
    selector = StoreSelector(None, tmp_path / "data")
    calls = 0
    original = selector._select

    async def slow_select():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.05)
        return await original()

    selector._select = slow_select

    results = await asyncio.gather(
        selector.get_record("ABCD1234"),
        selector.list_all_records(),
        selector.verify_credential("ABCD1234", "x"),
    )
    assert results == [None, [], False]
    assert calls == 1
    assert selector.backend == "file"


@pytest.mark.asyncio
async def test_selector_delegates_full_contract(tmp_path):
    selector = StoreSelector(None, tmp_path / "data")
    tracking_id = await selector.create_record("ABCD1234", "p", "d", ETA, "k" * 16)
    await selector.append_location_event(tracking_id, "ABCD1234", "Delivered")
    full = await selector.get_record_with_events("ABCD1234")
    assert [e.location for e in full.events] == ["Delivered"]
    assert await selector.remove_delivered_events("ABCD1234") is True
    assert await selector.list_location_events("ABCD1234") == []

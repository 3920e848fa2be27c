"""Tests for the server-sent event stream at /api/tracking/{id}/events.

httpx's ASGITransport buffers whole bodies, so these drive the ASGI app
directly and disconnect the client by hand.
"""
import asyncio
import json

import pytest

from kiss_tracker.api.config import ApiSettings
from kiss_tracker.api.main import create_app


@pytest.fixture(autouse=True)
def _fresh_sse_exit_event(monkeypatch):
    # Older sse-starlette keeps one exit event per process, bound to the first loop.
    from sse_starlette.sse import AppStatus

    monkeypatch.setattr(AppStatus, "should_exit_event", None, raising=False)


class StreamClient:
    """Minimal ASGI client for one streaming GET."""

    def __init__(self, app, path):
        self.app = app
        self.path = path
        self.start = None
        self.chunks = []
        self._requested = False
        self._disconnect = asyncio.Event()
        self._task = None

    @property
    def text(self):
        return b"".join(self.chunks).decode()

    def open(self):
        scope = {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": "2.3"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": self.path,
            "raw_path": self.path.encode(),
            "root_path": "",
            "query_string": b"",
            "headers": [(b"host", b"testserver"), (b"accept", b"text/event-stream")],
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }
        self._task = asyncio.create_task(self.app(scope, self._receive, self._send))

    async def close(self):
        self._disconnect.set()
        await asyncio.wait_for(self._task, 5)

    async def _receive(self):
        if not self._requested:
            self._requested = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await self._disconnect.wait()
        return {"type": "http.disconnect"}

    async def _send(self, message):
        if message["type"] == "http.response.start":
            self.start = message
        elif message["type"] == "http.response.body":
            self.chunks.append(message.get("body", b""))


async def wait_until(predicate, timeout=2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


def parse_frames(text):
    """Split ``event: ...\\ndata: ...\\n\\n`` blocks into (event, data) pairs."""
    frames = []
    for block in text.split("\n\n"):
        if not block or block.startswith(":"):
            continue
        lines = dict(line.split(": ", 1) for line in block.split("\n"))
        frames.append((lines["event"], json.loads(lines["data"])))
    return frames


@pytest.mark.asyncio
async def test_stream_framing_and_unsubscribe_on_disconnect(app, client, created):
    tn, key = created["tracking_number"], created["update_key"]
    broadcaster = app.state.broadcaster
    stream = StreamClient(app, f"/api/tracking/{tn}/events")
    stream.open()
    await wait_until(lambda: broadcaster.subscriber_count(tn) == 1)

    resp = await client.put(f"/api/tracking/{tn}/status?key={key}", json={"status": "Delivered"})
    assert resp.status_code == 200
    await wait_until(lambda: "event: location-update" in stream.text)

    await stream.close()
    assert broadcaster.subscriber_count(tn) == 0
    assert broadcaster.tracking_numbers() == []

    assert stream.start["status"] == 200
    headers = dict(stream.start["headers"])
    assert headers[b"content-type"].startswith(b"text/event-stream")

    text = stream.text
    assert text.startswith("event: connected\ndata: ")
    assert "\r" not in text
    frames = parse_frames(text)
    assert [event for event, _ in frames] == ["connected", "status-change", "location-update"]
    assert frames[0][1]["tracking_number"] == tn
    assert frames[1][1] == {"tracking_number": tn, "status": "Delivered", "previous_status": "Preparing"}
    assert frames[2][1]["location"] == "Delivered"
    assert frames[2][1]["id"] == resp.json()["data"]["delivery_event_id"]


@pytest.mark.asyncio
async def test_stream_heartbeats_for_unknown_tracking(tmp_path):
    app = create_app(
        ApiSettings(data_dir=str(tmp_path / "data"), database_url=None, heartbeat_interval=0.05)
    )
    broadcaster = app.state.broadcaster
    stream = StreamClient(app, "/api/tracking/NOPE0000/events")
    stream.open()
    try:
        await wait_until(lambda: "event: heartbeat" in stream.text)
    finally:
        await stream.close()
        await app.state.store.close()

    assert stream.start["status"] == 200
    assert [event for event, _ in parse_frames(stream.text)][:2] == ["connected", "heartbeat"]
    assert broadcaster.subscriber_count() == 0

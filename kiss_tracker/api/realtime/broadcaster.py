"""In-process fan-out of tracking events to SSE subscribers."""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from ...config import HEARTBEAT_INTERVAL_SECONDS, SUBSCRIBER_QUEUE_SIZE
from ..store.models import utc_now

logger = logging.getLogger(__name__)

# SSE event types
CONNECTED = "connected"
HEARTBEAT = "heartbeat"
LOCATION_UPDATE = "location-update"
STATUS_CHANGE = "status-change"
ETA_CHANGE = "eta-change"
DESTINATION_CHANGE = "destination-change"
DELIVERY_REMOVED = "delivery-removed"

_CLOSED = object()


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:  # no running loop
        return None


@dataclass(frozen=True)
class Frame:
    """One SSE message: ``event: <event>`` / ``data: <json of data>``."""

    event: str
    data: Dict[str, Any] = field(default_factory=dict)


class Subscription:
    """A single viewer's connection, buffered through a bounded queue.

    A subscription is writable from creation until ``close()``; once closed
    it never accepts another frame and the reader's ``frames()`` iterator
    ends.  A full queue counts as an unwritable connection.
    """

    def __init__(self, tracking_number: str, max_queued: int = SUBSCRIBER_QUEUE_SIZE) -> None:
        self.tracking_number = tracking_number
        self.subscription_id = uuid.uuid4().hex[:12]
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queued + 1)  # +1 for the close sentinel
        self._max_queued = max_queued
        self._closed = False
        self._keepalive_task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        state = "closed" if self._closed else "active"
        return f"<Subscription {self.subscription_id} {self.tracking_number} {state}>"

    @property
    def writable(self) -> bool:
        return not self._closed

    @property
    def pending(self) -> int:
        """Frames queued but not yet read."""
        return self._queue.qsize()

    def send(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """Queue a frame without waiting.  False means the connection is dead."""
        if self._closed or self._queue.qsize() >= self._max_queued:
            return False
        self._queue.put_nowait(Frame(event_type, payload))
        return True

    def close(self) -> None:
        """Stop accepting frames and cancel the keep-alive.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        task, self._keepalive_task = self._keepalive_task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        # Drop undelivered frames so the sentinel always fits and the reader exits promptly.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def frames(self) -> AsyncIterator[Frame]:
        """Yield queued frames until the subscription is closed."""
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


class Broadcaster:
    """Registry of live subscriptions keyed by tracking number.

    All methods are synchronous and must be called from the event loop
    thread.  ``broadcast`` walks a snapshot of the subscriber set, so
    subscriptions added or removed while it runs cannot cause a handle to be
    skipped or served twice.
    """

    def __init__(
        self,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
        max_queued: int = SUBSCRIBER_QUEUE_SIZE,
    ) -> None:
        self._heartbeat_interval = heartbeat_interval
        self._max_queued = max_queued
        self._subscribers: Dict[str, Set[Subscription]] = {}

    # ── Registration ─────────────────────────────────────────────────

    def subscribe(self, tracking_number: str) -> Subscription:
        """Register a new subscription and start its keep-alive task.

        Must be called while an event loop is running.
        """
        sub = Subscription(tracking_number, self._max_queued)
        self._subscribers.setdefault(tracking_number, set()).add(sub)
        sub.send(CONNECTED, {
            "tracking_number": tracking_number,
            "subscription_id": sub.subscription_id,
            "timestamp": utc_now(),
        })
        sub._keepalive_task = asyncio.get_running_loop().create_task(self._keepalive(sub))
        logger.info(
            "Subscriber %s joined %s (%d active)",
            sub.subscription_id, tracking_number, self.subscriber_count(tracking_number),
        )
        return sub

    def unsubscribe(self, tracking_number: str, sub: Subscription) -> None:
        """Remove *sub*; drop the tracking number once nobody is left."""
        subs = self._subscribers.get(tracking_number)
        if subs is not None:
            subs.discard(sub)
            if not subs:
                del self._subscribers[tracking_number]
        if sub.writable:
            sub.close()
            logger.info("Subscriber %s left %s", sub.subscription_id, tracking_number)

    def subscriber_count(self, tracking_number: Optional[str] = None) -> int:
        if tracking_number is not None:
            return len(self._subscribers.get(tracking_number, ()))
        return sum(len(s) for s in self._subscribers.values())

    def tracking_numbers(self) -> List[str]:
        """Tracking numbers with at least one live subscriber."""
        return sorted(self._subscribers)

    def close_all(self) -> None:
        """Close every subscription (used at shutdown)."""
        for tracking_number, subs in list(self._subscribers.items()):
            for sub in list(subs):
                self.unsubscribe(tracking_number, sub)

    # ── Delivery ─────────────────────────────────────────────────────

    def broadcast(self, tracking_number: str, event_type: str, payload: Dict[str, Any]) -> int:
        """Send one event to every subscriber of *tracking_number*.

        Subscribers that cannot take the frame are unsubscribed; the rest
        still receive it.  Returns the number of subscribers reached.
        """
        subs = self._subscribers.get(tracking_number)
        if not subs:
            return 0
        delivered = 0
        dead: List[Subscription] = []
        for sub in list(subs):
            if sub.send(event_type, payload):
                delivered += 1
            else:
                dead.append(sub)
        for sub in dead:
            logger.warning(
                "Dropping unwritable subscriber %s on %s", sub.subscription_id, tracking_number
            )
            self.unsubscribe(tracking_number, sub)
        logger.debug("Broadcast %s to %d subscriber(s) of %s", event_type, delivered, tracking_number)
        return delivered

    async def _keepalive(self, sub: Subscription) -> None:
        while sub.writable:
            await asyncio.sleep(self._heartbeat_interval)
            if not sub.writable:
                break
            if not sub.send(HEARTBEAT, {"timestamp": utc_now()}):
                logger.warning("Heartbeat to %s failed; dropping", sub.subscription_id)
                self.unsubscribe(sub.tracking_number, sub)
                break

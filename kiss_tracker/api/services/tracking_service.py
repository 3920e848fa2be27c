"""Tracking use cases: creation, reads, updates and the Delivered policy.

Handlers call into ``TrackingService``; it mutates the record store and then
notifies the broadcaster.  Notifications never fail the calling request.
"""
from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional

from ...config import (
    DELIVERED_LOCATION,
    MAX_TRACKING_NUMBER_ATTEMPTS,
    TRACKING_NUMBER_LENGTH,
    UPDATE_KEY_LENGTH,
)
from ..errors import InvalidRequestError, TrackingNotFoundError
from ..realtime.broadcaster import (
    DELIVERY_REMOVED,
    DESTINATION_CHANGE,
    ETA_CHANGE,
    LOCATION_UPDATE,
    STATUS_CHANGE,
    Broadcaster,
)
from ..schemas.tracking import TrackingView
from ..store.base import DuplicateTrackingNumberError, RecordStore, StorageError
from ..store.models import LocationEvent, TrackingRecord, TrackingStatus, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)


def generate_tracking_number() -> str:
    """Short public code, e.g. ``3F9A0C1B``."""
    return secrets.token_hex(TRACKING_NUMBER_LENGTH // 2).upper()


def generate_update_key() -> str:
    return secrets.token_hex(UPDATE_KEY_LENGTH // 2)


def normalize_eta(value: str) -> str:
    """Parse an ISO-8601 ETA and return it as a UTC ``...Z`` string."""
    try:
        return to_iso(parse_iso(value))
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError("Invalid ETA format") from exc


class TrackingService:
    """Application logic shared by the HTTP handlers."""

    def __init__(self, store: RecordStore, broadcaster: Broadcaster, frontend_url: str) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.frontend_url = frontend_url.rstrip("/")

    # ── Links ────────────────────────────────────────────────────────

    def share_link(self, tracking_number: str) -> str:
        return f"{self.frontend_url}/track/{tracking_number}"

    def update_link(self, tracking_number: str, update_key: str) -> str:
        return f"{self.frontend_url}/update/{tracking_number}?key={update_key}"

    # ── Reads ────────────────────────────────────────────────────────

    async def _require(self, tracking_number: str) -> TrackingRecord:
        record = await self.store.get_record(tracking_number)
        if record is None:
            raise TrackingNotFoundError(f"Tracking number '{tracking_number}' not found")
        return record

    async def get_tracking(self, tracking_number: str) -> TrackingView:
        """Public view: record, events and the share link only."""
        record = await self.store.get_record_with_events(tracking_number)
        if record is None:
            raise TrackingNotFoundError(f"Tracking number '{tracking_number}' not found")
        return TrackingView.build(record, share_link=self.share_link(tracking_number))

    async def get_tracking_for_update(self, tracking_number: str) -> TrackingView:
        """Owner view: adds the update link.  Caller must have checked the key."""
        record = await self.store.get_record_with_events(tracking_number)
        if record is None:
            raise TrackingNotFoundError(f"Tracking number '{tracking_number}' not found")
        return TrackingView.build(
            record,
            share_link=self.share_link(tracking_number),
            update_link=self.update_link(tracking_number, record.update_key),
        )

    async def list_trackings(self) -> List[Dict[str, Any]]:
        """Every tracking with its update key withheld (debug listing)."""
        records = await self.store.list_all_records()
        return [r.model_dump(mode="json", exclude={"update_key"}) for r in records]

    # ── Creation ─────────────────────────────────────────────────────

    async def create_tracking(
        self,
        provider: str,
        destination: str,
        eta: str,
        *,
        creator_timezone: Optional[str] = None,
        creator_locale: Optional[str] = None,
    ) -> TrackingView:
        """Create a tracking with a fresh tracking number and update key.

        A colliding tracking number is regenerated up to
        ``MAX_TRACKING_NUMBER_ATTEMPTS`` times.
        """
        eta_iso = normalize_eta(eta)
        update_key = generate_update_key()
        for attempt in range(1, MAX_TRACKING_NUMBER_ATTEMPTS + 1):
            tracking_number = generate_tracking_number()
            try:
                tracking_id = await self.store.create_record(
                    tracking_number,
                    provider,
                    destination,
                    eta_iso,
                    update_key,
                    creator_timezone=creator_timezone,
                    creator_locale=creator_locale,
                )
                break
            except DuplicateTrackingNumberError:
                logger.warning(
                    "Tracking number %s already taken (attempt %d/%d)",
                    tracking_number, attempt, MAX_TRACKING_NUMBER_ATTEMPTS,
                )
        else:
            raise DuplicateTrackingNumberError("Could not allocate a unique tracking number")

        logger.info("Created tracking %s (%s)", tracking_number, tracking_id)
        record = await self.store.get_record_with_events(tracking_number)
        if record is None:
            raise StorageError(f"Tracking {tracking_number} vanished after creation")
        return TrackingView.build(
            record,
            share_link=self.share_link(tracking_number),
            update_link=self.update_link(tracking_number, update_key),
        )

    # ── Updates ──────────────────────────────────────────────────────

    async def add_location(self, tracking_number: str, location: str) -> LocationEvent:
        record = await self._require(tracking_number)
        event_id = await self.store.append_location_event(record.id, tracking_number, location)
        event = await self._find_event(record, event_id, location)
        self._notify(tracking_number, LOCATION_UPDATE, {
            "tracking_number": tracking_number,
            "id": event.id,
            "location": event.location,
            "timestamp": event.timestamp,
        })
        return event

    async def update_eta(self, tracking_number: str, eta: str) -> str:
        eta_iso = normalize_eta(eta)
        if not await self.store.update_eta(tracking_number, eta_iso):
            raise TrackingNotFoundError(f"Tracking number '{tracking_number}' not found")
        self._notify(tracking_number, ETA_CHANGE, {"tracking_number": tracking_number, "eta": eta_iso})
        return eta_iso

    async def update_destination(self, tracking_number: str, destination: str) -> str:
        if not await self.store.update_destination(tracking_number, destination):
            raise TrackingNotFoundError(f"Tracking number '{tracking_number}' not found")
        self._notify(tracking_number, DESTINATION_CHANGE, {
            "tracking_number": tracking_number,
            "destination": destination,
        })
        return destination

    async def update_status(self, tracking_number: str, status: TrackingStatus) -> Dict[str, Any]:
        """Apply a status change and its Delivered side effects.

        Into Delivered from another status: append one ``Delivered`` location
        event, then broadcast status-change and location-update.  Delivered
        again while already Delivered appends nothing.
        Out of Delivered: remove every ``Delivered`` event, broadcast
        delivery-removed if anything was removed, then status-change.
        Anything else: status-change only.

        The status write and the event write are separate store calls.  If
        the second fails the status change stays applied; the failure is
        logged and re-raised.
        """
        status = TrackingStatus(status)
        record = await self._require(tracking_number)
        previous = record.status
        if not await self.store.update_status(tracking_number, status):
            raise TrackingNotFoundError(f"Tracking number '{tracking_number}' not found")

        status_payload = {
            "tracking_number": tracking_number,
            "status": status.value,
            "previous_status": previous.value,
        }
        result: Dict[str, Any] = dict(status_payload, delivery_event_id=None, delivery_removed=False)

        try:
            if status is TrackingStatus.delivered:
                event = None
                if previous is not TrackingStatus.delivered:
                    event = await self._append_delivered_event(record)
                self._notify(tracking_number, STATUS_CHANGE, status_payload)
                if event is not None:
                    result["delivery_event_id"] = event.id
                    self._notify(tracking_number, LOCATION_UPDATE, {
                        "tracking_number": tracking_number,
                        "id": event.id,
                        "location": event.location,
                        "timestamp": event.timestamp,
                    })
            elif previous is TrackingStatus.delivered:
                removed = await self.store.remove_delivered_events(tracking_number)
                result["delivery_removed"] = removed
                if removed:
                    self._notify(tracking_number, DELIVERY_REMOVED, {
                        "tracking_number": tracking_number,
                        "location": DELIVERED_LOCATION,
                    })
                self._notify(tracking_number, STATUS_CHANGE, status_payload)
            else:
                self._notify(tracking_number, STATUS_CHANGE, status_payload)
        except StorageError:
            logger.error(
                "Status of %s changed %s -> %s but its location history was not updated; "
                "record is partially applied",
                tracking_number, previous.value, status.value,
            )
            raise

        logger.info("Status of %s: %s -> %s", tracking_number, previous.value, status.value)
        return result

    # ── Helpers ──────────────────────────────────────────────────────

    async def _append_delivered_event(self, record: TrackingRecord) -> LocationEvent:
        event_id = await self.store.append_location_event(
            record.id, record.tracking_number, DELIVERED_LOCATION
        )
        return await self._find_event(record, event_id, DELIVERED_LOCATION)

    async def _find_event(self, record: TrackingRecord, event_id: str, location: str) -> LocationEvent:
        for event in await self.store.list_location_events(record.tracking_number):
            if event.id == event_id:
                return event
        logger.warning("Event %s not found right after append on %s", event_id, record.tracking_number)
        return LocationEvent(
            id=event_id,
            tracking_id=record.id,
            tracking_number=record.tracking_number,
            location=location,
            timestamp=utc_now(),
        )

    def _notify(self, tracking_number: str, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            self.broadcaster.broadcast(tracking_number, event_type, payload)
        except Exception:  # noqa: BLE001
            logger.exception("Broadcast of %s on %s failed", event_type, tracking_number)

"""Tracking data models shared by every record store."""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from ...config import DEFAULT_CREATOR_LOCALE, DEFAULT_CREATOR_TIMEZONE


class TrackingStatus(str, enum.Enum):
    preparing = "Preparing"
    in_transit = "In Transit"
    out_for_delivery = "Out for Delivery"
    delivered = "Delivered"
    delayed = "Delayed"


def to_iso(dt: datetime) -> str:
    """Render *dt* as a UTC ISO-8601 string with a ``Z`` suffix.

    Naive datetimes are taken to be UTC already (SQLite drops the offset).
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Raises ``ValueError`` for anything ``datetime.fromisoformat`` rejects.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> str:
    return to_iso(datetime.now(timezone.utc))


class TrackingRecord(BaseModel):
    """Persistent representation of one tracking."""

    id: str
    tracking_number: str
    provider: str
    destination: str
    eta: str
    status: TrackingStatus = TrackingStatus.preparing
    update_key: str
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)
    creator_timezone: Optional[str] = DEFAULT_CREATOR_TIMEZONE
    creator_locale: Optional[str] = DEFAULT_CREATOR_LOCALE


class LocationEvent(BaseModel):
    """A timestamped waypoint attached to a tracking."""

    id: str
    tracking_id: str
    tracking_number: str
    location: str
    timestamp: str = Field(default_factory=utc_now)


class TrackingWithEvents(TrackingRecord):
    """A tracking together with its location history, oldest first."""

    events: List[LocationEvent] = Field(default_factory=list)

"""Request bodies and response views for tracking endpoints."""
from __future__ import annotations

from typing import Any, Annotated, Dict, List, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, Field

from ..store.models import LocationEvent, TrackingRecord, TrackingStatus, TrackingWithEvents


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


# ── Requests ─────────────────────────────────────────────────────────


class CreateTrackingRequest(BaseModel):
    provider: NonBlankStr = Field(validation_alias=AliasChoices("provider", "kissProvider"))
    destination: NonBlankStr
    eta: NonBlankStr
    creator_timezone: Optional[str] = Field(
        None, validation_alias=AliasChoices("creator_timezone", "timezone")
    )
    creator_locale: Optional[str] = Field(
        None, validation_alias=AliasChoices("creator_locale", "locale")
    )


class LocationRequest(BaseModel):
    location: NonBlankStr


class EtaRequest(BaseModel):
    eta: NonBlankStr


class DestinationRequest(BaseModel):
    destination: NonBlankStr


class StatusRequest(BaseModel):
    status: TrackingStatus


# ── Views ────────────────────────────────────────────────────────────


class LocationEventView(BaseModel):
    id: str
    location: str
    timestamp: str

    @classmethod
    def from_event(cls, event: LocationEvent) -> "LocationEventView":
        return cls(id=event.id, location=event.location, timestamp=event.timestamp)


class TrackingView(BaseModel):
    """What clients see of a tracking.  Never carries the update key itself."""

    tracking_number: str
    provider: str
    destination: str
    eta: str
    status: TrackingStatus
    created_at: str
    updated_at: str
    creator_timezone: Optional[str] = None
    creator_locale: Optional[str] = None
    share_link: str
    update_link: Optional[str] = None
    events: List[LocationEventView] = Field(default_factory=list)

    @classmethod
    def build(
        cls,
        record: TrackingRecord,
        *,
        share_link: str,
        update_link: Optional[str] = None,
    ) -> "TrackingView":
        events = record.events if isinstance(record, TrackingWithEvents) else []
        return cls(
            tracking_number=record.tracking_number,
            provider=record.provider,
            destination=record.destination,
            eta=record.eta,
            status=record.status,
            created_at=record.created_at,
            updated_at=record.updated_at,
            creator_timezone=record.creator_timezone,
            creator_locale=record.creator_locale,
            share_link=share_link,
            update_link=update_link,
            events=[LocationEventView.from_event(e) for e in events],
        )

    def as_dict(self) -> Dict[str, Any]:
        """JSON-ready dict; the public view omits ``update_link`` entirely."""
        data = self.model_dump(mode="json")
        if self.update_link is None:
            data.pop("update_link")
        return data

"""Record store contract shared by the file and SQL backends."""
from __future__ import annotations

import hmac
from abc import ABC, abstractmethod
from typing import List, Optional

from .models import LocationEvent, TrackingRecord, TrackingStatus, TrackingWithEvents


class StorageError(Exception):
    """The backing medium failed (I/O error, corrupt file, database error)."""


class DuplicateTrackingNumberError(Exception):
    """A tracking with this tracking number already exists."""


class RecordStore(ABC):
    """Async persistence contract for trackings and their location events.

    Every implementation must behave identically as observed through these
    methods.  Mutations return ``False`` rather than raising when the
    tracking number is unknown.
    """

    backend: str = "abstract"

    async def initialize(self) -> None:
        """Prepare the backing medium (create files, tables)."""

    async def ping(self) -> None:
        """Run a cheap read-only probe; raise if the backend is unusable."""

    async def close(self) -> None:
        """Release connections or handles."""

    # ── Trackings ─────────────────────────────────────────────────────

    @abstractmethod
    async def create_record(
        self,
        tracking_number: str,
        provider: str,
        destination: str,
        eta: str,
        update_key: str,
        *,
        creator_timezone: Optional[str] = None,
        creator_locale: Optional[str] = None,
    ) -> str:
        """Insert a new tracking in ``Preparing`` status and return its internal id.

        Raises
        ------
        DuplicateTrackingNumberError
            If *tracking_number* is already taken.
        """

    @abstractmethod
    async def get_record(self, tracking_number: str) -> Optional[TrackingRecord]:
        ...

    @abstractmethod
    async def update_eta(self, tracking_number: str, eta: str) -> bool:
        ...

    @abstractmethod
    async def update_destination(self, tracking_number: str, destination: str) -> bool:
        ...

    @abstractmethod
    async def update_status(self, tracking_number: str, status: TrackingStatus) -> bool:
        """Set the status only; Delivered side effects belong to the caller."""

    @abstractmethod
    async def list_all_records(self) -> List[TrackingRecord]:
        ...

    # ── Location events ───────────────────────────────────────────────

    @abstractmethod
    async def append_location_event(
        self, tracking_id: str, tracking_number: str, location: str
    ) -> str:
        """Append an event stamped with the current time and return its id."""

    @abstractmethod
    async def list_location_events(self, tracking_number: str) -> List[LocationEvent]:
        """Return the events of a tracking sorted ascending by timestamp."""

    @abstractmethod
    async def remove_delivered_events(self, tracking_number: str) -> bool:
        """Delete every ``Delivered`` event; True iff at least one was removed."""

    # ── Compositions ──────────────────────────────────────────────────

    async def get_record_with_events(self, tracking_number: str) -> Optional[TrackingWithEvents]:
        record = await self.get_record(tracking_number)
        if record is None:
            return None
        events = await self.list_location_events(tracking_number)
        return TrackingWithEvents(**record.model_dump(), events=events)

    async def verify_credential(self, tracking_number: str, provided: Optional[str]) -> bool:
        """True iff *provided* is the tracking's update key.  Never raises for unknown ids."""
        if not provided:
            return False
        record = await self.get_record(tracking_number)
        if record is None:
            return False
        return hmac.compare_digest(record.update_key.encode(), provided.encode())

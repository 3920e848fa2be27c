"""JSON-file record store.

Two whole documents live in the data directory: ``trackings.json`` maps a
tracking number to its record and ``track_records.json`` maps a tracking
number to its list of location events.  Every mutation re-reads the document,
applies the change and writes it back atomically (temp file + ``os.replace``).
Read-modify-write cycles on one document are serialised by an in-process
lock so writes to different trackings cannot overwrite each other; two
updates to the same tracking still apply in arrival order, last one wins.
Separate processes sharing the directory are not coordinated.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from ...config import (
    DEFAULT_CREATOR_LOCALE,
    DEFAULT_CREATOR_TIMEZONE,
    DELIVERED_LOCATION,
    TRACK_RECORDS_FILENAME,
    TRACKINGS_FILENAME,
)
from .base import DuplicateTrackingNumberError, RecordStore, StorageError
from .models import LocationEvent, TrackingRecord, TrackingStatus, parse_iso, utc_now

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


def _read_document(path: Path) -> Document:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        logger.error("Failed to read %s: %s", path, exc)
        raise StorageError(f"Cannot read {path.name}") from exc
    if not isinstance(data, dict):
        raise StorageError(f"{path.name} does not contain a JSON object")
    return data


def _write_document(path: Path, data: Document) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, str(path))
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
    except OSError as exc:
        logger.error("Failed to write %s: %s", path, exc)
        raise StorageError(f"Cannot write {path.name}") from exc


class FileRecordStore(RecordStore):
    """Record store backed by two JSON documents on local disk."""

    backend = "file"

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        self.trackings_path = self.data_dir / TRACKINGS_FILENAME
        self.records_path = self.data_dir / TRACK_RECORDS_FILENAME
        self._locks: Dict[Path, asyncio.Lock] = {
            self.trackings_path: asyncio.Lock(),
            self.records_path: asyncio.Lock(),
        }

    async def initialize(self) -> None:
        """Create the data directory and empty documents if missing."""
        await asyncio.to_thread(self._ensure_files)

    def _ensure_files(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create data directory {self.data_dir}") from exc
        for path in (self.trackings_path, self.records_path):
            if not path.exists():
                _write_document(path, {})
                logger.info("Created %s", path)

    async def ping(self) -> None:
        await self._load(self.trackings_path)

    # ── Document I/O ──────────────────────────────────────────────────

    async def _load(self, path: Path) -> Document:
        return await asyncio.to_thread(_read_document, path)

    async def _mutate(self, path: Path, fn: Callable[[Document], Tuple[bool, Any]]) -> Any:
        """Read *path*, apply *fn* and write back when it reports a change.

        *fn* returns ``(changed, result)``; the whole cycle runs in one worker
        thread so the read and the write are as close together as possible.
        """

        def _cycle() -> Any:
            doc = _read_document(path)
            changed, result = fn(doc)
            if changed:
                _write_document(path, doc)
            return result

        async with self._locks[path]:
            return await asyncio.to_thread(_cycle)

    async def _update_fields(self, tracking_number: str, **changes: Any) -> bool:
        def _apply(doc: Document) -> Tuple[bool, bool]:
            entry = doc.get(tracking_number)
            if entry is None:
                return False, False
            entry.update(changes)
            entry["updated_at"] = utc_now()
            return True, True

        return await self._mutate(self.trackings_path, _apply)

    # ── Trackings ─────────────────────────────────────────────────────

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
        record = TrackingRecord(
            id=str(uuid.uuid4()),
            tracking_number=tracking_number,
            provider=provider,
            destination=destination,
            eta=eta,
            update_key=update_key,
            creator_timezone=creator_timezone or DEFAULT_CREATOR_TIMEZONE,
            creator_locale=creator_locale or DEFAULT_CREATOR_LOCALE,
        )

        def _apply(doc: Document) -> Tuple[bool, None]:
            if tracking_number in doc:
                raise DuplicateTrackingNumberError(tracking_number)
            doc[tracking_number] = record.model_dump(mode="json")
            return True, None

        await self._mutate(self.trackings_path, _apply)
        logger.debug("Created tracking %s (%s)", tracking_number, record.id)
        return record.id

    async def get_record(self, tracking_number: str) -> Optional[TrackingRecord]:
        doc = await self._load(self.trackings_path)
        entry = doc.get(tracking_number)
        if entry is None:
            return None
        return TrackingRecord.model_validate(entry)

    async def update_eta(self, tracking_number: str, eta: str) -> bool:
        return await self._update_fields(tracking_number, eta=eta)

    async def update_destination(self, tracking_number: str, destination: str) -> bool:
        return await self._update_fields(tracking_number, destination=destination)

    async def update_status(self, tracking_number: str, status: TrackingStatus) -> bool:
        return await self._update_fields(tracking_number, status=TrackingStatus(status).value)

    async def list_all_records(self) -> List[TrackingRecord]:
        doc = await self._load(self.trackings_path)
        return [TrackingRecord.model_validate(entry) for entry in doc.values()]

    # ── Location events ───────────────────────────────────────────────

    async def append_location_event(
        self, tracking_id: str, tracking_number: str, location: str
    ) -> str:
        event = LocationEvent(
            id=str(uuid.uuid4()),
            tracking_id=tracking_id,
            tracking_number=tracking_number,
            location=location,
        )

        def _apply(doc: Document) -> Tuple[bool, None]:
            doc.setdefault(tracking_number, []).append(event.model_dump(mode="json"))
            return True, None

        await self._mutate(self.records_path, _apply)
        return event.id

    async def list_location_events(self, tracking_number: str) -> List[LocationEvent]:
        doc = await self._load(self.records_path)
        events = [LocationEvent.model_validate(e) for e in doc.get(tracking_number, [])]
        # sorted() is stable, so same-instant events keep insertion order
        return sorted(events, key=lambda e: parse_iso(e.timestamp))

    async def remove_delivered_events(self, tracking_number: str) -> bool:
        def _apply(doc: Document) -> Tuple[bool, bool]:
            events = doc.get(tracking_number)
            if not events:
                return False, False
            kept = [e for e in events if e.get("location") != DELIVERED_LOCATION]
            if len(kept) == len(events):
                return False, False
            doc[tracking_number] = kept
            return True, True

        return await self._mutate(self.records_path, _apply)

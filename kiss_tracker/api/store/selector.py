"""Startup-time choice between the SQL and file record stores."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .base import RecordStore
from .file_store import FileRecordStore
from .models import LocationEvent, TrackingRecord, TrackingStatus, TrackingWithEvents

logger = logging.getLogger(__name__)


class StoreSelector(RecordStore):
    """A ``RecordStore`` that binds itself to a concrete backend on first use.

    When *database_url* is set the SQL store is tried first: its schema is
    created and one probe query is run.  Any failure along the way falls back
    to the JSON-file store under *data_dir*.  Selection happens once, behind a
    lock, so callers that arrive early simply wait for it to finish.
    """

    def __init__(self, database_url: Optional[str], data_dir: str | Path) -> None:
        self._database_url = database_url
        self._data_dir = data_dir
        self._store: Optional[RecordStore] = None
        self._lock = asyncio.Lock()
        self._fallback_reason: Optional[str] = None

    @property
    def backend(self) -> str:  # type: ignore[override]
        return self._store.backend if self._store is not None else "pending"

    @property
    def ready(self) -> bool:
        return self._store is not None

    def status(self) -> Dict[str, Any]:
        """Which backend is active and why, for the health endpoint."""
        return {
            "backend": self.backend,
            "ready": self.ready,
            "fallback": self._fallback_reason is not None,
            "reason": self._fallback_reason,
        }

    async def initialize(self) -> None:
        await self._resolve()

    async def _resolve(self) -> RecordStore:
        if self._store is not None:
            return self._store
        async with self._lock:
            if self._store is None:
                self._store = await self._select()
        return self._store

    async def _select(self) -> RecordStore:
        if self._database_url:
            from .sql_store import SqlRecordStore

            sql_store: Optional[RecordStore] = None
            try:
                sql_store = SqlRecordStore(self._database_url)
                await sql_store.initialize()
                await sql_store.ping()
                logger.info("Using relational backend (%s)", sql_store.backend)
                return sql_store
            except Exception as exc:  # noqa: BLE001
                self._fallback_reason = f"{type(exc).__name__}: relational backend unavailable"
                logger.warning(
                    "Relational backend unavailable, falling back to JSON files: %s", exc
                )
                if sql_store is not None:
                    try:
                        await sql_store.close()
                    except Exception:  # noqa: BLE001
                        logger.debug("Closing failed relational store raised", exc_info=True)
        else:
            logger.info("DATABASE_URL not set; using JSON file backend")

        file_store = FileRecordStore(self._data_dir)
        await file_store.initialize()
        logger.info("Using JSON file backend at %s", file_store.data_dir)
        return file_store

    async def ping(self) -> None:
        await (await self._resolve()).ping()

    async def close(self) -> None:
        if self._store is not None:
            await self._store.close()

    # ── Delegation ────────────────────────────────────────────────────

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
        store = await self._resolve()
        return await store.create_record(
            tracking_number,
            provider,
            destination,
            eta,
            update_key,
            creator_timezone=creator_timezone,
            creator_locale=creator_locale,
        )

    async def get_record(self, tracking_number: str) -> Optional[TrackingRecord]:
        return await (await self._resolve()).get_record(tracking_number)

    async def update_eta(self, tracking_number: str, eta: str) -> bool:
        return await (await self._resolve()).update_eta(tracking_number, eta)

    async def update_destination(self, tracking_number: str, destination: str) -> bool:
        return await (await self._resolve()).update_destination(tracking_number, destination)

    async def update_status(self, tracking_number: str, status: TrackingStatus) -> bool:
        return await (await self._resolve()).update_status(tracking_number, status)

    async def list_all_records(self) -> List[TrackingRecord]:
        return await (await self._resolve()).list_all_records()

    async def append_location_event(
        self, tracking_id: str, tracking_number: str, location: str
    ) -> str:
        store = await self._resolve()
        return await store.append_location_event(tracking_id, tracking_number, location)

    async def list_location_events(self, tracking_number: str) -> List[LocationEvent]:
        return await (await self._resolve()).list_location_events(tracking_number)

    async def remove_delivered_events(self, tracking_number: str) -> bool:
        return await (await self._resolve()).remove_delivered_events(tracking_number)

    async def get_record_with_events(self, tracking_number: str) -> Optional[TrackingWithEvents]:
        return await (await self._resolve()).get_record_with_events(tracking_number)

    async def verify_credential(self, tracking_number: str, provided: Optional[str]) -> bool:
        return await (await self._resolve()).verify_credential(tracking_number, provided)

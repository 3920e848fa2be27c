"""Relational record store on SQLAlchemy's asyncio engine.

One table per entity.  Each operation runs in its own transaction; multi-step
sequences such as "update status, then append an event" are not atomic.
"""
from __future__ import annotations

import functools
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
    delete,
    event,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ...config import DEFAULT_CREATOR_LOCALE, DEFAULT_CREATOR_TIMEZONE, DELIVERED_LOCATION
from .base import DuplicateTrackingNumberError, RecordStore, StorageError
from .models import LocationEvent, TrackingRecord, TrackingStatus, parse_iso, to_iso

logger = logging.getLogger(__name__)

metadata = MetaData()

trackings = Table(
    "trackings",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("tracking_number", String(32), nullable=False, unique=True),
    Column("provider", Text, nullable=False),
    Column("destination", Text, nullable=False),
    Column("eta", DateTime(timezone=True), nullable=False),
    Column("status", String(32), nullable=False, server_default=TrackingStatus.preparing.value),
    Column("update_key", Text, nullable=False),
    Column("creator_timezone", Text, server_default=DEFAULT_CREATOR_TIMEZONE),
    Column("creator_locale", Text, server_default=DEFAULT_CREATOR_LOCALE),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

track_records = Table(
    "track_records",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "tracking_id",
        String(36),
        ForeignKey("trackings.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("tracking_number", String(32), nullable=False, index=True),
    Column("location", Text, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
)


def normalize_database_url(url: str) -> str:
    """Point bare ``postgres``/``postgresql``/``sqlite`` URLs at their async driver."""
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://"):]
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _translate_errors(fn):
    """Re-raise driver failures as ``StorageError``."""

    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("%s failed: %s", fn.__name__, exc)
            raise StorageError(f"Database operation {fn.__name__} failed") from exc

    return wrapper


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_record(row) -> TrackingRecord:
    d: Dict[str, Any] = dict(row._mapping)
    for key in ("eta", "created_at", "updated_at"):
        d[key] = to_iso(d[key])
    return TrackingRecord(**d)


def _row_to_event(row) -> LocationEvent:
    d: Dict[str, Any] = dict(row._mapping)
    d["timestamp"] = to_iso(d["timestamp"])
    return LocationEvent(**d)


class SqlRecordStore(RecordStore):
    """Record store on any SQLAlchemy async URL (PostgreSQL, SQLite)."""

    backend = "sql"

    def __init__(self, database_url: str, *, engine: Optional[AsyncEngine] = None) -> None:
        self.database_url = normalize_database_url(database_url)
        if engine is None:
            engine = create_async_engine(self.database_url, pool_pre_ping=True)
        self._engine = engine
        if self._engine.dialect.name == "sqlite":
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    @_translate_errors
    async def initialize(self) -> None:
        """Create both tables if they don't exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Relational schema initialized (%s)", self._engine.dialect.name)

    @_translate_errors
    async def ping(self) -> None:
        async with self._engine.connect() as conn:
            await conn.execute(select(func.count()).select_from(trackings))

    async def close(self) -> None:
        await self._engine.dispose()

    async def _update_fields(self, tracking_number: str, **values: Any) -> bool:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                update(trackings)
                .where(trackings.c.tracking_number == tracking_number)
                .values(**values, updated_at=_now())
            )
        return result.rowcount > 0

    # ── Trackings ─────────────────────────────────────────────────────

    @_translate_errors
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
        record_id = str(uuid.uuid4())
        now = _now()
        try:
            async with self._engine.begin() as conn:
                await conn.execute(
                    insert(trackings).values(
                        id=record_id,
                        tracking_number=tracking_number,
                        provider=provider,
                        destination=destination,
                        eta=parse_iso(eta),
                        status=TrackingStatus.preparing.value,
                        update_key=update_key,
                        creator_timezone=creator_timezone or DEFAULT_CREATOR_TIMEZONE,
                        creator_locale=creator_locale or DEFAULT_CREATOR_LOCALE,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            raise DuplicateTrackingNumberError(tracking_number) from exc
        logger.debug("Created tracking %s (%s)", tracking_number, record_id)
        return record_id

    @_translate_errors
    async def get_record(self, tracking_number: str) -> Optional[TrackingRecord]:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                select(trackings).where(trackings.c.tracking_number == tracking_number)
            )
            row = result.first()
        return _row_to_record(row) if row is not None else None

    @_translate_errors
    async def update_eta(self, tracking_number: str, eta: str) -> bool:
        return await self._update_fields(tracking_number, eta=parse_iso(eta))

    @_translate_errors
    async def update_destination(self, tracking_number: str, destination: str) -> bool:
        return await self._update_fields(tracking_number, destination=destination)

    @_translate_errors
    async def update_status(self, tracking_number: str, status: TrackingStatus) -> bool:
        return await self._update_fields(tracking_number, status=TrackingStatus(status).value)

    @_translate_errors
    async def list_all_records(self) -> List[TrackingRecord]:
        async with self._engine.connect() as conn:
            result = await conn.execute(select(trackings).order_by(trackings.c.created_at))
            rows = result.all()
        return [_row_to_record(r) for r in rows]

    # ── Location events ───────────────────────────────────────────────

    @_translate_errors
    async def append_location_event(
        self, tracking_id: str, tracking_number: str, location: str
    ) -> str:
        event_id = str(uuid.uuid4())
        async with self._engine.begin() as conn:
            await conn.execute(
                insert(track_records).values(
                    id=event_id,
                    tracking_id=tracking_id,
                    tracking_number=tracking_number,
                    location=location,
                    timestamp=_now(),
                )
            )
        return event_id

    @_translate_errors
    async def list_location_events(self, tracking_number: str) -> List[LocationEvent]:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                select(track_records)
                .where(track_records.c.tracking_number == tracking_number)
                .order_by(track_records.c.timestamp.asc())
            )
            rows = result.all()
        return [_row_to_event(r) for r in rows]

    @_translate_errors
    async def remove_delivered_events(self, tracking_number: str) -> bool:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                delete(track_records).where(
                    track_records.c.tracking_number == tracking_number,
                    track_records.c.location == DELIVERED_LOCATION,
                )
            )
        return result.rowcount > 0

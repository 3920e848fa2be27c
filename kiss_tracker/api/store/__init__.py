"""Record stores: one contract, a JSON-file backend and a SQL backend."""
from .base import DuplicateTrackingNumberError, RecordStore, StorageError
from .file_store import FileRecordStore
from .models import LocationEvent, TrackingRecord, TrackingStatus, TrackingWithEvents
from .selector import StoreSelector
from .sql_store import SqlRecordStore

__all__ = [
    "DuplicateTrackingNumberError",
    "FileRecordStore",
    "LocationEvent",
    "RecordStore",
    "SqlRecordStore",
    "StorageError",
    "StoreSelector",
    "TrackingRecord",
    "TrackingStatus",
    "TrackingWithEvents",
]

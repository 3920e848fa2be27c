"""Dependency providers for FastAPI ``Depends()``.

The store, broadcaster and service are owned by the application instance
(``app.state``) rather than by module globals, so every app built by
``create_app`` gets its own subscriber registry.
"""
from __future__ import annotations

from functools import lru_cache

from fastapi import Request

from ..config import ApiSettings
from ..realtime.broadcaster import Broadcaster
from ..services.tracking_service import TrackingService
from ..store.base import RecordStore


@lru_cache
def default_settings() -> ApiSettings:
    return ApiSettings()


def get_settings(request: Request) -> ApiSettings:
    return request.app.state.settings


def get_store(request: Request) -> RecordStore:
    """Return the app's record store (normally a ``StoreSelector``)."""
    return request.app.state.store


def get_broadcaster(request: Request) -> Broadcaster:
    """Return the app's ``Broadcaster``."""
    return request.app.state.broadcaster


def get_tracking_service(request: Request) -> TrackingService:
    """Return the app's ``TrackingService``."""
    return request.app.state.tracking_service

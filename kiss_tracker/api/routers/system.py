"""Service banner, health and debug endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ... import __version__
from ..config import ApiSettings
from ..deps.providers import get_broadcaster, get_settings, get_store, get_tracking_service
from ..realtime.broadcaster import Broadcaster
from ..schemas.envelope import ApiResponse
from ..services.tracking_service import TrackingService
from ..store.base import RecordStore
from ..store.selector import StoreSelector

router = APIRouter(tags=["system"])


@router.get("/")
async def root() -> ApiResponse:
    return ApiResponse.success({"message": "Kiss Tracker API is running", "version": __version__})


@router.get("/api/health")
async def health(
    store: RecordStore = Depends(get_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> ApiResponse:
    """Report the active storage backend and live subscriber count."""
    await store.initialize()
    if isinstance(store, StoreSelector):
        storage = store.status()
    else:
        storage = {"backend": store.backend, "ready": True, "fallback": False, "reason": None}
    return ApiResponse.success(
        {
            "status": "ok",
            "storage": storage,
            "subscribers": broadcaster.subscriber_count(),
            "live_trackings": len(broadcaster.tracking_numbers()),
        },
        backend=storage["backend"],
    )


@router.get("/api/debug/trackings")
async def debug_trackings(
    settings: ApiSettings = Depends(get_settings),
    service: TrackingService = Depends(get_tracking_service),
) -> ApiResponse:
    """List every tracking (update keys withheld).  Disabled unless configured."""
    if not settings.enable_debug_routes:
        raise HTTPException(status_code=404)
    return ApiResponse.success(await service.list_trackings())

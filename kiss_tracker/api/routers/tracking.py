"""Tracking endpoints: create, read, update and the live event stream."""
from __future__ import annotations

import json

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from ..deps.auth import require_update_key
from ..deps.providers import get_broadcaster, get_tracking_service
from ..realtime.broadcaster import Broadcaster
from ..schemas.envelope import ApiResponse
from ..schemas.tracking import (
    CreateTrackingRequest,
    DestinationRequest,
    EtaRequest,
    LocationRequest,
    StatusRequest,
)
from ..services.tracking_service import TrackingService

router = APIRouter(prefix="/api/tracking", tags=["tracking"])


@router.post("", status_code=201)
async def create_tracking(
    body: CreateTrackingRequest,
    service: TrackingService = Depends(get_tracking_service),
) -> ApiResponse:
    view = await service.create_tracking(
        body.provider,
        body.destination,
        body.eta,
        creator_timezone=body.creator_timezone,
        creator_locale=body.creator_locale,
    )
    return ApiResponse.success(view.as_dict())


@router.get("/{tracking_number}")
async def get_tracking(
    tracking_number: str,
    service: TrackingService = Depends(get_tracking_service),
) -> ApiResponse:
    view = await service.get_tracking(tracking_number)
    return ApiResponse.success(view.as_dict())


@router.get("/{tracking_number}/update", dependencies=[Depends(require_update_key)])
async def get_tracking_for_update(
    tracking_number: str,
    service: TrackingService = Depends(get_tracking_service),
) -> ApiResponse:
    view = await service.get_tracking_for_update(tracking_number)
    return ApiResponse.success(view.as_dict())


@router.get("/{tracking_number}/events")
async def tracking_events(
    tracking_number: str,
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Server-sent events for one tracking until the client disconnects."""

    async def _generate():
        sub = broadcaster.subscribe(tracking_number)
        try:
            async for frame in sub.frames():
                yield {"event": frame.event, "data": json.dumps(frame.data)}
        finally:
            broadcaster.unsubscribe(tracking_number, sub)

    return EventSourceResponse(_generate(), sep="\n")


@router.post("/{tracking_number}/location", dependencies=[Depends(require_update_key)])
async def add_location(
    tracking_number: str,
    body: LocationRequest,
    service: TrackingService = Depends(get_tracking_service),
) -> ApiResponse:
    event = await service.add_location(tracking_number, body.location)
    return ApiResponse.success({
        "message": "Location updated successfully",
        "event_id": event.id,
        "location": event.location,
        "timestamp": event.timestamp,
    })


@router.put("/{tracking_number}/eta", dependencies=[Depends(require_update_key)])
async def update_eta(
    tracking_number: str,
    body: EtaRequest,
    service: TrackingService = Depends(get_tracking_service),
) -> ApiResponse:
    eta = await service.update_eta(tracking_number, body.eta)
    return ApiResponse.success({"message": "ETA updated successfully", "eta": eta})


@router.put("/{tracking_number}/destination", dependencies=[Depends(require_update_key)])
async def update_destination(
    tracking_number: str,
    body: DestinationRequest,
    service: TrackingService = Depends(get_tracking_service),
) -> ApiResponse:
    destination = await service.update_destination(tracking_number, body.destination)
    return ApiResponse.success({
        "message": "Destination updated successfully",
        "destination": destination,
    })


@router.put("/{tracking_number}/status", dependencies=[Depends(require_update_key)])
async def update_status(
    tracking_number: str,
    body: StatusRequest,
    service: TrackingService = Depends(get_tracking_service),
) -> ApiResponse:
    result = await service.update_status(tracking_number, body.status)
    return ApiResponse.success(dict(result, message="Status updated successfully"))

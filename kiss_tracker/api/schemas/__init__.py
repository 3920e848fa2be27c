"""Pydantic schemas for API request/response models."""
from .envelope import ApiResponse, ResponseMeta
from .tracking import (
    CreateTrackingRequest,
    DestinationRequest,
    EtaRequest,
    LocationEventView,
    LocationRequest,
    StatusRequest,
    TrackingView,
)

__all__ = [
    "ApiResponse",
    "CreateTrackingRequest",
    "DestinationRequest",
    "EtaRequest",
    "LocationEventView",
    "LocationRequest",
    "ResponseMeta",
    "StatusRequest",
    "TrackingView",
]

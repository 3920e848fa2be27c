"""Live event fan-out over server-sent events."""
from .broadcaster import (
    CONNECTED,
    DELIVERY_REMOVED,
    DESTINATION_CHANGE,
    ETA_CHANGE,
    HEARTBEAT,
    LOCATION_UPDATE,
    STATUS_CHANGE,
    Broadcaster,
    Frame,
    Subscription,
)

__all__ = [
    "Broadcaster",
    "CONNECTED",
    "DELIVERY_REMOVED",
    "DESTINATION_CHANGE",
    "ETA_CHANGE",
    "Frame",
    "HEARTBEAT",
    "LOCATION_UPDATE",
    "STATUS_CHANGE",
    "Subscription",
]

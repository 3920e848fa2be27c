"""Application services behind the HTTP handlers."""
from .tracking_service import TrackingService

__all__ = ["TrackingService"]

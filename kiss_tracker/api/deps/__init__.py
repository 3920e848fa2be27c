"""Dependency injection providers."""
from .auth import require_update_key
from .providers import (
    default_settings,
    get_broadcaster,
    get_settings,
    get_store,
    get_tracking_service,
)

__all__ = [
    "default_settings",
    "get_broadcaster",
    "get_settings",
    "get_store",
    "get_tracking_service",
    "require_update_key",
]

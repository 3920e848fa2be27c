"""Route modules, imported lazily by the app factory."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter

# Module paths that provide a ``router`` attribute.
_ROUTER_MODULES = [
    "kiss_tracker.api.routers.system",
    "kiss_tracker.api.routers.tracking",
]


def all_routers() -> List[APIRouter]:
    """Import and return every router module's ``router``."""
    import importlib

    return [importlib.import_module(mod_path).router for mod_path in _ROUTER_MODULES]

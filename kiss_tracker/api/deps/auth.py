"""Update-key dependency for mutation endpoints."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, Query, Request

from ..errors import InvalidUpdateKeyError, MissingUpdateKeyError, TrackingNotFoundError
from ..store.base import RecordStore
from .providers import get_store

logger = logging.getLogger(__name__)


async def _body_update_key(request: Request) -> Optional[str]:
    """``updateKey`` from a JSON request body, if there is one."""
    if request.method not in ("POST", "PUT"):
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    value = body.get("updateKey") if isinstance(body, dict) else None
    return value if isinstance(value, str) else None


async def require_update_key(
    request: Request,
    tracking_number: str,
    key: Optional[str] = Query(None, description="Update key from the private update link"),
    x_update_key: Optional[str] = Header(None),
    store: RecordStore = Depends(get_store),
) -> str:
    """FastAPI dependency that checks the tracking's update key.

    Reads the key from the ``key`` query parameter, then the
    ``X-Update-Key`` header, then an ``updateKey`` field in the JSON body.

    Raises
    ------
    MissingUpdateKeyError
        No key supplied (401).
    TrackingNotFoundError
        Unknown tracking number (404).
    InvalidUpdateKeyError
        Key does not match (403).
    """
    provided = (key or "").strip() or (x_update_key or "").strip()
    if not provided:
        provided = ((await _body_update_key(request)) or "").strip()
    if not provided:
        raise MissingUpdateKeyError("Update key required for this operation")

    if await store.verify_credential(tracking_number, provided):
        return provided

    if await store.get_record(tracking_number) is None:
        raise TrackingNotFoundError(f"Tracking number '{tracking_number}' not found")
    logger.warning("Rejected update key for %s", tracking_number)
    raise InvalidUpdateKeyError("Invalid update key")

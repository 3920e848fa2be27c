"""Custom exceptions and FastAPI error handler registration."""
from __future__ import annotations

import logging
import traceback
from typing import List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .schemas.envelope import ApiResponse
from .store.base import DuplicateTrackingNumberError, StorageError

logger = logging.getLogger(__name__)


# ── Custom Exceptions ────────────────────────────────────────────────


class InvalidRequestError(Exception):
    """Request input is missing or malformed."""


class MissingUpdateKeyError(Exception):
    """A mutation was attempted without an update key."""


class InvalidUpdateKeyError(Exception):
    """The update key does not belong to the tracking."""


class TrackingNotFoundError(Exception):
    """Requested tracking number does not exist."""


# ── Error → HTTP mapping ────────────────────────────────────────────

_EXCEPTION_STATUS = {
    InvalidRequestError: 400,
    MissingUpdateKeyError: 401,
    InvalidUpdateKeyError: 403,
    TrackingNotFoundError: 404,
    DuplicateTrackingNumberError: 409,
}


def _make_handler(status_code: int):
    """Create a handler that wraps an exception in ApiResponse."""

    async def _handler(request: Request, exc: Exception) -> JSONResponse:
        resp = ApiResponse.fail(str(exc))
        return JSONResponse(status_code=status_code, content=resp.model_dump())

    return _handler


def _describe_validation_errors(errors: List[dict]) -> str:
    missing: List[str] = []
    problems: List[str] = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        name = ".".join(loc) or "body"
        if err.get("type") == "missing":
            missing.append(name)
        else:
            problems.append(f"{name}: {err.get('msg', 'invalid value')}")
    parts = []
    if missing:
        parts.append("Missing required fields: " + ", ".join(missing))
    parts.extend(problems)
    return "; ".join(parts) or "Invalid request"


def register_error_handlers(app: FastAPI) -> None:
    """Register custom exception handlers on the FastAPI app."""
    for exc_cls, status in _EXCEPTION_STATUS.items():
        app.add_exception_handler(exc_cls, _make_handler(status))

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        resp = ApiResponse.fail(_describe_validation_errors(exc.errors()))
        return JSONResponse(status_code=400, content=resp.model_dump())

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        resp = ApiResponse.fail(message)
        return JSONResponse(status_code=exc.status_code, content=resp.model_dump(), headers=exc.headers)

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(
            "Storage failure on %s %s: %s", request.method, request.url.path, exc,
            exc_info=exc,
        )
        resp = ApiResponse.fail("Internal server error")
        return JSONResponse(status_code=500, content=resp.model_dump())

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
        resp = ApiResponse.fail("Internal server error")
        return JSONResponse(status_code=500, content=resp.model_dump())

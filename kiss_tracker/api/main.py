"""FastAPI application factory and server entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .config import ApiSettings
from .deps.providers import default_settings
from .errors import register_error_handlers
from .realtime.broadcaster import Broadcaster
from .services.tracking_service import TrackingService
from .store.base import RecordStore
from .store.selector import StoreSelector

logger = logging.getLogger(__name__)


def configure_logging(level_name: str) -> None:
    """Apply the structured or JSON log format from engine config."""
    from ..config import LOG_FORMAT

    effective_level = getattr(logging, level_name.upper(), logging.INFO)
    if LOG_FORMAT == "json":
        fmt = '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
    else:
        fmt = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

    logging.basicConfig(
        level=effective_level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    settings: ApiSettings = app.state.settings
    configure_logging(settings.log_level)
    logger.info("Starting Kiss Tracker API on %s:%s", settings.host, settings.port)

    from ..config import validate_config

    for issue in validate_config():
        if issue.get("level") == "ERROR":
            logger.error("Config validation: %s", issue.get("message", ""))
        else:
            logger.warning("Config validation: %s", issue.get("message", ""))

    store: RecordStore = app.state.store
    await store.initialize()
    if isinstance(store, StoreSelector):
        logger.info("Storage: %s", store.status())

    yield

    app.state.broadcaster.close_all()
    await store.close()
    logger.info("Shutting down Kiss Tracker API")


def create_app(
    settings: ApiSettings | None = None,
    *,
    store: Optional[RecordStore] = None,
    broadcaster: Optional[Broadcaster] = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    *store* and *broadcaster* default to a ``StoreSelector`` and a
    ``Broadcaster`` built from *settings*; tests may pass their own.
    """
    if settings is None:
        settings = default_settings()

    app = FastAPI(
        title="Kiss Tracker API",
        description="Shareable tracking links with private update links and live status events.",
        version=__version__,
        lifespan=_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    if store is None:
        store = StoreSelector(settings.database_url, settings.data_dir)
    if broadcaster is None:
        broadcaster = Broadcaster(
            heartbeat_interval=settings.heartbeat_interval,
            max_queued=settings.subscriber_queue_size,
        )
    app.state.settings = settings
    app.state.store = store
    app.state.broadcaster = broadcaster
    app.state.tracking_service = TrackingService(store, broadcaster, settings.frontend_url)

    # CORS
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    if settings.frontend_url not in origins:
        origins.append(settings.frontend_url)
    allow_creds = "*" not in origins
    if not allow_creds:
        logger.warning(
            "CORS origins contain '*'. Credentials will NOT be allowed. "
            "Set explicit origins for credentialed cross-origin requests."
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_creds,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Update-Key"],
    )

    # Error handlers
    register_error_handlers(app)

    from .routers import all_routers

    for router in all_routers():
        app.include_router(router)

    return app


def run_server() -> None:
    """CLI entry point: ``python -m kiss_tracker.api.main``."""
    import uvicorn

    settings = default_settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run_server()

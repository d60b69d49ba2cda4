# serial_hub/main.py
# Serial Hub - serial allocation, aggregation, labels, external delivery
from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from serial_hub import __version__
from serial_hub.database import Database
from serial_hub.errors import ServiceError
from serial_hub.logging_setup import setup_logging
from serial_hub.routers.aggregation import router as aggregation_router
from serial_hub.routers.integration import router as integration_router
from serial_hub.routers.labels import router as labels_router
from serial_hub.routers.serials import router as serials_router
from serial_hub.services.delivery import ExternalDelivery
from serial_hub.services.labels import StatusUpdater
from serial_hub.services.serial_client import SerialClient
from serial_hub.settings import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------
# Lifespan: logging, tables, background work
# ---------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    settings: Settings = app.state.settings
    Path(settings.DATA_ROOT).expanduser().mkdir(parents=True, exist_ok=True)
    log_path = setup_logging(settings)
    if log_path:
        logger.info("Logging to %s", log_path)

    await app.state.db.create_all()
    logger.info("Database ready (%s)", app.state.db.engine.url.render_as_string(hide_password=True))
    yield
    await app.state.status_updater.drain()
    await app.state.db.dispose()
    logger.info("Database disconnected")


# ---------------------------------------------------------
# Error rendering: {"error": ..., "kind": ...}
# ---------------------------------------------------------
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message, "kind": "ValidationError"})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "kind": "InternalError"})


# ---------------------------------------------------------
# App factory
# ---------------------------------------------------------
def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    serial_transport: Optional[httpx.AsyncBaseTransport] = None,
    delivery: Optional[ExternalDelivery] = None,
) -> FastAPI:
    """
    Build the application with explicitly constructed collaborators.

    serial_transport lets tests (or a single-process deployment) route the
    aggregation/label calls to /serials without a real network hop.
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Serial Hub API",
        version=__version__,
        description="Unit serialization, aggregation and external delivery",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = db or Database.from_settings(settings)
    app.state.serial_client = SerialClient(
        settings.SERIALIZATION_URL,
        timeout=settings.SERIALIZATION_TIMEOUT,
        transport=serial_transport,
    )
    app.state.status_updater = StatusUpdater(app.state.serial_client)
    app.state.delivery = delivery or ExternalDelivery(
        settings.EXTERNAL_API,
        timeout=settings.PUSH_TIMEOUT,
        max_attempts=settings.PUSH_MAX_ATTEMPTS,
        backoff_base=settings.PUSH_BACKOFF_BASE,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(serials_router)
    app.include_router(aggregation_router)
    app.include_router(integration_router)
    app.include_router(labels_router)

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint with database status."""
        db_health = await request.app.state.db.check_health()
        return {
            "status": "ok" if db_health.get("status") == "healthy" else "degraded",
            "version": __version__,
            "database": db_health,
        }

    return app


app = create_app()

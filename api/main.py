"""
FastAPI application for the notification service.

This application provides:
1. Subscription endpoints (/api/subscriptions/...)
2. Notification inbox, service status and audit log (/api/notifications/...)
3. The live push stream of catalog events (/api/notifications/stream)

The event consumers run inside the same process; they are started and
stopped with the application by the lifespan handler.

Run with:
    uv run uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from api.routes import notifications_router, stream_router, subscriptions_router
from api.schemas import error_envelope
from event_driven.runtime import Runtime
from shared.errors import LibraryEventsError
from shared.settings import get_settings

logger = logging.getLogger("api")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
        datefmt="%H:%M:%S",
    )


# =============================================================================
# Error Handlers
# =============================================================================

async def library_error_handler(request: Request, exc: LibraryEventsError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return error_envelope(exc.message, exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    detail = f"Invalid or missing fields: {', '.join(fields)}" if fields else "Invalid request"
    return error_envelope(detail, 400)


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_envelope("Internal server error", 500)


# =============================================================================
# Application
# =============================================================================

def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    """
    Build the application.

    Args:
        runtime: Components to serve. Defaults to a Runtime built from
            settings when the application starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown."""
        if getattr(app.state, "runtime", None) is None:
            settings = get_settings()
            configure_logging(settings.log_level)
            app.state.runtime = Runtime(settings)
        logger.info(f"Starting {app.state.runtime.settings.service_name}")
        await app.state.runtime.start()
        yield
        logger.info("Shutting down")
        await app.state.runtime.stop()

    app = FastAPI(
        title="Library Notification Service",
        description="""
        Subscriptions, notifications and live catalog updates for the library.

        ## Endpoints

        - `/api/subscriptions/*` - Follow and unfollow categories and books
        - `/api/notifications/user/*` - Per-user notification inbox
        - `/api/notifications/status`, `/api/notifications/events` - Service status and audit log
        - `/api/notifications/stream` - Server-Sent Events stream of catalog events
        """,
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    app.add_exception_handler(LibraryEventsError, library_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    @app.get("/health", tags=["Health"])
    def health_check():
        """Health check endpoint."""
        current: Optional[Runtime] = app.state.runtime
        return {
            "status": "healthy",
            "service": current.settings.service_name if current else "notification-service",
        }

    app.include_router(subscriptions_router)
    app.include_router(notifications_router)
    app.include_router(stream_router)
    return app


app = create_app()

"""FastAPI application factories for reelsync.

This module provides the factory functions for creating the public webhook
application and the private admin application.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
import logging
import time
from typing import Any

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..db import AssetDatabase
from ..logging_config import new_context_id
from ..reconciler import (
    IdentifierRepairer,
    PlaybackIdEnsurer,
    SweepReconciler,
    WebhookIngestor,
)
from .routers import admin, health, webhooks

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and its response under a per-request context id."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Assign a context id, then log the request, its status and its duration.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or endpoint to call.

        Returns:
            The HTTP response.
        """
        new_context_id("http")
        log_params: dict[str, Any] = {"method": request.method, "path": request.url.path}
        logger.debug(
            "HTTP request received",
            extra={
                **log_params,
                "client": request.client.host if request.client else None,
            },
        )

        started = time.perf_counter()
        response = await call_next(request)
        log_params.update(
            {
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            }
        )

        # 5xx on the webhook route makes the provider redeliver
        if response.status_code >= 500:
            logger.warning("HTTP response sent with server error", extra=log_params)
        else:
            logger.debug("HTTP response sent", extra=log_params)

        return response


def create_app(
    webhook_ingestor: WebhookIngestor,
    shutdown_callback: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    """Create the public application that receives provider webhooks.

    Args:
        webhook_ingestor: The webhook ingestor instance.
        shutdown_callback: Optional callback run when the application shuts down.

    Returns:
        Configured FastAPI application instance.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
        try:
            yield
        finally:
            if shutdown_callback:
                await shutdown_callback()

    app = FastAPI(
        title="reelsync",
        description="Keeps video asset records in sync with Mux",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(LoggingMiddleware)

    app.state.webhook_ingestor = webhook_ingestor

    app.include_router(webhooks.router, tags=["webhooks"])
    app.include_router(health.router, tags=["health"])

    logger.debug("FastAPI application created successfully")
    return app


def create_admin_app(
    asset_database: AssetDatabase,
    sweep_reconciler: SweepReconciler,
    identifier_repairer: IdentifierRepairer,
    playback_ensurer: PlaybackIdEnsurer,
) -> FastAPI:
    """Create the admin application.

    The admin app exposes private administration endpoints and should be bound
    to a private interface/port.

    Args:
        asset_database: The asset database instance.
        sweep_reconciler: The sweep reconciler instance.
        identifier_repairer: The identifier repairer instance.
        playback_ensurer: The playback id ensurer instance.

    Returns:
        Configured FastAPI application instance for admin APIs.
    """
    app = FastAPI(
        title="reelsync Admin",
        description="Private admin API for reelsync",
        version="0.1.0",
    )
    app.add_middleware(LoggingMiddleware)

    app.state.asset_database = asset_database
    app.state.sweep_reconciler = sweep_reconciler
    app.state.identifier_repairer = identifier_repairer
    app.state.playback_ensurer = playback_ensurer

    app.include_router(admin.router, tags=["admin"])
    app.include_router(health.router, tags=["health"])

    logger.debug("FastAPI admin application created successfully")
    return app

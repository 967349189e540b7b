"""HTTP server initialization and configuration for reelsync.

This module provides functions for creating the uvicorn servers that host
the public webhook application and the private admin application.
"""

from collections.abc import Awaitable, Callable
import logging

import uvicorn

from ..config import AppSettings
from ..db import AssetDatabase
from ..logging_config import LOGGING_CONFIG
from ..reconciler import (
    IdentifierRepairer,
    PlaybackIdEnsurer,
    SweepReconciler,
    WebhookIngestor,
)
from .app import create_admin_app, create_app

logger = logging.getLogger(__name__)


def create_server(
    settings: AppSettings,
    webhook_ingestor: WebhookIngestor,
    shutdown_callback: Callable[[], Awaitable[None]] | None = None,
) -> uvicorn.Server:
    """Create the uvicorn server for the public webhook app.

    Args:
        settings: Application settings containing server configuration.
        webhook_ingestor: The webhook ingestor instance.
        shutdown_callback: Optional callback to execute during shutdown.

    Returns:
        Configured uvicorn server ready to run.
    """
    logger.debug("Creating FastAPI application.")
    app = create_app(
        webhook_ingestor=webhook_ingestor,
        shutdown_callback=shutdown_callback,
    )

    config = uvicorn.Config(
        app=app,
        host=settings.server_host,
        port=settings.server_port,
        log_config=LOGGING_CONFIG,
        access_log=False,
        ws="none",
        lifespan="on",
    )
    server = uvicorn.Server(config)

    logger.debug(
        "HTTP server configured.",
        extra={"host": settings.server_host, "port": settings.server_port},
    )
    return server


def create_admin_server(
    settings: AppSettings,
    asset_database: AssetDatabase,
    sweep_reconciler: SweepReconciler,
    identifier_repairer: IdentifierRepairer,
    playback_ensurer: PlaybackIdEnsurer,
) -> uvicorn.Server:
    """Create the uvicorn server for the admin app.

    Args:
        settings: Application settings containing admin server configuration.
        asset_database: The asset database instance.
        sweep_reconciler: The sweep reconciler instance.
        identifier_repairer: The identifier repairer instance.
        playback_ensurer: The playback id ensurer instance.

    Returns:
        Configured uvicorn server ready to run the admin app.
    """
    logger.debug("Creating FastAPI admin application.")
    app = create_admin_app(
        asset_database=asset_database,
        sweep_reconciler=sweep_reconciler,
        identifier_repairer=identifier_repairer,
        playback_ensurer=playback_ensurer,
    )

    config = uvicorn.Config(
        app=app,
        host=settings.server_host,
        port=settings.admin_server_port,
        log_config=LOGGING_CONFIG,
        access_log=False,
        ws="none",
        # the public server owns signal handling and shutdown
        lifespan="off",
        proxy_headers=False,
    )
    server = uvicorn.Server(config)

    logger.debug(
        "Admin HTTP server configured.",
        extra={"host": settings.server_host, "port": settings.admin_server_port},
    )
    return server

"""Default mode implementation for reelsync.

Builds every component, starts the sweep scheduler and serves the public
webhook app and the private admin app until shutdown.
"""

import asyncio
import logging

from ..config import AppSettings
from ..schedule import SweepScheduler
from ..server import create_admin_server, create_server
from .components import Components, build_components

logger = logging.getLogger(__name__)


async def graceful_shutdown(
    scheduler: SweepScheduler | None,
    components: Components | None,
) -> None:
    """Perform graceful shutdown of all components in correct order.

    Args:
        scheduler: The sweep scheduler instance to shutdown.
        components: The components whose resources must be released.
    """
    logger.info("Shutdown signal received.")

    # Step 1: Stop scheduler (finish current sweep, no new ones)
    if scheduler:
        try:
            await scheduler.stop(wait_for_jobs=True)
            logger.info("Scheduler shutdown completed.")
        except Exception as e:
            logger.error("Error shutting down scheduler.", exc_info=e)

    # Step 2: Close provider client and database connections
    if components:
        try:
            await components.close()
            logger.info("Provider client and database connections closed.")
        except Exception as e:
            logger.error("Error closing connections.", exc_info=e)

    logger.info("reelsync shutdown completed.")


async def default(settings: AppSettings) -> None:
    """Main async entry point for default mode.

    Args:
        settings: Application settings object containing configuration.
    """
    logger.debug(
        "Starting reelsync in default mode.",
        extra={"config_file": str(settings.config_file)},
    )

    components: Components | None = None
    scheduler: SweepScheduler | None = None
    try:
        components = build_components(settings)
        scheduler = SweepScheduler(settings.sweep_schedule, components.sweep_reconciler)

        server = create_server(
            settings=settings,
            webhook_ingestor=components.webhook_ingestor,
            shutdown_callback=lambda: graceful_shutdown(scheduler, components),
        )

        # no shutdown callback here, the public server's lifespan owns it
        admin_server = create_admin_server(
            settings=settings,
            asset_database=components.asset_db,
            sweep_reconciler=components.sweep_reconciler,
            identifier_repairer=components.identifier_repairer,
            playback_ensurer=components.playback_ensurer,
        )

        logger.info(
            "Starting scheduler and HTTP servers...",
            extra={
                "scheduled_jobs": scheduler.get_job_ids(),
                "sweep_schedule": str(settings.sweep_schedule),
                "server_host": settings.server_host,
                "server_port": settings.server_port,
                "admin_port": settings.admin_server_port,
            },
        )

        await scheduler.start()

        # Will gracefully shutdown on SIGINT/SIGTERM
        await asyncio.gather(server.serve(), admin_server.serve())
    except Exception as e:
        logger.error("Unexpected error during execution.", exc_info=e)
        await graceful_shutdown(scheduler, components)

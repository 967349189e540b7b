"""Command-line interface entry points for reelsync.

This module provides the main CLI function that handles application
initialization, logging setup, and routing to the long-lived service or
one of the one-shot administrative modes.
"""

import logging

from ..config import AppSettings, RunMode
from ..logging_config import setup_logging
from .default import default
from .oneshot import run_oneshot_mode


async def main_cli():
    """Initialize and run reelsync based on configuration.

    Sets up logging, loads application settings, and runs either the
    service (no RUN_MODE) or a single sweep or repair pass.
    """
    settings = AppSettings()  # type: ignore

    setup_logging(
        log_format_type=settings.log_format,
        app_log_level_name=settings.log_level,
        include_stacktrace=settings.log_include_stacktrace,
    )

    logger = logging.getLogger(__name__)

    logger.debug(
        "Application logging configured.",
        extra={
            "log_format": settings.log_format,
            "log_level": settings.log_level,
            "include_stacktrace": settings.log_include_stacktrace,
        },
    )
    logger.debug(
        "Application settings loaded.",
        extra={
            "config_file": str(settings.config_file),
            "run_mode": settings.run_mode,
            "environment": settings.environment,
        },
    )

    match settings.run_mode:
        case RunMode.SWEEP | RunMode.REPAIR:
            logger.info(
                "Running one-shot pass.", extra={"run_mode": settings.run_mode.value}
            )
            await run_oneshot_mode(settings, settings.run_mode)
        case None:
            logger.debug("Initializing reelsync in default mode.")
            await default(settings)

    logger.debug("main_cli execution finished.")

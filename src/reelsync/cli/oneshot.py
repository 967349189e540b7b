"""One-shot administrative modes: run a single sweep or repair pass and exit."""

import json
import logging
from typing import Any

from ..config import AppSettings, RunMode
from .components import build_components

logger = logging.getLogger(__name__)


async def run_oneshot_mode(settings: AppSettings, mode: RunMode) -> dict[str, Any]:
    """Run one sweep or one repair pass and print its report as JSON.

    Args:
        settings: Application settings.
        mode: Which pass to run.

    Returns:
        The report summary that was printed.
    """
    components = build_components(settings)
    try:
        match mode:
            case RunMode.SWEEP:
                report = await components.sweep_reconciler.sweep()
                summary = report.summary_dict()
            case RunMode.REPAIR:
                report = await components.identifier_repairer.repair_miskeyed_records()
                summary = report.summary_dict()
    finally:
        await components.close()

    print(json.dumps(summary, indent=2, sort_keys=True))
    logger.debug("One-shot run finished.", extra={"run_mode": mode.value})
    return summary

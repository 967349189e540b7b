"""Construction of the long-lived reelsync components from settings."""

from dataclasses import dataclass
import logging

from ..config import AppSettings
from ..db import AssetDatabase, SqlalchemyCore
from ..events import EventVerifier
from ..exceptions import DatabaseOperationError
from ..provider import MuxClient
from ..reconciler import (
    IdentifierRepairer,
    PlaybackIdEnsurer,
    SweepReconciler,
    TransitionApplier,
    WebhookIngestor,
)

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Every component wired together for one process.

    Attributes:
        db_core: Database engine owner.
        asset_db: Asset record store.
        mux_client: Provider API client.
        playback_ensurer: Playback id ensurer.
        identifier_repairer: Miskeyed record repairer.
        sweep_reconciler: Sweep reconciler.
        webhook_ingestor: Webhook ingestor.
    """

    db_core: SqlalchemyCore
    asset_db: AssetDatabase
    mux_client: MuxClient
    playback_ensurer: PlaybackIdEnsurer
    identifier_repairer: IdentifierRepairer
    sweep_reconciler: SweepReconciler
    webhook_ingestor: WebhookIngestor

    async def close(self) -> None:
        """Release the HTTP client and the database engine."""
        try:
            await self.mux_client.close()
        finally:
            await self.db_core.close()


def build_components(settings: AppSettings) -> Components:
    """Build all components from settings.

    Args:
        settings: Application settings.

    Returns:
        The wired components.

    Raises:
        DatabaseOperationError: If the database directory cannot be created.
    """
    try:
        settings.db_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(
            "Failed to create database directory.",
            extra={"db_dir": str(settings.db_dir)},
            exc_info=e,
        )
        raise DatabaseOperationError("Failed to create database directory.") from e

    logger.debug("Initializing components.", extra={"db_dir": str(settings.db_dir)})

    db_core = SqlalchemyCore(settings.db_dir)
    asset_db = AssetDatabase(db_core)
    mux_client = MuxClient(
        token_id=settings.mux_token_id,
        token_secret=settings.mux_token_secret.get_secret_value(),
        base_url=settings.mux_api_base_url,
        timeout=settings.provider_timeout,
    )
    verifier = EventVerifier(
        secret=settings.mux_webhook_secret.get_secret_value(),
        tolerance_seconds=settings.webhook_signature_tolerance,
        skip_verification=settings.skip_webhook_verification,
    )
    applier = TransitionApplier(asset_db, max_attempts=settings.cas_max_attempts)
    playback_ensurer = PlaybackIdEnsurer(
        asset_db,
        mux_client,
        max_attempts=settings.cas_max_attempts,
        provider_timeout=settings.provider_timeout,
    )
    identifier_repairer = IdentifierRepairer(asset_db)
    sweep_reconciler = SweepReconciler(
        asset_db=asset_db,
        mux_client=mux_client,
        applier=applier,
        playback_ensurer=playback_ensurer,
        repairer=identifier_repairer,
        staleness_threshold=settings.sweep_staleness_threshold,
        concurrency=settings.sweep_concurrency,
        provider_timeout=settings.provider_timeout,
        provider_list_timeout=settings.provider_list_timeout,
        repair_identifiers=settings.sweep_repair_identifiers,
    )
    webhook_ingestor = WebhookIngestor(
        verifier=verifier,
        asset_db=asset_db,
        applier=applier,
        playback_ensurer=playback_ensurer,
        timeout_seconds=settings.webhook_timeout,
    )

    if settings.skip_webhook_verification:
        logger.warning(
            "Webhook signature verification is disabled.",
            extra={"environment": settings.environment},
        )

    return Components(
        db_core=db_core,
        asset_db=asset_db,
        mux_client=mux_client,
        playback_ensurer=playback_ensurer,
        identifier_repairer=identifier_repairer,
        sweep_reconciler=sweep_reconciler,
        webhook_ingestor=webhook_ingestor,
    )

"""Admin endpoints for reconciliation (private/local-only).

This router exposes administration endpoints intended for trusted access only.
It should be served from a separate FastAPI app bound to a private interface
or port, and not exposed on the public internet.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import AwareDatetime, BaseModel

from ...db.types import AssetRecord, AssetStatus
from ...exceptions import (
    AssetNotFoundError,
    ConflictError,
    PlaybackIdError,
    ProviderError,
    StoreError,
    TransientProviderError,
)
from ..dependencies import (
    AssetDatabaseDep,
    IdentifierRepairerDep,
    PlaybackEnsurerDep,
    SweepReconcilerDep,
)

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/admin")


@router.post("/sweep")
async def run_sweep(
    sweep_reconciler: SweepReconcilerDep,
    record_id: str | None = Query(default=None, min_length=1),
) -> dict[str, Any]:
    """Run a sweep now, over every record or a single one.

    Args:
        sweep_reconciler: Sweep reconciler dependency.
        record_id: Restrict the sweep to this record.

    Returns:
        The sweep report summary.

    Raises:
        HTTPException: 404 if ``record_id`` is unknown; 500 on database errors.
    """
    logger.debug("Admin sweep request received.", extra={"record_id": record_id})
    try:
        report = await sweep_reconciler.sweep(record_id)
    except AssetNotFoundError as e:
        raise HTTPException(status_code=404, detail="Asset not found") from e
    except StoreError as e:
        raise HTTPException(status_code=500, detail="Database error") from e

    logger.info("Admin sweep finished.", extra=report.summary_dict())
    return report.summary_dict()


@router.post("/repair")
async def run_repair(repairer: IdentifierRepairerDep) -> dict[str, Any]:
    """Re-key every record whose id differs from its provider asset id.

    Args:
        repairer: Identifier repairer dependency.

    Returns:
        The repair report summary.

    Raises:
        HTTPException: 500 on database errors.
    """
    try:
        report = await repairer.repair_miskeyed_records()
    except StoreError as e:
        raise HTTPException(status_code=500, detail="Database error") from e
    return report.summary_dict()


class AssetResponse(BaseModel):
    """An asset record as seen by administrators.

    Attributes:
        id: Record identifier.
        title: Display title.
        status: Lifecycle status.
        provider_upload_id: Provider upload identifier.
        provider_asset_id: Provider asset identifier.
        playback_id: Stored playback identifier, possibly a placeholder.
        playback_id_confirmed: Whether ``playback_id`` is a real identifier.
        duration: Duration in seconds.
        aspect_ratio: Aspect ratio such as ``16:9``.
        version: Compare-and-swap version.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    id: str
    title: str
    status: AssetStatus
    provider_upload_id: str | None
    provider_asset_id: str | None
    playback_id: str | None
    playback_id_confirmed: bool
    duration: float | None
    aspect_ratio: str | None
    version: int
    created_at: AwareDatetime | None
    updated_at: AwareDatetime | None

    @classmethod
    def from_record(cls, record: AssetRecord) -> "AssetResponse":
        return cls(
            id=record.id,
            title=record.title,
            status=record.status,
            provider_upload_id=record.provider_upload_id,
            provider_asset_id=record.provider_asset_id,
            playback_id=record.playback_id,
            playback_id_confirmed=record.has_confirmed_playback_id,
            duration=record.duration,
            aspect_ratio=record.aspect_ratio,
            version=record.version,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


@router.get("/assets/{record_id}", response_model=AssetResponse)
async def get_asset(record_id: str, asset_db: AssetDatabaseDep) -> AssetResponse:
    """Return one asset record.

    Raises:
        HTTPException: 404 if the record does not exist; 500 on database errors.
    """
    try:
        record = await asset_db.get_by_id(record_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail="Database error") from e
    if record is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    return AssetResponse.from_record(record)


class EnsurePlaybackResponse(BaseModel):
    """Response model for the ensure-playback operation.

    Attributes:
        record_id: The record identifier.
        outcome: ``updated`` or ``noop``.
        playback_id: The record's playback identifier afterwards.
        created_at_provider: Whether a new playback id was created at the provider.
    """

    record_id: str
    outcome: str
    playback_id: str | None
    created_at_provider: bool


@router.post(
    "/assets/{record_id}/ensure-playback", response_model=EnsurePlaybackResponse
)
async def ensure_playback(
    record_id: str,
    asset_db: AssetDatabaseDep,
    ensurer: PlaybackEnsurerDep,
) -> EnsurePlaybackResponse:
    """Make sure a ready record carries a public playback identifier.

    Args:
        record_id: The record identifier.
        asset_db: Asset database dependency.
        ensurer: Playback id ensurer dependency.

    Returns:
        The outcome and resulting playback identifier.

    Raises:
        HTTPException: 404 if the record does not exist; 409 if the record is
            not eligible or kept changing; 502/503 on provider failures;
            504 if a provider call timed out; 500 on database errors.
    """
    log_params = {"record_id": record_id}
    logger.debug("Admin ensure-playback request received.", extra=log_params)

    try:
        record = await asset_db.get_by_id(record_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Asset not found")
        result = await ensurer.ensure(record)
    except (PlaybackIdError, ConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except AssetNotFoundError as e:
        raise HTTPException(status_code=404, detail="Asset not found") from e
    except TransientProviderError as e:
        raise HTTPException(status_code=503, detail="Provider unavailable") from e
    except TimeoutError as e:
        raise HTTPException(status_code=504, detail="Provider timed out") from e
    except ProviderError as e:
        raise HTTPException(status_code=502, detail="Provider error") from e
    except StoreError as e:
        raise HTTPException(status_code=500, detail="Database error") from e

    logger.info(
        "Admin ensure-playback finished.",
        extra={**log_params, "outcome": result.outcome.value},
    )
    return EnsurePlaybackResponse(
        record_id=result.record_id,
        outcome=result.outcome.value,
        playback_id=result.playback_id,
        created_at_provider=result.created_at_provider,
    )

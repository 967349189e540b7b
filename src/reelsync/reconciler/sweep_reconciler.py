"""Periodic reconciliation of asset records against the provider.

The sweep is the backstop for everything the webhook path can miss: lost or
misrouted events, stuck uploads, placeholder playback ids, assets deleted at
the provider and records keyed by the wrong id. Provider state is turned
into the same events the webhooks carry and applied through the same
transition code, so both paths agree on the result.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
import logging
from typing import Any

from ..db import AssetDatabase
from ..db.types import AssetRecord, AssetStatus
from ..events import AssetCreated, AssetErrored, AssetReady, Event, PlaybackIdRef
from ..exceptions import AssetNotFoundError, ProviderError, ReelsyncError
from ..logging_config import new_context_id
from ..provider import AssetInfo, MuxClient, ProviderAssetStatus
from .identifier_repairer import IdentifierRepairer, RepairReport
from .playback_ensurer import EnsureOutcome, PlaybackIdEnsurer
from .state_machine import AssetNeverUploaded, AssetOrphaned, Change, SideEffect
from .transition_applier import AppliedTransition, TransitionApplier

logger = logging.getLogger(__name__)


class RecordOutcome(str, Enum):
    """What the sweep did to one record."""

    FIXED = "fixed"
    ORPHANED = "orphaned"
    CONSISTENT = "consistent"
    ERRORED = "errored"


@dataclass
class SweepReport:
    """Results of one sweep.

    Attributes:
        scope: ``"all"`` or the id of the single record swept.
        started_at: When the sweep began.
        duration_seconds: Total time taken.
        examined: Number of distinct records examined.
        fixed_ids: Records whose state was corrected.
        orphaned_ids: Records marked as errored because their provider asset is gone.
        consistent_ids: Records that needed no change.
        errored_ids: Records the sweep failed on.
        errors: Error message per failed record id.
        provider_list_failed: Whether the bulk provider listing failed.
        repair: Report of the identifier repair pass run first, if any.
    """

    scope: str
    started_at: datetime
    duration_seconds: float = 0.0
    examined: int = 0
    fixed_ids: list[str] = field(default_factory=list[str])
    orphaned_ids: list[str] = field(default_factory=list[str])
    consistent_ids: list[str] = field(default_factory=list[str])
    errored_ids: list[str] = field(default_factory=list[str])
    errors: dict[str, str] = field(default_factory=dict[str, str])
    provider_list_failed: bool = False
    repair: RepairReport | None = None

    @property
    def fixed(self) -> int:
        """Number of records corrected."""
        return len(self.fixed_ids)

    @property
    def orphaned(self) -> int:
        """Number of records found orphaned."""
        return len(self.orphaned_ids)

    @property
    def consistent(self) -> int:
        """Number of records already correct."""
        return len(self.consistent_ids)

    @property
    def errored(self) -> int:
        """Number of records the sweep failed on."""
        return len(self.errored_ids)

    @property
    def overall_success(self) -> bool:
        """True if no record failed and the repair pass had no failures."""
        repair_failed = self.repair is not None and self.repair.failed > 0
        return not self.errored and not repair_failed

    def add(
        self, record_id: str, outcome: RecordOutcome, error: Exception | None = None
    ) -> None:
        """Record the outcome for one record."""
        match outcome:
            case RecordOutcome.FIXED:
                self.fixed_ids.append(record_id)
            case RecordOutcome.ORPHANED:
                self.orphaned_ids.append(record_id)
            case RecordOutcome.CONSISTENT:
                self.consistent_ids.append(record_id)
            case RecordOutcome.ERRORED:
                self.errored_ids.append(record_id)
                self.errors[record_id] = str(error) if error else "unknown error"

    def summary_dict(self) -> dict[str, Any]:
        """Return a dictionary summary suitable for logging and responses."""
        return {
            "scope": self.scope,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "overall_success": self.overall_success,
            "examined": self.examined,
            "fixed": self.fixed,
            "orphaned": self.orphaned,
            "consistent": self.consistent,
            "errored": self.errored,
            "fixed_ids": self.fixed_ids,
            "orphaned_ids": self.orphaned_ids,
            "errored_ids": self.errored_ids,
            "errors": self.errors,
            "provider_list_failed": self.provider_list_failed,
            "repair": self.repair.summary_dict() if self.repair else None,
        }


@dataclass(frozen=True)
class _ProviderIndex:
    by_asset_id: dict[str, AssetInfo]
    by_upload_id: dict[str, AssetInfo]

    @classmethod
    def build(cls, assets: list[AssetInfo]) -> "_ProviderIndex":
        return cls(
            by_asset_id={a.id: a for a in assets},
            by_upload_id={a.upload_id: a for a in assets if a.upload_id},
        )


def event_from_provider_asset(info: AssetInfo) -> Event | None:
    """Express a provider asset snapshot as the event that would have reported it.

    Args:
        info: The provider asset.

    Returns:
        AssetReady, AssetErrored or AssetCreated, or None for unknown statuses.
    """
    common: dict[str, Any] = {
        "provider_asset_id": info.id,
        "provider_upload_id": info.upload_id,
        "passthrough_id": info.passthrough,
        "payload": info.model_dump(),
    }
    match info.provider_status:
        case ProviderAssetStatus.READY:
            return AssetReady(
                event_type="video.asset.ready",
                duration=info.duration,
                aspect_ratio=info.aspect_ratio,
                playback_ids=tuple(
                    PlaybackIdRef(id=p.id, policy=p.policy) for p in info.playback_ids
                ),
                **common,
            )
        case ProviderAssetStatus.ERRORED:
            return AssetErrored(
                event_type="video.asset.errored",
                error_messages=tuple(info.errors.messages) if info.errors else (),
                **common,
            )
        case ProviderAssetStatus.PREPARING:
            return AssetCreated(event_type="video.asset.created", **common)
        case None:
            return None


class SweepReconciler:
    """Detect and repair drift between asset records and the provider.

    Attributes:
        _asset_db: The asset store.
        _mux_client: The provider client.
        _applier: Shared read-compute-write loop.
        _ensurer: Playback id ensurer.
        _repairer: Identifier repairer, run before each full sweep.
        _staleness_threshold: Age after which in-flight records are examined.
        _concurrency: Maximum records reconciled at once.
        _provider_timeout: Deadline in seconds for a single-asset provider call.
        _provider_list_timeout: Deadline in seconds for the bulk listing.
        _repair_identifiers: Whether full sweeps run the repairer first.
    """

    def __init__(
        self,
        asset_db: AssetDatabase,
        mux_client: MuxClient,
        applier: TransitionApplier,
        playback_ensurer: PlaybackIdEnsurer,
        repairer: IdentifierRepairer,
        staleness_threshold: timedelta = timedelta(minutes=5),
        concurrency: int = 4,
        provider_timeout: float = 10.0,
        provider_list_timeout: float = 60.0,
        repair_identifiers: bool = True,
    ):
        self._asset_db = asset_db
        self._mux_client = mux_client
        self._applier = applier
        self._ensurer = playback_ensurer
        self._repairer = repairer
        self._staleness_threshold = staleness_threshold
        self._concurrency = max(1, concurrency)
        self._provider_timeout = provider_timeout
        self._provider_list_timeout = provider_list_timeout
        self._repair_identifiers = repair_identifiers

    async def sweep(self, record_id: str | None = None) -> SweepReport:
        """Reconcile every record needing attention, or just one.

        A failure on one record is recorded in the report and does not stop
        the others.

        Args:
            record_id: Restrict the sweep to this record.

        Returns:
            SweepReport for the run.

        Raises:
            AssetNotFoundError: If ``record_id`` names no record.
            StoreError: If the records to sweep cannot be listed.
        """
        new_context_id("sweep")
        started = datetime.now(UTC)
        report = SweepReport(scope=record_id or "all", started_at=started)
        logger.info("Starting sweep.", extra={"scope": report.scope})

        index: _ProviderIndex | None = None
        if record_id is not None:
            record = await self._asset_db.get_by_id(record_id)
            if record is None:
                raise AssetNotFoundError("Asset record not found.", record_id=record_id)
            records = [record]
        else:
            if self._repair_identifiers:
                report.repair = await self._run_repair()
            records = await self._asset_db.list_needing_attention(
                started - self._staleness_threshold, include_all_with_asset=True
            )
            index = await self._list_provider_assets(report)

        unique = list({r.id: r for r in records}.values())
        report.examined = len(unique)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def bounded(record: AssetRecord) -> None:
            async with semaphore:
                await self._reconcile_guarded(record, index, report)

        await asyncio.gather(*(bounded(r) for r in unique))

        report.duration_seconds = (datetime.now(UTC) - started).total_seconds()
        log_params = report.summary_dict()
        if report.overall_success:
            logger.info("Sweep completed.", extra=log_params)
        else:
            logger.warning("Sweep completed with errors.", extra=log_params)
        return report

    async def _run_repair(self) -> RepairReport | None:
        try:
            return await self._repairer.repair_miskeyed_records()
        except ReelsyncError as e:
            logger.error("Identifier repair pass failed.", exc_info=e)
            return None

    async def _list_provider_assets(self, report: SweepReport) -> _ProviderIndex | None:
        try:
            async with asyncio.timeout(self._provider_list_timeout):
                assets = await self._mux_client.list_assets()
        except (ProviderError, TimeoutError) as e:
            report.provider_list_failed = True
            logger.warning(
                "Listing provider assets failed; falling back to per-record lookups.",
                exc_info=e,
            )
            return None
        return _ProviderIndex.build(assets)

    async def _reconcile_guarded(
        self, record: AssetRecord, index: _ProviderIndex | None, report: SweepReport
    ) -> None:
        log_params = {
            "record_id": record.id,
            "status": record.status.value,
            "provider_asset_id": record.provider_asset_id,
        }
        try:
            outcome = await self._reconcile(record, index)
        except (ReelsyncError, TimeoutError) as e:
            logger.error("Failed to reconcile asset record.", extra=log_params, exc_info=e)
            report.add(record.id, RecordOutcome.ERRORED, e)
            return
        if outcome != RecordOutcome.CONSISTENT:
            logger.info(
                f"Asset record {outcome.value}.", extra={**log_params, "outcome": outcome.value}
            )
        report.add(record.id, outcome)

    async def _reread(self, record: AssetRecord) -> AssetRecord | None:
        """Fetch the freshest copy, following a re-key to the canonical id."""
        current = await self._asset_db.get_by_id(record.id)
        if current is None and record.provider_asset_id is not None:
            current = await self._asset_db.get_by_provider_asset_id(
                record.provider_asset_id
            )
        return current

    async def _apply(self, record: AssetRecord, change: Change) -> AppliedTransition:
        return await self._applier.apply(
            lambda: self._reread(record), change, persist_unchanged=False
        )

    async def _lookup(
        self, record: AssetRecord, index: _ProviderIndex | None
    ) -> AssetInfo | None:
        """Find the provider asset for a record.

        Listing misses are confirmed with a direct fetch before the caller
        treats the asset as gone, since it may have been created after the
        listing was taken.
        """
        if index is not None:
            if record.provider_asset_id:
                info = index.by_asset_id.get(record.provider_asset_id)
                if info is not None:
                    return info
            elif record.provider_upload_id:
                return index.by_upload_id.get(record.provider_upload_id)

        if not record.provider_asset_id:
            return None
        async with asyncio.timeout(self._provider_timeout):
            return await self._mux_client.get_asset(record.provider_asset_id)

    async def _reconcile(
        self, record: AssetRecord, index: _ProviderIndex | None
    ) -> RecordOutcome:
        if record.status == AssetStatus.READY and record.provider_asset_id is None:
            applied = await self._apply(record, AssetNeverUploaded())
            return RecordOutcome.FIXED if applied.persisted else RecordOutcome.CONSISTENT

        info = await self._lookup(record, index)
        if info is None:
            if record.provider_asset_id is None:
                return RecordOutcome.CONSISTENT
            applied = await self._apply(
                record, AssetOrphaned(provider_asset_id=record.provider_asset_id)
            )
            return RecordOutcome.ORPHANED if applied.persisted else RecordOutcome.CONSISTENT

        change = event_from_provider_asset(info)
        if change is None:
            logger.debug(
                "Provider reports an unknown asset status.",
                extra={"record_id": record.id, "provider_status": info.status},
            )
            return RecordOutcome.CONSISTENT

        applied = await self._apply(record, change)
        outcome = RecordOutcome.FIXED if applied.persisted else RecordOutcome.CONSISTENT

        if (
            SideEffect.ENSURE_PLAYBACK_ID in applied.side_effects
            and applied.record is not None
            and applied.record.status == AssetStatus.READY
        ):
            result = await self._ensurer.ensure(applied.record)
            if result.outcome == EnsureOutcome.UPDATED:
                outcome = RecordOutcome.FIXED
        return outcome

"""Re-keying of asset records whose id is not their provider asset id.

Records created before the provider asset existed are keyed by a local id.
Once the asset id is known the record is moved under it: the canonical row
is written first and the old row deleted second, so a crash in between
leaves a duplicate (which the next run resolves) and never a loss.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
import logging
from typing import Any

from ..db import AssetDatabase
from ..db.types import AssetRecord
from ..exceptions import (
    AssetNotFoundError,
    ConflictError,
    RepairError,
    ReelsyncError,
)

logger = logging.getLogger(__name__)


@dataclass
class RepairReport:
    """Outcome of one repair pass.

    Attributes:
        repaired_ids: Old ids of records moved under their provider asset id.
        duplicates_resolved_ids: Old ids whose canonical copy already existed.
        failed_ids: Old ids that could not be repaired this pass.
        errors: Error message per failed old id.
        duration_seconds: Time taken by the pass.
    """

    repaired_ids: list[str] = field(default_factory=list[str])
    duplicates_resolved_ids: list[str] = field(default_factory=list[str])
    failed_ids: list[str] = field(default_factory=list[str])
    errors: dict[str, str] = field(default_factory=dict[str, str])
    duration_seconds: float = 0.0

    @property
    def repaired(self) -> int:
        """Number of records moved."""
        return len(self.repaired_ids)

    @property
    def duplicates_resolved(self) -> int:
        """Number of leftover duplicates cleaned up."""
        return len(self.duplicates_resolved_ids)

    @property
    def failed(self) -> int:
        """Number of records that could not be repaired."""
        return len(self.failed_ids)

    def summary_dict(self) -> dict[str, Any]:
        """Return a dictionary summary suitable for logging."""
        return {
            "repaired": self.repaired,
            "duplicates_resolved": self.duplicates_resolved,
            "failed": self.failed,
            "repaired_ids": self.repaired_ids,
            "duplicates_resolved_ids": self.duplicates_resolved_ids,
            "failed_ids": self.failed_ids,
            "errors": self.errors,
            "duration_seconds": self.duration_seconds,
        }


class IdentifierRepairer:
    """Move miskeyed records under their provider asset id.

    Attributes:
        _asset_db: The asset store.
    """

    def __init__(self, asset_db: AssetDatabase):
        self._asset_db = asset_db

    async def repair_miskeyed_records(self) -> RepairReport:
        """Re-key every record whose id differs from its provider asset id.

        A failure on one record is recorded and does not stop the others.

        Returns:
            RepairReport for the pass.

        Raises:
            StoreError: If the miskeyed records cannot be listed.
        """
        started = datetime.now(UTC)
        report = RepairReport()

        records = await self._asset_db.list_miskeyed()
        logger.debug(
            "Starting identifier repair pass.", extra={"candidate_count": len(records)}
        )

        for record in records:
            try:
                resolved_duplicate = await self._repair_one(record)
            except ReelsyncError as e:
                logger.error(
                    "Failed to re-key asset record.",
                    extra={
                        "record_id": record.id,
                        "provider_asset_id": record.provider_asset_id,
                    },
                    exc_info=e,
                )
                report.failed_ids.append(record.id)
                report.errors[record.id] = str(e)
                continue

            if resolved_duplicate:
                report.duplicates_resolved_ids.append(record.id)
            else:
                report.repaired_ids.append(record.id)

        report.duration_seconds = (datetime.now(UTC) - started).total_seconds()
        log_params = report.summary_dict()
        if report.failed:
            logger.warning("Identifier repair pass finished with failures.", extra=log_params)
        elif report.repaired or report.duplicates_resolved:
            logger.info("Identifier repair pass finished.", extra=log_params)
        else:
            logger.debug("Identifier repair pass found nothing to do.", extra=log_params)
        return report

    async def _repair_one(self, old: AssetRecord) -> bool:
        """Move one record. Returns whether the canonical row already existed.

        Raises:
            RepairError: If the record changed under us or a step failed.
            StoreError: If the store fails.
        """
        target_id = old.provider_asset_id
        if target_id is None or target_id == old.id:
            return False
        log_params = {"record_id": old.id, "provider_asset_id": target_id}

        canonical = await self._asset_db.get_by_id(target_id)
        if canonical is None:
            await self._asset_db.create(old.clone(id=target_id, version=0))
            logger.info("Created canonical copy of miskeyed record.", extra=log_params)
            duplicate = False
        else:
            duplicate = True
            if self._is_newer(old, canonical):
                try:
                    await self._asset_db.compare_and_swap(
                        canonical.id,
                        canonical.version,
                        old.clone(id=target_id, created_at=canonical.created_at),
                    )
                except ConflictError as e:
                    raise RepairError(
                        "Canonical record changed during repair.",
                        record_id=old.id,
                        provider_asset_id=target_id,
                    ) from e
                logger.info(
                    "Canonical record refreshed from newer miskeyed copy.",
                    extra=log_params,
                )

        try:
            await self._asset_db.delete(old.id, expected_version=old.version)
        except AssetNotFoundError:
            logger.debug("Miskeyed record already removed.", extra=log_params)
        except ConflictError as e:
            raise RepairError(
                "Miskeyed record changed during repair; will retry next pass.",
                record_id=old.id,
                provider_asset_id=target_id,
            ) from e
        else:
            logger.info("Removed miskeyed record.", extra=log_params)
        return duplicate

    @staticmethod
    def _is_newer(candidate: AssetRecord, other: AssetRecord) -> bool:
        if candidate.updated_at is None or other.updated_at is None:
            return False
        return candidate.updated_at > other.updated_at

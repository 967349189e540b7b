"""Database management for reelsync asset records.

This module provides the AssetDatabase class, the only component that reads
or writes asset rows. Every write is either an insert, a compare-and-swap
update keyed on ``(id, version)``, or a delete optionally conditioned on the
version, so concurrent writers can never silently overwrite each other.
"""

from datetime import datetime
import logging

from sqlalchemy import delete, insert, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, select

from ..exceptions import AssetNotFoundError, ConflictError
from .decorators import handle_asset_db_errors, handle_db_errors
from .sqlalchemy_core import SqlalchemyCore
from .types import AssetRecord, AssetStatus
from .types.asset_record import LEGACY_PLACEHOLDER_MARKER, PLACEHOLDER_PREFIX

logger = logging.getLogger(__name__)


class AssetDatabase:
    """Manage all database operations for asset records.

    Attributes:
        _db: Core SQLAlchemy database manager.
    """

    def __init__(self, db_core: SqlalchemyCore):
        self._db = db_core

    # --- Reads ---

    @handle_asset_db_errors("get asset record by id")
    async def get_by_id(self, record_id: str) -> AssetRecord | None:
        """Retrieve a record by its primary key.

        Args:
            record_id: The record identifier.

        Returns:
            The record, or None if absent.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            return await session.get(AssetRecord, record_id)

    @handle_asset_db_errors(
        "get asset record by provider asset id", record_id_from="provider_asset_id"
    )
    async def get_by_provider_asset_id(
        self, provider_asset_id: str
    ) -> AssetRecord | None:
        """Retrieve the record holding a provider asset id.

        While a re-key is half done two rows can share the id; the row keyed
        by the provider asset id wins, then the most recently updated one.

        Args:
            provider_asset_id: The provider asset identifier.

        Returns:
            The matching record, or None.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            stmt = (
                select(AssetRecord)
                .where(col(AssetRecord.provider_asset_id) == provider_asset_id)
                .order_by(
                    (col(AssetRecord.id) == provider_asset_id).desc(),
                    col(AssetRecord.updated_at).desc(),
                )
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    @handle_asset_db_errors(
        "get asset record by provider upload id", record_id_from="provider_upload_id"
    )
    async def get_by_provider_upload_id(
        self, provider_upload_id: str
    ) -> AssetRecord | None:
        """Retrieve the record holding a provider upload id.

        Canonically keyed rows win over miskeyed duplicates, then the most
        recently updated row.

        Args:
            provider_upload_id: The provider upload identifier.

        Returns:
            The matching record, or None.

        Raises:
            DatabaseOperationError: If the database operation fails.
        """
        async with self._db.session() as session:
            stmt = (
                select(AssetRecord)
                .where(col(AssetRecord.provider_upload_id) == provider_upload_id)
                .order_by(
                    (
                        col(AssetRecord.id) == col(AssetRecord.provider_asset_id)
                    ).desc(),
                    col(AssetRecord.updated_at).desc(),
                )
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    @handle_db_errors("list asset records needing attention")
    async def list_needing_attention(
        self, stale_before: datetime, include_all_with_asset: bool = True
    ) -> list[AssetRecord]:
        """List the records a full sweep should look at, oldest update first.

        Selected are: uploading/processing records not updated since
        ``stale_before``; ready records whose playback id is missing or a
        placeholder; ready records without a provider asset id; and, when
        ``include_all_with_asset`` is set, every record with a provider
        asset id.

        Args:
            stale_before: Cutoff for in-flight records.
            include_all_with_asset: Whether to include every record with a provider asset id.

        Returns:
            List of AssetRecord objects.

        Raises:
            DatabaseOperationError: If the database query fails.
        """
        is_ready = col(AssetRecord.status) == AssetStatus.READY
        conditions: list[ColumnElement[bool]] = [
            (
                col(AssetRecord.status).in_(
                    [AssetStatus.UPLOADING, AssetStatus.PROCESSING]
                )
            )
            & (col(AssetRecord.updated_at) < stale_before),
            is_ready
            & or_(
                col(AssetRecord.playback_id).is_(None),
                col(AssetRecord.playback_id) == "",
                col(AssetRecord.playback_id).startswith(PLACEHOLDER_PREFIX),
                col(AssetRecord.playback_id).contains(LEGACY_PLACEHOLDER_MARKER),
            ),
            is_ready & col(AssetRecord.provider_asset_id).is_(None),
        ]
        if include_all_with_asset:
            conditions.append(col(AssetRecord.provider_asset_id).is_not(None))

        async with self._db.session() as session:
            stmt = (
                select(AssetRecord)
                .where(or_(*conditions))
                .order_by(col(AssetRecord.updated_at).asc(), col(AssetRecord.id))
            )
            result = await session.execute(stmt)
            records = list(result.scalars().all())
        logger.debug(
            "Listed asset records needing attention.",
            extra={
                "stale_before": stale_before.isoformat(),
                "include_all_with_asset": include_all_with_asset,
                "record_count": len(records),
            },
        )
        return records

    @handle_db_errors("list miskeyed asset records")
    async def list_miskeyed(self) -> list[AssetRecord]:
        """List records whose id differs from their provider asset id.

        Returns:
            List of AssetRecord objects, oldest first.

        Raises:
            DatabaseOperationError: If the database query fails.
        """
        async with self._db.session() as session:
            stmt = (
                select(AssetRecord)
                .where(
                    col(AssetRecord.provider_asset_id).is_not(None),
                    col(AssetRecord.id) != col(AssetRecord.provider_asset_id),
                )
                .order_by(col(AssetRecord.created_at).asc(), col(AssetRecord.id))
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # --- Writes ---

    @handle_asset_db_errors("compare-and-swap asset record")
    async def compare_and_swap(
        self, record_id: str, expected_version: int, new_record: AssetRecord
    ) -> AssetRecord:
        """Replace a record's fields only if its version is still ``expected_version``.

        The stored version becomes ``expected_version + 1``. The id of
        ``new_record`` is ignored; the row keyed by ``record_id`` is written.

        Args:
            record_id: The record identifier.
            expected_version: The version the caller read.
            new_record: The desired field values.

        Returns:
            The record as now stored.

        Raises:
            AssetNotFoundError: If no row has ``record_id``.
            ConflictError: If the row's version moved on.
            DatabaseOperationError: If the database operation fails.
        """
        log_params = {"record_id": record_id, "expected_version": expected_version}
        logger.debug("Attempting compare-and-swap on asset record.", extra=log_params)

        values = new_record.model_dump_for_insert()
        values.pop("id", None)
        values["version"] = expected_version + 1

        async with self._db.session() as session:
            stmt = (
                update(AssetRecord)
                .where(
                    col(AssetRecord.id) == record_id,
                    col(AssetRecord.version) == expected_version,
                )
                .values(**values)
            )
            result = await session.execute(stmt)
            affected = SqlalchemyCore.rowcount(result)
            await session.commit()

            match affected:
                case 1:
                    pass
                case 0 if await session.get(AssetRecord, record_id) is None:
                    raise AssetNotFoundError(
                        "Asset record not found.", record_id=record_id
                    )
                case 0:
                    raise ConflictError(
                        "Asset record was modified concurrently.",
                        record_id=record_id,
                        expected_version=expected_version,
                    )
                case _:
                    raise ConflictError(
                        f"Compare-and-swap matched {affected} rows, expected 1.",
                        record_id=record_id,
                        expected_version=expected_version,
                    )

            stored = await session.get(AssetRecord, record_id, populate_existing=True)

        if stored is None:
            raise AssetNotFoundError(
                "Asset record vanished after update.", record_id=record_id
            )
        logger.debug(
            "Compare-and-swap on asset record applied.",
            extra={**log_params, "status": stored.status.value},
        )
        return stored

    @handle_asset_db_errors("create asset record", record_id_from="record.id")
    async def create(self, record: AssetRecord) -> AssetRecord:
        """Insert a new record.

        Args:
            record: The record to insert. Its version is stored as given.

        Returns:
            The record as stored, with database defaults filled in.

        Raises:
            ConflictError: If a row with the same id already exists.
            DatabaseOperationError: If the database operation fails.
        """
        log_params = {"record_id": record.id}
        logger.debug("Attempting to create asset record.", extra=log_params)
        async with self._db.session() as session:
            try:
                await session.execute(
                    insert(AssetRecord).values(**record.model_dump_for_insert())
                )
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(
                    "Asset record already exists.", record_id=record.id
                ) from e
            stored = await session.get(AssetRecord, record.id)

        if stored is None:
            raise AssetNotFoundError(
                "Asset record vanished after insert.", record_id=record.id
            )
        logger.debug("Asset record created.", extra=log_params)
        return stored

    @handle_asset_db_errors("delete asset record")
    async def delete(self, record_id: str, expected_version: int | None = None) -> None:
        """Delete a record, optionally only if it is still at ``expected_version``.

        Args:
            record_id: The record identifier.
            expected_version: When given, the delete only applies at this version.

        Raises:
            AssetNotFoundError: If no row has ``record_id``.
            ConflictError: If the row's version moved on.
            DatabaseOperationError: If the database operation fails.
        """
        log_params = {"record_id": record_id, "expected_version": expected_version}
        logger.debug("Attempting to delete asset record.", extra=log_params)

        stmt = delete(AssetRecord).where(col(AssetRecord.id) == record_id)
        if expected_version is not None:
            stmt = stmt.where(col(AssetRecord.version) == expected_version)

        async with self._db.session() as session:
            result = await session.execute(stmt)
            affected = SqlalchemyCore.rowcount(result)
            await session.commit()

            if affected == 0:
                if await session.get(AssetRecord, record_id) is None:
                    raise AssetNotFoundError(
                        "Asset record not found.", record_id=record_id
                    )
                raise ConflictError(
                    "Asset record was modified concurrently.",
                    record_id=record_id,
                    expected_version=expected_version,
                )
        logger.debug("Asset record deleted.", extra=log_params)

"""Idempotent "make sure this asset has a public playback id" operation."""

import asyncio
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
import logging

from ..db import AssetDatabase
from ..db.types import AssetRecord, AssetStatus
from ..exceptions import AssetNotFoundError, ConflictError, PlaybackIdError
from ..provider import MuxClient

logger = logging.getLogger(__name__)


class EnsureOutcome(str, Enum):
    """Result of an ensure call."""

    UPDATED = "updated"
    NOOP = "noop"


@dataclass(frozen=True)
class EnsureResult:
    """What ``PlaybackIdEnsurer.ensure`` did.

    Attributes:
        outcome: UPDATED when a playback id was written, NOOP otherwise.
        record_id: The record concerned.
        playback_id: The confirmed playback id now on the record.
        created_at_provider: Whether a new playback id was created at the provider.
    """

    outcome: EnsureOutcome
    record_id: str
    playback_id: str | None
    created_at_provider: bool = False


class PlaybackIdEnsurer:
    """Give ready records a real public playback id.

    Calls for the same provider asset within this process are serialised,
    so only the first one can create a playback id at the provider; the
    others re-read the record and find it. Writes are compare-and-swap, so
    a competing writer in another process cannot be overwritten either.

    Attributes:
        _asset_db: The asset store.
        _mux_client: The provider client.
        _max_attempts: Compare-and-swap attempts before giving up.
        _provider_timeout: Deadline in seconds for each provider call.
        _locks: One lock per provider asset id currently in use.
        _lock_users: Number of callers holding or waiting on each lock.
    """

    def __init__(
        self,
        asset_db: AssetDatabase,
        mux_client: MuxClient,
        max_attempts: int = 5,
        provider_timeout: float = 10.0,
    ):
        self._asset_db = asset_db
        self._mux_client = mux_client
        self._max_attempts = max_attempts
        self._provider_timeout = provider_timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    async def ensure(self, record: AssetRecord) -> EnsureResult:
        """Make sure ``record`` carries a confirmed public playback id.

        Args:
            record: The record as last read by the caller.

        Returns:
            EnsureResult describing what happened.

        Raises:
            PlaybackIdError: If the record is not ready, has no provider asset
                id, disappeared, or the provider does not know the asset.
            TransientProviderError: On retryable provider failures.
            ProviderError: On other provider failures.
            TimeoutError: If a provider call exceeds its deadline.
            ConflictError: If every write attempt lost a race.
            StoreError: If the store fails.
        """
        asset_id = record.provider_asset_id
        if record.status != AssetStatus.READY or asset_id is None:
            raise PlaybackIdError(
                "Record must be ready and have a provider asset id.",
                record_id=record.id,
                provider_asset_id=asset_id,
            )

        lock = self._locks.setdefault(asset_id, asyncio.Lock())
        self._lock_users[asset_id] += 1
        try:
            async with lock:
                return await self._ensure_locked(record.id, asset_id)
        finally:
            self._lock_users[asset_id] -= 1
            if self._lock_users[asset_id] <= 0:
                del self._lock_users[asset_id]
                self._locks.pop(asset_id, None)

    async def _reread(self, record_id: str, asset_id: str) -> AssetRecord:
        """Fetch the freshest record, following a re-key to the canonical id."""
        current = await self._asset_db.get_by_id(record_id)
        if current is None:
            current = await self._asset_db.get_by_provider_asset_id(asset_id)
        if current is None:
            raise PlaybackIdError(
                "Asset record disappeared.",
                record_id=record_id,
                provider_asset_id=asset_id,
            )
        return current

    @staticmethod
    def _check_preconditions(current: AssetRecord, asset_id: str) -> None:
        if current.status != AssetStatus.READY or current.provider_asset_id != asset_id:
            raise PlaybackIdError(
                "Record is no longer ready for this provider asset.",
                record_id=current.id,
                provider_asset_id=asset_id,
            )

    async def _ensure_locked(self, record_id: str, asset_id: str) -> EnsureResult:
        log_params = {"record_id": record_id, "provider_asset_id": asset_id}

        current = await self._reread(record_id, asset_id)
        if current.has_confirmed_playback_id:
            return EnsureResult(EnsureOutcome.NOOP, current.id, current.playback_id)
        self._check_preconditions(current, asset_id)

        async with asyncio.timeout(self._provider_timeout):
            info = await self._mux_client.get_asset(asset_id)
        if info is None:
            raise PlaybackIdError(
                "Provider does not know the asset.",
                record_id=current.id,
                provider_asset_id=asset_id,
            )

        playback_id = info.public_playback_id
        created = playback_id is None
        if playback_id is None:
            logger.info("Asset has no public playback id, creating one.", extra=log_params)
            async with asyncio.timeout(self._provider_timeout):
                playback_id = await self._mux_client.create_public_playback_id(
                    asset_id
                )

        for attempt in range(1, self._max_attempts + 1):
            candidate = current.clone(
                playback_id=playback_id, updated_at=datetime.now(UTC)
            )
            try:
                stored = await self._asset_db.compare_and_swap(
                    current.id, current.version, candidate
                )
            except (ConflictError, AssetNotFoundError):
                logger.debug(
                    "Playback id write lost a race, re-reading.",
                    extra={**log_params, "attempt": attempt},
                )
                current = await self._reread(current.id, asset_id)
                if current.has_confirmed_playback_id:
                    return EnsureResult(
                        EnsureOutcome.NOOP, current.id, current.playback_id
                    )
                self._check_preconditions(current, asset_id)
                continue

            logger.info(
                "Playback id ensured.",
                extra={**log_params, "playback_id": playback_id, "created": created},
            )
            return EnsureResult(
                EnsureOutcome.UPDATED,
                stored.id,
                stored.playback_id,
                created_at_provider=created,
            )

        raise ConflictError(
            f"Could not write playback id after {self._max_attempts} attempts.",
            record_id=record_id,
        )

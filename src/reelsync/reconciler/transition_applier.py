"""Read-compute-write loop shared by the webhook and sweep paths."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
import logging

from ..db import AssetDatabase
from ..db.types import AssetRecord
from ..exceptions import AssetNotFoundError, ConflictError
from .state_machine import Change, SideEffect, TransitionOutcome, transition

logger = logging.getLogger(__name__)

type RecordResolver = Callable[[], Awaitable[AssetRecord | None]]


@dataclass(frozen=True)
class AppliedTransition:
    """What happened when a change was applied.

    Attributes:
        outcome: How the change related to the record.
        reason: Short explanation from the transition.
        previous: The record as read before the write, if one was found.
        record: The record as stored afterwards (``previous`` when nothing was written).
        side_effects: Work the caller must run now that the write is durable.
        attempts: Number of read-compute-write rounds used.
        persisted: Whether a write happened.
    """

    outcome: TransitionOutcome
    reason: str
    previous: AssetRecord | None
    record: AssetRecord | None
    side_effects: tuple[SideEffect, ...]
    attempts: int
    persisted: bool


class TransitionApplier:
    """Apply changes to records with optimistic concurrency.

    Each round re-resolves the record, computes the transition from what was
    just read, and writes it with a compare-and-swap. A lost race starts a
    new round; after ``max_attempts`` lost rounds ConflictError propagates.

    Attributes:
        _asset_db: The asset store.
        _max_attempts: Rounds before giving up.
    """

    def __init__(self, asset_db: AssetDatabase, max_attempts: int = 5):
        self._asset_db = asset_db
        self._max_attempts = max_attempts

    async def apply(
        self,
        resolve: RecordResolver,
        change: Change,
        *,
        persist_unchanged: bool,
    ) -> AppliedTransition:
        """Apply one change to the record ``resolve`` finds.

        Args:
            resolve: Coroutine factory returning the current record, or None.
            change: The event or observation to apply.
            persist_unchanged: Whether an UNCHANGED outcome still writes the
                refreshed ``updated_at``.

        Returns:
            The AppliedTransition.

        Raises:
            ConflictError: If every attempt lost a race.
            StoreError: If the store fails.
        """
        for attempt in range(1, self._max_attempts + 1):
            current = await resolve()
            result = transition(current, change, datetime.now(UTC))

            should_write = result.record is not None and (
                result.outcome == TransitionOutcome.APPLIED
                or (result.outcome == TransitionOutcome.UNCHANGED and persist_unchanged)
            )
            if current is None or result.record is None or not should_write:
                return AppliedTransition(
                    outcome=result.outcome,
                    reason=result.reason,
                    previous=current,
                    record=current,
                    side_effects=result.side_effects,
                    attempts=attempt,
                    persisted=False,
                )

            log_params = {
                "record_id": current.id,
                "expected_version": current.version,
                "attempt": attempt,
            }
            try:
                stored = await self._asset_db.compare_and_swap(
                    current.id, current.version, result.record
                )
            except (ConflictError, AssetNotFoundError) as e:
                logger.debug(
                    "Lost a write race, re-reading asset record.",
                    extra=log_params,
                    exc_info=e,
                )
                continue

            logger.debug(
                "Transition persisted.",
                extra={
                    **log_params,
                    "outcome": result.outcome.value,
                    "status": stored.status.value,
                },
            )
            return AppliedTransition(
                outcome=result.outcome,
                reason=result.reason,
                previous=current,
                record=stored,
                side_effects=result.side_effects,
                attempts=attempt,
                persisted=True,
            )

        raise ConflictError(
            f"Could not apply change after {self._max_attempts} attempts.",
        )

"""Ingestion of provider webhooks.

One call to ``WebhookIngestor.ingest`` handles one delivery: authenticate,
decode, route to a record, apply the transition, then run side effects.
The return value is the acknowledgement; an exception is a rejection.
"""

import asyncio
from dataclasses import dataclass
import logging
from typing import Any

from ..db import AssetDatabase
from ..db.types import AssetRecord
from ..events import Event, EventVerifier, UnrecognizedEvent, UploadCancelled
from ..exceptions import ReelsyncError, RoutingError, StoreError, TransientIngestError
from ..logging_config import new_context_id
from .playback_ensurer import EnsureOutcome, PlaybackIdEnsurer
from .state_machine import SideEffect, TransitionOutcome
from .transition_applier import TransitionApplier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    """Acknowledgement of a delivery.

    Attributes:
        event_type: Provider event type.
        outcome: How the event related to its record.
        reason: Short explanation.
        provider_event_id: Provider's id for the delivery.
        record_id: The record the event was applied to, if any.
        ensure_outcome: Result of the playback id side effect, if it ran and succeeded.
    """

    event_type: str
    outcome: TransitionOutcome
    reason: str
    provider_event_id: str | None = None
    record_id: str | None = None
    ensure_outcome: EnsureOutcome | None = None

    def summary_dict(self) -> dict[str, Any]:
        """Return a dictionary summary suitable for logging and responses."""
        return {
            "event_type": self.event_type,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "provider_event_id": self.provider_event_id,
            "record_id": self.record_id,
            "ensure_outcome": self.ensure_outcome.value if self.ensure_outcome else None,
        }


class WebhookIngestor:
    """Apply authentic provider events to asset records.

    Attributes:
        _verifier: Authenticates and decodes deliveries.
        _asset_db: The asset store, used for routing.
        _applier: Shared read-compute-write loop.
        _ensurer: Runs the playback id side effect.
        _timeout: Overall deadline in seconds for routing, writing and side effects.
    """

    def __init__(
        self,
        verifier: EventVerifier,
        asset_db: AssetDatabase,
        applier: TransitionApplier,
        playback_ensurer: PlaybackIdEnsurer,
        timeout_seconds: float = 20.0,
    ):
        self._verifier = verifier
        self._asset_db = asset_db
        self._applier = applier
        self._ensurer = playback_ensurer
        self._timeout = timeout_seconds

    async def ingest(
        self, raw_body: bytes, signature_header: str | None
    ) -> IngestResult:
        """Handle one webhook delivery.

        Args:
            raw_body: The request body exactly as received.
            signature_header: The ``mux-signature`` header, if present.

        Returns:
            IngestResult acknowledging the delivery. Unroutable and
            unrecognized events are acknowledged too.

        Raises:
            VerificationError: If the delivery is not authentic or not decodable.
                Nothing was written.
            TransientIngestError: If the event could not be applied now and
                the provider should redeliver it.
        """
        new_context_id("webhook")
        event = self._verifier.verify(raw_body, signature_header)
        log_params: dict[str, Any] = {
            "event_type": event.event_type,
            "provider_event_id": event.provider_event_id,
            "provider_asset_id": event.provider_asset_id,
            "provider_upload_id": event.provider_upload_id,
            "passthrough_id": event.passthrough_id,
        }
        logger.debug("Webhook verified.", extra=log_params)

        if isinstance(event, UnrecognizedEvent):
            logger.info("Acknowledging webhook of unhandled type.", extra=log_params)
            return IngestResult(
                event_type=event.event_type,
                outcome=TransitionOutcome.IGNORED,
                reason="unhandled event type",
                provider_event_id=event.provider_event_id,
            )

        deadline = asyncio.get_running_loop().time() + self._timeout
        try:
            async with asyncio.timeout_at(deadline):
                applied = await self._applier.apply(
                    lambda: self._resolve(event), event, persist_unchanged=True
                )
        except TimeoutError as e:
            raise TransientIngestError(
                "Timed out applying webhook.", event_type=event.event_type
            ) from e
        except StoreError as e:
            raise TransientIngestError(
                "Could not persist webhook.",
                event_type=event.event_type,
                record_id=e.record_id,
            ) from e

        if applied.outcome == TransitionOutcome.DROPPED or applied.record is None:
            self._log_unroutable(event, log_params)
            return IngestResult(
                event_type=event.event_type,
                outcome=TransitionOutcome.DROPPED,
                reason=applied.reason,
                provider_event_id=event.provider_event_id,
            )

        log_params.update(
            {
                "record_id": applied.record.id,
                "outcome": applied.outcome.value,
                "status": applied.record.status.value,
                "attempts": applied.attempts,
            }
        )
        logger.info(f"Webhook applied: {applied.reason}.", extra=log_params)

        ensure_outcome: EnsureOutcome | None = None
        if SideEffect.ENSURE_PLAYBACK_ID in applied.side_effects:
            ensure_outcome = await self._ensure_playback_id(
                applied.record, deadline, log_params
            )

        return IngestResult(
            event_type=event.event_type,
            outcome=applied.outcome,
            reason=applied.reason,
            provider_event_id=event.provider_event_id,
            record_id=applied.record.id,
            ensure_outcome=ensure_outcome,
        )

    async def _resolve(self, event: Event) -> AssetRecord | None:
        """Find the record an event refers to.

        Passthrough (the local record id) is tried first, then the provider
        asset id, then the upload id. Cancellations try the upload id first
        since a cancelled upload usually has no asset.
        """
        by_passthrough = ("passthrough", event.passthrough_id, self._asset_db.get_by_id)
        by_asset = (
            "provider_asset_id",
            event.provider_asset_id,
            self._asset_db.get_by_provider_asset_id,
        )
        by_upload = (
            "provider_upload_id",
            event.provider_upload_id,
            self._asset_db.get_by_provider_upload_id,
        )
        if isinstance(event, UploadCancelled):
            lookups = (by_upload, by_passthrough, by_asset)
        else:
            lookups = (by_passthrough, by_asset, by_upload)

        for key, value, lookup in lookups:
            if not value:
                continue
            record = await lookup(value)
            if record is not None:
                logger.debug(
                    "Webhook routed to asset record.",
                    extra={"routed_by": key, "record_id": record.id},
                )
                return record
        return None

    @staticmethod
    def _log_unroutable(event: Event, log_params: dict[str, Any]) -> None:
        error = RoutingError(
            "No asset record matches the webhook.",
            event_type=event.event_type,
            passthrough_id=event.passthrough_id,
            provider_asset_id=event.provider_asset_id,
            provider_upload_id=event.provider_upload_id,
        )
        if event.passthrough_id:
            logger.error(
                "Dropping webhook for an unknown record.", extra=log_params, exc_info=error
            )
        else:
            logger.warning(
                "Dropping webhook with no matching record.",
                extra=log_params,
                exc_info=error,
            )

    async def _ensure_playback_id(
        self, record: AssetRecord, deadline: float, log_params: dict[str, Any]
    ) -> EnsureOutcome | None:
        """Run the playback id side effect within what is left of the deadline.

        The state write has already committed, so failures are logged and the
        delivery is still acknowledged.
        """
        try:
            async with asyncio.timeout_at(deadline):
                result = await self._ensurer.ensure(record)
        except TimeoutError as e:
            logger.warning(
                "Timed out ensuring playback id; the sweep will retry.",
                extra=log_params,
                exc_info=e,
            )
            return None
        except ReelsyncError as e:
            logger.warning(
                "Could not ensure playback id; the sweep will retry.",
                extra=log_params,
                exc_info=e,
            )
            return None
        return result.outcome

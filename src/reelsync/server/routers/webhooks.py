"""Public endpoint receiving provider webhooks.

The response code is the delivery's fate at the provider: any 2xx is an
acknowledgement, 5xx asks the provider to redeliver, other 4xx tell it the
delivery will never be accepted.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import BaseModel

from ...events import SIGNATURE_HEADER
from ...exceptions import (
    MalformedEventError,
    SignatureVerificationError,
    TransientIngestError,
)
from ..dependencies import WebhookIngestorDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks")


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned for every accepted delivery.

    Attributes:
        event_type: Provider event type.
        outcome: applied, unchanged, ignored or dropped.
        reason: Short explanation of the outcome.
        provider_event_id: Provider's id for the delivery.
        record_id: The record the event was applied to, if any.
        ensure_outcome: Outcome of the playback id side effect, if it ran.
    """

    event_type: str
    outcome: str
    reason: str
    provider_event_id: str | None = None
    record_id: str | None = None
    ensure_outcome: str | None = None


@router.post("/mux", response_model=WebhookAckResponse)
async def receive_mux_webhook(
    request: Request,
    ingestor: WebhookIngestorDep,
    mux_signature: Annotated[str | None, Header(alias=SIGNATURE_HEADER)] = None,
) -> WebhookAckResponse:
    """Verify and apply one Mux webhook delivery.

    The body is read as raw bytes because the signature covers the exact
    bytes that were sent.

    Args:
        request: Incoming request, used to read the raw body.
        ingestor: Webhook ingestor dependency.
        mux_signature: Value of the ``mux-signature`` header.

    Returns:
        The acknowledgement.

    Raises:
        HTTPException: 401 on signature failure; 400 on a malformed body;
            503 when the delivery should be retried.
    """
    raw_body = await request.body()
    try:
        result = await ingestor.ingest(raw_body, mux_signature)
    except SignatureVerificationError as e:
        logger.warning("Rejected webhook with invalid signature.", exc_info=e)
        raise HTTPException(status_code=401, detail="Invalid signature") from e
    except MalformedEventError as e:
        logger.warning("Rejected malformed webhook.", exc_info=e)
        raise HTTPException(status_code=400, detail="Malformed event") from e
    except TransientIngestError as e:
        logger.warning("Webhook could not be applied now.", exc_info=e)
        raise HTTPException(status_code=503, detail="Temporarily unavailable") from e

    return WebhookAckResponse.model_validate(result.summary_dict())

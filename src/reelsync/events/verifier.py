"""Authentication of inbound Mux webhooks.

Mux signs each delivery with a ``mux-signature: t=<unix-ts>,v1=<hex>``
header, where the hex digest is HMAC-SHA256 over ``"<t>." + raw_body``
under the shared webhook secret.
"""

from datetime import UTC, datetime
import hashlib
import hmac
import logging

from ..exceptions import SignatureVerificationError
from .decoder import decode_event
from .types import Event

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "mux-signature"


def compute_signature(secret: str, timestamp: int, raw_body: bytes) -> str:
    """Return the hex HMAC-SHA256 digest Mux sends for ``raw_body`` at ``timestamp``."""
    signed_payload = f"{timestamp}.".encode() + raw_body
    return hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()


def build_signature_header(secret: str, timestamp: int, raw_body: bytes) -> str:
    """Build a ``mux-signature`` header value for ``raw_body``."""
    return f"t={timestamp},v1={compute_signature(secret, timestamp, raw_body)}"


def parse_signature_header(signature_header: str) -> tuple[int, list[str]]:
    """Split a signature header into its timestamp and ``v1`` digests.

    Args:
        signature_header: The raw header value.

    Returns:
        Tuple of (timestamp, list of v1 digests).

    Raises:
        SignatureVerificationError: If the timestamp or every digest is missing.
    """
    timestamp: int | None = None
    digests: list[str] = []
    for part in signature_header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        match key:
            case "t":
                try:
                    timestamp = int(value)
                except ValueError as e:
                    raise SignatureVerificationError(
                        "Signature timestamp is not an integer."
                    ) from e
            case "v1" if value:
                digests.append(value)
            case _:
                pass

    if timestamp is None:
        raise SignatureVerificationError("Signature header has no timestamp.")
    if not digests:
        raise SignatureVerificationError("Signature header has no v1 signature.")
    return timestamp, digests


class EventVerifier:
    """Authenticate webhook deliveries and decode them into Events.

    Attributes:
        _secret: Shared webhook signing secret.
        _tolerance_seconds: Maximum distance between the signed timestamp and now.
        _skip_verification: Bypass the signature check (development only).
    """

    def __init__(
        self,
        secret: str,
        tolerance_seconds: int = 300,
        skip_verification: bool = False,
    ):
        self._secret = secret
        self._tolerance_seconds = tolerance_seconds
        self._skip_verification = skip_verification
        if skip_verification:
            logger.warning("Webhook signature verification is DISABLED.")

    def verify(
        self,
        raw_body: bytes,
        signature_header: str | None,
        now: datetime | None = None,
    ) -> Event:
        """Check the signature over the exact bytes received, then decode them.

        Args:
            raw_body: The request body, unparsed.
            signature_header: Value of the ``mux-signature`` header.
            now: Current time; defaults to the wall clock.

        Returns:
            The decoded Event.

        Raises:
            SignatureVerificationError: If the signature is missing, malformed,
                stale or does not match.
            MalformedEventError: If the authentic body cannot be decoded.
        """
        if not self._skip_verification:
            self._check_signature(raw_body, signature_header, now or datetime.now(UTC))
        return decode_event(raw_body)

    def _check_signature(
        self, raw_body: bytes, signature_header: str | None, now: datetime
    ) -> None:
        if not self._secret:
            raise SignatureVerificationError("No webhook secret is configured.")
        if not signature_header:
            raise SignatureVerificationError("Missing signature header.")

        timestamp, digests = parse_signature_header(signature_header)

        age = abs(now.timestamp() - timestamp)
        if age > self._tolerance_seconds:
            raise SignatureVerificationError(
                f"Signature timestamp is outside the {self._tolerance_seconds}s tolerance."
            )

        expected = compute_signature(self._secret, timestamp, raw_body)
        if not any(
            hmac.compare_digest(expected.encode(), digest.encode()) for digest in digests
        ):
            raise SignatureVerificationError("Signature does not match.")

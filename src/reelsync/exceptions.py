"""Custom exceptions for the reelsync application.

This module defines all custom exception classes used throughout the
application, organized by functional area and providing structured
error information for better debugging and error handling.
"""


class ReelsyncError(Exception):
    """Base class for application-specific errors."""


class ConfigLoadError(ReelsyncError):
    """Raised when a configuration file fails to load.

    Attributes:
        config_file: Path to the configuration file that failed to load.
    """

    def __init__(
        self,
        message: str,
        config_file: str | None = None,
    ):
        super().__init__(message)
        self.config_file = config_file


# --- Inbound events ---


class VerificationError(ReelsyncError):
    """Base class for inbound events that must be rejected without being applied.

    Attributes:
        event_type: The provider event type, when it could be read.
    """

    def __init__(
        self,
        message: str,
        event_type: str | None = None,
    ):
        super().__init__(message)
        self.event_type = event_type


class SignatureVerificationError(VerificationError):
    """Raised when an event's signature header is missing, malformed, stale or wrong."""


class MalformedEventError(VerificationError):
    """Raised when an authentic event body cannot be decoded into an Event."""


class RoutingError(ReelsyncError):
    """Raised when an authentic event cannot be matched to any asset record.

    Attributes:
        event_type: The provider event type.
        passthrough_id: Correlation token carried by the event.
        provider_asset_id: Provider asset identifier carried by the event.
        provider_upload_id: Provider upload identifier carried by the event.
    """

    def __init__(
        self,
        message: str,
        event_type: str | None = None,
        passthrough_id: str | None = None,
        provider_asset_id: str | None = None,
        provider_upload_id: str | None = None,
    ):
        super().__init__(message)
        self.event_type = event_type
        self.passthrough_id = passthrough_id
        self.provider_asset_id = provider_asset_id
        self.provider_upload_id = provider_upload_id


class TransientIngestError(ReelsyncError):
    """Raised when a valid event could not be applied now and must be redelivered.

    Attributes:
        event_type: The provider event type.
        record_id: The asset record the event was resolved to, if any.
    """

    def __init__(
        self,
        message: str,
        event_type: str | None = None,
        record_id: str | None = None,
    ):
        super().__init__(message)
        self.event_type = event_type
        self.record_id = record_id


# --- Provider API ---


class ProviderError(ReelsyncError):
    """Raised when a call to the transcoding provider fails.

    Attributes:
        provider_asset_id: The provider asset identifier associated with the error.
        status_code: HTTP status code returned by the provider, if any.
    """

    def __init__(
        self,
        message: str,
        provider_asset_id: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.provider_asset_id = provider_asset_id
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """Raised for provider failures worth retrying later (network, timeout, 5xx, 429)."""


# --- Persistence ---


class StoreError(ReelsyncError):
    """Base class for errors originating from the asset store.

    Attributes:
        record_id: The asset record identifier associated with the error.
    """

    def __init__(
        self,
        message: str,
        record_id: str | None = None,
    ):
        super().__init__(message)
        self.record_id = record_id


class DatabaseOperationError(StoreError):
    """Raised when a database operation fails."""


class NotFoundError(StoreError):
    """Raised when a row expected to exist is missing."""


class AssetNotFoundError(NotFoundError):
    """Raised when a specific asset record is not found when expected."""


class ConflictError(StoreError):
    """Raised when a compare-and-swap write loses against a concurrent writer.

    Attributes:
        expected_version: The version the writer based its change on.
    """

    def __init__(
        self,
        message: str,
        record_id: str | None = None,
        expected_version: int | None = None,
    ):
        super().__init__(message, record_id=record_id)
        self.expected_version = expected_version


# --- Reconciliation ---


class PlaybackIdError(ReelsyncError):
    """Raised when a public playback identifier cannot be ensured for a record.

    Attributes:
        record_id: The asset record identifier.
        provider_asset_id: The provider asset identifier.
    """

    def __init__(
        self,
        message: str,
        record_id: str | None = None,
        provider_asset_id: str | None = None,
    ):
        super().__init__(message)
        self.record_id = record_id
        self.provider_asset_id = provider_asset_id


class RepairError(ReelsyncError):
    """Raised when re-keying a miskeyed asset record fails.

    Attributes:
        record_id: The current (wrong) record identifier.
        provider_asset_id: The canonical identifier the record should use.
    """

    def __init__(
        self,
        message: str,
        record_id: str | None = None,
        provider_asset_id: str | None = None,
    ):
        super().__init__(message)
        self.record_id = record_id
        self.provider_asset_id = provider_asset_id

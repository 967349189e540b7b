"""Asset table mapped with SQLModel."""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Column, Enum, Index, Integer, text
from sqlmodel import Field, SQLModel

from .asset_status import AssetStatus
from .timezone_aware_datetime import SQLITE_DATETIME_NOW, TimezoneAwareDatetime

PLACEHOLDER_PREFIX = "placeholder-"
LEGACY_PLACEHOLDER_MARKER = "sample-playback-id"


def is_placeholder_playback_id(playback_id: str | None) -> bool:
    """Return whether a playback id is a sentinel written before the real one was known.

    Both the canonical ``placeholder-`` prefix and the legacy
    ``sample-playback-id`` marker count. Absent ids are not placeholders.
    """
    if not playback_id:
        return False
    return (
        playback_id.startswith(PLACEHOLDER_PREFIX)
        or LEGACY_PLACEHOLDER_MARKER in playback_id
    )


def make_placeholder_playback_id(record_id: str) -> str:
    """Build the canonical placeholder for a record that has no playback id yet."""
    return f"{PLACEHOLDER_PREFIX}{record_id}"


class AssetRecord(SQLModel, table=True):
    """Represent the local record of one uploaded video.

    Attributes:
        id: Record identifier. Should equal ``provider_asset_id`` once known.
        title: Display title, never changed by reconciliation.
        description: Optional description, never changed by reconciliation.
        status: Current lifecycle status.
        provider_upload_id: Provider direct-upload identifier.
        provider_asset_id: Provider asset identifier.
        playback_id: Public playback identifier, possibly a placeholder.
        duration: Duration in seconds reported by the provider.
        aspect_ratio: Aspect ratio reported by the provider (e.g. ``16:9``).
        version: Compare-and-swap token, incremented on every write.
        created_at: When the record was created (UTC).
        updated_at: When the record was last changed (UTC).

        Owner Data (carried verbatim through every transition and re-key):
            thumbnail_time: Thumbnail offset in seconds.
            user_id: Identifier of the owning user.
            publicly_listed: Whether the video is listed publicly.
            views: View counter.
    """

    __tablename__ = "asset"  # pyright: ignore[reportAssignmentType]

    id: str = Field(primary_key=True)
    title: str
    description: str | None = None

    status: AssetStatus = Field(sa_column=Column(Enum(AssetStatus), nullable=False))

    # Provider identifiers. Not unique in the schema: re-keying creates the
    # canonical row before deleting the old one.
    provider_upload_id: str | None = Field(default=None, index=True)
    provider_asset_id: str | None = Field(default=None, index=True)
    playback_id: str | None = None

    duration: float | None = None
    aspect_ratio: str | None = None

    # Owner data
    thumbnail_time: float | None = None
    user_id: str | None = None
    publicly_listed: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default=text("1")),
    )
    views: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default="0")
    )

    version: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default="0")
    )
    created_at: datetime | None = Field(
        default=None,
        sa_column=Column(
            TimezoneAwareDatetime,
            nullable=False,
            server_default=text(SQLITE_DATETIME_NOW),
        ),
    )
    updated_at: datetime | None = Field(
        default=None,
        sa_column=Column(
            TimezoneAwareDatetime,
            nullable=False,
            server_default=text(SQLITE_DATETIME_NOW),
        ),
    )

    __table_args__ = (Index("idx_asset_status_updated", "status", "updated_at"),)

    # --- Class Helpers -----------------------------------------------------

    @property
    def has_confirmed_playback_id(self) -> bool:
        """Whether the record holds a real (non-placeholder) playback id."""
        return bool(self.playback_id) and not is_placeholder_playback_id(
            self.playback_id
        )

    @property
    def is_miskeyed(self) -> bool:
        """Whether the record is keyed by something other than its provider asset id."""
        return self.provider_asset_id is not None and self.id != self.provider_asset_id

    def clone(self, **updates: Any) -> "AssetRecord":
        """Return a detached copy with ``updates`` applied, leaving this record untouched.

        Args:
            **updates: Field values to override in the copy.

        Returns:
            A new AssetRecord.
        """
        return AssetRecord(**{**self.model_dump(), **updates})

    def model_dump_for_insert(self) -> dict[str, Any]:
        """Use in place of Pydantic's model_dump() for insert operations.

        Timestamps left as None are dropped so the database defaults apply.

        Returns:
            A dictionary of column values for an INSERT.
        """
        dump = self.model_dump()
        for key in ("created_at", "updated_at"):
            if dump.get(key) is None:
                dump.pop(key, None)
        return dump

    def content_equals(self, other: "AssetRecord") -> bool:
        """Compare records ignoring the bookkeeping fields ``updated_at`` and ``version``.

        Args:
            other: The other AssetRecord to compare against.

        Returns:
            True if every other field is equal.
        """
        exclude_fields = {"updated_at", "version"}
        return self.model_dump(exclude=exclude_fields) == other.model_dump(
            exclude=exclude_fields
        )

"""create asset table.

Revision ID: 3b8e1f0c6a27
Revises:
Create Date: 2026-10-19 09:12:44.518203
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b8e1f0c6a27"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "asset",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "UPLOADING",
                "PROCESSING",
                "READY",
                "ERROR",
                "CANCELLED",
                "NEEDS_UPLOAD",
                name="assetstatus",
            ),
            nullable=False,
        ),
        sa.Column("provider_upload_id", sa.String(), nullable=True),
        sa.Column("provider_asset_id", sa.String(), nullable=True),
        sa.Column("playback_id", sa.String(), nullable=True),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column("aspect_ratio", sa.String(), nullable=True),
        sa.Column("thumbnail_time", sa.Float(), nullable=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column(
            "publicly_listed", sa.Boolean(), server_default=sa.text("1"), nullable=False
        ),
        sa.Column("views", sa.Integer(), server_default="0", nullable=False),
        sa.Column("version", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(),
            server_default=sa.text("(datetime('now'))"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            server_default=sa.text("(datetime('now'))"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_asset_provider_upload_id", "asset", ["provider_upload_id"], unique=False
    )
    op.create_index(
        "ix_asset_provider_asset_id", "asset", ["provider_asset_id"], unique=False
    )
    op.create_index(
        "idx_asset_status_updated", "asset", ["status", "updated_at"], unique=False
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_asset_status_updated", table_name="asset")
    op.drop_index("ix_asset_provider_asset_id", table_name="asset")
    op.drop_index("ix_asset_provider_upload_id", table_name="asset")
    op.drop_table("asset")

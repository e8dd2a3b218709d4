"""Initial schema - API keys, monitors and change log.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # API keys table
    op.create_table(
        "api_keys",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("key_hash", sa.String(128), nullable=False),
        sa.Column("prefix", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"])

    # Monitors table
    op.create_table(
        "serp_monitors",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("query", sa.String(500), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("engines", sa.Text(), nullable=False),
        sa.Column("change_types", sa.Text(), nullable=False),
        sa.Column(
            "alert_threshold", sa.String(16), nullable=False, server_default="immediate"
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("last_snapshots", sa.Text(), nullable=True),
        sa.Column("last_checked", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_serp_monitors_user_id", "serp_monitors", ["user_id"])
    op.create_index(
        "ix_serp_monitors_user_active", "serp_monitors", ["user_id", "is_active"]
    )

    # Change log table
    op.create_table(
        "serp_change_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "monitor_id",
            sa.String(36),
            sa.ForeignKey("serp_monitors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("engine", sa.String(16), nullable=True),
        sa.Column("change_type", sa.String(32), nullable=False),
        sa.Column("severity", sa.String(16), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("impact", sa.Text(), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_serp_change_logs_monitor_detected",
        "serp_change_logs",
        ["monitor_id", "detected_at"],
    )


def downgrade() -> None:
    op.drop_table("serp_change_logs")
    op.drop_table("serp_monitors")
    op.drop_table("api_keys")

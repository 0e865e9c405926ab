"""create notification tables

Revision ID: 3c1f9a7d2e40
Revises:
Create Date: 2026-01-05 09:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3c1f9a7d2e40"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False, comment="UUID v7 primary key (time-sortable)"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
            comment="Timestamp of record creation",
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
            comment="Timestamp of last update",
        ),
    ]


def upgrade() -> None:
    """Upgrade database schema - add notifications and per-user settings."""
    op.create_table(
        "notifications",
        sa.Column("user_id", sa.String(length=255), nullable=False, comment="Recipient user id (owned by the user service)"),
        sa.Column("type", sa.String(length=50), nullable=False, comment="NotificationType value"),
        sa.Column("channel", sa.String(length=50), nullable=False, comment="Provider channel key: EMAIL, PUSH, SMS, ..."),
        sa.Column("title", sa.String(length=500), nullable=False, comment="Resolved title / subject"),
        sa.Column("content", sa.Text(), nullable=False, comment="Resolved message body"),
        sa.Column("recipient_address", sa.String(length=500), nullable=True, comment="Email address, device token or phone number"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING", comment="PENDING, SENT, DELIVERED, READ, FAILED, CANCELLED"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0", comment="Failed attempts so far"),
        sa.Column("error_category", sa.String(length=50), nullable=True, comment="Why the last attempt failed or the record was cancelled"),
        sa.Column("error_message", sa.Text(), nullable=True, comment="Detail for the last failure"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True, comment="Transport accepted the message"),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True, comment="Delivery receipt received"),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True, comment="Recipient read the message"),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True, comment="Record was cancelled"),
        sa.Column("event_id", sa.String(length=255), nullable=True, comment="Id of the inbound event that produced this record"),
        sa.Column("idempotency_key", sa.String(length=320), nullable=True, comment="event_id:channel, used to drop duplicate deliveries"),
        sa.Column("service_origin", sa.String(length=100), nullable=False, server_default="system", comment="Service that published the event"),
        sa.Column(
            "extra_metadata",
            postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite"),
            nullable=True,
            comment="Opaque event metadata carried along for support",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_notifications")),
    )
    op.create_index("idx_notifications_user_status", "notifications", ["user_id", "status"])
    op.create_index("idx_notifications_status_retry", "notifications", ["status", "retry_count"])
    op.create_index("idx_notifications_status_created", "notifications", ["status", "created_at"])
    op.create_index("idx_notifications_status_updated", "notifications", ["status", "updated_at"])
    op.create_index("idx_notifications_idempotency_key", "notifications", ["idempotency_key"])

    op.create_table(
        "user_notification_settings",
        sa.Column("user_id", sa.String(length=255), nullable=False, comment="User these preferences belong to"),
        sa.Column("email", sa.String(length=320), nullable=True, comment="Fallback address for EMAIL"),
        sa.Column("phone_number", sa.String(length=32), nullable=True, comment="Fallback address for SMS"),
        sa.Column("device_token", sa.String(length=500), nullable=True, comment="Fallback address for PUSH"),
        sa.Column(
            "channels",
            postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite"),
            nullable=False,
            comment="Channel key -> enabled",
        ),
        sa.Column(
            "types",
            postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite"),
            nullable=False,
            comment="NotificationType -> enabled",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_user_notification_settings")),
        sa.UniqueConstraint("user_id", name=op.f("uq_user_notification_settings_user_id")),
    )


def downgrade() -> None:
    """Downgrade database schema - drop notification tables."""
    op.drop_table("user_notification_settings")
    op.drop_index("idx_notifications_idempotency_key", table_name="notifications")
    op.drop_index("idx_notifications_status_updated", table_name="notifications")
    op.drop_index("idx_notifications_status_created", table_name="notifications")
    op.drop_index("idx_notifications_status_retry", table_name="notifications")
    op.drop_index("idx_notifications_user_status", table_name="notifications")
    op.drop_table("notifications")

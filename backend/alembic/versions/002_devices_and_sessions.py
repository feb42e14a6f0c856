"""Add devices and device_sessions.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

devices.fingerprint carries a unique index: concurrent first registrations of the
same device resolve on it. device_sessions.device_id has no ON DELETE CASCADE;
sessions are terminated and removed explicitly before a device is hard-deleted.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

device_type = sa.Enum(
    "CUSTOMER_KIOSK",
    "KITCHEN_DISPLAY",
    "PAYMENT_TERMINAL",
    "MANAGER_STATION",
    "MOBILE_POS",
    "TABLET_POS",
    name="devicetype",
)
device_status = sa.Enum(
    "ACTIVE",
    "INACTIVE",
    "MAINTENANCE",
    "PENDING_APPROVAL",
    "BLOCKED",
    name="devicestatus",
)
session_status = sa.Enum("ACTIVE", "IDLE", "EXPIRED", "TERMINATED", name="sessionstatus")


def upgrade() -> None:
    op.create_table(
        "devices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1024), nullable=True),
        sa.Column("device_type", device_type, nullable=False),
        sa.Column("fingerprint", sa.String(128), nullable=False),
        sa.Column("capabilities", JSON, nullable=False),
        sa.Column("status", device_status, nullable=False, server_default="PENDING_APPROVAL"),
        sa.Column("location_id", sa.String(64), nullable=True),
        sa.Column("station_id", sa.String(64), nullable=True),
        sa.Column("assigned_user_id", sa.String(64), nullable=True),
        sa.Column("allowed_interfaces", JSON, nullable=False),
        sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("max_session_minutes", sa.Integer(), nullable=True),
        sa.Column("allowed_time_windows", JSON, nullable=True),
        sa.Column("ip_whitelist", JSON, nullable=True),
        sa.Column("location_restricted", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("user_agent", sa.String(1024), nullable=True),
        sa.Column("last_ip_address", sa.String(45), nullable=True),
        sa.Column("registered_by", sa.String(64), nullable=False, server_default="system"),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_devices_fingerprint", "devices", ["fingerprint"], unique=True)
    op.create_index("ix_devices_device_type", "devices", ["device_type"])
    op.create_index("ix_devices_status", "devices", ["status"])
    op.create_index("ix_devices_location_id", "devices", ["location_id"])
    op.create_index("ix_devices_assigned_user_id", "devices", ["assigned_user_id"])

    op.create_table(
        "device_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("device_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("location_id", sa.String(64), nullable=False),
        sa.Column("interface_type", sa.String(50), nullable=False),
        sa.Column("station_id", sa.String(64), nullable=True),
        sa.Column("session_token_hash", sa.String(64), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(1024), nullable=True),
        sa.Column("status", session_status, nullable=False, server_default="ACTIVE"),
        sa.Column("permissions", JSON, nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("terminated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("terminated_reason", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["device_id"], ["devices.id"]),
    )
    op.create_index("ix_device_sessions_device_id", "device_sessions", ["device_id"])
    op.create_index("ix_device_sessions_user_id", "device_sessions", ["user_id"])
    op.create_index("ix_device_sessions_location_id", "device_sessions", ["location_id"])
    op.create_index("ix_device_sessions_status", "device_sessions", ["status"])
    op.create_index(
        "ix_device_sessions_session_token_hash", "device_sessions", ["session_token_hash"], unique=True
    )


def downgrade() -> None:
    op.drop_table("device_sessions")
    op.drop_table("devices")
    op.execute("DROP TYPE IF EXISTS sessionstatus")
    op.execute("DROP TYPE IF EXISTS devicestatus")
    op.execute("DROP TYPE IF EXISTS devicetype")

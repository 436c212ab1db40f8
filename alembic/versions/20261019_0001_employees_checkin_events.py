"""initial: employees, checkin_events

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROLES = ("admin", "security", "vigia", "porteiro", "zelador", "rh", "supervisor", "sdf")


def upgrade() -> None:
    # --- employees ---
    op.create_table(
        "employees",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum(*ROLES, name="employee_role"),
            nullable=False,
            server_default="security",
        ),
        sa.Column(
            "status",
            sa.Enum("active", "blocked", name="employee_status"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("block_reason", sa.String(500), nullable=True),
        sa.Column("blocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("blocked_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["blocked_by"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["employees.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    # --- checkin_events ---
    op.create_table(
        "checkin_events",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "payload",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_checkin_events_user_id", "checkin_events", ["user_id"])
    op.create_index(
        "ix_checkin_events_user_time",
        "checkin_events",
        ["user_id", "recorded_at"],
    )
    op.create_index("ix_checkin_events_recorded_at", "checkin_events", ["recorded_at"])


def downgrade() -> None:
    op.drop_index("ix_checkin_events_recorded_at", table_name="checkin_events")
    op.drop_index("ix_checkin_events_user_time", table_name="checkin_events")
    op.drop_index("ix_checkin_events_user_id", table_name="checkin_events")
    op.drop_table("checkin_events")
    op.drop_table("employees")
    op.execute("DROP TYPE IF EXISTS employee_status")
    op.execute("DROP TYPE IF EXISTS employee_role")

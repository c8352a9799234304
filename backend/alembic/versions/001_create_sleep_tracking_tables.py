"""Create bedrooms and sleep_sessions tables

Revision ID: 001
Revises: None
Create Date: 2024-06-01 00:00:00.000000+00:00

What:  Initial schema: bedroom profiles and the sleep sessions that use them.
How:   PostgreSQL types (UUID, TIMESTAMPTZ, JSONB); models in
       dreamweaver/models/ declare portable equivalents.

Rollback: downgrade() drops both tables (all sleep history is lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "bedrooms",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "owner_id",
            sa.String(64),
            nullable=False,
            comment="User ID of the owner (from the identity provider)",
        ),
        sa.Column("bedroom_name", sa.String(50), nullable=False),
        sa.Column("bed_type", sa.String(20), nullable=False, server_default=sa.text("'bed'")),
        sa.Column(
            "mattress_type", sa.String(20), nullable=False, server_default=sa.text("'memory foam'")
        ),
        sa.Column("bed_size", sa.String(20), nullable=False, server_default=sa.text("'queen'")),
        sa.Column("temperature", sa.Integer(), nullable=False, server_default=sa.text("68")),
        sa.Column("light_level", sa.String(20), nullable=False, server_default=sa.text("'dim'")),
        sa.Column("noise_level", sa.String(20), nullable=False, server_default=sa.text("'quiet'")),
        sa.Column("pillows", sa.String(20), nullable=False, server_default=sa.text("'two'")),
        sa.Column("favorite", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notes", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_bedrooms_owner_id", "bedrooms", ["owner_id"])

    op.create_table(
        "sleep_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("bedroom_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("cuddle_buddy", sa.String(20), nullable=False, server_default=sa.text("'none'")),
        sa.Column("sleepy_thoughts", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column(
            "wake_ups",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Append-only list of wake-up events; the last one decides whether the session is active",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "version",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("1"),
            comment="Optimistic-lock counter (SQLAlchemy version_id_col)",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["bedroom_id"], ["bedrooms.id"], ondelete="RESTRICT"),
    )
    op.create_index(
        "idx_sleep_sessions_user_created",
        "sleep_sessions",
        ["user_id", sa.text("created_at DESC")],
    )
    op.create_index("idx_sleep_sessions_bedroom_id", "sleep_sessions", ["bedroom_id"])


def downgrade() -> None:
    op.drop_index("idx_sleep_sessions_bedroom_id", table_name="sleep_sessions")
    op.drop_index("idx_sleep_sessions_user_created", table_name="sleep_sessions")
    op.drop_table("sleep_sessions")
    op.drop_index("idx_bedrooms_owner_id", table_name="bedrooms")
    op.drop_table("bedrooms")

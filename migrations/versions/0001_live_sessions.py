"""Initial schema for Party Live: live_sessions, posts, events, event_logs.

Revision ID: 0001_live_sessions
Revises: 
Create Date: 2026-10-19 10:00:00
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql as psql

# revision identifiers, used by Alembic.
revision = "0001_live_sessions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ---------------------------------------------
    # live_sessions
    # ---------------------------------------------
    op.create_table(
        "live_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("host_name", sa.String(length=128), nullable=False),
        sa.Column("participants", psql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("start_time", sa.DateTime(timezone=False), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=False), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'scheduled'")),
        sa.Column("viewer_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("meeting_link", sa.String(length=500), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('scheduled','live','ended')", name="ck_live_sessions_status"),
        sa.CheckConstraint("viewer_count >= 0", name="ck_live_sessions_viewer_count"),
        sa.CheckConstraint(
            "(status = 'ended') = (end_time IS NOT NULL)",
            name="ck_live_sessions_end_time_iff_ended",
        ),
    )
    op.create_index(
        "ix_live_sessions_status_start_time", "live_sessions", ["status", "start_time"], unique=False
    )

    # ---------------------------------------------
    # posts (solo annunci delle dirette)
    # ---------------------------------------------
    op.create_table(
        "posts",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.text("now()")),
    )

    # ---------------------------------------------
    # events (log operativo delle transizioni)
    # ---------------------------------------------
    op.create_table(
        "events",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("session_id", sa.Uuid(), nullable=True),
        sa.Column("payload", psql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_events_type_created_at", "events", ["type", "created_at"], unique=False)
    op.create_index("ix_events_session_id_created_at", "events", ["session_id", "created_at"], unique=False)

    # ---------------------------------------------
    # event_logs (Event Bus verso webhook admin)
    # ---------------------------------------------
    op.create_table(
        "event_logs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("payload", psql.JSONB(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'queued'")),
        sa.Column("retries", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_event_logs_event_type", "event_logs", ["event_type"], unique=False)
    op.create_index("ix_event_logs_status", "event_logs", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_event_logs_status", table_name="event_logs")
    op.drop_index("ix_event_logs_event_type", table_name="event_logs")
    op.drop_table("event_logs")

    op.drop_index("ix_events_session_id_created_at", table_name="events")
    op.drop_index("ix_events_type_created_at", table_name="events")
    op.drop_table("events")

    op.drop_table("posts")

    op.drop_index("ix_live_sessions_status_start_time", table_name="live_sessions")
    op.drop_table("live_sessions")

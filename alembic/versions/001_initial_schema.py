"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUMS = {
    "deliverymode": ("auto", "custom"),
    "deliverychannel": ("whatsapp", "email"),
    "outboxstatus": ("queued", "sent", "failed", "cancelled"),
    "wordsource": ("database", "generated", "fallback"),
}


def upgrade() -> None:
    # Postgres has no IF NOT EXISTS for CREATE TYPE
    for name, values in ENUMS.items():
        labels = ", ".join(f"'{v}'" for v in values)
        op.execute(f"""
            DO $$ BEGIN
                CREATE TYPE {name} AS ENUM ({labels});
            EXCEPTION WHEN duplicate_object THEN NULL;
            END $$;
        """)

    delivery_mode = postgresql.ENUM(*ENUMS["deliverymode"], name="deliverymode", create_type=False)
    channel = postgresql.ENUM(*ENUMS["deliverychannel"], name="deliverychannel", create_type=False)
    outbox_status = postgresql.ENUM(*ENUMS["outboxstatus"], name="outboxstatus", create_type=False)
    word_source = postgresql.ENUM(*ENUMS["wordsource"], name="wordsource", create_type=False)

    # Subscribers
    op.create_table(
        "subscribers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone_number", sa.String(20), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("is_pro", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("subcategory", sa.String(50), nullable=True),
        sa.Column("preferred_channel", channel, nullable=False, server_default="whatsapp"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_subscribers_email", "subscribers", ["email"])
    op.create_index("ix_subscribers_phone_number", "subscribers", ["phone_number"])

    op.create_table(
        "delivery_settings",
        sa.Column("subscriber_id", sa.Uuid(), nullable=False),
        sa.Column("mode", delivery_mode, nullable=False, server_default="auto"),
        sa.Column("words_per_day", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("timezone", sa.String(50), nullable=False, server_default="Asia/Kolkata"),
        sa.Column("auto_window_start", sa.String(5), nullable=False, server_default="09:00"),
        sa.Column("auto_window_end", sa.String(5), nullable=False, server_default="21:00"),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["subscriber_id"], ["subscribers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("subscriber_id"),
    )

    op.create_table(
        "custom_delivery_times",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscriber_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("time", sa.String(5), nullable=False),
        sa.ForeignKeyConstraint(["subscriber_id"], ["subscribers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subscriber_id", "position", name="uq_custom_time_position"),
        sa.UniqueConstraint("subscriber_id", "time", name="uq_custom_time_value"),
    )
    op.create_index(
        "ix_custom_delivery_times_subscriber_id", "custom_delivery_times", ["subscriber_id"]
    )

    # Vocabulary
    op.create_table(
        "vocabulary_words",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("word", sa.String(100), nullable=False),
        sa.Column("definition", sa.Text(), nullable=False),
        sa.Column("example", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("subcategory", sa.String(50), nullable=True),
        sa.Column("part_of_speech", sa.String(30), nullable=True),
        sa.Column("pronunciation", sa.String(100), nullable=True),
        sa.Column("memory_hook", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("word", "category", name="uq_vocabulary_word_category"),
    )
    op.create_index("ix_vocabulary_words_category", "vocabulary_words", ["category"])

    op.create_table(
        "word_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscriber_id", sa.Uuid(), nullable=False),
        sa.Column("word_ref", sa.String(120), nullable=False),
        sa.Column("word", sa.String(100), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("subcategory", sa.String(50), nullable=True),
        sa.Column("source", word_source, nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["subscriber_id"], ["subscribers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_word_history_subscriber_category", "word_history", ["subscriber_id", "category"]
    )

    # Outbox
    op.create_table(
        "outbox_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscriber_id", sa.Uuid(), nullable=False),
        sa.Column("channel", channel, nullable=False),
        sa.Column("word_ref", sa.String(120), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("slot_time", sa.String(5), nullable=False),
        sa.Column("send_at", sa.DateTime(), nullable=False),
        sa.Column("status", outbox_status, nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("provider_message_id", sa.String(128), nullable=True),
        sa.Column("error_reason", sa.String(50), nullable=True),
        sa.Column("error_detail", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["subscriber_id"], ["subscribers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    # At most one pending job per subscriber instant
    op.create_index(
        "uq_outbox_pending_slot",
        "outbox_jobs",
        ["subscriber_id", "send_at"],
        unique=True,
        postgresql_where=sa.text("status = 'queued'"),
    )
    op.create_index("ix_outbox_status_send_at", "outbox_jobs", ["status", "send_at"])
    op.create_index("ix_outbox_subscriber_slot_date", "outbox_jobs", ["subscriber_id", "slot_date"])
    op.create_index("ix_outbox_jobs_provider_message_id", "outbox_jobs", ["provider_message_id"])

    op.create_table(
        "delivery_status_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("outbox_job_id", sa.Uuid(), nullable=True),
        sa.Column("provider_message_id", sa.String(128), nullable=True),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("recipient", sa.String(255), nullable=True),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("raw", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["outbox_job_id"], ["outbox_jobs.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_delivery_status_records_outbox_job_id", "delivery_status_records", ["outbox_job_id"]
    )
    op.create_index(
        "ix_delivery_status_records_provider_message_id",
        "delivery_status_records",
        ["provider_message_id"],
    )
    op.create_index("ix_delivery_status_records_status", "delivery_status_records", ["status"])

    # Scheduler history
    op.create_table(
        "job_runs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("job_id", sa.String(100), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=False),
        sa.Column("outcome", sa.String(32), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_job_runs_job_id", "job_runs", ["job_id"])


def downgrade() -> None:
    op.drop_index("ix_job_runs_job_id", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_table("delivery_status_records")
    op.drop_index("uq_outbox_pending_slot", table_name="outbox_jobs")
    op.drop_table("outbox_jobs")
    op.drop_table("word_history")
    op.drop_table("vocabulary_words")
    op.drop_table("custom_delivery_times")
    op.drop_table("delivery_settings")
    op.drop_table("subscribers")

    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")

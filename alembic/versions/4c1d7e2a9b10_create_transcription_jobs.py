"""create transcription_jobs

Revision ID: 4c1d7e2a9b10
Revises:
Create Date: 2026-10-19 10:12:31.402117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "4c1d7e2a9b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

transcription_status = postgresql.ENUM(
    "enqueued",
    "processing",
    "succeeded",
    "failed",
    name="transcription_status",
    create_type=False,
)


def upgrade() -> None:
    transcription_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "transcription_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("submitter_id", sa.Uuid(), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=False),

        sa.Column("status", transcription_status, nullable=False, server_default="enqueued"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),

        sa.Column("worker_id", sa.String(length=128), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),

        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("transcript", sa.Text(), nullable=True),
        sa.Column("transcript_format", sa.String(length=32), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),

        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),

        sa.CheckConstraint("priority >= 1", name="ck_transcription_jobs_priority_positive"),
        sa.CheckConstraint("attempts >= 0", name="ck_transcription_jobs_attempts_non_negative"),
        sa.CheckConstraint("max_attempts >= 1", name="ck_transcription_jobs_max_attempts_positive"),
    )

    op.create_index("ix_transcription_jobs_submitter_id", "transcription_jobs", ["submitter_id"])
    op.create_index(
        "ix_transcription_jobs_claim",
        "transcription_jobs",
        ["status", sa.text("priority DESC"), sa.text("created_at ASC")],
    )


def downgrade() -> None:
    op.drop_index("ix_transcription_jobs_claim", table_name="transcription_jobs")
    op.drop_index("ix_transcription_jobs_submitter_id", table_name="transcription_jobs")
    op.drop_table("transcription_jobs")
    transcription_status.drop(op.get_bind(), checkfirst=True)

"""create job_runs, job_locks and content_items tables

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        "job_runs",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("job_name", sa.String(length=120), nullable=False),
        sa.Column("outcome", sa.String(length=16), nullable=False, comment="pending, success, failure"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("items_processed", sa.Integer(), nullable=False),
        sa.Column("items_failed", sa.Integer(), nullable=False),
        sa.Column("metadata", _JSON, nullable=True, comment="Free-form job statistics"),
        sa.Column("error_summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_job_runs_job_name_started_at",
        "job_runs",
        ["job_name", "started_at"],
        unique=False,
    )
    op.create_index(
        "ix_job_runs_job_name_outcome",
        "job_runs",
        ["job_name", "outcome"],
        unique=False,
    )

    op.create_table(
        "job_locks",
        sa.Column("key", sa.String(length=120), nullable=False),
        sa.Column("holder_token", sa.String(length=64), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_index("ix_job_locks_expires_at", "job_locks", ["expires_at"], unique=False)

    op.create_table(
        "content_items",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("source_id", sa.String(length=64), nullable=False),
        sa.Column(
            "external_id",
            sa.String(length=255),
            nullable=False,
            comment="Identifier assigned by the upstream source",
        ),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "signal",
            sa.Float(),
            nullable=True,
            comment="Optional source-provided signal strength in [0, 100]",
        ),
        sa.Column("payload", _JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_content_items_source_id_seen_at",
        "content_items",
        ["source_id", "seen_at"],
        unique=False,
    )
    op.create_index(
        "ix_content_items_source_id_external_id",
        "content_items",
        ["source_id", "external_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_content_items_source_id_external_id", table_name="content_items")
    op.drop_index("ix_content_items_source_id_seen_at", table_name="content_items")
    op.drop_table("content_items")
    op.drop_index("ix_job_locks_expires_at", table_name="job_locks")
    op.drop_table("job_locks")
    op.drop_index("ix_job_runs_job_name_outcome", table_name="job_runs")
    op.drop_index("ix_job_runs_job_name_started_at", table_name="job_runs")
    op.drop_table("job_runs")

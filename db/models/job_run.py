"""
db/models/job_run.py

Job run ledger model. One row per job execution; the most recent
successful row per job name is the basis for freshness computation.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONDocument, TimestampMixin


class JobRunOutcome:
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"

    TERMINAL = frozenset({SUCCESS, FAILURE})


class JobRun(Base, TimestampMixin):
    __tablename__ = "job_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    job_name: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
    )
    outcome: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=JobRunOutcome.PENDING,
        comment="pending, success, failure",
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    duration_ms: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    items_processed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    items_failed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    run_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONDocument,
        nullable=True,
        comment="Free-form job statistics",
    )
    error_summary: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        Index("ix_job_runs_job_name_started_at", "job_name", "started_at"),
        Index("ix_job_runs_job_name_outcome", "job_name", "outcome"),
    )

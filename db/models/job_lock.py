"""
db/models/job_lock.py

Lease-based lock rows. The primary key on ``key`` is what makes
acquisition a single conditional write.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class JobLock(Base):
    __tablename__ = "job_locks"

    key: Mapped[str] = mapped_column(
        String(120),
        primary_key=True,
    )
    holder_token: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    __table_args__ = (Index("ix_job_locks_expires_at", "expires_at"),)

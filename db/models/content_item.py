"""
db/models/content_item.py

Ingested content items, written by the per-source ingestion jobs and read
back for quality scoring before a digest goes out.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONDocument, TimestampMixin


class ContentItemRecord(Base, TimestampMixin):
    __tablename__ = "content_items"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    source_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    external_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Identifier assigned by the upstream source",
    )
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    signal: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
        comment="Optional source-provided signal strength in [0, 100]",
    )
    payload: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument,
        nullable=True,
    )

    __table_args__ = (
        Index("ix_content_items_source_id_seen_at", "source_id", "seen_at"),
        Index("ix_content_items_source_id_external_id", "source_id", "external_id"),
    )

"""
Repository for reading ingested content items back for quality scoring.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.content_item import ContentItemRecord


class ContentItemRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_seen_since(
        self,
        *,
        source_ids: Sequence[str],
        since: datetime,
        limit_per_source: int = 500,
    ) -> dict[str, list[ContentItemRecord]]:
        """
        Return the newest items seen at or after ``since``, grouped by source, oldest first.
        """

        grouped: dict[str, list[ContentItemRecord]] = {source_id: [] for source_id in source_ids}
        if not source_ids:
            return grouped

        stmt = (
            select(ContentItemRecord)
            .where(
                ContentItemRecord.source_id.in_(list(source_ids)),
                ContentItemRecord.seen_at >= since,
            )
            .order_by(ContentItemRecord.seen_at.desc())
        )
        for record in self._session.scalars(stmt):
            bucket = grouped.setdefault(record.source_id, [])
            if len(bucket) < limit_per_source:
                bucket.append(record)
        for bucket in grouped.values():
            bucket.reverse()
        return grouped

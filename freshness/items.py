"""
freshness/items.py

Providers of recently ingested content for quality scoring.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import timedelta
from typing import Protocol

from sqlalchemy.orm import Session, sessionmaker

from db.base import as_utc
from db.models.content_item import ContentItemRecord
from db.repositories.content_item_repository import ContentItemRepository
from freshness.clock import Clock, utc_now
from freshness.types import ContentItem, Source


class ItemProvider(Protocol):
    def items_for(self, sources: Sequence[Source]) -> dict[str, list[ContentItem]]:
        ...


class RepositoryItemProvider:
    """
    Reads items seen within the quality window from ``content_items``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        window_hours: float = 48.0,
        limit_per_source: int = 500,
        clock: Clock = utc_now,
    ) -> None:
        if window_hours <= 0:
            raise ValueError("window_hours must be positive.")
        self._session_factory = session_factory
        self._window = timedelta(hours=window_hours)
        self._limit_per_source = limit_per_source
        self._clock = clock

    def items_for(self, sources: Sequence[Source]) -> dict[str, list[ContentItem]]:
        since = self._clock() - self._window
        with self._session_factory() as db:
            grouped = ContentItemRepository(db).list_seen_since(
                source_ids=[source.id for source in sources],
                since=since,
                limit_per_source=self._limit_per_source,
            )
            return {
                source_id: [_to_item(record) for record in records]
                for source_id, records in grouped.items()
            }


class StaticItemProvider:
    """
    In-memory provider for dry runs and tests.
    """

    def __init__(self, items: Mapping[str, Iterable[ContentItem]] | None = None) -> None:
        self._items = {source_id: list(batch) for source_id, batch in (items or {}).items()}

    def put(self, source_id: str, items: Iterable[ContentItem]) -> None:
        self._items[source_id] = list(items)

    def items_for(self, sources: Sequence[Source]) -> dict[str, list[ContentItem]]:
        return {source.id: list(self._items.get(source.id, [])) for source in sources}


def _to_item(record: ContentItemRecord) -> ContentItem:
    return ContentItem(
        source_id=record.source_id,
        external_id=record.external_id,
        title=record.title,
        body=record.body,
        url=record.url,
        published_at=as_utc(record.published_at),
        seen_at=as_utc(record.seen_at),
        signal=record.signal,
        payload=dict(record.payload or {}),
    )

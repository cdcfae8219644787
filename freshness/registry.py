"""
freshness/registry.py

Read-only catalog of data sources.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from freshness.errors import UnknownSourceError
from freshness.types import Source


class SourceRegistry:
    """
    Immutable lookup over the configured sources, in catalog order.
    """

    def __init__(self, sources: Iterable[Source]) -> None:
        ordered: dict[str, Source] = {}
        for source in sources:
            if source.id in ordered:
                raise ValueError(f"Duplicate source id in catalog: {source.id}")
            ordered[source.id] = source
        self._sources = ordered

    def list(self) -> list[Source]:
        return list(self._sources.values())

    def get(self, source_id: str) -> Source:
        try:
            return self._sources[source_id]
        except KeyError:
            raise UnknownSourceError(source_id) from None

    def select(self, source_ids: Sequence[str] | None = None) -> list[Source]:
        """
        Resolve ids to sources; ``None`` or an empty sequence means every source.
        """

        if not source_ids:
            return self.list()
        return [self.get(source_id) for source_id in dict.fromkeys(source_ids)]

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    def __len__(self) -> int:
        return len(self._sources)

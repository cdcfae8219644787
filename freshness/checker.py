"""
freshness/checker.py

Computes per-source staleness from the job run ledger. A pure read:
safe to call at dashboard polling rates. Age is measured from the last run
that refreshed data; healing runs that found nothing new do not count.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from freshness.clock import Clock, hours_between, utc_now
from freshness.ledger import JobRunLedger
from freshness.registry import SourceRegistry
from freshness.types import FreshnessRecord, Source


class FreshnessChecker:
    def __init__(
        self,
        *,
        registry: SourceRegistry,
        ledger: JobRunLedger,
        clock: Clock = utc_now,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._clock = clock

    def check(self, sources: Sequence[Source] | None = None) -> list[FreshnessRecord]:
        targets = list(sources) if sources is not None else self._registry.list()
        now = self._clock()
        return [self._check_one(source, now) for source in targets]

    def _check_one(self, source: Source, now: datetime) -> FreshnessRecord:
        last_run = self._ledger.last_run(source.job_name)
        last_success = self._ledger.last_refresh(source.job_name)

        if last_success is None:
            return FreshnessRecord(
                source_id=source.id,
                last_success_at=None,
                hours_since_success=None,
                is_stale=True,
                item_count=0,
                threshold_hours=source.threshold_hours,
                last_outcome=last_run.outcome if last_run is not None else None,
            )

        hours = max(0.0, hours_between(last_success.started_at, now))
        return FreshnessRecord(
            source_id=source.id,
            last_success_at=last_success.started_at,
            hours_since_success=hours,
            is_stale=hours > source.threshold_hours,
            item_count=last_success.items_processed,
            threshold_hours=source.threshold_hours,
            last_outcome=last_run.outcome if last_run is not None else None,
        )

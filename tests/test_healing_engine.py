"""
tests/test_healing_engine.py

Tests for HealingEngine with fake triggers and a real SQLite-backed ledger.

Coverage
--------
- Outcome classification: refreshed, no_new_data, trigger_error, timeout
- A result carrying only errors counts as a trigger error
- One failing trigger never blocks healing of the others
- Per-call budget: a hanging trigger is cut off as a timeout
- Hung triggers keep holding their slot: never more than max_concurrency
  ingestion calls run at once
- Retries apply to trigger errors only
- Every attempt is recorded in the ledger under the source's job name
- Post-heal verification sets ``resolved``; a no-new-data heal stays unresolved
- Unknown ingestion references raise before any run is recorded
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator

import pytest

from conftest import FailingTrigger, FakeClock, HangingTrigger, RecordingTrigger, make_source
from db.models.job_run import JobRunOutcome
from freshness.checker import FreshnessChecker
from freshness.errors import UnknownSourceError
from freshness.healing import HealingEngine
from freshness.ledger import JobRunLedger
from freshness.registry import SourceRegistry
from freshness.triggers import TriggerRegistry
from freshness.types import HealingOutcome, IngestionResult, Source

SOURCES = [
    make_source("news", priority=1),
    make_source("mta", priority=2),
    make_source("parks", priority=3),
]


def _engine(
    triggers: dict,
    ledger: JobRunLedger,
    clock: FakeClock,
    *,
    retry_attempts: int = 0,
    max_concurrency: int = 3,
) -> HealingEngine:
    registry = SourceRegistry(SOURCES)
    return HealingEngine(
        triggers=TriggerRegistry(triggers),
        ledger=ledger,
        checker=FreshnessChecker(registry=registry, ledger=ledger, clock=clock),
        max_concurrency=max_concurrency,
        retry_attempts=retry_attempts,
        clock=clock,
    )


class _FlakyTrigger:
    """Fails a fixed number of times, then succeeds."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def __call__(self, source_id: str) -> IngestionResult:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("transient upstream error")
        return IngestionResult(items_created=2)


class _BlockingTrigger:
    """Blocks every call until released and records the peak number of calls in flight."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.peak = 0
        self.calls = 0
        self._active = 0
        self._lock = threading.Lock()

    def __call__(self, source_id: str) -> IngestionResult:
        with self._lock:
            self.calls += 1
            self._active += 1
            self.peak = max(self.peak, self._active)
        try:
            self.release.wait(timeout=10)
        finally:
            with self._lock:
                self._active -= 1
        return IngestionResult(items_created=1)


@pytest.fixture()
def blocking() -> Iterator[_BlockingTrigger]:
    trigger = _BlockingTrigger()
    try:
        yield trigger
    finally:
        trigger.release.set()


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class TestOutcomes:
    def test_refreshed(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        trigger = RecordingTrigger(IngestionResult(items_created=4, items_skipped=2))
        engine = _engine({"news": trigger}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert trigger.calls == ["news"]
        assert action.source_id == "news"
        assert action.succeeded is True
        assert action.outcome == HealingOutcome.REFRESHED
        assert action.result_summary == "Created 4 items, skipped 2"
        assert action.reason == "stale"
        assert action.attempts == 1

    def test_zero_created_is_no_new_data(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": RecordingTrigger(IngestionResult(items_skipped=10))}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.succeeded is True
        assert action.outcome == HealingOutcome.NO_NEW_DATA
        assert action.result_summary.startswith("No new items")

    def test_camel_case_mapping_result(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": RecordingTrigger({"itemsCreated": 3})}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.outcome == HealingOutcome.REFRESHED

    def test_raised_error_is_trigger_error(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": FailingTrigger("upstream returned 502")}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.succeeded is False
        assert action.outcome == HealingOutcome.TRIGGER_ERROR
        assert "upstream returned 502" in action.result_summary

    def test_errors_without_items_is_trigger_error(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        result = IngestionResult(items_created=0, errors=("feed unreachable",))
        engine = _engine({"news": RecordingTrigger(result)}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.succeeded is False
        assert action.outcome == HealingOutcome.TRIGGER_ERROR
        assert action.result_summary == "feed unreachable"

    def test_partial_item_errors_still_refreshed(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        result = IngestionResult(items_created=5, errors=("row 3 invalid",))
        engine = _engine({"news": RecordingTrigger(result)}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.succeeded is True
        assert action.result_summary == "Created 5 items, 1 item errors"

    def test_reason_taken_from_mapping(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": RecordingTrigger()}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000, reasons={"news": "forced"})

        assert action.reason == "forced"

    def test_nothing_to_heal(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        assert _engine({}, ledger, clock).heal([], 5_000) == []

    def test_non_positive_budget_rejected(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": RecordingTrigger()}, ledger, clock)
        with pytest.raises(ValueError):
            engine.heal([SOURCES[0]], 0)


# ---------------------------------------------------------------------------
# Isolation and budget
# ---------------------------------------------------------------------------


class TestIsolation:
    def test_failure_does_not_block_other_sources(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        news = RecordingTrigger()
        parks = RecordingTrigger()
        engine = _engine({"news": news, "mta": FailingTrigger(), "parks": parks}, ledger, clock)

        actions = engine.heal(SOURCES, 5_000)

        assert [action.source_id for action in actions] == ["news", "mta", "parks"]
        assert [action.succeeded for action in actions] == [True, False, True]
        assert news.calls == ["news"]
        assert parks.calls == ["parks"]

    def test_actions_ordered_by_priority(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        triggers = {source.id: RecordingTrigger() for source in SOURCES}
        engine = _engine(triggers, ledger, clock)

        actions = engine.heal(list(reversed(SOURCES)), 5_000)

        assert [action.source_id for action in actions] == ["news", "mta", "parks"]

    def test_hanging_trigger_times_out_within_budget(
        self,
        ledger: JobRunLedger,
        clock: FakeClock,
        hanging: HangingTrigger,
    ) -> None:
        engine = _engine({"news": hanging, "mta": RecordingTrigger()}, ledger, clock)

        started = time.monotonic()
        actions = engine.heal(SOURCES[:2], 200)
        elapsed = time.monotonic() - started

        assert elapsed < 2.0
        timed_out = actions[0]
        assert timed_out.outcome == HealingOutcome.TIMEOUT
        assert timed_out.succeeded is False
        assert timed_out.reason == "timeout"
        assert timed_out.result_summary == "Timed out after 200ms (stale)"
        assert actions[1].succeeded is True

    def test_hung_calls_keep_concurrency_cap(
        self,
        ledger: JobRunLedger,
        clock: FakeClock,
        blocking: _BlockingTrigger,
    ) -> None:
        sources = [make_source(source_id, ingest_ref="shared") for source_id in ("a", "b", "c", "d")]
        engine = _engine({"shared": blocking}, ledger, clock, max_concurrency=1)

        actions = engine.heal(sources, 100)

        assert blocking.peak <= 1
        assert blocking.calls == 1
        assert [action.outcome for action in actions] == [HealingOutcome.TIMEOUT] * 4

    def test_slot_returned_when_hung_call_finishes(
        self,
        ledger: JobRunLedger,
        clock: FakeClock,
        blocking: _BlockingTrigger,
    ) -> None:
        sources = [make_source("a", ingest_ref="slow"), make_source("b", ingest_ref="fast")]
        fast = RecordingTrigger()
        engine = _engine({"slow": blocking, "fast": fast}, ledger, clock, max_concurrency=1)

        [timed_out] = engine.heal(sources[:1], 100)
        blocking.release.set()
        [action] = engine.heal(sources[1:], 5_000)

        assert timed_out.outcome == HealingOutcome.TIMEOUT
        assert action.succeeded is True
        assert fast.calls == ["b"]


class TestRetries:
    def test_retry_recovers_from_transient_error(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        trigger = _FlakyTrigger(failures=1)
        engine = _engine({"news": trigger}, ledger, clock, retry_attempts=1)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.succeeded is True
        assert action.attempts == 2
        assert trigger.calls == 2

    def test_no_retry_by_default(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        trigger = _FlakyTrigger(failures=1)
        engine = _engine({"news": trigger}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.succeeded is False
        assert trigger.calls == 1

    def test_retries_exhausted(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        trigger = FailingTrigger()
        engine = _engine({"news": trigger}, ledger, clock, retry_attempts=2)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.outcome == HealingOutcome.TRIGGER_ERROR
        assert action.attempts == 3
        assert trigger.calls == 3


# ---------------------------------------------------------------------------
# Ledger and verification
# ---------------------------------------------------------------------------


class TestLedgerAndVerification:
    def test_success_recorded_under_job_name(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": RecordingTrigger(IngestionResult(items_created=6, items_skipped=1))}, ledger, clock)

        engine.heal([SOURCES[0]], 5_000)

        run = ledger.last_run("ingest-news")
        assert run is not None
        assert run.outcome == JobRunOutcome.SUCCESS
        assert run.items_processed == 6
        assert run.metadata["trigger"] == "healing"
        assert run.metadata["items_skipped"] == 1
        assert run.metadata["outcome"] == HealingOutcome.REFRESHED

    def test_failure_recorded_with_error(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": FailingTrigger("boom")}, ledger, clock)

        engine.heal([SOURCES[0]], 5_000)

        run = ledger.last_run("ingest-news")
        assert run is not None
        assert run.outcome == JobRunOutcome.FAILURE
        assert "boom" in (run.error_summary or "")

    def test_successful_heal_is_resolved(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": RecordingTrigger()}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.resolved is True

    def test_failed_heal_is_unresolved(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": FailingTrigger()}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.resolved is False

    def test_no_new_data_heal_is_unresolved(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": RecordingTrigger(IngestionResult(items_skipped=4))}, ledger, clock)

        [action] = engine.heal([SOURCES[0]], 5_000)

        assert action.succeeded is True
        assert action.resolved is False
        run = ledger.last_run("ingest-news")
        assert run is not None
        assert run.metadata["outcome"] == HealingOutcome.NO_NEW_DATA

    def test_unknown_reference_raises_before_recording(self, ledger: JobRunLedger, clock: FakeClock) -> None:
        engine = _engine({"news": RecordingTrigger()}, ledger, clock)
        orphan = Source(id="orphan", display_name="Orphan", threshold_hours=1, ingest_ref="missing")

        with pytest.raises(UnknownSourceError):
            engine.heal([SOURCES[0], orphan], 5_000)

        assert ledger.last_run("ingest-news") is None

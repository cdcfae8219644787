"""
tests/conftest.py

Shared fixtures: an in-memory SQLite database with the full schema, a
controllable clock, and small fake ingestion triggers. No network.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401 registers all ORM models on Base.metadata
from db.base import Base
from db.models.job_run import JobRunOutcome
from db.repositories.job_run_repository import JobRunRepository
from freshness.checker import FreshnessChecker
from freshness.healing import HealingEngine
from freshness.items import StaticItemProvider
from freshness.ledger import JobRunLedger
from freshness.lock import DistributedLock
from freshness.orchestrator import Orchestrator
from freshness.registry import SourceRegistry
from freshness.scoring import QualityScorer
from freshness.triggers import TriggerRegistry
from freshness.types import IngestionResult, Source

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock pinned to a settable instant."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


class RecordingTrigger:
    """Returns a fixed result and counts invocations."""

    def __init__(self, result: IngestionResult | dict | None = None) -> None:
        self.result = result if result is not None else IngestionResult(items_created=3)
        self.calls: list[str] = []
        self._guard = threading.Lock()

    def __call__(self, source_id: str) -> IngestionResult | dict:
        with self._guard:
            self.calls.append(source_id)
        return self.result


class FailingTrigger:
    def __init__(self, message: str = "upstream returned 502") -> None:
        self.message = message
        self.calls = 0

    def __call__(self, source_id: str) -> IngestionResult:
        self.calls += 1
        raise RuntimeError(self.message)


class HangingTrigger:
    """Blocks until released; used to exercise the per-call budget."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.started = threading.Event()

    def __call__(self, source_id: str) -> IngestionResult:
        self.started.set()
        self.release.wait(timeout=10)
        return IngestionResult(items_created=1)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Core components
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ledger(session_factory: sessionmaker[Session], clock: FakeClock) -> JobRunLedger:
    return JobRunLedger(session_factory, clock=clock)


@pytest.fixture()
def lock(session_factory: sessionmaker[Session], clock: FakeClock) -> DistributedLock:
    return DistributedLock(session_factory, clock=clock)


@pytest.fixture()
def seed_run(
    session_factory: sessionmaker[Session],
    clock: FakeClock,
) -> Callable[..., None]:
    """Insert a finished (or pending) run that started ``hours_ago`` before the clock."""

    def _seed(
        job_name: str,
        hours_ago: float,
        *,
        outcome: str = JobRunOutcome.SUCCESS,
        items_processed: int = 5,
    ) -> None:
        started_at = clock.now - timedelta(hours=hours_ago)
        with session_factory() as db:
            repository = JobRunRepository(db)
            run = repository.create_run(job_name=job_name, started_at=started_at)
            if outcome == JobRunOutcome.SUCCESS:
                repository.mark_success(
                    run_id=run.id,
                    finished_at=started_at + timedelta(seconds=30),
                    duration_ms=30_000,
                    items_processed=items_processed,
                    items_failed=0,
                )
            elif outcome == JobRunOutcome.FAILURE:
                repository.mark_failure(
                    run_id=run.id,
                    finished_at=started_at + timedelta(seconds=30),
                    duration_ms=30_000,
                    error_summary="RuntimeError: boom",
                )
            db.commit()

    return _seed


def make_source(source_id: str, **overrides: object) -> Source:
    fields: dict[str, object] = {
        "id": source_id,
        "display_name": source_id.title(),
        "threshold_hours": 12,
        "ingest_ref": source_id,
        "min_selected": 0,
    }
    fields.update(overrides)
    return Source(**fields)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Orchestrator harness
# ---------------------------------------------------------------------------

HARNESS_SOURCE_IDS = ("news", "mta", "parks", "events", "weather")


class OrchestratorHarness:
    """Five-source catalog (news critical) with recording triggers and no content."""

    def __init__(
        self,
        *,
        ledger: JobRunLedger,
        lock: DistributedLock,
        clock: FakeClock,
        seed_run: Callable[..., None],
    ) -> None:
        self.ledger = ledger
        self.lock = lock
        self.clock = clock
        self.seed_run = seed_run
        self.sources = [
            make_source("news", critical=True, priority=1),
            *(make_source(source_id) for source_id in HARNESS_SOURCE_IDS[1:]),
        ]
        self.registry = SourceRegistry(self.sources)
        self.triggers: dict[str, object] = {source.id: RecordingTrigger() for source in self.sources}
        self.items = StaticItemProvider()

    def seed_all_fresh(self, *, except_ids: tuple[str, ...] = ()) -> None:
        for source in self.sources:
            if source.id not in except_ids:
                self.seed_run(source.job_name, hours_ago=1)

    def build(self, **overrides: object) -> Orchestrator:
        checker = FreshnessChecker(registry=self.registry, ledger=self.ledger, clock=self.clock)
        healer = HealingEngine(
            triggers=TriggerRegistry(self.triggers),  # type: ignore[arg-type]
            ledger=self.ledger,
            checker=checker,
            clock=self.clock,
        )
        kwargs: dict[str, object] = {
            "registry": self.registry,
            "ledger": self.ledger,
            "lock": self.lock,
            "checker": checker,
            "healer": healer,
            "scorer": QualityScorer(clock=self.clock),
            "items": self.items,
            "heal_budget_ms": 5_000,
            "clock": self.clock,
        }
        kwargs.update(overrides)
        return Orchestrator(**kwargs)  # type: ignore[arg-type]


@pytest.fixture()
def harness(
    ledger: JobRunLedger,
    lock: DistributedLock,
    clock: FakeClock,
    seed_run: Callable[..., None],
) -> OrchestratorHarness:
    return OrchestratorHarness(ledger=ledger, lock=lock, clock=clock, seed_run=seed_run)


@pytest.fixture()
def hanging() -> Iterator[HangingTrigger]:
    trigger = HangingTrigger()
    try:
        yield trigger
    finally:
        trigger.release.set()

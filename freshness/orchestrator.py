"""
freshness/orchestrator.py

One orchestration pass: lock, check freshness, heal, re-score quality, report.

Passes that may heal run under a single distributed lease so concurrent
callers (cron and an operator forcing a refresh) serialize instead of
double-healing. Component failures become report entries; only unknown
source ids escape as exceptions.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from functools import lru_cache

from freshness.checker import FreshnessChecker
from freshness.clock import Clock, utc_now
from freshness.errors import LockDenied, QualityShortfall
from freshness.healing import HealingEngine
from freshness.items import ItemProvider
from freshness.ledger import JobRunLedger
from freshness.lock import DistributedLock
from freshness.logging_utils import log_event
from freshness.registry import SourceRegistry
from freshness.scoring import QualityScorer
from freshness.types import (
    FreshnessRecord,
    HealingAction,
    OrchestrationReport,
    PassMode,
    PassState,
    QualityReport,
    ReadinessVerdict,
    Source,
    SourceState,
    SourceStatus,
    StaleJobsReport,
)

logger = logging.getLogger(__name__)

ORCHESTRATE_JOB_NAME = "orchestrate-data"

HEALTH_HEALTHY = "healthy"
HEALTH_DEGRADED = "degraded"
HEALTH_CRITICAL = "critical"
HEALTH_UNKNOWN = "unknown"

TargetSelector = Callable[[list[FreshnessRecord]], list[Source]]


class Orchestrator:
    """
    Composes FreshnessChecker, HealingEngine and QualityScorer into one pass.
    """

    def __init__(
        self,
        *,
        registry: SourceRegistry,
        ledger: JobRunLedger,
        lock: DistributedLock,
        checker: FreshnessChecker,
        healer: HealingEngine,
        scorer: QualityScorer,
        items: ItemProvider,
        lock_key: str = ORCHESTRATE_JOB_NAME,
        lock_lease_seconds: float = 1800,
        heal_budget_ms: int = 120_000,
        orchestrate_interval_hours: float = 1.0,
        clock: Clock = utc_now,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._lock = lock
        self._checker = checker
        self._healer = healer
        self._scorer = scorer
        self._items = items
        self._lock_key = lock_key
        self._lock_lease_seconds = lock_lease_seconds
        self._heal_budget_ms = heal_budget_ms
        self._orchestrate_interval_hours = orchestrate_interval_hours
        self._clock = clock

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    @property
    def ledger(self) -> JobRunLedger:
        return self._ledger

    def run_status(self) -> OrchestrationReport:
        """
        Read-only snapshot: no lock, no healing, no ledger writes.
        """

        report = OrchestrationReport(mode=PassMode.STATUS, started_at=self._clock())
        started = time.monotonic()
        try:
            report.state = PassState.CHECKING
            report.freshness = self._checker.check()
            report.state = PassState.RESCORING
            self._rescore(report)
            report.state = PassState.REPORTING
            self._assemble(report)
            report.state = PassState.DONE
        except Exception as exc:
            self._fail(report, exc)
        return self._finish(report, started)

    def run_auto_heal(self, budget_ms: int | None = None) -> OrchestrationReport:
        return self._run_locked(PassMode.AUTO_HEAL, _stale_targets(self._registry), budget_ms)

    def run_force(
        self,
        sources: Sequence[str] | None = None,
        budget_ms: int | None = None,
    ) -> OrchestrationReport:
        """
        Heal ``sources`` (default: every source) regardless of staleness.

        Raises UnknownSourceError before any lock is taken when an id is not registered.
        """

        targets = self._registry.select(sources)
        return self._run_locked(PassMode.FORCE, lambda _records: targets, budget_ms)

    def ensure_ready(self, budget_ms: int | None = None) -> ReadinessVerdict:
        report = self.run_auto_heal(budget_ms)
        return ReadinessVerdict(ready=report.ready, report=report)

    def expected_intervals(self) -> dict[str, float]:
        """
        Expected cadence in hours per ledger job: each source's threshold plus the pass itself.
        """

        intervals = {source.job_name: source.threshold_hours for source in self._registry.list()}
        intervals[ORCHESTRATE_JOB_NAME] = self._orchestrate_interval_hours
        return intervals

    def stale_jobs(self) -> StaleJobsReport:
        return self._ledger.stale_jobs(self.expected_intervals())

    def _run_locked(
        self,
        mode: str,
        select_targets: TargetSelector,
        budget_ms: int | None,
    ) -> OrchestrationReport:
        report = OrchestrationReport(mode=mode, started_at=self._clock())
        started = time.monotonic()
        budget = budget_ms if budget_ms is not None else self._heal_budget_ms

        report.state = PassState.LOCKING
        try:
            token = self._lock.acquire(self._lock_key, self._lock_lease_seconds)
        except Exception as exc:
            self._fail(report, exc)
            return self._finish(report, started)

        if token is None:
            report.state = PassState.LOCK_DENIED
            report.overall_health = HEALTH_UNKNOWN
            report.errors.append(str(LockDenied(self._lock_key)))
            return self._finish(report, started)

        handle = self._ledger.start(ORCHESTRATE_JOB_NAME, metadata={"mode": mode})
        try:
            report.state = PassState.CHECKING
            report.freshness = self._checker.check()

            targets = select_targets(report.freshness)
            if targets:
                report.state = PassState.HEALING
                report.healing_actions = self._healer.heal(
                    targets,
                    budget,
                    reasons=_heal_reasons(report.freshness, mode),
                )
                report.freshness = self._checker.check()

            report.state = PassState.RESCORING
            self._rescore(report)
            report.state = PassState.REPORTING
            self._assemble(report)
            report.state = PassState.DONE
        except Exception as exc:
            self._fail(report, exc)
        finally:
            try:
                self._lock.release(self._lock_key, token)
            except Exception:
                logger.exception("Lock release failed key=%s", self._lock_key)

        if report.state == PassState.FAILED:
            handle.fail("; ".join(report.errors))
        else:
            handle.success(
                items_processed=sum(1 for action in report.healing_actions if action.succeeded),
                items_failed=sum(1 for action in report.healing_actions if not action.succeeded),
                metadata={"mode": mode, "ready": report.ready, "health": report.overall_health},
            )
        return self._finish(report, started)

    def _rescore(self, report: OrchestrationReport) -> None:
        sources = self._registry.list()
        items = self._items.items_for(sources)
        report.quality = self._scorer.score(
            {source.id: items.get(source.id, []) for source in sources},
            minimums={source.id: source.min_selected for source in sources},
        )
        report.quality_summary = self._scorer.summarize(report.quality)

    def _assemble(self, report: OrchestrationReport) -> None:
        records = {record.source_id: record for record in report.freshness}
        actions = {action.source_id: action for action in report.healing_actions}
        quality = {entry.source_id: entry for entry in report.quality}

        statuses: list[SourceStatus] = []
        errors: list[str] = []
        for source in self._registry.list():
            record = records.get(source.id)
            action = actions.get(source.id)
            state = _source_state(record, action)
            statuses.append(
                SourceStatus(
                    name=source.id,
                    display_name=source.display_name,
                    status=state,
                    hours_old=_round_hours(record),
                    item_count=record.item_count if record is not None else 0,
                    critical=source.critical,
                )
            )
            if state == SourceState.STALE and record is not None:
                errors.append(f"{source.id}: {_stale_reason(record)}")
            if action is not None and not action.succeeded:
                errors.append(f"{source.id}: healing {action.outcome}: {action.result_summary}")

        shortfalls = [entry for entry in quality.values() if entry.below_minimum]
        for entry in shortfalls:
            errors.append(str(QualityShortfall(entry.source_id, entry.items_selected, entry.min_selected)))

        report.sources = statuses
        report.errors.extend(errors)
        report.ready = (
            all(status.status == SourceState.HEALTHY for status in statuses) and not shortfalls
        )
        report.overall_health = _overall_health(statuses, shortfalls)
        report.recommendations = _recommendations(statuses, shortfalls, report.healing_actions)

    def _fail(self, report: OrchestrationReport, exc: Exception) -> None:
        logger.exception(
            "Orchestration pass failed mode=%s state=%s",
            report.mode,
            report.state,
        )
        report.errors.append(f"{type(exc).__name__}: {exc}")
        report.state = PassState.FAILED
        report.ready = False
        report.overall_health = HEALTH_CRITICAL

    def _finish(self, report: OrchestrationReport, started_monotonic: float) -> OrchestrationReport:
        report.duration_ms = int((time.monotonic() - started_monotonic) * 1000)
        log_event(
            logger,
            logging.INFO if report.ready else logging.WARNING,
            "orchestration_complete",
            mode=report.mode,
            state=report.state,
            ready=report.ready,
            health=report.overall_health,
            healing_actions=len(report.healing_actions),
            errors=len(report.errors),
            duration_ms=report.duration_ms,
        )
        return report


def _stale_targets(registry: SourceRegistry) -> TargetSelector:
    def select(records: list[FreshnessRecord]) -> list[Source]:
        return [registry.get(record.source_id) for record in records if record.is_stale]

    return select


def _heal_reasons(records: list[FreshnessRecord], mode: str) -> dict[str, str]:
    reasons: dict[str, str] = {}
    for record in records:
        if record.is_stale:
            reasons[record.source_id] = _stale_reason(record)
        elif mode == PassMode.FORCE:
            reasons[record.source_id] = "forced refresh"
    return reasons


def _stale_reason(record: FreshnessRecord) -> str:
    if record.hours_since_success is None:
        return "No successful run recorded"
    return f"Data is {record.hours_since_success:.1f}h old (threshold: {record.threshold_hours:g}h)"


def _source_state(record: FreshnessRecord | None, action: HealingAction | None) -> str:
    if record is not None and not record.is_stale:
        return SourceState.HEALTHY
    if action is not None and not action.succeeded:
        return SourceState.HEALING_FAILED
    return SourceState.STALE


def _round_hours(record: FreshnessRecord | None) -> float | None:
    if record is None or record.hours_since_success is None:
        return None
    return round(record.hours_since_success, 2)


def _overall_health(statuses: list[SourceStatus], shortfalls: list[QualityReport]) -> str:
    unhealthy = [status for status in statuses if status.status != SourceState.HEALTHY]
    if any(status.critical for status in unhealthy):
        return HEALTH_CRITICAL
    if unhealthy or shortfalls:
        return HEALTH_DEGRADED
    return HEALTH_HEALTHY


def _recommendations(
    statuses: list[SourceStatus],
    shortfalls: list[QualityReport],
    actions: list[HealingAction],
) -> list[str]:
    recommendations: list[str] = []
    for status in statuses:
        if status.status == SourceState.HEALING_FAILED:
            recommendations.append(f"Review error logs for {status.display_name} and fix its ingestion job")
        elif status.status == SourceState.STALE:
            recommendations.append(f"Trigger a manual refresh of {status.display_name}")
    if any(action.outcome == "timeout" for action in actions):
        recommendations.append("Increase the healing budget or investigate slow ingestion endpoints")
    for entry in shortfalls:
        recommendations.append(f"Check scraper configuration for {entry.source_id}: too few items pass quality scoring")
    if any(status.critical and status.status != SourceState.HEALTHY for status in statuses):
        recommendations.append("Hold digest generation until critical sources recover")
    return recommendations


def build_orchestrator(session_factory=None) -> Orchestrator:
    """
    Wire an Orchestrator from environment settings.
    """

    from app.config import get_ingestion_http_settings, get_orchestrator_settings
    from freshness.catalog import DEFAULT_SOURCES, load_sources_file
    from freshness.items import RepositoryItemProvider
    from freshness.triggers import TriggerRegistry

    if session_factory is None:
        from db.session import SessionLocal

        session_factory = SessionLocal

    settings = get_orchestrator_settings()
    http_settings = get_ingestion_http_settings()
    catalog = load_sources_file(settings.sources_file) if settings.sources_file else DEFAULT_SOURCES
    registry = SourceRegistry(catalog)
    ledger = JobRunLedger(session_factory)
    checker = FreshnessChecker(registry=registry, ledger=ledger)
    healer = HealingEngine(
        triggers=TriggerRegistry.over_http(
            registry.list(),
            base_url=http_settings.base_url,
            timeout_seconds=http_settings.timeout_seconds,
            cron_secret=http_settings.cron_secret,
        ),
        ledger=ledger,
        checker=checker,
        max_concurrency=settings.max_concurrency,
        retry_attempts=settings.retry_attempts,
    )
    return Orchestrator(
        registry=registry,
        ledger=ledger,
        lock=DistributedLock(session_factory),
        checker=checker,
        healer=healer,
        scorer=QualityScorer(),
        items=RepositoryItemProvider(session_factory, window_hours=settings.quality_window_hours),
        lock_key=settings.lock_key,
        lock_lease_seconds=settings.lock_lease_seconds,
        heal_budget_ms=settings.heal_budget_ms,
    )


@lru_cache
def get_orchestrator() -> Orchestrator:
    return build_orchestrator()

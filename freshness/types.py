"""
freshness/types.py

Domain records for the freshness orchestrator. Catalog entries are
immutable; everything else is derived per orchestration pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Source:
    """
    Catalog entry for one external data source.
    """

    id: str
    display_name: str
    threshold_hours: float
    ingest_ref: str
    job_name: str = ""
    priority: int = 3
    critical: bool = False
    min_selected: int = 1

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Source id must not be empty.")
        if self.threshold_hours <= 0:
            raise ValueError(f"Source {self.id}: threshold_hours must be positive.")
        if self.min_selected < 0:
            raise ValueError(f"Source {self.id}: min_selected must not be negative.")
        if not self.job_name:
            object.__setattr__(self, "job_name", f"ingest-{self.id}")


@dataclass(frozen=True)
class IngestionResult:
    """
    Outcome reported by an ingestion trigger.
    """

    items_created: int = 0
    items_skipped: int = 0
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class JobRunSnapshot:
    """
    Detached, read-only view of one ledger row.
    """

    id: Any
    job_name: str
    outcome: str
    started_at: datetime
    finished_at: datetime | None = None
    duration_ms: int | None = None
    items_processed: int = 0
    items_failed: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    error_summary: str | None = None


@dataclass(frozen=True)
class OverdueJob:
    job_name: str
    expected_interval_hours: float
    last_success_at: datetime | None
    last_run: JobRunSnapshot | None


@dataclass(frozen=True)
class StaleJobsReport:
    """
    Jobs overdue against their cadence. Hung runs are a separate, more severe signal.
    """

    stale: list[OverdueJob] = field(default_factory=list)
    hung: list[OverdueJob] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.stale and not self.hung


@dataclass(frozen=True)
class FreshnessRecord:
    source_id: str
    last_success_at: datetime | None
    hours_since_success: float | None
    is_stale: bool
    item_count: int
    threshold_hours: float
    last_outcome: str | None = None


class HealingOutcome:
    REFRESHED = "refreshed"
    NO_NEW_DATA = "no_new_data"
    TRIGGER_ERROR = "trigger_error"
    TIMEOUT = "timeout"


@dataclass
class HealingAction:
    """
    One re-ingestion attempt made during an orchestration pass.
    """

    source_id: str
    reason: str
    triggered_at: datetime
    succeeded: bool = False
    result_summary: str = ""
    duration_ms: int = 0
    outcome: str = HealingOutcome.TRIGGER_ERROR
    resolved: bool | None = None
    attempts: int = 1


@dataclass(frozen=True)
class ContentItem:
    """
    One ingested item as seen by the quality scorer.
    """

    source_id: str
    external_id: str
    title: str | None = None
    body: str | None = None
    url: str | None = None
    published_at: datetime | None = None
    seen_at: datetime | None = None
    signal: float | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScoredItem:
    item: ContentItem
    score: float
    selected: bool


@dataclass
class QualityReport:
    source_id: str
    items_evaluated: int
    items_selected: int
    duplicates_removed: int
    average_score: float
    min_selected: int = 0
    issues: list[str] = field(default_factory=list)
    top_items: list[ScoredItem] = field(default_factory=list)

    @property
    def below_minimum(self) -> bool:
        return self.items_selected < self.min_selected


@dataclass(frozen=True)
class QualitySummary:
    items_evaluated: int
    items_selected: int
    selection_rate: float
    average_score: float
    top_contributors: list[str] = field(default_factory=list)


class SourceState:
    HEALTHY = "healthy"
    STALE = "stale"
    HEALING_FAILED = "healing-failed"


@dataclass(frozen=True)
class SourceStatus:
    name: str
    display_name: str
    status: str
    hours_old: float | None
    item_count: int
    critical: bool = False


class PassMode:
    STATUS = "status"
    AUTO_HEAL = "auto-heal"
    FORCE = "force"


class PassState:
    LOCKING = "LOCKING"
    CHECKING = "CHECKING"
    HEALING = "HEALING"
    RESCORING = "RESCORING"
    REPORTING = "REPORTING"
    DONE = "DONE"
    LOCK_DENIED = "LOCK_DENIED"
    FAILED = "FAILED"


@dataclass
class OrchestrationReport:
    """
    Structured result of one orchestration pass.
    """

    mode: str
    started_at: datetime
    state: str = PassState.LOCKING
    ready: bool = False
    duration_ms: int = 0
    freshness: list[FreshnessRecord] = field(default_factory=list)
    healing_actions: list[HealingAction] = field(default_factory=list)
    quality: list[QualityReport] = field(default_factory=list)
    quality_summary: QualitySummary | None = None
    sources: list[SourceStatus] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    overall_health: str = "critical"
    recommendations: list[str] = field(default_factory=list)

    def to_contract(self) -> dict[str, Any]:
        """
        Stable payload for downstream consumers; they key off ``ready`` and ``errors``.
        """

        return {
            "ready": self.ready,
            "sources": [
                {
                    "name": status.name,
                    "status": status.status,
                    "hoursOld": status.hours_old,
                    "itemCount": status.item_count,
                }
                for status in self.sources
            ],
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class ReadinessVerdict:
    ready: bool
    report: OrchestrationReport

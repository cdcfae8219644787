"""
freshness package exports.
"""

from freshness.checker import FreshnessChecker
from freshness.errors import (
    FreshnessError,
    LockDenied,
    QualityShortfall,
    TriggerError,
    TriggerTimeoutError,
    UnknownSourceError,
)
from freshness.healing import HealingEngine
from freshness.items import ItemProvider, RepositoryItemProvider, StaticItemProvider
from freshness.ledger import JobRunLedger, RunHandle
from freshness.lock import DistributedLock
from freshness.orchestrator import Orchestrator, build_orchestrator, get_orchestrator
from freshness.registry import SourceRegistry
from freshness.scoring import QualityScorer, ScoringRules, dedup_key
from freshness.triggers import HttpIngestionTrigger, IngestionTrigger, TriggerRegistry
from freshness.types import (
    ContentItem,
    FreshnessRecord,
    HealingAction,
    IngestionResult,
    OrchestrationReport,
    QualityReport,
    QualitySummary,
    ReadinessVerdict,
    Source,
    SourceStatus,
    StaleJobsReport,
)

__all__ = [
    "ContentItem",
    "DistributedLock",
    "FreshnessChecker",
    "FreshnessError",
    "FreshnessRecord",
    "HealingAction",
    "HealingEngine",
    "HttpIngestionTrigger",
    "IngestionResult",
    "IngestionTrigger",
    "ItemProvider",
    "JobRunLedger",
    "LockDenied",
    "OrchestrationReport",
    "Orchestrator",
    "QualityReport",
    "QualityScorer",
    "QualityShortfall",
    "QualitySummary",
    "ReadinessVerdict",
    "RepositoryItemProvider",
    "RunHandle",
    "ScoringRules",
    "Source",
    "SourceRegistry",
    "SourceStatus",
    "StaleJobsReport",
    "StaticItemProvider",
    "TriggerError",
    "TriggerRegistry",
    "TriggerTimeoutError",
    "UnknownSourceError",
    "build_orchestrator",
    "dedup_key",
    "get_orchestrator",
]

"""
Schemas for freshness status, healing, and readiness endpoints.

The readiness payload is a stable consumer contract and uses camelCase
field names on the wire.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SourceStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    status: str
    hours_old: float | None = Field(default=None, alias="hoursOld")
    item_count: int = Field(default=0, alias="itemCount")


class ReadinessResponse(BaseModel):
    ready: bool
    sources: list[SourceStatusResponse] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class FreshnessRecordResponse(BaseModel):
    source_id: str
    last_success_at: datetime | None = None
    hours_since_success: float | None = None
    is_stale: bool
    item_count: int
    threshold_hours: float
    last_outcome: str | None = None


class HealingActionResponse(BaseModel):
    source_id: str
    reason: str
    triggered_at: datetime
    succeeded: bool
    outcome: str
    result_summary: str
    duration_ms: int
    resolved: bool | None = None
    attempts: int = 1


class QualityReportResponse(BaseModel):
    source_id: str
    items_evaluated: int
    items_selected: int
    duplicates_removed: int
    average_score: float
    min_selected: int
    issues: list[str] = Field(default_factory=list)


class QualitySummaryResponse(BaseModel):
    items_evaluated: int
    items_selected: int
    selection_rate: float
    average_score: float
    top_contributors: list[str] = Field(default_factory=list)


class OrchestrationReportResponse(BaseModel):
    mode: str
    state: str
    ready: bool
    started_at: datetime
    duration_ms: int
    overall_health: str
    sources: list[SourceStatusResponse] = Field(default_factory=list)
    freshness: list[FreshnessRecordResponse] = Field(default_factory=list)
    healing_actions: list[HealingActionResponse] = Field(default_factory=list)
    quality: list[QualityReportResponse] = Field(default_factory=list)
    quality_summary: QualitySummaryResponse | None = None
    errors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class OverdueJobResponse(BaseModel):
    job_name: str
    expected_interval_hours: float
    last_success_at: datetime | None = None
    last_run_outcome: str | None = None
    last_run_started_at: datetime | None = None


class StaleJobsResponse(BaseModel):
    stale: list[OverdueJobResponse] = Field(default_factory=list)
    hung: list[OverdueJobResponse] = Field(default_factory=list)

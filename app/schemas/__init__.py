"""
app/schemas package marker.
"""

from app.schemas.freshness import (
    FreshnessRecordResponse,
    HealingActionResponse,
    OrchestrationReportResponse,
    OverdueJobResponse,
    QualityReportResponse,
    QualitySummaryResponse,
    ReadinessResponse,
    SourceStatusResponse,
    StaleJobsResponse,
)

__all__ = [
    "FreshnessRecordResponse",
    "HealingActionResponse",
    "OrchestrationReportResponse",
    "OverdueJobResponse",
    "QualityReportResponse",
    "QualitySummaryResponse",
    "ReadinessResponse",
    "SourceStatusResponse",
    "StaleJobsResponse",
]

"""
Freshness status, healing, and readiness endpoints.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from app.api.dependencies import get_freshness_orchestrator, require_operator
from app.auth import AuthContext
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
from freshness.errors import UnknownSourceError
from freshness.orchestrator import Orchestrator
from freshness.types import OrchestrationReport, OverdueJob

router = APIRouter(prefix="/freshness", tags=["freshness"])


@router.get("/status", response_model=OrchestrationReportResponse)
def get_freshness_status(
    orchestrator: Orchestrator = Depends(get_freshness_orchestrator),
) -> OrchestrationReportResponse:
    return _to_report_response(orchestrator.run_status())


@router.post("/heal", response_model=OrchestrationReportResponse)
def heal_sources(
    mode: Literal["auto", "force"] = Query(default="auto", description="auto heals stale sources only"),
    sources: str | None = Query(default=None, description="Comma-separated source ids for force mode"),
    budget_ms: int | None = Query(default=None, ge=1, description="Per-trigger time budget override"),
    _auth: AuthContext = Depends(require_operator),
    orchestrator: Orchestrator = Depends(get_freshness_orchestrator),
) -> OrchestrationReportResponse:
    source_ids = [value.strip() for value in (sources or "").split(",") if value.strip()]
    if mode == "auto":
        if source_ids:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="sources can only be combined with mode=force.",
            )
        report = orchestrator.run_auto_heal(budget_ms)
    else:
        try:
            report = orchestrator.run_force(source_ids or None, budget_ms)
        except UnknownSourceError as exc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=str(exc),
            ) from exc
    return _to_report_response(report)


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
def get_readiness(
    _auth: AuthContext = Depends(require_operator),
    orchestrator: Orchestrator = Depends(get_freshness_orchestrator),
) -> ReadinessResponse | JSONResponse:
    verdict = orchestrator.ensure_ready()
    payload = ReadinessResponse.model_validate(verdict.report.to_contract())
    if verdict.ready:
        return payload
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=payload.model_dump(mode="json", by_alias=True),
    )


@router.get("/jobs/stale", response_model=StaleJobsResponse)
def get_stale_jobs(
    orchestrator: Orchestrator = Depends(get_freshness_orchestrator),
) -> StaleJobsResponse:
    report = orchestrator.stale_jobs()
    return StaleJobsResponse(
        stale=[_to_overdue_response(job) for job in report.stale],
        hung=[_to_overdue_response(job) for job in report.hung],
    )


def _to_report_response(report: OrchestrationReport) -> OrchestrationReportResponse:
    summary = report.quality_summary
    return OrchestrationReportResponse(
        mode=report.mode,
        state=report.state,
        ready=report.ready,
        started_at=report.started_at,
        duration_ms=report.duration_ms,
        overall_health=report.overall_health,
        sources=[
            SourceStatusResponse(
                name=entry.name,
                status=entry.status,
                hours_old=entry.hours_old,
                item_count=entry.item_count,
            )
            for entry in report.sources
        ],
        freshness=[
            FreshnessRecordResponse(
                source_id=record.source_id,
                last_success_at=record.last_success_at,
                hours_since_success=record.hours_since_success,
                is_stale=record.is_stale,
                item_count=record.item_count,
                threshold_hours=record.threshold_hours,
                last_outcome=record.last_outcome,
            )
            for record in report.freshness
        ],
        healing_actions=[
            HealingActionResponse(
                source_id=action.source_id,
                reason=action.reason,
                triggered_at=action.triggered_at,
                succeeded=action.succeeded,
                outcome=action.outcome,
                result_summary=action.result_summary,
                duration_ms=action.duration_ms,
                resolved=action.resolved,
                attempts=action.attempts,
            )
            for action in report.healing_actions
        ],
        quality=[
            QualityReportResponse(
                source_id=entry.source_id,
                items_evaluated=entry.items_evaluated,
                items_selected=entry.items_selected,
                duplicates_removed=entry.duplicates_removed,
                average_score=entry.average_score,
                min_selected=entry.min_selected,
                issues=list(entry.issues),
            )
            for entry in report.quality
        ],
        quality_summary=(
            QualitySummaryResponse(
                items_evaluated=summary.items_evaluated,
                items_selected=summary.items_selected,
                selection_rate=summary.selection_rate,
                average_score=summary.average_score,
                top_contributors=list(summary.top_contributors),
            )
            if summary is not None
            else None
        ),
        errors=list(report.errors),
        recommendations=list(report.recommendations),
    )


def _to_overdue_response(job: OverdueJob) -> OverdueJobResponse:
    return OverdueJobResponse(
        job_name=job.job_name,
        expected_interval_hours=job.expected_interval_hours,
        last_success_at=job.last_success_at,
        last_run_outcome=job.last_run.outcome if job.last_run is not None else None,
        last_run_started_at=job.last_run.started_at if job.last_run is not None else None,
    )

"""
Repository for job run ledger persistence and lookup.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models.job_run import JobRun, JobRunOutcome


class JobRunRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_run(
        self,
        *,
        job_name: str,
        started_at: datetime,
        metadata: dict[str, Any] | None = None,
    ) -> JobRun:
        run = JobRun(
            job_name=job_name,
            outcome=JobRunOutcome.PENDING,
            started_at=started_at,
            items_processed=0,
            items_failed=0,
            run_metadata=metadata,
        )
        self._session.add(run)
        self._session.flush()
        return run

    def get_run(self, run_id: uuid.UUID) -> JobRun | None:
        return self._session.get(JobRun, run_id)

    def mark_success(
        self,
        *,
        run_id: uuid.UUID,
        finished_at: datetime,
        duration_ms: int,
        items_processed: int,
        items_failed: int,
        metadata: dict[str, Any] | None = None,
    ) -> JobRun | None:
        run = self.get_run(run_id)
        if run is None or run.outcome != JobRunOutcome.PENDING:
            return None
        run.outcome = JobRunOutcome.SUCCESS
        run.finished_at = finished_at
        run.duration_ms = duration_ms
        run.items_processed = items_processed
        run.items_failed = items_failed
        if metadata is not None:
            run.run_metadata = {**(run.run_metadata or {}), **metadata}
        return run

    def mark_failure(
        self,
        *,
        run_id: uuid.UUID,
        finished_at: datetime,
        duration_ms: int,
        error_summary: str,
    ) -> JobRun | None:
        run = self.get_run(run_id)
        if run is None or run.outcome != JobRunOutcome.PENDING:
            return None
        run.outcome = JobRunOutcome.FAILURE
        run.finished_at = finished_at
        run.duration_ms = duration_ms
        run.error_summary = error_summary
        return run

    def latest_run(self, job_name: str, *, outcome: str | None = None) -> JobRun | None:
        stmt: Select[tuple[JobRun]] = select(JobRun).where(JobRun.job_name == job_name)
        if outcome:
            stmt = stmt.where(JobRun.outcome == outcome)
        stmt = stmt.order_by(JobRun.started_at.desc()).limit(1)
        return self._session.scalars(stmt).first()

    def list_runs(self, job_name: str, *, outcome: str | None = None, limit: int = 20) -> list[JobRun]:
        stmt: Select[tuple[JobRun]] = select(JobRun).where(JobRun.job_name == job_name)
        if outcome:
            stmt = stmt.where(JobRun.outcome == outcome)
        stmt = stmt.order_by(JobRun.started_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

"""
freshness/ledger.py

Job run ledger: persisted record of every job execution.

Writes are best-effort. A ledger failure is logged and swallowed so the
job being observed keeps running; reads propagate errors to the caller.

Usage::

    handle = ledger.start("ingest-news")
    try:
        result = run_ingestion()
    except Exception as exc:
        handle.fail(exc)
        raise
    handle.success(items_processed=result.items_created)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from db.base import as_utc
from db.models.job_run import JobRun, JobRunOutcome
from db.repositories.job_run_repository import JobRunRepository
from freshness.clock import Clock, elapsed_ms, utc_now
from freshness.types import HealingOutcome, JobRunSnapshot, OverdueJob, StaleJobsReport

logger = logging.getLogger(__name__)

_MAX_ERROR_LENGTH = 2000


class RunHandle:
    """
    Finalizes one job run exactly once. Later calls are no-ops with a warning.
    """

    def __init__(
        self,
        *,
        ledger: JobRunLedger,
        job_name: str,
        run_id: uuid.UUID | None,
        started_at: datetime,
    ) -> None:
        self._ledger = ledger
        self.job_name = job_name
        self.run_id = run_id
        self.started_at = started_at
        self._outcome: str | None = None

    @property
    def finished(self) -> bool:
        return self._outcome is not None

    @property
    def outcome(self) -> str:
        return self._outcome or JobRunOutcome.PENDING

    @property
    def detached(self) -> bool:
        """True when the start write failed and nothing will be persisted."""
        return self.run_id is None

    def success(
        self,
        *,
        items_processed: int = 0,
        items_failed: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        if not self._claim(JobRunOutcome.SUCCESS):
            return
        self._ledger._complete_success(
            self,
            items_processed=items_processed,
            items_failed=items_failed,
            metadata=metadata,
        )

    def fail(self, error: BaseException | str) -> None:
        if not self._claim(JobRunOutcome.FAILURE):
            return
        if isinstance(error, BaseException):
            message = f"{type(error).__name__}: {error}"
        else:
            message = str(error)
        self._ledger._complete_failure(self, error_summary=message[:_MAX_ERROR_LENGTH])

    def _claim(self, outcome: str) -> bool:
        if self._outcome is not None:
            logger.warning(
                "Job run already finalized job=%s run_id=%s outcome=%s ignored=%s",
                self.job_name,
                self.run_id,
                self._outcome,
                outcome,
            )
            return False
        self._outcome = outcome
        return True


class JobRunLedger:
    """
    Narrow start/complete API over the ``job_runs`` table.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def start(self, job_name: str, metadata: dict[str, Any] | None = None) -> RunHandle:
        started_at = self._clock()
        run_id: uuid.UUID | None = None
        try:
            with self._session_factory() as db:
                run = JobRunRepository(db).create_run(
                    job_name=job_name,
                    started_at=started_at,
                    metadata=metadata,
                )
                run_id = run.id
                db.commit()
        except Exception:
            run_id = None
            logger.exception("Ledger write failed on start job=%s", job_name)
        else:
            logger.info("Job started job=%s run_id=%s", job_name, run_id)
        return RunHandle(ledger=self, job_name=job_name, run_id=run_id, started_at=started_at)

    @contextmanager
    def track(self, job_name: str, metadata: dict[str, Any] | None = None) -> Iterator[RunHandle]:
        """
        Record a run around a block: success on normal exit, failure (re-raised) on error.

        The block may finalize the handle itself to attach item counts.
        """

        handle = self.start(job_name, metadata=metadata)
        try:
            yield handle
        except BaseException as exc:
            if not handle.finished:
                handle.fail(exc)
            raise
        if not handle.finished:
            handle.success()

    def last_run(self, job_name: str) -> JobRunSnapshot | None:
        with self._session_factory() as db:
            run = JobRunRepository(db).latest_run(job_name)
            return _snapshot(run) if run is not None else None

    def last_success(self, job_name: str) -> JobRunSnapshot | None:
        with self._session_factory() as db:
            run = JobRunRepository(db).latest_run(job_name, outcome=JobRunOutcome.SUCCESS)
            return _snapshot(run) if run is not None else None

    def last_refresh(self, job_name: str, *, scan_limit: int = 50) -> JobRunSnapshot | None:
        """
        Latest successful run that counts as a data refresh.

        Healing runs recorded with outcome ``no_new_data`` are skipped, so they
        never move a source's freshness basis forward. Only the newest
        ``scan_limit`` successes are inspected.
        """

        with self._session_factory() as db:
            runs = JobRunRepository(db).list_runs(job_name, outcome=JobRunOutcome.SUCCESS, limit=scan_limit)
            for run in runs:
                if (run.run_metadata or {}).get("outcome") != HealingOutcome.NO_NEW_DATA:
                    return _snapshot(run)
        return None

    def recent_runs(self, job_name: str, *, limit: int = 20) -> list[JobRunSnapshot]:
        with self._session_factory() as db:
            return [_snapshot(run) for run in JobRunRepository(db).list_runs(job_name, limit=limit)]

    def stale_jobs(self, expected_intervals_by_job: Mapping[str, float]) -> StaleJobsReport:
        """
        Compare each job's history against its expected cadence (in hours).

        A job whose latest run is still pending after a full cadence is hung and
        listed only under ``hung``. Otherwise a job is stale when its last
        success is older than the cadence or it never succeeded.
        """

        now = self._clock()
        stale: list[OverdueJob] = []
        hung: list[OverdueJob] = []

        with self._session_factory() as db:
            repository = JobRunRepository(db)
            for job_name, interval_hours in expected_intervals_by_job.items():
                cadence = timedelta(hours=interval_hours)
                latest = repository.latest_run(job_name)
                latest_success = repository.latest_run(job_name, outcome=JobRunOutcome.SUCCESS)
                last_run = _snapshot(latest) if latest is not None else None
                last_success_at = as_utc(latest_success.started_at) if latest_success is not None else None
                overdue = OverdueJob(
                    job_name=job_name,
                    expected_interval_hours=interval_hours,
                    last_success_at=last_success_at,
                    last_run=last_run,
                )

                if (
                    last_run is not None
                    and last_run.outcome == JobRunOutcome.PENDING
                    and now - last_run.started_at > cadence
                ):
                    hung.append(overdue)
                elif last_success_at is None or now - last_success_at > cadence:
                    stale.append(overdue)

        if hung:
            logger.warning("Hung jobs detected jobs=%s", [job.job_name for job in hung])
        if stale:
            logger.info("Stale jobs detected jobs=%s", [job.job_name for job in stale])
        return StaleJobsReport(stale=stale, hung=hung)

    def _complete_success(
        self,
        handle: RunHandle,
        *,
        items_processed: int,
        items_failed: int,
        metadata: dict[str, Any] | None,
    ) -> None:
        if handle.run_id is None:
            return
        finished_at = self._clock()
        duration_ms = elapsed_ms(handle.started_at, finished_at)
        try:
            with self._session_factory() as db:
                run = JobRunRepository(db).mark_success(
                    run_id=handle.run_id,
                    finished_at=finished_at,
                    duration_ms=duration_ms,
                    items_processed=max(0, items_processed),
                    items_failed=max(0, items_failed),
                    metadata=metadata,
                )
                if run is None:
                    logger.warning(
                        "Job run not pending, success not recorded job=%s run_id=%s",
                        handle.job_name,
                        handle.run_id,
                    )
                db.commit()
        except Exception:
            logger.exception(
                "Ledger write failed on success job=%s run_id=%s",
                handle.job_name,
                handle.run_id,
            )
            return
        logger.info(
            "Job succeeded job=%s run_id=%s duration_ms=%s items_processed=%s items_failed=%s",
            handle.job_name,
            handle.run_id,
            duration_ms,
            items_processed,
            items_failed,
        )

    def _complete_failure(self, handle: RunHandle, *, error_summary: str) -> None:
        if handle.run_id is None:
            return
        finished_at = self._clock()
        duration_ms = elapsed_ms(handle.started_at, finished_at)
        try:
            with self._session_factory() as db:
                run = JobRunRepository(db).mark_failure(
                    run_id=handle.run_id,
                    finished_at=finished_at,
                    duration_ms=duration_ms,
                    error_summary=error_summary,
                )
                if run is None:
                    logger.warning(
                        "Job run not pending, failure not recorded job=%s run_id=%s",
                        handle.job_name,
                        handle.run_id,
                    )
                db.commit()
        except Exception:
            logger.exception(
                "Ledger write failed on failure job=%s run_id=%s",
                handle.job_name,
                handle.run_id,
            )
            return
        logger.error(
            "Job failed job=%s run_id=%s duration_ms=%s error=%s",
            handle.job_name,
            handle.run_id,
            duration_ms,
            error_summary,
        )


def _snapshot(run: JobRun) -> JobRunSnapshot:
    return JobRunSnapshot(
        id=run.id,
        job_name=run.job_name,
        outcome=run.outcome,
        started_at=as_utc(run.started_at),
        finished_at=as_utc(run.finished_at),
        duration_ms=run.duration_ms,
        items_processed=run.items_processed or 0,
        items_failed=run.items_failed or 0,
        metadata=dict(run.run_metadata or {}),
        error_summary=run.error_summary,
    )

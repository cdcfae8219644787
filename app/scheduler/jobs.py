"""
app/scheduler/jobs.py

APScheduler-based runner for periodic freshness jobs.

The schedule is plain data: a list of ``ScheduleEntry`` records handed to
``build_scheduler``. The orchestrator knows nothing about wall-clock
scheduling; it is only invoked.

Every entry runs under a ``DistributedLock`` lease keyed by its job id, so
with several API processes each job still executes at most once at a time.
A denied lease skips the tick; the next tick retries.

Default schedule (all times UTC)
---------------------------------
  orchestrate_data: every 30 minutes, auto-heal pass
  stale_job_sweep:  every 15 minutes, ledger stale/hung report

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import SchedulerSettings, get_scheduler_settings
from freshness.lock import DistributedLock
from freshness.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "schedule:"


@dataclass(frozen=True)
class ScheduleEntry:
    """
    One periodic job: what to run, when (crontab expression, UTC), and its lease.
    """

    job_id: str
    name: str
    func: Callable[[], None]
    cron: str
    lease_seconds: int = 1800
    misfire_grace_seconds: int = 300


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


def run_orchestrate_data(orchestrator: Orchestrator) -> None:
    """
    Auto-heal stale sources. The pass records itself in the ledger.
    """
    logger.info("Scheduler: orchestrate_data starting")
    report = orchestrator.run_auto_heal()
    logger.info(
        "Scheduler: orchestrate_data complete state=%s ready=%s health=%s actions=%s",
        report.state,
        report.ready,
        report.overall_health,
        len(report.healing_actions),
    )


def run_stale_job_sweep(orchestrator: Orchestrator) -> None:
    """
    Report jobs overdue against their cadence; hung runs are logged as errors.
    """
    with orchestrator.ledger.track("stale-job-sweep") as handle:
        report = orchestrator.stale_jobs()
        for job in report.hung:
            logger.error(
                "Scheduler: hung job job=%s started_at=%s expected_interval_hours=%s",
                job.job_name,
                job.last_run.started_at.isoformat() if job.last_run is not None else None,
                job.expected_interval_hours,
            )
        for job in report.stale:
            logger.warning(
                "Scheduler: stale job job=%s last_success_at=%s expected_interval_hours=%s",
                job.job_name,
                job.last_success_at.isoformat() if job.last_success_at is not None else None,
                job.expected_interval_hours,
            )
        handle.success(
            items_processed=len(report.stale) + len(report.hung),
            metadata={
                "stale": [job.job_name for job in report.stale],
                "hung": [job.job_name for job in report.hung],
            },
        )


def default_schedule(
    orchestrator: Orchestrator,
    settings: SchedulerSettings | None = None,
) -> list[ScheduleEntry]:
    settings = settings or get_scheduler_settings()
    return [
        ScheduleEntry(
            job_id="orchestrate_data",
            name="Freshness orchestration (auto-heal)",
            func=lambda: run_orchestrate_data(orchestrator),
            cron=settings.orchestrate_cron,
            lease_seconds=1800,
            misfire_grace_seconds=settings.misfire_grace_seconds,
        ),
        ScheduleEntry(
            job_id="stale_job_sweep",
            name="Stale and hung job sweep",
            func=lambda: run_stale_job_sweep(orchestrator),
            cron=settings.stale_sweep_cron,
            lease_seconds=600,
            misfire_grace_seconds=settings.misfire_grace_seconds,
        ),
    ]


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def locked_job(entry: ScheduleEntry, lock: DistributedLock) -> Callable[[], None]:
    """
    Wrap ``entry.func`` so it only runs while holding the entry's lease.
    """

    key = f"{LOCK_KEY_PREFIX}{entry.job_id}"

    def run() -> None:
        with lock.hold(key, entry.lease_seconds) as token:
            if token is None:
                logger.info("Scheduler: %s skipped, lease held elsewhere", entry.job_id)
                return
            try:
                entry.func()
            except Exception:
                logger.exception("Scheduler: %s failed", entry.job_id)

    run.__name__ = f"locked_{entry.job_id}"
    return run


def build_scheduler(
    entries: Sequence[ScheduleEntry] | None = None,
    *,
    lock: DistributedLock | None = None,
) -> BackgroundScheduler:
    """
    Register every entry on a new scheduler.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    if entries is None or lock is None:
        from db.session import SessionLocal
        from freshness.orchestrator import get_orchestrator

        if entries is None:
            entries = default_schedule(get_orchestrator())
        if lock is None:
            lock = DistributedLock(SessionLocal)

    scheduler = BackgroundScheduler(timezone="UTC")
    for entry in entries:
        scheduler.add_job(
            locked_job(entry, lock),
            trigger=CronTrigger.from_crontab(entry.cron, timezone="UTC"),
            id=entry.job_id,
            name=entry.name,
            replace_existing=True,
            misfire_grace_time=entry.misfire_grace_seconds,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Scheduler: registered job=%s cron=%r", entry.job_id, entry.cron)
    return scheduler

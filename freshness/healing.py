"""
freshness/healing.py

Re-ingests stale sources and verifies the remedy.

Each trigger call is awaited for at most the pass budget. A call that
overruns is recorded as a timeout and left to finish in its own daemon
thread; it is not retried in this pass, the next scheduled pass picks the
source up again. A call holds one of the engine's ingestion slots until the
trigger actually returns, so hung upstreams keep counting against
``max_concurrency``. Waiting for a free slot spends the source's budget.
Trigger failures never stop healing of the other sources.
Ledger writes happen on the calling thread only.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from freshness.checker import FreshnessChecker
from freshness.clock import Clock, utc_now
from freshness.errors import TriggerError, TriggerTimeoutError
from freshness.ledger import JobRunLedger
from freshness.logging_utils import log_event
from freshness.triggers import IngestionTrigger, TriggerRegistry, coerce_result
from freshness.types import HealingAction, HealingOutcome, IngestionResult, Source

logger = logging.getLogger(__name__)


@dataclass
class _Attempt:
    outcome: str
    result: IngestionResult | None = None
    error: str | None = None
    duration_ms: int = 0
    attempts: int = 1


class HealingEngine:
    """
    Bounded fan-out of ingestion triggers with a per-call time budget.
    """

    def __init__(
        self,
        *,
        triggers: TriggerRegistry,
        ledger: JobRunLedger,
        checker: FreshnessChecker,
        max_concurrency: int = 3,
        retry_attempts: int = 0,
        clock: Clock = utc_now,
    ) -> None:
        self._triggers = triggers
        self._ledger = ledger
        self._checker = checker
        self._max_concurrency = max(1, max_concurrency)
        self._slots = threading.BoundedSemaphore(self._max_concurrency)
        self._retry_attempts = max(0, retry_attempts)
        self._clock = clock

    def heal(
        self,
        stale_sources: Sequence[Source],
        budget_ms: int,
        *,
        reasons: Mapping[str, str] | None = None,
    ) -> list[HealingAction]:
        if not stale_sources:
            return []
        if budget_ms <= 0:
            raise ValueError("budget_ms must be positive.")

        reasons = reasons or {}
        ordered = sorted(stale_sources, key=lambda source: source.priority)
        # Resolve every trigger before any run is recorded so an unknown
        # reference cannot leave pending ledger rows behind.
        resolved_triggers = {source.id: self._triggers.resolve(source) for source in ordered}

        actions: list[HealingAction] = []
        workers = min(self._max_concurrency, len(ordered))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="healing") as pool:
            submitted = []
            for source in ordered:
                reason = reasons.get(source.id, "stale")
                handle = self._ledger.start(
                    source.job_name,
                    metadata={"trigger": "healing", "source_id": source.id, "reason": reason},
                )
                action = HealingAction(
                    source_id=source.id,
                    reason=reason,
                    triggered_at=self._clock(),
                )
                future = pool.submit(self._attempt, source, resolved_triggers[source.id], budget_ms)
                submitted.append((source, action, handle, future))

            for source, action, handle, future in submitted:
                attempt: _Attempt = future.result()
                self._apply(action, attempt, budget_ms)
                if action.succeeded:
                    result = attempt.result or IngestionResult()
                    handle.success(
                        items_processed=result.items_created,
                        items_failed=len(result.errors),
                        metadata={"items_skipped": result.items_skipped, "outcome": action.outcome},
                    )
                else:
                    handle.fail(attempt.error or action.outcome)
                actions.append(action)

        self._verify(actions, ordered)

        log_event(
            logger,
            logging.INFO,
            "healing_complete",
            attempted=len(actions),
            succeeded=sum(1 for action in actions if action.succeeded),
            resolved=sum(1 for action in actions if action.resolved),
        )
        return actions

    def _attempt(self, source: Source, trigger: IngestionTrigger, budget_ms: int) -> _Attempt:
        started = time.monotonic()
        deadline = started + budget_ms / 1000.0
        attempts = 0
        last_error: str | None = None

        while attempts <= self._retry_attempts:
            attempts += 1
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return _Attempt(
                    outcome=HealingOutcome.TIMEOUT,
                    error=last_error or "timeout",
                    duration_ms=_since_ms(started),
                    attempts=attempts - 1,
                )
            try:
                raw = _call_with_timeout(trigger, source.id, remaining, self._slots)
                result = coerce_result(raw)
            except TriggerTimeoutError as exc:
                return _Attempt(
                    outcome=HealingOutcome.TIMEOUT,
                    error=str(exc),
                    duration_ms=_since_ms(started),
                    attempts=attempts,
                )
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}" if not isinstance(exc, TriggerError) else str(exc)
                logger.warning(
                    "Healing trigger failed source=%s attempt=%s/%s error=%s",
                    source.id,
                    attempts,
                    self._retry_attempts + 1,
                    last_error,
                )
                continue

            if result.errors and result.items_created == 0:
                last_error = "; ".join(result.errors)[:500]
                logger.warning(
                    "Healing trigger reported errors source=%s attempt=%s/%s errors=%s",
                    source.id,
                    attempts,
                    self._retry_attempts + 1,
                    len(result.errors),
                )
                continue

            outcome = HealingOutcome.REFRESHED if result.items_created > 0 else HealingOutcome.NO_NEW_DATA
            return _Attempt(
                outcome=outcome,
                result=result,
                duration_ms=_since_ms(started),
                attempts=attempts,
            )

        return _Attempt(
            outcome=HealingOutcome.TRIGGER_ERROR,
            error=last_error,
            duration_ms=_since_ms(started),
            attempts=attempts,
        )

    @staticmethod
    def _apply(action: HealingAction, attempt: _Attempt, budget_ms: int) -> None:
        action.outcome = attempt.outcome
        action.duration_ms = attempt.duration_ms
        action.attempts = attempt.attempts

        if attempt.outcome == HealingOutcome.TIMEOUT:
            action.succeeded = False
            action.result_summary = f"Timed out after {budget_ms}ms ({action.reason})"
            action.reason = "timeout"
        elif attempt.outcome == HealingOutcome.TRIGGER_ERROR:
            action.succeeded = False
            action.result_summary = attempt.error or "Trigger failed"
        else:
            result = attempt.result or IngestionResult()
            action.succeeded = True
            if attempt.outcome == HealingOutcome.REFRESHED:
                action.result_summary = f"Created {result.items_created} items"
            else:
                action.result_summary = "No new items"
            if result.items_skipped:
                action.result_summary += f", skipped {result.items_skipped}"
            if result.errors:
                action.result_summary += f", {len(result.errors)} item errors"

        log_event(
            logger,
            logging.INFO if action.succeeded else logging.WARNING,
            "healing_action",
            source_id=action.source_id,
            outcome=action.outcome,
            reason=action.reason,
            duration_ms=action.duration_ms,
            attempts=action.attempts,
            summary=action.result_summary,
        )

    def _verify(self, actions: list[HealingAction], attempted: Sequence[Source]) -> None:
        records = {record.source_id: record for record in self._checker.check(attempted)}
        for action in actions:
            record = records.get(action.source_id)
            action.resolved = record is not None and not record.is_stale
            if action.succeeded and not action.resolved:
                logger.warning(
                    "Healing trigger succeeded but source is still stale source=%s",
                    action.source_id,
                )


def _call_with_timeout(
    trigger: IngestionTrigger,
    source_id: str,
    timeout_seconds: float,
    slots: threading.BoundedSemaphore,
) -> Any:
    """
    Run ``trigger`` in a daemon thread and wait at most ``timeout_seconds`` for it.

    The slot is taken before the thread starts and released only when the
    trigger returns, even if the caller has already given up on it.
    """

    deadline = time.monotonic() + timeout_seconds
    if not slots.acquire(timeout=max(0.0, timeout_seconds)):
        raise TriggerTimeoutError(f"{source_id}: no ingestion slot free within {timeout_seconds:.3f}s")

    outcome: dict[str, Any] = {}
    done = threading.Event()

    def _run() -> None:
        try:
            outcome["value"] = trigger(source_id)
        except Exception as exc:
            outcome["error"] = exc
        finally:
            slots.release()
            done.set()

    thread = threading.Thread(target=_run, name=f"ingest-{source_id}", daemon=True)
    try:
        thread.start()
    except RuntimeError:
        slots.release()
        raise
    if not done.wait(max(0.0, deadline - time.monotonic())):
        raise TriggerTimeoutError(f"{source_id}: trigger did not complete within {timeout_seconds:.3f}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")


def _since_ms(started_monotonic: float) -> int:
    return int((time.monotonic() - started_monotonic) * 1000)

"""
Exception taxonomy for the freshness orchestrator.

Only ``UnknownSourceError`` is expected to escape the orchestrator; the
others are converted to structured records at the orchestration boundary.
"""

from __future__ import annotations


class FreshnessError(Exception):
    """Base exception for freshness orchestration failures."""


class UnknownSourceError(FreshnessError, KeyError):
    """Raised when a source id or ingestion reference is not registered."""

    def __init__(self, source_id: str) -> None:
        super().__init__(source_id)
        self.source_id = source_id

    def __str__(self) -> str:
        return f"Unknown source: {self.source_id}"


class TriggerError(FreshnessError):
    """Raised when an ingestion trigger fails (network, parse, upstream 5xx)."""


class TriggerTimeoutError(TriggerError):
    """Raised when an ingestion trigger does not settle within its budget."""


class LockDenied(FreshnessError):
    """Another live lease holds the lock key. An expected outcome, not a failure."""

    def __init__(self, key: str) -> None:
        super().__init__(f"lock denied (key={key})")
        self.key = key


class QualityShortfall(FreshnessError):
    """Ingestion succeeded but produced too little or too low-quality data."""

    def __init__(self, source_id: str, selected: int, required: int) -> None:
        super().__init__(
            f"{source_id}: quality shortfall ({selected} items selected, {required} required)"
        )
        self.source_id = source_id
        self.selected = selected
        self.required = required


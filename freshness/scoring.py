"""
freshness/scoring.py

Per-source quality scoring of ingested content.
Deduplicates items, scores them on a 0-100 scale, and reports the yield.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from freshness.clock import Clock, hours_between, utc_now
from freshness.types import ContentItem, QualityReport, QualitySummary, ScoredItem

ISSUE_NO_ITEMS_SELECTED = "no_items_selected"

_TOP_ITEMS = 5
_TOP_CONTRIBUTORS = 3
_UNKNOWN_DATE_RECENCY = 30.0
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)

# (max age in hours, score); ages at or past the last bound score 10.
_RECENCY_DECAY: tuple[tuple[float, float], ...] = (
    (1.0, 100.0),
    (3.0, 95.0),
    (6.0, 85.0),
    (12.0, 70.0),
    (24.0, 50.0),
    (48.0, 30.0),
    (72.0, 20.0),
)

DEFAULT_SIGNAL_KEYWORDS: tuple[str, ...] = (
    "emergency", "evacuation", "closure", "closed", "suspended", "canceled",
    "free", "deadline", "last day", "last chance", "opening", "breaking",
    "urgent", "alert", "warning", "outage", "delay", "sale", "discount",
)


@dataclass(frozen=True)
class ScoringRules:
    """Source-specific scoring configuration.

    Weights need not sum to 1.0; the weighted score is normalized by their sum.
    """

    min_score: float = 40.0
    required_fields: tuple[str, ...] = ("title", "url")
    recency_weight: float = 0.4
    completeness_weight: float = 0.3
    signal_weight: float = 0.3
    signal_keywords: tuple[str, ...] = DEFAULT_SIGNAL_KEYWORDS
    base_signal: float = 40.0
    keyword_bonus: float = 15.0
    max_keyword_hits: int = 3

    def __post_init__(self) -> None:
        weights = (self.recency_weight, self.completeness_weight, self.signal_weight)
        if any(weight < 0 for weight in weights) or sum(weights) <= 0:
            raise ValueError("Scoring weights must be non-negative with a positive sum.")
        if not 0.0 <= self.min_score <= 100.0:
            raise ValueError("min_score must be within [0, 100].")


def dedup_key(content_type: str, title: str) -> str:
    """Build a normalized key for items that carry no external id.

    Lowercases the title, strips punctuation, keeps words longer than three
    characters, sorts them and takes the first five.

    Args:
        content_type: Prefix identifying the kind of content (e.g. "news").
        title: Raw item title.

    Returns:
        A key such as ``news-budget-council-passes``.
    """
    words = re.sub(r"[^a-z0-9\s]", "", title.lower()).split()
    normalized = "-".join(sorted(word for word in words if len(word) > 3)[:5])
    return f"{content_type}-{normalized}"


def score_recency(published_at: datetime | None, now: datetime) -> float:
    if published_at is None:
        return _UNKNOWN_DATE_RECENCY
    hours_ago = hours_between(_aware(published_at), now)
    if hours_ago < 0:
        return 100.0
    for bound, score in _RECENCY_DECAY:
        if hours_ago < bound:
            return score
    return 10.0


def score_completeness(item: ContentItem, required_fields: Sequence[str]) -> float:
    if not required_fields:
        return 100.0
    present = sum(1 for name in required_fields if _has_value(item, name))
    return 100.0 * present / len(required_fields)


def score_signal(item: ContentItem, rules: ScoringRules) -> float:
    if item.signal is not None:
        return _clamp(float(item.signal))
    text = " ".join(part for part in (item.title, item.body) if part).lower()
    hits = sum(1 for keyword in rules.signal_keywords if keyword in text)
    return _clamp(rules.base_signal + rules.keyword_bonus * min(hits, rules.max_keyword_hits))


class QualityScorer:
    """Deduplicates, scores, and filters content per source.

    Items below their source's ``min_score`` stay in ``items_evaluated`` but
    are not selected, so the yield ratio remains visible.
    """

    def __init__(
        self,
        *,
        rules_by_source: Mapping[str, ScoringRules] | None = None,
        default_rules: ScoringRules | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._rules_by_source = dict(rules_by_source or {})
        self._default_rules = default_rules or ScoringRules()
        self._clock = clock

    def rules_for(self, source_id: str) -> ScoringRules:
        return self._rules_by_source.get(source_id, self._default_rules)

    def score(
        self,
        items_by_source: Mapping[str, Iterable[ContentItem]],
        *,
        minimums: Mapping[str, int] | None = None,
    ) -> list[QualityReport]:
        """Score every source's batch.

        Args:
            items_by_source: Items keyed by source id. A source with an empty
                batch still gets a report.
            minimums: Minimum selected-item count per source id; sources
                not listed have no minimum.

        Returns:
            One QualityReport per source, in the mapping's order.
        """
        now = self._clock()
        minimums = minimums or {}
        return [
            self._score_source(source_id, list(items), now, minimums.get(source_id, 0))
            for source_id, items in items_by_source.items()
        ]

    def _score_source(
        self,
        source_id: str,
        items: list[ContentItem],
        now: datetime,
        min_selected: int,
    ) -> QualityReport:
        rules = self.rules_for(source_id)
        unique = _deduplicate(items)
        duplicates_removed = len(items) - len(unique)

        scored = [self._score_item(item, rules, now) for item in unique]
        selected = [entry for entry in scored if entry.selected]

        issues: list[str] = []
        if selected:
            average = round(sum(entry.score for entry in selected) / len(selected), 2)
        else:
            average = 0.0
            issues.append(ISSUE_NO_ITEMS_SELECTED)

        incomplete = sum(
            1
            for item in unique
            if any(not _has_value(item, name) for name in rules.required_fields)
        )
        if incomplete:
            issues.append(f"missing_required_fields: {incomplete} of {len(unique)} items")
        if len(selected) < min_selected:
            issues.append(f"below_minimum: {len(selected)} selected, {min_selected} required")

        top = sorted(selected, key=lambda entry: entry.score, reverse=True)[:_TOP_ITEMS]
        return QualityReport(
            source_id=source_id,
            items_evaluated=len(unique),
            items_selected=len(selected),
            duplicates_removed=duplicates_removed,
            average_score=average,
            min_selected=min_selected,
            issues=issues,
            top_items=top,
        )

    @staticmethod
    def _score_item(item: ContentItem, rules: ScoringRules, now: datetime) -> ScoredItem:
        recency = score_recency(item.published_at, now)
        completeness = score_completeness(item, rules.required_fields)
        signal = score_signal(item, rules)

        total_weight = rules.recency_weight + rules.completeness_weight + rules.signal_weight
        weighted = (
            recency * rules.recency_weight
            + completeness * rules.completeness_weight
            + signal * rules.signal_weight
        ) / total_weight
        score = round(_clamp(weighted), 2)
        return ScoredItem(item=item, score=score, selected=score >= rules.min_score)

    def summarize(self, reports: Sequence[QualityReport]) -> QualitySummary:
        evaluated = sum(report.items_evaluated for report in reports)
        selected = sum(report.items_selected for report in reports)
        score_total = sum(report.average_score * report.items_selected for report in reports)

        contributors = sorted(
            (report for report in reports if report.items_selected > 0),
            key=lambda report: (report.items_selected, report.average_score),
            reverse=True,
        )
        return QualitySummary(
            items_evaluated=evaluated,
            items_selected=selected,
            selection_rate=round(selected / evaluated, 4) if evaluated else 0.0,
            average_score=round(score_total / selected, 2) if selected else 0.0,
            top_contributors=[report.source_id for report in contributors[:_TOP_CONTRIBUTORS]],
        )


def _deduplicate(items: Sequence[ContentItem]) -> list[ContentItem]:
    # Last write wins by seen_at; on ties the later item in the batch wins.
    latest: dict[str, ContentItem] = {}
    for position, item in enumerate(items):
        key = _identity(item, position)
        current = latest.get(key)
        if current is None or _seen(item) >= _seen(current):
            latest[key] = item
    return list(latest.values())


def _identity(item: ContentItem, position: int) -> str:
    # Items with no id, no usable title words and no url never merge.
    if item.external_id:
        return item.external_id
    title_key = dedup_key(item.source_id, item.title or "")
    if title_key != f"{item.source_id}-":
        return title_key
    if item.url:
        return f"{item.source_id}-url:{item.url.strip()}"
    return f"{item.source_id}-unkeyed:{position}"


def _seen(item: ContentItem) -> datetime:
    return _EARLIEST if item.seen_at is None else _aware(item.seen_at)


def _aware(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _has_value(item: ContentItem, name: str) -> bool:
    value = getattr(item, name, None)
    if value is None:
        value = item.payload.get(name)
    if isinstance(value, str):
        return bool(value.strip())
    return value is not None


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))

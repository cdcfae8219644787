"""
freshness/catalog.py

Static source catalog. Thresholds follow each upstream's publishing cadence;
``min_selected`` is the fewest selected items a source must contribute
before a digest is allowed to go out.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from freshness.types import Source

DEFAULT_SOURCES: tuple[Source, ...] = (
    Source(
        id="news",
        display_name="NYC News",
        threshold_hours=12,
        ingest_ref="/api/jobs/ingest/news",
        priority=1,
        critical=True,
        min_selected=3,
    ),
    Source(
        id="mta",
        display_name="MTA Subway Alerts",
        threshold_hours=1,
        ingest_ref="/api/jobs/ingest/mta-alerts",
        priority=1,
        min_selected=0,
    ),
    Source(
        id="sample-sales",
        display_name="Sample Sales",
        threshold_hours=24,
        ingest_ref="/api/jobs/ingest/sample-sales",
        priority=2,
        min_selected=1,
    ),
    Source(
        id="housing",
        display_name="Housing Lotteries",
        threshold_hours=48,
        ingest_ref="/api/jobs/ingest/housing-lotteries",
        priority=3,
        min_selected=0,
    ),
    Source(
        id="311",
        display_name="311 Service Alerts",
        threshold_hours=4,
        ingest_ref="/api/jobs/scrape-311",
        priority=2,
        min_selected=0,
    ),
    Source(
        id="air-quality",
        display_name="Air Quality",
        threshold_hours=6,
        ingest_ref="/api/jobs/scrape-air-quality",
        priority=3,
        min_selected=1,
    ),
    Source(
        id="dining",
        display_name="Dining Deals",
        threshold_hours=24,
        ingest_ref="/api/jobs/scrape-dining",
        priority=3,
        min_selected=0,
    ),
    Source(
        id="parks",
        display_name="Parks Events",
        threshold_hours=24,
        ingest_ref="/api/jobs/scrape-parks",
        priority=3,
        min_selected=0,
    ),
    Source(
        id="museums",
        display_name="Museum Free Days",
        threshold_hours=7 * 24,
        ingest_ref="/api/jobs/seed-museums",
        priority=3,
        min_selected=5,
    ),
    Source(
        id="news-curation",
        display_name="News Curation",
        threshold_hours=24,
        ingest_ref="/api/jobs/curate-news",
        priority=2,
        critical=True,
        min_selected=3,
    ),
)

_REQUIRED_KEYS = ("id", "display_name", "threshold_hours", "ingest_ref")
_OPTIONAL_KEYS = ("job_name", "priority", "critical", "min_selected")


def load_sources_file(path: str | Path) -> tuple[Source, ...]:
    """
    Load a catalog from a JSON file holding a list of source objects.
    """

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"Source catalog {path} must be a JSON list.")
    return tuple(_source_from_mapping(entry, index) for index, entry in enumerate(raw))


def _source_from_mapping(entry: Any, index: int) -> Source:
    if not isinstance(entry, dict):
        raise ValueError(f"Source catalog entry #{index} must be an object.")
    missing = [key for key in _REQUIRED_KEYS if key not in entry]
    if missing:
        raise ValueError(f"Source catalog entry #{index} is missing keys: {', '.join(missing)}")

    kwargs: dict[str, Any] = {key: entry[key] for key in _REQUIRED_KEYS}
    kwargs["threshold_hours"] = float(kwargs["threshold_hours"])
    for key in _OPTIONAL_KEYS:
        if key in entry:
            kwargs[key] = entry[key]
    return Source(**kwargs)

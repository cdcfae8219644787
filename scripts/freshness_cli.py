"""
Run freshness orchestration passes from CLI.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any

from freshness.errors import UnknownSourceError
from freshness.orchestrator import build_orchestrator


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def main() -> int:
    parser = argparse.ArgumentParser(description="Check, heal, or gate data freshness.")
    parser.add_argument(
        "command",
        choices=("status", "heal", "force", "ready", "stale-jobs"),
        help="status: read-only snapshot; heal: auto-heal stale sources; "
        "force: re-ingest unconditionally; ready: readiness verdict; "
        "stale-jobs: overdue and hung ledger jobs.",
    )
    parser.add_argument(
        "--source",
        dest="sources",
        action="append",
        default=None,
        help="Source id to force (repeatable). Defaults to every source.",
    )
    parser.add_argument(
        "--budget-ms",
        dest="budget_ms",
        type=int,
        default=None,
        help="Per-trigger time budget override in milliseconds.",
    )
    parser.add_argument(
        "--full",
        action="store_true",
        help="Print the full report instead of the consumer contract.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    orchestrator = build_orchestrator()

    if args.command == "stale-jobs":
        print(json.dumps(asdict(orchestrator.stale_jobs()), indent=2, default=_default))
        return 0

    try:
        if args.command == "status":
            report = orchestrator.run_status()
        elif args.command == "heal":
            report = orchestrator.run_auto_heal(args.budget_ms)
        elif args.command == "force":
            report = orchestrator.run_force(args.sources, args.budget_ms)
        else:
            report = orchestrator.ensure_ready(args.budget_ms).report
    except UnknownSourceError as exc:
        parser.error(str(exc))

    payload = asdict(report) if args.full else report.to_contract()
    print(json.dumps(payload, indent=2, default=_default))
    if args.command == "ready":
        return 0 if report.ready else 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

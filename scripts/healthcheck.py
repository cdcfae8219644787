"""
Container health check for the freshness API.

Exits 0 when ``/health`` answers. With ``--ready`` it also requires the
readiness gate to pass, sending CRON_SECRET as the operator credential.
"""

from __future__ import annotations

import argparse
import os
from urllib.error import URLError
from urllib.request import Request, urlopen


def _probe(url: str, headers: dict[str, str], timeout: float) -> bool:
    request = Request(url, headers=headers)
    try:
        with urlopen(request, timeout=timeout) as response:
            return 200 <= response.status < 400
    except (URLError, TimeoutError, ValueError):
        return False


def main() -> int:
    parser = argparse.ArgumentParser(description="Probe the freshness API.")
    parser.add_argument("--ready", action="store_true", help="Also require /freshness/ready to pass.")
    parser.add_argument("--timeout", type=float, default=2.0)
    args = parser.parse_args()

    base_url = f"http://127.0.0.1:{os.getenv('PORT', '8000')}"
    if not _probe(f"{base_url}{os.getenv('HEALTHCHECK_PATH', '/health')}", {}, args.timeout):
        return 1
    if not args.ready:
        return 0

    headers: dict[str, str] = {}
    secret = os.getenv("CRON_SECRET", "").strip()
    if secret:
        headers["x-cron-secret"] = secret
    return 0 if _probe(f"{base_url}/freshness/ready", headers, max(args.timeout, 130.0)) else 1


if __name__ == "__main__":
    raise SystemExit(main())

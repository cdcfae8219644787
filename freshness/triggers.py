"""
freshness/triggers.py

Ingestion trigger adapters. A trigger re-ingests one source by name, must
be idempotent (deduplicating by external id), and reports item counts and
item-level errors rather than hiding them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

import requests

from freshness.errors import TriggerError, UnknownSourceError
from freshness.types import IngestionResult, Source

logger = logging.getLogger(__name__)


class IngestionTrigger(Protocol):
    def __call__(self, source_id: str) -> IngestionResult | Mapping[str, Any]:
        ...


def coerce_result(raw: IngestionResult | Mapping[str, Any] | None) -> IngestionResult:
    """
    Normalize a trigger return value. Accepts snake_case or camelCase mappings.
    """

    if isinstance(raw, IngestionResult):
        return raw
    if raw is None:
        return IngestionResult()
    if not isinstance(raw, Mapping):
        raise TriggerError(f"Trigger returned unsupported result type {type(raw).__name__}.")

    created = raw.get("items_created", raw.get("itemsCreated", raw.get("created", 0)))
    skipped = raw.get("items_skipped", raw.get("itemsSkipped", raw.get("skipped", 0)))
    errors = raw.get("errors") or ()
    try:
        return IngestionResult(
            items_created=int(created or 0),
            items_skipped=int(skipped or 0),
            errors=tuple(str(error) for error in errors),
        )
    except (TypeError, ValueError) as exc:
        raise TriggerError(f"Trigger returned malformed counts: {exc}") from exc


class TriggerRegistry:
    """
    Maps a source's ``ingest_ref`` to the callable that re-ingests it.
    """

    def __init__(self, triggers: Mapping[str, IngestionTrigger] | None = None) -> None:
        self._triggers: dict[str, IngestionTrigger] = dict(triggers or {})

    def register(self, ingest_ref: str, trigger: IngestionTrigger) -> None:
        self._triggers[ingest_ref] = trigger

    def resolve(self, source: Source) -> IngestionTrigger:
        try:
            return self._triggers[source.ingest_ref]
        except KeyError:
            raise UnknownSourceError(source.ingest_ref) from None

    def __contains__(self, ingest_ref: object) -> bool:
        return ingest_ref in self._triggers

    @classmethod
    def over_http(
        cls,
        sources: Iterable[Source],
        *,
        base_url: str,
        timeout_seconds: float,
        cron_secret: str | None = None,
        session: requests.Session | None = None,
    ) -> TriggerRegistry:
        """
        Register an HTTP trigger for every source whose ``ingest_ref`` is an endpoint path.
        """

        shared_session = session or requests.Session()
        registry = cls()
        for source in sources:
            if source.ingest_ref.startswith("/"):
                registry.register(
                    source.ingest_ref,
                    HttpIngestionTrigger(
                        path=source.ingest_ref,
                        base_url=base_url,
                        timeout_seconds=timeout_seconds,
                        cron_secret=cron_secret,
                        session=shared_session,
                    ),
                )
        return registry


class HttpIngestionTrigger:
    """
    Invokes a job endpoint of the ingestion service and parses its JSON summary.
    """

    def __init__(
        self,
        *,
        path: str,
        base_url: str,
        timeout_seconds: float,
        cron_secret: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}{path}"
        self._timeout_seconds = timeout_seconds
        self._cron_secret = cron_secret
        self._session = session or requests.Session()

    def __call__(self, source_id: str) -> IngestionResult:
        headers: dict[str, str] = {}
        if self._cron_secret:
            headers["x-cron-secret"] = self._cron_secret

        try:
            response = self._session.get(self._url, headers=headers, timeout=self._timeout_seconds)
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise TriggerError(f"{source_id}: request to {self._url} failed: {exc}") from exc

        if not response.ok:
            logger.error(
                "Ingestion endpoint failed source=%s status=%s url=%s",
                source_id,
                response.status_code,
                self._url,
            )
            raise TriggerError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError as exc:
            raise TriggerError(f"{source_id}: response was not valid JSON.") from exc
        if not isinstance(body, Mapping):
            raise TriggerError(f"{source_id}: expected a JSON object summary, got {type(body).__name__}.")
        return coerce_result(body)

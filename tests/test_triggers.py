"""
tests/test_triggers.py

Tests for trigger result coercion, the trigger registry and the HTTP
ingestion trigger. The HTTP layer is exercised with a fake requests
session; no network.
"""

from __future__ import annotations

import ast
from pathlib import Path
from typing import Any

import pytest
import requests

import freshness
from conftest import make_source
from freshness.errors import TriggerError, UnknownSourceError
from freshness.triggers import HttpIngestionTrigger, TriggerRegistry, coerce_result
from freshness.types import IngestionResult


class _FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._body = body
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class _FakeSession:
    def __init__(self, response: _FakeResponse | None = None, error: Exception | None = None) -> None:
        self.response = response or _FakeResponse(body={})
        self.error = error
        self.requests: list[dict[str, Any]] = []

    def get(self, url: str, *, headers: dict[str, str], timeout: float) -> _FakeResponse:
        self.requests.append({"url": url, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def _endpoint(cron_secret: str | None = "s3cret") -> dict[str, Any]:
    return {
        "base_url": "http://ingest.local/",
        "timeout_seconds": 30,
        "cron_secret": cron_secret,
    }


# ---------------------------------------------------------------------------
# coerce_result
# ---------------------------------------------------------------------------


class TestCoerceResult:
    def test_passes_through_result(self) -> None:
        result = IngestionResult(items_created=2)
        assert coerce_result(result) is result

    def test_none_is_empty_result(self) -> None:
        assert coerce_result(None) == IngestionResult()

    def test_snake_case_mapping(self) -> None:
        result = coerce_result({"items_created": 4, "items_skipped": 1, "errors": ["bad row"]})
        assert result == IngestionResult(items_created=4, items_skipped=1, errors=("bad row",))

    def test_camel_case_mapping(self) -> None:
        result = coerce_result({"itemsCreated": "7", "itemsSkipped": 2})
        assert result.items_created == 7
        assert result.items_skipped == 2

    def test_short_keys(self) -> None:
        assert coerce_result({"created": 3, "skipped": 5}).items_created == 3

    def test_malformed_counts_raise(self) -> None:
        with pytest.raises(TriggerError):
            coerce_result({"items_created": "many"})

    def test_unsupported_type_raises(self) -> None:
        with pytest.raises(TriggerError):
            coerce_result(["not", "a", "mapping"])  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# TriggerRegistry
# ---------------------------------------------------------------------------


class TestTriggerRegistry:
    def test_resolves_by_ingest_ref(self) -> None:
        def trigger(source_id: str) -> IngestionResult:
            return IngestionResult()

        registry = TriggerRegistry({"news": trigger})

        assert registry.resolve(make_source("news")) is trigger
        assert "news" in registry

    def test_unregistered_ref_raises(self) -> None:
        with pytest.raises(UnknownSourceError):
            TriggerRegistry().resolve(make_source("news"))

    def test_over_http_registers_only_endpoint_paths(self) -> None:
        sources = [
            make_source("news", ingest_ref="/api/jobs/ingest/news"),
            make_source("local", ingest_ref="local"),
        ]

        registry = TriggerRegistry.over_http(sources, **_endpoint(), session=_FakeSession())

        assert "/api/jobs/ingest/news" in registry
        assert "local" not in registry


# ---------------------------------------------------------------------------
# HttpIngestionTrigger
# ---------------------------------------------------------------------------


class TestHttpIngestionTrigger:
    def test_calls_endpoint_with_secret_and_timeout(self) -> None:
        session = _FakeSession(_FakeResponse(body={"itemsCreated": 5, "itemsSkipped": 1}))
        trigger = HttpIngestionTrigger(path="/api/jobs/ingest/news", **_endpoint(), session=session)

        result = trigger("news")

        assert result == IngestionResult(items_created=5, items_skipped=1)
        assert session.requests == [
            {
                "url": "http://ingest.local/api/jobs/ingest/news",
                "headers": {"x-cron-secret": "s3cret"},
                "timeout": 30,
            }
        ]

    def test_no_secret_header_when_unset(self) -> None:
        session = _FakeSession()
        trigger = HttpIngestionTrigger(path="/x", **_endpoint(cron_secret=None), session=session)

        trigger("x")

        assert session.requests[0]["headers"] == {}

    def test_http_error_status_raises(self) -> None:
        session = _FakeSession(_FakeResponse(status_code=502, text="bad gateway"))
        trigger = HttpIngestionTrigger(path="/x", **_endpoint(), session=session)

        with pytest.raises(TriggerError, match="HTTP 502"):
            trigger("x")

    def test_connection_error_raises_trigger_error(self) -> None:
        session = _FakeSession(error=requests.ConnectionError("refused"))
        trigger = HttpIngestionTrigger(path="/x", **_endpoint(), session=session)

        with pytest.raises(TriggerError, match="request to"):
            trigger("x")

    def test_invalid_json_raises(self) -> None:
        session = _FakeSession(_FakeResponse(body=ValueError("no json")))
        trigger = HttpIngestionTrigger(path="/x", **_endpoint(), session=session)

        with pytest.raises(TriggerError, match="not valid JSON"):
            trigger("x")

    @pytest.mark.parametrize("body", [["unexpected"], "done", 7])
    def test_non_object_body_raises(self, body: Any) -> None:
        session = _FakeSession(_FakeResponse(body=body))
        trigger = HttpIngestionTrigger(path="/x", **_endpoint(), session=session)

        with pytest.raises(TriggerError, match="expected a JSON object summary"):
            trigger("x")


# ---------------------------------------------------------------------------
# Package boundaries
# ---------------------------------------------------------------------------


class TestPackageBoundaries:
    def test_core_modules_do_not_import_app_layer(self) -> None:
        offenders: list[str] = []
        for path in sorted(Path(freshness.__file__).parent.glob("*.py")):
            tree = ast.parse(path.read_text(encoding="utf-8"))
            for node in tree.body:
                if isinstance(node, ast.ImportFrom):
                    modules = [node.module or ""]
                elif isinstance(node, ast.Import):
                    modules = [alias.name for alias in node.names]
                else:
                    continue
                if any(module.split(".")[0] == "app" for module in modules):
                    offenders.append(path.name)

        assert offenders == []

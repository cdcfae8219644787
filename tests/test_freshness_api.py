"""
tests/test_freshness_api.py

HTTP tests for the /freshness router and operator auth.

The router is mounted on a bare FastAPI app with dependency overrides, so
no environment validation, database engine or scheduler is involved.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.dependencies import get_freshness_orchestrator
from app.api.routers import freshness_router
from app.auth import ANONYMOUS, resolve_auth_context
from app.config import AuthSettings, get_auth_settings
from conftest import FailingTrigger, OrchestratorHarness
from freshness.orchestrator import ORCHESTRATE_JOB_NAME
from freshness.types import PassState, SourceState

SECRET = "s3cret"
OPERATOR = {"x-cron-secret": SECRET}


@pytest.fixture()
def client(harness: OrchestratorHarness) -> Iterator[TestClient]:
    app = FastAPI()
    app.include_router(freshness_router)
    app.dependency_overrides[get_freshness_orchestrator] = lambda: harness.build()
    app.dependency_overrides[get_auth_settings] = lambda: AuthSettings(cron_secret=SECRET)
    with TestClient(app) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# Auth resolution
# ---------------------------------------------------------------------------


class TestResolveAuthContext:
    def test_cron_secret_header(self) -> None:
        context = resolve_auth_context(settings=AuthSettings(cron_secret=SECRET), cron_secret_header=SECRET)
        assert context.authenticated is True
        assert context.method == "cron-secret"

    def test_bearer_token(self) -> None:
        context = resolve_auth_context(
            settings=AuthSettings(cron_secret=SECRET),
            authorization=f"Bearer {SECRET}",
        )
        assert context.method == "bearer"

    def test_wrong_secret_is_anonymous(self) -> None:
        context = resolve_auth_context(
            settings=AuthSettings(cron_secret=SECRET),
            cron_secret_header="nope",
            authorization="Bearer nope",
        )
        assert context is ANONYMOUS

    def test_unconfigured_secret_rejects_by_default(self) -> None:
        context = resolve_auth_context(settings=AuthSettings(), cron_secret_header=SECRET)
        assert context.authenticated is False

    def test_unconfigured_secret_allowed_when_opted_in(self) -> None:
        context = resolve_auth_context(settings=AuthSettings(allow_unauthenticated=True))
        assert context.authenticated is True
        assert context.method == "unauthenticated"


# ---------------------------------------------------------------------------
# /freshness/status and /freshness/jobs/stale
# ---------------------------------------------------------------------------


class TestStatusEndpoint:
    def test_status_needs_no_auth_and_heals_nothing(
        self,
        client: TestClient,
        harness: OrchestratorHarness,
    ) -> None:
        harness.seed_all_fresh(except_ids=("parks",))

        response = client.get("/freshness/status")

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "status"
        assert body["ready"] is False
        assert body["healing_actions"] == []
        parks = next(entry for entry in body["sources"] if entry["name"] == "parks")
        assert parks["status"] == SourceState.STALE
        assert parks["hoursOld"] is None
        assert harness.triggers["parks"].calls == []

    def test_stale_jobs(self, client: TestClient, harness: OrchestratorHarness) -> None:
        harness.seed_all_fresh(except_ids=("weather",))

        response = client.get("/freshness/jobs/stale")

        assert response.status_code == 200
        stale = [job["job_name"] for job in response.json()["stale"]]
        assert "ingest-weather" in stale
        assert ORCHESTRATE_JOB_NAME in stale


# ---------------------------------------------------------------------------
# /freshness/heal
# ---------------------------------------------------------------------------


class TestHealEndpoint:
    def test_requires_operator(self, client: TestClient) -> None:
        assert client.post("/freshness/heal").status_code == 401

    def test_auto_heal(self, client: TestClient, harness: OrchestratorHarness) -> None:
        harness.seed_all_fresh(except_ids=("mta",))

        response = client.post("/freshness/heal", headers=OPERATOR)

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == PassState.DONE
        assert body["ready"] is True
        assert [action["source_id"] for action in body["healing_actions"]] == ["mta"]

    def test_force_selected_sources(self, client: TestClient, harness: OrchestratorHarness) -> None:
        harness.seed_all_fresh()

        response = client.post(
            "/freshness/heal",
            params={"mode": "force", "sources": "events, news"},
            headers={"Authorization": f"Bearer {SECRET}"},
        )

        assert response.status_code == 200
        assert sorted(action["source_id"] for action in response.json()["healing_actions"]) == ["events", "news"]

    def test_sources_with_auto_mode_rejected(self, client: TestClient) -> None:
        response = client.post("/freshness/heal", params={"sources": "news"}, headers=OPERATOR)
        assert response.status_code == 400

    def test_unknown_source_is_404(self, client: TestClient) -> None:
        response = client.post(
            "/freshness/heal",
            params={"mode": "force", "sources": "atlantis"},
            headers=OPERATOR,
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Unknown source: atlantis"

    def test_lock_denied_reported_not_raised(self, client: TestClient, harness: OrchestratorHarness) -> None:
        harness.lock.acquire(ORCHESTRATE_JOB_NAME, 600)

        response = client.post("/freshness/heal", headers=OPERATOR)

        assert response.status_code == 200
        assert response.json()["state"] == PassState.LOCK_DENIED


# ---------------------------------------------------------------------------
# /freshness/ready
# ---------------------------------------------------------------------------


class TestReadyEndpoint:
    def test_requires_operator(self, client: TestClient) -> None:
        assert client.get("/freshness/ready").status_code == 401

    def test_ready_returns_contract(self, client: TestClient, harness: OrchestratorHarness) -> None:
        harness.seed_all_fresh()

        response = client.get("/freshness/ready", headers=OPERATOR)

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"ready", "sources", "errors"}
        assert body["ready"] is True
        assert set(body["sources"][0]) == {"name", "status", "hoursOld", "itemCount"}
        assert body["sources"][0]["hoursOld"] == 1.0

    def test_not_ready_is_503_with_same_contract(
        self,
        client: TestClient,
        harness: OrchestratorHarness,
    ) -> None:
        harness.seed_all_fresh(except_ids=("parks",))
        harness.triggers["parks"] = FailingTrigger()

        response = client.get("/freshness/ready", headers=OPERATOR)

        assert response.status_code == 503
        body = response.json()
        assert body["ready"] is False
        assert body["errors"]
        parks = next(entry for entry in body["sources"] if entry["name"] == "parks")
        assert parks["status"] == SourceState.HEALING_FAILED
        assert "itemCount" in parks

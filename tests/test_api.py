"""
Tests for the FastAPI application.

Covers:
- Root and health endpoints
- Plan, readiness, guardrail and outcome routes
- Error translation (validation 422, invariant 400, storage 503, unexpected 500)

The planning engine is swapped for an in-memory one through
``app.dependency_overrides``.
"""

import inspect
import json
from datetime import date
from pathlib import Path

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from adaptive_coach.api.dependencies import get_engine
from adaptive_coach.api.main import app
from adaptive_coach.config import Settings
from adaptive_coach.engine import DailyPlanningEngine
from adaptive_coach.exceptions import PlanInvariantError, StorageError
from adaptive_coach.storage import InMemoryStorage


FIXTURES = Path(__file__).parent / "fixtures"


def fixture_json(name: str) -> dict:
    with open(FIXTURES / name) as f:
        return json.load(f)


class FailingOutcomeStorage(InMemoryStorage):
    def append_outcome(self, outcome):
        raise StorageError("database is locked")


class BrokenEngine(DailyPlanningEngine):
    """Engine whose planning call fails with the configured error."""

    error: Exception = RuntimeError("boom")

    def plan_day(self, context):
        raise self.error


@pytest.fixture
def storage():
    return InMemoryStorage()


def client_for(engine: DailyPlanningEngine):
    app.dependency_overrides[get_engine] = lambda: engine
    return TestClient(app)


@pytest.fixture
def client(storage):
    engine = DailyPlanningEngine(storage=storage, settings=Settings())
    yield client_for(engine)
    app.dependency_overrides.clear()
    engine.close()


# ===== SERVICE ENDPOINTS =====


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["name"] == "Adaptive Coach API"
    assert response.json()["health"] == "/health"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "adaptive-coach-api"}


def test_api_handlers_run_off_the_event_loop():
    """Engine calls block on storage, so /api handlers are plain functions."""
    handlers = [
        route.endpoint
        for route in app.routes
        if isinstance(route, APIRoute) and route.path.startswith("/api")
    ]

    assert len(handlers) == 4
    assert not any(inspect.iscoroutinefunction(handler) for handler in handlers)


# ===== PLANS =====


def test_plan_today_blocked_plan_is_returned(client):
    """A blocked plan is still returned, flagged for acknowledgement."""
    response = client.post(
        "/api/plans/today", json={"context": fixture_json("context_low_readiness_knee.json")}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["needs_acknowledgement"] is True
    assert body["plan"]["workout_type"] == "recovery"
    assert body["result"]["verdict"]["is_allowed"] is False
    assert body["trace_markdown"] is None


def test_plan_today_with_trace(client):
    response = client.post(
        "/api/plans/today",
        json={"context": fixture_json("context_deload_week.json"), "include_trace": True},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["needs_acknowledgement"] is False
    assert "deload" in body["plan"]["modifications"]
    assert body["trace_markdown"].startswith("# Decision Trace")


def test_plan_today_rejects_invalid_context(client):
    context = fixture_json("context_deload_week.json")
    del context["plan_date"]

    response = client.post("/api/plans/today", json={"context": context})

    assert response.status_code == 422


def test_plan_today_unexpected_error():
    engine = BrokenEngine(storage=InMemoryStorage(), settings=Settings())
    try:
        response = client_for(engine).post(
            "/api/plans/today", json={"context": fixture_json("context_deload_week.json")}
        )
    finally:
        app.dependency_overrides.clear()
        engine.close()

    assert response.status_code == 500
    assert response.json()["error"] == "Plan generation failed: boom"


def test_plan_today_invariant_error():
    engine = BrokenEngine(storage=InMemoryStorage(), settings=Settings())
    engine.error = PlanInvariantError("duplicate blocks")
    try:
        response = client_for(engine).post(
            "/api/plans/today", json={"context": fixture_json("context_deload_week.json")}
        )
    finally:
        app.dependency_overrides.clear()
        engine.close()

    assert response.status_code == 400
    assert "duplicate blocks" in response.json()["message"]


# ===== READINESS =====


def test_readiness_is_inferred_and_stored(client, storage):
    response = client.post("/api/readiness", json={"context": fixture_json("context_deload_week.json")})

    assert response.status_code == 200
    body = response.json()
    assert body["score"] == 8
    assert body["interpretation"] == "Well recovered - train as planned"
    assert body["record"]["source"] == "explicit"
    assert storage.get_readiness("athlete_002", date(2025, 3, 12)).score == 8


def test_readiness_low_score_interpretation(client):
    response = client.post(
        "/api/readiness", json={"context": fixture_json("context_low_readiness_knee.json")}
    )

    assert response.json()["interpretation"] == "Poorly recovered - expect a recovery session"


# ===== GUARDRAILS =====


def test_validate_builds_plan_when_missing(client):
    response = client.post(
        "/api/guardrails/validate", json={"context": fixture_json("context_low_readiness_knee.json")}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["is_allowed"] is False
    assert "STATUS: BLOCKED" in body["summary"]
    assert len(body["verdict"]["checks"]) == 6


def test_validate_supplied_plan(client):
    context = fixture_json("context_deload_week.json")
    plan = client.post("/api/plans/today", json={"context": context}).json()["plan"]

    response = client.post("/api/guardrails/validate", json={"context": context, "plan": plan})

    assert response.status_code == 200
    assert response.json()["is_allowed"] is True


# ===== OUTCOMES =====


def test_log_outcome(client, storage):
    response = client.post(
        "/api/outcomes", json={"outcome": fixture_json("outcome_strength_session.json")}
    )

    assert response.status_code == 201
    summary = response.json()["summary"]
    assert summary["average_rpe"] == pytest.approx(7.0)
    assert summary["completion_rate"] == pytest.approx(0.75)
    assert summary["recommendation"]["volume_multiplier"] == pytest.approx(0.8)
    assert len(storage.get_outcomes("athlete_002")) == 1


def test_log_outcome_storage_failure():
    engine = DailyPlanningEngine(storage=FailingOutcomeStorage(), settings=Settings())
    try:
        response = client_for(engine).post(
            "/api/outcomes", json={"outcome": fixture_json("outcome_strength_session.json")}
        )
    finally:
        app.dependency_overrides.clear()
        engine.close()

    assert response.status_code == 503
    assert "database is locked" in response.json()["error"]

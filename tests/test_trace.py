"""
Tests for decision trace generation and export.

Ensures that planning results are documented and can be exported to JSON and
Markdown, and that saved JSON traces load back into a PlanningResult.
"""

import json
from datetime import date
from pathlib import Path
import tempfile

import pytest

from adaptive_coach.config import Settings
from adaptive_coach.engine import DailyPlanningEngine
from adaptive_coach.plan_schemas import WorkoutType
from adaptive_coach.schemas import (
    Context,
    ReadinessCheckIn,
    Schedule,
    ScheduledSession,
    SessionIntensity,
)
from adaptive_coach.storage import InMemoryStorage
from adaptive_coach.trace import DecisionTraceBuilder, load_result_from_file


FIXTURES = Path(__file__).parent / "fixtures"


# Fixtures

def plan_fixture(name: str):
    with open(FIXTURES / name) as f:
        context = Context.model_validate(json.load(f))
    engine = DailyPlanningEngine(storage=InMemoryStorage(), settings=Settings())
    try:
        return engine.plan_day(context)
    finally:
        engine.close()


@pytest.fixture
def blocked_result():
    """Recovery plan blocked on knee pain."""
    return plan_fixture("context_low_readiness_knee.json")


@pytest.fixture
def allowed_result():
    """Deload-week plan that passes every guardrail."""
    return plan_fixture("context_deload_week.json")


@pytest.fixture
def conflict_result():
    """Heavy plan the day after a heavy session."""
    plan_date = date(2025, 3, 12)
    context = Context(
        user_id="athlete_004",
        plan_date=plan_date,
        readiness=ReadinessCheckIn(
            check_in_date=plan_date, sleep_quality=8, stress=3, soreness=3, energy=8
        ),
        schedule=Schedule(
            sessions=[ScheduledSession(session_date=date(2025, 3, 11), intensity=SessionIntensity.HEAVY)]
        ),
    )
    engine = DailyPlanningEngine(storage=InMemoryStorage(), settings=Settings())
    try:
        return engine.plan_day(context)
    finally:
        engine.close()


# Test Cases

def test_export_to_json(allowed_result):
    """Test exporting a result to a JSON-serializable dict."""
    data = DecisionTraceBuilder(allowed_result).export_to_json()

    assert isinstance(data, dict)
    assert data["plan"]["user_id"] == "athlete_002"
    assert data["plan"]["plan_date"] == "2025-03-12"
    assert data["verdict"]["is_allowed"] is True
    assert data["readiness"]["score"] == 8
    assert len(data["verdict"]["checks"]) == 6
    # Must survive a JSON round trip
    json.dumps(data)


def test_export_to_markdown_allowed(allowed_result):
    """Test exporting an allowed plan to Markdown."""
    markdown = DecisionTraceBuilder(allowed_result).export_to_markdown()

    assert isinstance(markdown, str)
    assert "# Decision Trace" in markdown
    assert "`athlete_002`" in markdown
    assert "**Guardrails:** **ALLOWED**" in markdown
    assert "Deload week 4" in markdown
    assert "*No schedule conflicts*" in markdown
    assert "Acknowledgement required" not in markdown


def test_export_to_markdown_blocked(blocked_result):
    """Test exporting a blocked plan to Markdown."""
    markdown = DecisionTraceBuilder(blocked_result).export_to_markdown()

    assert "**Workout Type:** **RECOVERY**" in markdown
    assert "**Guardrails:** **BLOCKED**" in markdown
    assert "**Acknowledgement required:** yes" in markdown
    assert "⛔ `readiness_compatibility`" in markdown
    assert "**Restricted:** knee" in markdown
    assert "### Recovery" in markdown


def test_markdown_lists_rationale_in_order(blocked_result):
    """Adjustment trail entries are numbered in application order."""
    markdown = DecisionTraceBuilder(blocked_result).export_to_markdown()

    for i, entry in enumerate(blocked_result.plan.rationale, 1):
        assert f"{i}. {entry}" in markdown
    assert "#### Safety constraints" in markdown
    assert markdown.index("#### Safety constraints") < markdown.index("#### Readiness scaling")


def test_markdown_shows_conflicts(conflict_result):
    markdown = DecisionTraceBuilder(conflict_result).export_to_markdown()

    assert "**Can proceed as proposed:** no (safe template applied)" in markdown
    assert "**back_to_back** (high)" in markdown
    assert "Recommendation: Add a rest day or reduce intensity" in markdown


def test_save_to_file_json(allowed_result):
    """Test saving a trace to a JSON file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        filepath = DecisionTraceBuilder(allowed_result).save_to_file(Path(tmpdir), format="json")

        assert filepath.exists()
        assert filepath.suffix == ".json"
        assert filepath.name == "trace_athlete_002_2025-03-12.json"

        with open(filepath) as f:
            data = json.load(f)
        assert data["plan"]["workout_type"] == "standard"


def test_save_to_file_markdown(blocked_result):
    """Test saving a trace to a Markdown file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        filepath = DecisionTraceBuilder(blocked_result).save_to_file(Path(tmpdir) / "nested", format="markdown")

        assert filepath.exists()
        assert filepath.suffix == ".md"
        assert "# Decision Trace" in filepath.read_text()


def test_save_to_file_invalid_format(allowed_result):
    """Test that an unsupported format raises an error."""
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ValueError):
            DecisionTraceBuilder(allowed_result).save_to_file(Path(tmpdir), format="xml")


def test_load_result_from_file(blocked_result):
    """Test loading a result back from a saved JSON trace."""
    with tempfile.TemporaryDirectory() as tmpdir:
        filepath = DecisionTraceBuilder(blocked_result).save_to_file(Path(tmpdir), format="json")

        loaded = load_result_from_file(filepath)

        assert loaded.plan.workout_type == WorkoutType.RECOVERY
        assert loaded.verdict.is_allowed is False
        assert loaded.needs_acknowledgement is True
        assert loaded.plan.rationale == blocked_result.plan.rationale


def test_load_result_from_nonexistent_file():
    """Test that loading from a nonexistent file raises an error."""
    with pytest.raises(FileNotFoundError):
        load_result_from_file(Path("does/not/exist.json"))


def test_load_result_from_invalid_file():
    """Test that a JSON file of the wrong shape raises ValueError."""
    with tempfile.TemporaryDirectory() as tmpdir:
        filepath = Path(tmpdir) / "bad.json"
        filepath.write_text(json.dumps({"plan": {"user_id": "x"}}))

        with pytest.raises(ValueError):
            load_result_from_file(filepath)

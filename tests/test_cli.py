"""
Tests for the command-line interface.

Covers:
- plan command with decision trace export
- readiness command
- validate exit codes
- log-outcome command
- Error handling for bad input files
"""

import tempfile
from pathlib import Path

import pytest
from typer.testing import CliRunner

from adaptive_coach.cli import app


FIXTURES = Path(__file__).parent / "fixtures"

runner = CliRunner()


@pytest.fixture
def knee_context():
    return str(FIXTURES / "context_low_readiness_knee.json")


@pytest.fixture
def deload_context():
    return str(FIXTURES / "context_deload_week.json")


# ===== PLAN =====


def test_plan_command(deload_context):
    result = runner.invoke(app, ["plan", deload_context])

    assert result.exit_code == 0
    assert "Readiness" in result.output
    assert "ALLOWED" in result.output


def test_plan_command_saves_trace(knee_context):
    with tempfile.TemporaryDirectory() as tmpdir:
        result = runner.invoke(app, ["plan", knee_context, "--trace-out", tmpdir])

        assert result.exit_code == 0
        trace_file = Path(tmpdir) / "trace_athlete_001_2025-03-12.md"
        assert trace_file.exists()
        assert trace_file.read_text().startswith("# Decision Trace")
        assert "BLOCKED" in result.output


def test_plan_command_rejects_unknown_trace_format(deload_context):
    with tempfile.TemporaryDirectory() as tmpdir:
        result = runner.invoke(
            app, ["plan", deload_context, "--trace-out", tmpdir, "--trace-format", "xml"]
        )

    assert result.exit_code == 1


def test_plan_command_invalid_context():
    with tempfile.TemporaryDirectory() as tmpdir:
        bad = Path(tmpdir) / "bad.json"
        bad.write_text('{"user_id": "athlete_x"}')

        result = runner.invoke(app, ["plan", str(bad)])

    assert result.exit_code == 1
    assert "Failed to load context" in result.output


# ===== READINESS =====


def test_readiness_command(deload_context):
    result = runner.invoke(app, ["readiness", deload_context])

    assert result.exit_code == 0
    assert "8/10" in result.output


# ===== VALIDATE =====


def test_validate_allowed(deload_context):
    result = runner.invoke(app, ["validate", deload_context])

    assert result.exit_code == 0
    assert "STATUS: ALLOWED" in result.output


def test_validate_blocked_exits_with_code_2(knee_context):
    result = runner.invoke(app, ["validate", knee_context])

    assert result.exit_code == 2
    assert "STATUS: BLOCKED" in result.output


# ===== LOG OUTCOME =====


def test_log_outcome_command():
    result = runner.invoke(app, ["log-outcome", str(FIXTURES / "outcome_strength_session.json")])

    assert result.exit_code == 0
    assert "Completion: 75%" in result.output
    assert "volume x0.80" in result.output

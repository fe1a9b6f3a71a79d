"""
End-to-end tests for the daily planning engine.

Test scenarios:
1. Low readiness with knee pain: recovery session, pain block, acknowledgement required
2. Deload week: reduced volume, guardrails satisfied
3. Game tomorrow: light upper-body primer
4. Back-to-back heavy sessions: safe template and conflict warnings
5. Warn-level guardrails applied as auto-adjustments
6. Load spike warnings, audit trail and outcome logging
7. Storage write failures during planning are logged, not raised
8. Logged outcomes and stored check-ins feeding the next plan
9. Every signal at once (pain, game, low readiness, hard last session)
"""

import json
from datetime import date
from pathlib import Path

import pytest

from adaptive_coach.config import Settings
from adaptive_coach.engine import DailyPlanningEngine
from adaptive_coach.exceptions import StorageError
from adaptive_coach.plan_schemas import BlockName, WorkoutType
from adaptive_coach.schemas import (
    CheckSeverity,
    Competition,
    CompetitionImportance,
    Context,
    InjuryFlag,
    ReadinessCheckIn,
    ReadinessSource,
    Schedule,
    ScheduledSession,
    SessionIntensity,
    SessionOutcome,
    SessionRecord,
)
from adaptive_coach.storage import InMemoryStorage


FIXTURES = Path(__file__).parent / "fixtures"


def load_context(name: str) -> Context:
    with open(FIXTURES / name) as f:
        return Context.model_validate(json.load(f))


class UnwritableStorage(InMemoryStorage):
    """Reads work, readiness and audit writes fail."""

    def append_readiness(self, record):
        raise StorageError("read-only replica")

    def append_audit_event(self, event):
        raise StorageError("read-only replica")


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def engine(storage):
    engine = DailyPlanningEngine(storage=storage, settings=Settings())
    yield engine
    engine.close()


def check_in(day: date, sleep=8, stress=3, soreness=3, energy=8, **kwargs) -> ReadinessCheckIn:
    return ReadinessCheckIn(
        check_in_date=day, sleep_quality=sleep, stress=stress, soreness=soreness, energy=energy, **kwargs
    )


# ===== FIXTURE SCENARIOS =====


def test_low_readiness_with_knee_pain(engine):
    """Recovery session that avoids the knee, blocked on pain."""
    result = engine.plan_day(load_context("context_low_readiness_knee.json"))
    plan = result.plan

    assert result.readiness.score == 3
    assert plan.workout_type == WorkoutType.RECOVERY
    assert [b.name for b in plan.blocks] == [BlockName.WARM_UP, BlockName.RECOVERY]
    names = [i.name for i in plan.all_items()]
    assert "Easy Bike Spin" not in names
    assert "Mobility Flow" in names
    assert plan.intensity_scale == pytest.approx(0.6)
    assert "recovery_focused" in plan.modifications
    assert plan.restricted_body_parts == ["knee"]

    assert result.verdict.is_allowed is False
    assert [b.check_name for b in result.verdict.blocks] == ["readiness_compatibility"]
    assert result.conflicts.conflicts == []
    assert result.needs_acknowledgement is True


def test_deload_week(engine):
    result = engine.plan_day(load_context("context_deload_week.json"))
    plan = result.plan

    assert result.readiness.score == 8
    assert plan.workout_type == WorkoutType.STANDARD
    assert plan.volume_multiplier == pytest.approx(0.8)
    assert "deload" in plan.modifications
    assert "accessories_added" not in plan.modifications
    assert plan.total_duration_minutes <= 60

    assert result.verdict.is_allowed is True
    assert result.verdict.auto_adjustments == []
    deload_check = next(c for c in result.verdict.checks if c.check_name == "deload_requirement")
    assert deload_check.severity == CheckSeverity.PASS
    assert result.needs_acknowledgement is False


def test_game_tomorrow(engine):
    result = engine.plan_day(load_context("context_game_tomorrow.json"))
    plan = result.plan

    assert result.readiness.score == 7
    assert plan.workout_type == WorkoutType.GAME_PREP
    assert plan.intensity_scale == pytest.approx(0.6)
    assert "game_day_modified" in plan.modifications
    assert [i.name for i in plan.get_block(BlockName.MAIN).items] == [
        "Band Pull-apart",
        "Push-up",
        "Light Dumbbell Press",
    ]
    assert plan.get_block(BlockName.ACCESSORIES) is None
    assert all(i.target_rpe is None or i.target_rpe <= 6 for i in plan.all_items())

    assert result.conflicts.conflicts == []
    assert result.verdict.is_allowed is True
    assert result.needs_acknowledgement is False


# ===== CONFLICTS AND GUARDRAILS =====


def test_back_to_back_heavy_needs_acknowledgement(engine):
    plan_date = date(2025, 3, 12)
    context = Context(
        user_id="athlete_004",
        plan_date=plan_date,
        readiness=check_in(plan_date),
        schedule=Schedule(
            sessions=[ScheduledSession(session_date=date(2025, 3, 11), intensity=SessionIntensity.HEAVY)]
        ),
    )

    result = engine.plan_day(context)

    assert result.conflicts.can_proceed is False
    assert "recovery_focused" in result.plan.modifications
    assert result.plan.intensity_scale == pytest.approx(0.85)
    assert any(w.startswith("Schedule conflict (back_to_back)") for w in result.plan.warnings)
    assert result.verdict.is_allowed is True
    assert result.needs_acknowledgement is True


def test_soreness_warning_applies_auto_adjustment(engine):
    """Allowed plans carry warn-level adjustments into the final plan."""
    plan_date = date(2025, 3, 12)
    context = Context(
        user_id="athlete_005",
        plan_date=plan_date,
        readiness=check_in(plan_date, soreness=8),
    )

    result = engine.plan_day(context)

    assert result.readiness.score == 6
    assert result.verdict.is_allowed is True
    assert result.verdict.auto_adjustments
    assert "guardrail_adjusted" in result.plan.modifications
    assert result.plan.rationale[-1].startswith("Guardrail auto-adjustments")


def test_load_spike_adds_warning(engine):
    context = Context(
        user_id="athlete_006",
        plan_date=date(2025, 3, 12),
        history=[
            SessionRecord(session_date=date(2025, 3, 3), duration_minutes=30, rpe=6),
            SessionRecord(session_date=date(2025, 3, 10), duration_minutes=90, rpe=8),
        ],
    )

    result = engine.plan_day(context)

    assert result.load_spike.is_spike is True
    assert any(w.startswith("Load spike") for w in result.plan.warnings)


# ===== PERSISTENCE =====


def test_plan_day_writes_readiness_and_audit(engine, storage):
    context = load_context("context_deload_week.json")

    engine.plan_day(context)

    assert storage.get_readiness("athlete_002", date(2025, 3, 12)).score == 8
    events = storage.get_audit_events("athlete_002")
    assert events[-1].event_type == "plan_generated"
    assert events[-1].payload["workout_type"] == "standard"


def test_recent_readiness_feeds_guardrails(engine, storage):
    """Stored readiness from earlier days reaches the deload fatigue check."""
    context = load_context("context_deload_week.json").model_copy(update={"training_week": 2})
    for day in (9, 10, 11):
        engine.assess_readiness(
            context.model_copy(
                update={
                    "plan_date": date(2025, 3, day),
                    "readiness": check_in(date(2025, 3, day), sleep=4, stress=7, soreness=6, energy=4),
                }
            )
        )

    snapshot = engine.readiness_snapshot(context, engine.assess_readiness(context))

    assert snapshot.recent_scores == [4, 4, 4]
    result = engine.plan_day(context)
    fatigue = next(c for c in result.verdict.checks if c.check_name == "deload_requirement")
    assert fatigue.severity == CheckSeverity.WARN


def test_storage_write_failures_do_not_stop_planning():
    engine = DailyPlanningEngine(storage=UnwritableStorage(), settings=Settings())
    try:
        result = engine.plan_day(load_context("context_deload_week.json"))
    finally:
        engine.close()

    assert result.plan.workout_type == WorkoutType.STANDARD


def test_record_outcome(engine, storage):
    with open(FIXTURES / "outcome_strength_session.json") as f:
        outcome = SessionOutcome.model_validate(json.load(f))

    summary = engine.record_outcome(outcome)

    assert summary.completion_rate == pytest.approx(0.75)
    assert storage.get_outcomes("athlete_002") == [outcome]
    assert len(storage.get_load_records("athlete_002")) == 1


# ===== FEEDBACK LOOP =====


@pytest.fixture
def hard_outcome():
    """Yesterday's strength session: RPE 10 with one unfinished exercise."""
    with open(FIXTURES / "outcome_strength_session.json") as f:
        outcome = SessionOutcome.model_validate(json.load(f))
    return outcome.model_copy(update={"session_rpe": 10.0})


def test_logged_outcome_feeds_next_plan(engine, hard_outcome):
    """A bare context is planned from stored history: readiness, progression and volume."""
    engine.record_outcome(hard_outcome)

    result = engine.plan_day(Context(user_id="athlete_002", plan_date=date(2025, 3, 13)))

    assert result.readiness.source == ReadinessSource.INFERRED
    assert result.readiness.score == 6
    assert any("RPE 10" in reason for reason in result.readiness.reasons)
    plan = result.plan
    assert plan.progression_multiplier == pytest.approx(0.95)
    assert plan.volume_multiplier == pytest.approx(0.8)
    assert "completion_adjusted" in plan.modifications


def test_stored_session_merges_with_request_history(engine, hard_outcome):
    """Request history and stored sessions are combined; the latest session drives progression."""
    engine.record_outcome(hard_outcome)
    context = Context(
        user_id="athlete_002",
        plan_date=date(2025, 3, 13),
        history=[SessionRecord(session_date=date(2025, 3, 10), rpe=5)],
    )

    hydrated = engine.hydrate_context(context)

    assert [s.session_date for s in hydrated.history] == [date(2025, 3, 10), date(2025, 3, 12)]
    assert hydrated.last_session().rpe == 10.0
    assert engine.plan_day(context).plan.progression_multiplier == pytest.approx(0.95)


def test_request_history_wins_over_stored_session(engine, hard_outcome):
    engine.record_outcome(hard_outcome)
    context = Context(
        user_id="athlete_002",
        plan_date=date(2025, 3, 13),
        history=[SessionRecord(session_date=date(2025, 3, 12), rpe=6)],
    )

    hydrated = engine.hydrate_context(context)

    assert len(hydrated.history) == 1
    assert hydrated.last_session().rpe == 6


def test_stored_check_in_and_flags_are_used(engine, storage):
    """A check-in and injury flag stored earlier reach a bare request."""
    plan_date = date(2025, 3, 13)
    storage.append_check_in("athlete_002", check_in(plan_date, sleep=3, stress=8, soreness=8, energy=3))
    storage.append_injury_flag("athlete_002", InjuryFlag(flag_date=date(2025, 3, 11), body_part="knee"))

    result = engine.plan_day(Context(user_id="athlete_002", plan_date=plan_date))

    assert result.readiness.source == ReadinessSource.EXPLICIT
    assert result.readiness.score == 3
    assert result.plan.workout_type == WorkoutType.RECOVERY
    assert "knee" in result.plan.restricted_body_parts
    assert not any(i.loads_any(["knee"]) for i in result.plan.all_items())


def test_old_outcome_is_not_carried_over(engine, hard_outcome):
    engine.record_outcome(hard_outcome)

    result = engine.plan_day(Context(user_id="athlete_002", plan_date=date(2025, 3, 25)))

    assert "completion_adjusted" not in result.plan.modifications


# ===== COMBINED SIGNALS =====


def test_low_readiness_hard_session_game_tomorrow_and_knee_pain(engine):
    """Check-in readiness 3, RPE 9 yesterday, game tomorrow and knee pain together."""
    plan_date = date(2025, 3, 12)
    context = Context(
        user_id="athlete_001",
        plan_date=plan_date,
        readiness=check_in(
            plan_date, sleep=3, stress=8, soreness=8, energy=3, pain_level=5, pain_location="knee"
        ),
        history=[SessionRecord(session_date=date(2025, 3, 11), rpe=9)],
        schedule=Schedule(
            competitions=[
                Competition(competition_date=date(2025, 3, 13), importance=CompetitionImportance.HIGH)
            ]
        ),
    )

    result = engine.plan_day(context)
    plan = result.plan

    assert result.readiness.score == 3
    assert plan.workout_type == WorkoutType.RECOVERY
    assert plan.intensity_scale <= 0.7
    assert plan.progression_multiplier == pytest.approx(0.95)
    assert not any(i.loads_any(["knee"]) for i in plan.all_items())
    assert any(entry.startswith("Pain flag (knee)") for entry in plan.rationale)
    assert any(entry.startswith("Competition in 1 day") for entry in plan.rationale)
    assert any(entry.startswith("Readiness 3/10") for entry in plan.rationale)

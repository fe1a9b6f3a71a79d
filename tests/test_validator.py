"""
Tests for the safety guardrail validator.

Test scenarios:
1. Clean workout passes every check
2. Weekly load and hard-minute caps block
3. Ramp rate, recovery spacing and daily cap
4. Pain always blocks; soreness and low readiness warn
5. Deload requirement (cycle week, streak, accumulated fatigue)
6. Aggregation: all checks run, only warnings carry auto-adjustments
7. Applying auto-adjustments
"""

from datetime import date, datetime, time

import pytest

from adaptive_coach.config import Settings
from adaptive_coach.plan_schemas import Block, BlockName, Plan, PlanItem
from adaptive_coach.schemas import (
    AdjustmentType,
    AthleteProfile,
    AutoAdjustment,
    BodyRegion,
    CheckSeverity,
    GuardrailCheckResult,
    ReadinessSnapshot,
    SessionRecord,
    TrainingLevel,
)
from adaptive_coach.validator import (
    GuardrailValidator,
    consecutive_training_weeks,
    session_guardrail_load,
    workout_effective_rpe,
    workout_hard_minutes,
    workout_load,
)


PLAN_DATE = date(2025, 3, 12)
AS_OF = datetime(2025, 3, 12, 12, 0)


# Fixtures


def make_plan(rpe: float = 8.0, modifications=None, target_weight=None) -> Plan:
    """Single-exercise plan: 4 x 3 min of Back Squat, 12 minutes in total."""
    item = PlanItem(
        name="Back Squat",
        sets=4,
        reps=5,
        target_rpe=rpe,
        target_weight=target_weight,
        body_region=BodyRegion.LEGS,
        loaded_joints=["knee", "hip"],
        heavy=True,
        priority=1,
        minutes_per_set=3.0,
    )
    return Plan(
        user_id="athlete_001",
        plan_date=PLAN_DATE,
        blocks=[Block(name=BlockName.MAIN, duration_minutes=12, items=[item], priority=1)],
        modifications=modifications or [],
        rationale=["Deload week 4"] if modifications else [],
    )


def session(day: int, minutes=None, rpe=None, **kwargs) -> SessionRecord:
    """Session in March 2025."""
    return SessionRecord(session_date=date(2025, 3, day), duration_minutes=minutes, rpe=rpe, **kwargs)


@pytest.fixture
def validator():
    """Validator with the standard battery."""
    return GuardrailValidator()


@pytest.fixture
def plan():
    return make_plan()


def check(verdict, name):
    return next(c for c in verdict.checks if c.check_name == name)


class AlwaysBlockCheck:
    name = "always_block"

    def evaluate(self, inputs):
        return GuardrailCheckResult(
            check_name=self.name, passed=False, severity=CheckSeverity.BLOCK, message="Blocked for testing"
        )


# ===== LOAD HELPERS =====


def test_session_guardrail_load():
    """Minutes x intensity factor, falling back to stored load."""
    assert session_guardrail_load(session(10, minutes=60, rpe=8)) == pytest.approx(72.0)
    assert session_guardrail_load(session(10, minutes=60)) == pytest.approx(60.0)
    assert session_guardrail_load(session(10, load=40.0)) == 40.0
    assert session_guardrail_load(session(10)) == 0.0


def test_workout_estimates(plan):
    """Planned load uses the peak RPE scaled by intensity."""
    assert workout_effective_rpe(plan) == pytest.approx(8.0)
    assert workout_load(plan) == pytest.approx(14.4)
    assert workout_hard_minutes(plan) == 5.0

    scaled = plan.model_copy(update={"intensity_scale": 0.9})
    assert workout_effective_rpe(scaled) == pytest.approx(7.2)
    assert workout_load(scaled) == pytest.approx(13.2)


# ===== CLEAN PASS =====


def test_clean_workout_passes_all_checks(validator, plan):
    """No history and no readiness concerns: every check passes."""
    verdict = validator.validate_workout(plan)

    assert verdict.is_allowed is True
    assert [c.check_name for c in verdict.checks] == [
        "weekly_load_cap",
        "ramp_rate",
        "recovery",
        "readiness_compatibility",
        "deload_requirement",
        "daily_load_cap",
    ]
    assert all(c.severity == CheckSeverity.PASS for c in verdict.checks)
    assert verdict.blocks == []
    assert verdict.warnings == []
    assert verdict.auto_adjustments == []


# ===== WEEKLY CAPS =====


def test_weekly_load_cap_blocks_beginner(validator, plan):
    """Three long sessions this week push a beginner past 250."""
    history = [session(day, minutes=70, rpe=8) for day in (6, 8, 10)]

    verdict = validator.validate_workout(
        plan,
        user_profile=AthleteProfile(training_level=TrainingLevel.BEGINNER),
        recent_sessions=history,
    )

    assert verdict.is_allowed is False
    assert [b.check_name for b in verdict.blocks] == ["weekly_load_cap"]
    weekly = check(verdict, "weekly_load_cap")
    assert "Weekly load cap exceeded" in weekly.message
    assert weekly.suggested_adjustment.adjustment_type == AdjustmentType.LOAD_REDUCTION
    assert weekly.suggested_adjustment.magnitude == 0.5
    # Blocks never turn into auto-adjustments
    assert verdict.auto_adjustments == []
    assert len(verdict.checks) == 6


def test_same_week_is_fine_for_intermediate(validator, plan):
    history = [session(day, minutes=70, rpe=8) for day in (6, 8, 10)]

    verdict = validator.validate_workout(plan, recent_sessions=history)

    assert check(verdict, "weekly_load_cap").severity == CheckSeverity.PASS


def test_approaching_weekly_cap_warns(validator, plan):
    """Over 90% of the cap warns without an adjustment."""
    history = [session(day, minutes=70, rpe=7) for day in (6, 8, 10)]

    verdict = validator.validate_workout(
        plan,
        user_profile=AthleteProfile(training_level=TrainingLevel.BEGINNER),
        recent_sessions=history,
    )

    weekly = check(verdict, "weekly_load_cap")
    assert weekly.severity == CheckSeverity.WARN
    assert weekly.passed is True
    assert "Approaching weekly load cap" in weekly.message
    assert verdict.is_allowed is True


def test_weekly_hard_minutes_cap(validator, plan):
    history = [session(day, minutes=30, rpe=6, hard_minutes=25) for day in (8, 10)]

    verdict = validator.validate_workout(
        plan,
        user_profile=AthleteProfile(training_level=TrainingLevel.BEGINNER),
        recent_sessions=history,
    )

    weekly = check(verdict, "weekly_load_cap")
    assert weekly.severity == CheckSeverity.BLOCK
    assert "hard minutes" in weekly.message
    assert weekly.suggested_adjustment.adjustment_type == AdjustmentType.INTENSITY_REDUCTION


# ===== RAMP RATE =====


def test_ramp_rate_warns_on_large_increase(validator, plan):
    """This week's load, volume and intensity all jump past the limits."""
    history = [session(3, minutes=60, rpe=6), session(10, minutes=60, rpe=6)]

    verdict = validator.validate_workout(plan, recent_sessions=history)

    ramp = check(verdict, "ramp_rate")
    assert ramp.severity == CheckSeverity.WARN
    assert "load +" in ramp.message
    assert ramp.suggested_adjustment.adjustment_type == AdjustmentType.RAMP_ADJUSTMENT
    assert 0 < ramp.suggested_adjustment.magnitude <= 0.5
    assert verdict.is_allowed is True
    assert ramp.suggested_adjustment in verdict.auto_adjustments


def test_ramp_rate_without_previous_week(validator, plan):
    verdict = validator.validate_workout(plan, recent_sessions=[session(10, minutes=60, rpe=6)])

    assert check(verdict, "ramp_rate").message == "No previous week to compare against"


# ===== RECOVERY =====


def test_hard_session_too_recent_blocks(validator, plan):
    """A hard session 18 hours ago blocks another hard workout."""
    history = [session(11, start_time=time(18, 0), hard_minutes=20)]

    verdict = validator.validate_workout(plan, recent_sessions=history)

    recovery = check(verdict, "recovery")
    assert recovery.severity == CheckSeverity.BLOCK
    assert "18h since last hard session" in recovery.message
    assert verdict.is_allowed is False


def test_consecutive_hard_days_warns(validator, plan):
    """Yesterday morning was hard: enough hours, but two hard days in a row."""
    history = [session(11, start_time=time(8, 0), hard_minutes=20)]

    verdict = validator.validate_workout(plan, recent_sessions=history)

    recovery = check(verdict, "recovery")
    assert recovery.severity == CheckSeverity.WARN
    assert recovery.suggested_adjustment.magnitude == 0.15
    assert verdict.is_allowed is True


def test_easy_workout_skips_recovery_requirement(validator):
    easy = make_plan(rpe=6.0)
    history = [session(12, start_time=time(7, 0), hard_minutes=30)]

    verdict = validator.validate_workout(easy, recent_sessions=history)

    assert check(verdict, "recovery").severity == CheckSeverity.PASS


# ===== READINESS COMPATIBILITY =====


def test_pain_blocks(validator, plan):
    readiness = ReadinessSnapshot(score=8, pain_level=5, pain_location="knee")

    verdict = validator.validate_workout(plan, readiness_data=readiness)

    result = check(verdict, "readiness_compatibility")
    assert result.severity == CheckSeverity.BLOCK
    assert "(knee)" in result.message
    assert verdict.is_allowed is False


def test_pain_blocks_even_with_high_soreness(validator, plan):
    """Pain takes precedence over the soreness warning."""
    readiness = ReadinessSnapshot(score=8, soreness=9, pain_level=4)

    verdict = validator.validate_workout(plan, readiness_data=readiness)

    result = check(verdict, "readiness_compatibility")
    assert result.severity == CheckSeverity.BLOCK
    assert result.suggested_adjustment is None


def test_high_soreness_reduces_load(validator, plan):
    readiness = ReadinessSnapshot(score=7, soreness=8, pain_level=2)

    verdict = validator.validate_workout(plan, readiness_data=readiness)

    result = check(verdict, "readiness_compatibility")
    assert result.severity == CheckSeverity.WARN
    assert result.suggested_adjustment.adjustment_type == AdjustmentType.LOAD_REDUCTION
    assert result.suggested_adjustment.magnitude == pytest.approx(0.3)
    assert verdict.modifications == ["load reduction: -30% (readiness_compatibility)"]


@pytest.mark.parametrize("score,expected", [(5, 0.5), (2, 0.5)])
def test_low_readiness_reduction(validator, plan, score, expected):
    verdict = validator.validate_workout(plan, readiness_data=ReadinessSnapshot(score=score))

    result = check(verdict, "readiness_compatibility")
    assert result.suggested_adjustment.adjustment_type == AdjustmentType.READINESS_ADJUSTMENT
    assert result.suggested_adjustment.magnitude == pytest.approx(expected)


def test_readiness_six_is_compatible(validator, plan):
    verdict = validator.validate_workout(plan, readiness_data=ReadinessSnapshot(score=6))

    assert check(verdict, "readiness_compatibility").severity == CheckSeverity.PASS


# ===== DELOAD REQUIREMENT =====


@pytest.mark.parametrize("week,severity", [(4, CheckSeverity.WARN), (8, CheckSeverity.WARN), (5, CheckSeverity.PASS)])
def test_deload_by_training_week(validator, plan, week, severity):
    verdict = validator.validate_workout(plan, training_week=week)

    assert check(verdict, "deload_requirement").severity == severity


def test_deload_already_planned(validator):
    """A workout already tagged as a deload satisfies the requirement."""
    deload_plan = make_plan(modifications=["deload"])

    verdict = validator.validate_workout(deload_plan, training_week=4)

    result = check(verdict, "deload_requirement")
    assert result.severity == CheckSeverity.PASS
    assert result.message == "Workout is already a deload"


def test_accumulated_fatigue_recommends_deload(validator, plan):
    readiness = ReadinessSnapshot(score=7, recent_scores=[5, 6, 6])

    verdict = validator.validate_workout(plan, readiness_data=readiness, training_week=2)

    result = check(verdict, "deload_requirement")
    assert result.severity == CheckSeverity.WARN
    assert "Accumulated fatigue" in result.message
    assert result.suggested_adjustment.adjustment_type == AdjustmentType.DELOAD_WEEK


def test_training_streak_from_history():
    """Four straight Monday-start weeks with training."""
    history = [
        SessionRecord(session_date=date(2025, 2, 17)),
        SessionRecord(session_date=date(2025, 2, 24)),
        SessionRecord(session_date=date(2025, 3, 3)),
        SessionRecord(session_date=date(2025, 3, 10)),
    ]
    assert consecutive_training_weeks(history, AS_OF) == 4


def test_deload_session_breaks_streak():
    history = [
        SessionRecord(session_date=date(2025, 2, 24)),
        SessionRecord(session_date=date(2025, 3, 4), is_deload=True),
        SessionRecord(session_date=date(2025, 3, 10)),
    ]
    assert consecutive_training_weeks(history, AS_OF) == 1
    assert consecutive_training_weeks([], AS_OF) == 0


def test_streak_derived_deload(validator, plan):
    history = [SessionRecord(session_date=date(2025, 3, d)) for d in (3, 10)] + [
        SessionRecord(session_date=date(2025, 2, d)) for d in (17, 24)
    ]

    verdict = validator.validate_workout(plan, recent_sessions=history)

    assert "after 4 weeks" in check(verdict, "deload_requirement").message


# ===== DAILY CAP =====


def test_daily_load_cap_warns(validator, plan):
    """A long session this morning leaves no room today; warn, not block."""
    history = [session(12, minutes=100, rpe=8, start_time=time(8, 0))]

    verdict = validator.validate_workout(plan, recent_sessions=history)

    daily = check(verdict, "daily_load_cap")
    assert daily.severity == CheckSeverity.WARN
    assert daily.suggested_adjustment.adjustment_type == AdjustmentType.LOAD_REDUCTION
    assert verdict.is_allowed is True


def test_daily_cap_from_settings(plan):
    validator = GuardrailValidator.from_settings(Settings(max_daily_load=10.0))

    verdict = validator.validate_workout(plan)

    assert check(verdict, "daily_load_cap").severity == CheckSeverity.WARN


# ===== AGGREGATION =====


def test_all_checks_run_after_a_block(validator, plan):
    """Multiple blocks are all reported."""
    history = [session(day, minutes=70, rpe=8) for day in (6, 8, 10)]
    verdict = validator.validate_workout(
        plan,
        user_profile=AthleteProfile(training_level=TrainingLevel.BEGINNER),
        recent_sessions=history,
        readiness_data=ReadinessSnapshot(pain_level=6),
    )

    assert {b.check_name for b in verdict.blocks} == {"weekly_load_cap", "readiness_compatibility"}
    assert len(verdict.checks) == 6


def test_registered_check_is_evaluated(plan):
    validator = GuardrailValidator()
    validator.register(AlwaysBlockCheck())

    verdict = validator.validate_workout(plan)

    assert verdict.checks[-1].check_name == "always_block"
    assert verdict.is_allowed is False


def test_verdict_summary_text(validator, plan):
    allowed = validator.validate_workout(plan)
    blocked = validator.validate_workout(plan, readiness_data=ReadinessSnapshot(pain_level=7))

    assert "STATUS: ALLOWED" in validator.display_verdict_summary(allowed)
    summary = validator.display_verdict_summary(blocked)
    assert "STATUS: BLOCKED" in summary
    assert "[readiness_compatibility]" in summary


# ===== AUTO-ADJUSTMENTS =====


def adjustment(kind: AdjustmentType, magnitude: float) -> AutoAdjustment:
    return AutoAdjustment(adjustment_type=kind, magnitude=magnitude, reason="Testing adjustment", source_check="test")


def test_no_adjustments_returns_equal_copy(validator, plan):
    adjusted = validator.apply_auto_adjustments(plan, [])

    assert adjusted == plan
    assert adjusted is not plan


def test_load_reduction_scales_sets_and_weights(validator):
    plan = make_plan(target_weight=100.0)

    adjusted = validator.apply_auto_adjustments(plan, [adjustment(AdjustmentType.LOAD_REDUCTION, 0.3)])

    squat = adjusted.get_block(BlockName.MAIN).items[0]
    assert squat.sets == 3
    assert squat.target_weight == pytest.approx(70.0)
    assert "guardrail_adjusted" in adjusted.modifications
    assert adjusted.rationale[-1].startswith("Guardrail auto-adjustments")
    assert plan.get_block(BlockName.MAIN).items[0].sets == 4


def test_intensity_reductions_compound_and_clamp(validator, plan):
    adjusted = validator.apply_auto_adjustments(
        plan,
        [adjustment(AdjustmentType.INTENSITY_REDUCTION, 0.15)],
    )
    assert adjusted.intensity_scale == pytest.approx(0.85)

    twice = validator.apply_auto_adjustments(
        plan,
        [adjustment(AdjustmentType.INTENSITY_REDUCTION, 0.3), adjustment(AdjustmentType.INTENSITY_REDUCTION, 0.3)],
    )
    assert twice.intensity_scale == pytest.approx(0.6)


def test_deload_adjustment_reduces_volume(validator, plan):
    adjusted = validator.apply_auto_adjustments(plan, [adjustment(AdjustmentType.DELOAD_WEEK, 0.2)])

    assert adjusted.volume_multiplier == pytest.approx(0.8)
    assert adjusted.get_block(BlockName.MAIN).items[0].sets == 3

"""
Tests for readiness inference.

Covers explicit check-in scoring, passive inference from history, injury
flags and external activity, the no-data default, and audit logging.
"""

from datetime import date, datetime

import pytest

from adaptive_coach.readiness import (
    ReadinessInferencer,
    hard_days_streak,
    score_check_in,
)
from adaptive_coach.schemas import (
    Confidence,
    Context,
    ExternalActivity,
    InjuryFlag,
    ReadinessCheckIn,
    ReadinessSource,
    SessionRecord,
)
from adaptive_coach.storage import InMemoryStorage


PLAN_DATE = date(2025, 3, 12)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def inferencer(storage):
    return ReadinessInferencer(storage)


def _check_in(sleep, stress, soreness, energy, **kwargs):
    return ReadinessCheckIn(
        check_in_date=PLAN_DATE,
        sleep_quality=sleep,
        stress=stress,
        soreness=soreness,
        energy=energy,
        **kwargs,
    )


# ===== EXPLICIT CHECK-IN =====


def test_check_in_weighted_blend_rounds_half_up():
    """0.30 sleep + 0.25 (10 - stress) + 0.25 (10 - soreness) + 0.20 energy, half up."""
    assert score_check_in(_check_in(8, 3, 3, 8)) == 8  # 7.5
    assert score_check_in(_check_in(3, 8, 8, 3)) == 3  # 2.5


def test_check_in_score_is_clamped():
    """Extreme check-ins stay within 1-10."""
    assert score_check_in(_check_in(1, 10, 10, 1)) == 1
    assert score_check_in(_check_in(10, 1, 1, 10)) == 10


def test_explicit_check_in_has_high_confidence(inferencer):
    """A same-day check-in is used directly."""
    context = Context(user_id="athlete_001", plan_date=PLAN_DATE, readiness=_check_in(8, 3, 3, 8))

    record = inferencer.from_context(context)

    assert record.score == 8
    assert record.source == ReadinessSource.EXPLICIT
    assert record.confidence == Confidence.HIGH
    assert "sleep 8/10" in record.reasons[0]


# ===== PASSIVE INFERENCE =====


def test_no_data_returns_default(inferencer):
    """No check-in and no history gives the documented default."""
    record = inferencer.from_context(Context(user_id="athlete_001", plan_date=PLAN_DATE))

    assert record.score == 7
    assert record.source == ReadinessSource.DEFAULT
    assert record.confidence == Confidence.LOW


def test_no_storage_still_infers():
    """The inferencer works without a storage collaborator."""
    record = ReadinessInferencer().infer_readiness("athlete_001", PLAN_DATE)

    assert record.score == 7
    assert record.source == ReadinessSource.DEFAULT


def test_very_hard_last_session_lowers_score(inferencer):
    """RPE 9 or above costs two points."""
    context = Context(
        user_id="athlete_001",
        plan_date=PLAN_DATE,
        history=[SessionRecord(session_date=date(2025, 3, 11), rpe=9)],
    )

    record = inferencer.from_context(context)

    assert record.score == 6
    assert record.source == ReadinessSource.INFERRED
    assert record.confidence == Confidence.MEDIUM
    assert any("very hard" in reason for reason in record.reasons)


def test_light_last_session_raises_score(inferencer):
    """RPE 6 or below adds a point."""
    context = Context(
        user_id="athlete_001",
        plan_date=PLAN_DATE,
        history=[SessionRecord(session_date=date(2025, 3, 11), rpe=5)],
    )

    assert inferencer.from_context(context).score == 9


def test_consecutive_hard_days(inferencer):
    """Three hard days in a row cost two more points on top of the RPE penalty."""
    history = [SessionRecord(session_date=date(2025, 3, day), rpe=8) for day in (9, 10, 11)]
    context = Context(user_id="athlete_001", plan_date=PLAN_DATE, history=history)

    record = inferencer.from_context(context)

    assert hard_days_streak(history) == 3
    assert record.score == 5
    assert any("3 consecutive hard days" in reason for reason in record.reasons)


def test_volume_increase_lowers_score(inferencer):
    """A volume jump above 25% costs 1.5 points."""
    context = Context(
        user_id="athlete_001",
        plan_date=PLAN_DATE,
        history=[
            SessionRecord(session_date=date(2025, 3, 9), volume=1000),
            SessionRecord(session_date=date(2025, 3, 11), volume=1300, rpe=7),
        ],
    )

    record = inferencer.from_context(context)

    assert record.score == 7  # 8 - 1.5 = 6.5, rounded half up
    assert any("Large volume increase" in reason for reason in record.reasons)


def test_injury_flag_and_external_activity(inferencer):
    """Recent injury flags and heavy external activity both reduce readiness."""
    context = Context(
        user_id="athlete_001",
        plan_date=PLAN_DATE,
        injury_flags=[InjuryFlag(flag_date=date(2025, 3, 10), body_part="knee", severity=6)],
        external_activities=[
            ExternalActivity(
                started_at=datetime(2025, 3, 11, 18, 0),
                duration_minutes=90,
                intensity=7,
                description="Pickup basketball",
            )
        ],
    )

    record = inferencer.from_context(context)

    assert record.score == 6  # 8 - 1.5 - 1 = 5.5, rounded half up
    assert record.source == ReadinessSource.INFERRED
    assert any("knee" in reason for reason in record.reasons)


def test_old_external_activity_ignored(inferencer):
    """Activity outside the trailing 24 hours does not count."""
    context = Context(
        user_id="athlete_001",
        plan_date=PLAN_DATE,
        history=[SessionRecord(session_date=date(2025, 3, 8), rpe=7)],
        external_activities=[
            ExternalActivity(started_at=datetime(2025, 3, 9, 10, 0), duration_minutes=120, intensity=8)
        ],
    )

    record = inferencer.from_context(context)

    assert record.score == 8
    assert record.reasons == ["No strain signals in recent history"]


# ===== STORAGE =====


def test_infer_from_storage_uses_check_in(storage, inferencer):
    """A stored check-in for the date is used over passive signals."""
    storage.append_check_in("athlete_001", _check_in(3, 8, 8, 3))
    storage.append_session("athlete_001", SessionRecord(session_date=date(2025, 3, 11), rpe=5))

    record = inferencer.infer_readiness("athlete_001", PLAN_DATE)

    assert record.score == 3
    assert record.source == ReadinessSource.EXPLICIT


def test_infer_from_storage_history(storage, inferencer):
    """Without a check-in, stored sessions drive passive inference."""
    storage.append_session("athlete_001", SessionRecord(session_date=date(2025, 3, 11), rpe=9))

    record = inferencer.infer_readiness("athlete_001", PLAN_DATE)

    assert record.score == 6
    assert record.source == ReadinessSource.INFERRED


def test_every_inference_is_audited(storage, inferencer):
    """Each inference writes a readiness_inferred audit event."""
    inferencer.from_context(Context(user_id="athlete_001", plan_date=PLAN_DATE))
    inferencer.infer_readiness("athlete_001", PLAN_DATE)

    events = storage.get_audit_events("athlete_001")

    assert [e.event_type for e in events] == ["readiness_inferred", "readiness_inferred"]
    assert events[0].payload["output"]["score"] == 7
    assert events[0].payload["confidence"] == "low"

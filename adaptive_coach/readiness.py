"""
Readiness inference.

Produces a 1-10 readiness score for a user on a date, either from an explicit
daily check-in or, when there is none, passively from training history,
injury flags and external activity. Every inference is written to the audit
log for traceability.
"""

import math
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from adaptive_coach.exceptions import StorageError
from adaptive_coach.load_tracker import LoadTracker
from adaptive_coach.logger import get_logger
from adaptive_coach.schemas import (
    AuditEvent,
    Confidence,
    Context,
    ExternalActivity,
    InjuryFlag,
    ReadinessCheckIn,
    ReadinessRecord,
    ReadinessSource,
    SessionRecord,
)
from adaptive_coach.storage import StorageCollaborator

log = get_logger(__name__)

# Explicit check-in blend
SLEEP_WEIGHT = 0.30
STRESS_WEIGHT = 0.25
SORENESS_WEIGHT = 0.25
ENERGY_WEIGHT = 0.20

PASSIVE_BASE_SCORE = 8.0
DEFAULT_SCORE = 7

HISTORY_LOOKBACK_DAYS = 28
INJURY_LOOKBACK_DAYS = 7
EXTERNAL_ACTIVITY_HOURS = 24


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_score(value: float) -> int:
    return max(1, min(10, _round_half_up(value)))


class ReadinessSignals(BaseModel):
    """Passive inputs gathered for one inference."""

    prior_rpe: Optional[float] = Field(None, description="RPE of the most recent session")
    volume_change_pct: float = Field(
        default=0.0, description="Volume change of the last session vs the one before, in %"
    )
    hard_days_streak: int = Field(default=0, ge=0)
    injury_flags: List[InjuryFlag] = Field(default_factory=list)
    external_activities: List[ExternalActivity] = Field(default_factory=list)
    has_history: bool = Field(default=False)

    def data_points(self) -> int:
        """Number of non-null contributing signals."""
        return sum(
            [
                self.prior_rpe is not None,
                self.volume_change_pct != 0,
                self.hard_days_streak > 0,
                bool(self.injury_flags),
                bool(self.external_activities),
            ]
        )

    def is_empty(self) -> bool:
        return not self.has_history and not self.injury_flags and not self.external_activities


def score_check_in(check_in: ReadinessCheckIn) -> int:
    """Weighted blend of the four check-in sub-metrics, rounded and clamped to 1-10."""
    raw = (
        SLEEP_WEIGHT * check_in.sleep_quality
        + STRESS_WEIGHT * (10 - check_in.stress)
        + SORENESS_WEIGHT * (10 - check_in.soreness)
        + ENERGY_WEIGHT * check_in.energy
    )
    return _clamp_score(raw)


def _session_volume(session: SessionRecord) -> float:
    if session.volume is not None and math.isfinite(session.volume) and session.volume > 0:
        return session.volume
    return sum(LoadTracker.exercise_volume(e) for e in session.exercises)


def _volume_change_pct(previous: SessionRecord, last: SessionRecord) -> float:
    prev_volume = _session_volume(previous)
    last_volume = _session_volume(last)
    if prev_volume <= 0 or last_volume <= 0:
        return 0.0
    return (last_volume - prev_volume) / max(prev_volume, 1.0) * 100.0


def hard_days_streak(sessions: Sequence[SessionRecord]) -> int:
    """
    Count consecutive hard sessions, walking back from the most recent.

    A session is hard when its RPE is at least 8 or its volume rose by more
    than 20% over the session before it.
    """
    streak = 0
    for index in range(len(sessions) - 1, -1, -1):
        session = sessions[index]
        volume_jump = index > 0 and _volume_change_pct(sessions[index - 1], session) > 20
        if (session.rpe is not None and session.rpe >= 8) or volume_jump:
            streak += 1
        else:
            break
    return streak


def gather_signals(
    sessions: Sequence[SessionRecord],
    injury_flags: Sequence[InjuryFlag],
    external_activities: Sequence[ExternalActivity],
    on_date: date,
    reference_time: Optional[time] = None,
) -> ReadinessSignals:
    """
    Collect passive signals relevant to ``on_date``.

    Sessions on or after the date are ignored. Injury flags count over the
    trailing 7 days; external activities over the 24 hours before the
    reference time (noon when unknown).
    """
    prior = [s for s in sessions if s.session_date < on_date]
    prior.sort(key=lambda s: s.started_at())

    injury_start = on_date - timedelta(days=INJURY_LOOKBACK_DAYS)
    recent_flags = [f for f in injury_flags if injury_start <= f.flag_date <= on_date]

    reference = datetime.combine(on_date, reference_time or time(12, 0))
    activity_start = reference - timedelta(hours=EXTERNAL_ACTIVITY_HOURS)
    recent_activities = [
        a for a in external_activities if activity_start <= a.started_at.replace(tzinfo=None) <= reference
    ]

    return ReadinessSignals(
        prior_rpe=prior[-1].rpe if prior else None,
        volume_change_pct=_volume_change_pct(prior[-2], prior[-1]) if len(prior) >= 2 else 0.0,
        hard_days_streak=hard_days_streak(prior),
        injury_flags=recent_flags,
        external_activities=recent_activities,
        has_history=bool(prior),
    )


def infer_from_signals(user_id: str, on_date: date, signals: ReadinessSignals) -> ReadinessRecord:
    """
    Passive readiness from gathered signals.

    Starts from a base of 8 and applies independent adjustments for prior
    RPE, volume change, hard-day streak, injury flags and external activity.
    Returns the documented default (7, default, low) when there is no data.
    """
    if signals.is_empty():
        return ReadinessRecord(
            user_id=user_id,
            record_date=on_date,
            score=DEFAULT_SCORE,
            source=ReadinessSource.DEFAULT,
            confidence=Confidence.LOW,
            reasons=["No check-in or training history; using default readiness"],
        )

    score = PASSIVE_BASE_SCORE
    reasons: List[str] = []

    rpe = signals.prior_rpe
    if rpe is not None:
        if rpe >= 9:
            score -= 2
            reasons.append(f"Last session was very hard (RPE {rpe:g})")
        elif rpe >= 8:
            score -= 1
            reasons.append(f"Last session was hard (RPE {rpe:g})")
        elif rpe <= 6:
            score += 1
            reasons.append(f"Last session was light (RPE {rpe:g})")

    change = signals.volume_change_pct
    if change > 25:
        score -= 1.5
        reasons.append(f"Large volume increase (+{change:.0f}%)")
    elif change > 10:
        score -= 1
        reasons.append(f"Volume increase (+{change:.0f}%)")
    elif change < -20:
        score += 0.5
        reasons.append(f"Volume decreased ({change:.0f}%)")

    if signals.hard_days_streak >= 3:
        score -= 2
        reasons.append(f"{signals.hard_days_streak} consecutive hard days")
    elif signals.hard_days_streak >= 2:
        score -= 1
        reasons.append(f"{signals.hard_days_streak} consecutive hard days")

    if signals.injury_flags:
        latest = max(signals.injury_flags, key=lambda f: f.flag_date)
        score -= 1.5
        reasons.append(f"Recent injury flag: {latest.body_part} ({latest.severity}/10)")

    if signals.external_activities:
        total_minutes = sum(a.duration_minutes for a in signals.external_activities)
        peak_intensity = max(a.intensity for a in signals.external_activities)
        if total_minutes > 60 and peak_intensity > 5:
            score -= 1
            reasons.append(
                f"External activity in the last 24h: {total_minutes:.0f}min at intensity {peak_intensity:g}/10"
            )

    points = signals.data_points()
    if points >= 4:
        confidence = Confidence.HIGH
    elif points >= 2:
        confidence = Confidence.MEDIUM
    else:
        confidence = Confidence.LOW

    if not reasons:
        reasons.append("No strain signals in recent history")

    return ReadinessRecord(
        user_id=user_id,
        record_date=on_date,
        score=_clamp_score(score),
        source=ReadinessSource.INFERRED,
        confidence=confidence,
        reasons=reasons,
    )


def explicit_record(user_id: str, check_in: ReadinessCheckIn) -> ReadinessRecord:
    """ReadinessRecord for an explicit check-in."""
    return ReadinessRecord(
        user_id=user_id,
        record_date=check_in.check_in_date,
        score=score_check_in(check_in),
        source=ReadinessSource.EXPLICIT,
        confidence=Confidence.HIGH,
        reasons=[
            f"Check-in: sleep {check_in.sleep_quality}/10, stress {check_in.stress}/10, "
            f"soreness {check_in.soreness}/10, energy {check_in.energy}/10"
        ],
    )


class ReadinessInferencer:
    """
    Resolve a readiness score from explicit or passive data.

    Args:
        storage: Storage collaborator used for reads and the audit log. When
            None, inferences are computed but not audited.
    """

    def __init__(self, storage: Optional[StorageCollaborator] = None):
        self.storage = storage

    def infer_readiness(self, user_id: str, on_date: date) -> ReadinessRecord:
        """
        Infer readiness for a user on a date using stored history.

        Args:
            user_id: Athlete identifier
            on_date: Date to score

        Returns:
            ReadinessRecord (never raises for missing data)
        """
        if self.storage is None:
            return infer_from_signals(user_id, on_date, ReadinessSignals())

        check_in = self.storage.get_check_in(user_id, on_date)
        if check_in is not None:
            record = explicit_record(user_id, check_in)
            self._audit(record, {"check_in": check_in.model_dump(mode="json")})
            return record

        signals = gather_signals(
            self.storage.get_sessions(user_id, on_date - timedelta(days=HISTORY_LOOKBACK_DAYS)),
            self.storage.get_injury_flags(user_id, on_date - timedelta(days=INJURY_LOOKBACK_DAYS)),
            self.storage.get_external_activities(user_id, on_date - timedelta(days=1)),
            on_date,
        )
        record = infer_from_signals(user_id, on_date, signals)
        self._audit(record, {"signals": signals.model_dump(mode="json")})
        return record

    def from_context(self, context: Context) -> ReadinessRecord:
        """Infer readiness from an assembled Context without storage reads."""
        check_in = context.todays_check_in()
        if check_in is not None:
            record = explicit_record(context.user_id, check_in)
            self._audit(record, {"check_in": check_in.model_dump(mode="json")})
            return record

        signals = gather_signals(
            context.history,
            context.injury_flags,
            context.external_activities,
            context.plan_date,
            context.session_start,
        )
        record = infer_from_signals(context.user_id, context.plan_date, signals)
        self._audit(record, {"signals": signals.model_dump(mode="json")})
        return record

    def _audit(self, record: ReadinessRecord, inputs: dict) -> None:
        log.info(
            f"Readiness for {record.user_id} on {record.record_date}: {record.score}/10 "
            f"({record.source.value}, confidence {record.confidence.value})"
        )
        if self.storage is None:
            return
        event = AuditEvent(
            user_id=record.user_id,
            event_type="readiness_inferred",
            payload={
                "inputs": inputs,
                "output": record.model_dump(mode="json"),
                "confidence": record.confidence.value,
            },
        )
        try:
            self.storage.append_audit_event(event)
        except StorageError as exc:
            log.warning(f"Audit write failed for readiness inference: {exc}")

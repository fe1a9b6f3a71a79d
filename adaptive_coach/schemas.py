"""
Pydantic models for the adaptive training engine.

This module defines the core data structures for:
- Context: everything known about the athlete on the day a plan is requested
- Readiness and load records: long-lived per-user history owned by storage
- Conflict records: schedule conflicts detected against a proposed plan
- Guardrail verdicts: safety check results, blocks and auto-adjustments
- Session outcomes: completed-session results fed back into the next cycle
"""

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Naive UTC timestamp, the format stored by the database layer."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_body_part(raw: str) -> str:
    """Normalise a body-part token: 'Knee Pain' -> 'knee', 'lower back' -> 'lower_back'."""
    token = raw.strip().lower().replace("-", "_").replace(" ", "_")
    if token.endswith("_pain"):
        token = token[: -len("_pain")]
    return token


# ============================================================================
# Enumerations
# ============================================================================

class TrainingLevel(str, Enum):
    """Athlete training experience, used to select load caps."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    ELITE = "elite"


class SeasonPhase(str, Enum):
    """Where the athlete is in the competitive season."""
    OFF_SEASON = "off_season"
    PRE_SEASON = "pre_season"
    IN_SEASON = "in_season"
    POST_SEASON = "post_season"


class CompetitionImportance(str, Enum):
    """How much a competition matters to the athlete."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TrainingMode(str, Enum):
    """Full programming or a simplified session."""
    FULL = "full"
    SIMPLE = "simple"


class GoalFocus(str, Enum):
    """Primary goal driving accessory selection."""
    STRENGTH = "strength"
    POWER = "power"
    HYPERTROPHY = "hypertrophy"
    CONDITIONING = "conditioning"
    MOBILITY = "mobility"


class SessionIntensity(str, Enum):
    """Coarse intensity label for a scheduled or completed session."""
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"


class BodyRegion(str, Enum):
    """Primary body region trained by a session or exercise."""
    UPPER = "upper"
    LEGS = "legs"
    FULL_BODY = "full_body"
    CORE = "core"


class IntensityZone(str, Enum):
    """Five-zone intensity model. Z4 and Z5 count as hard."""
    Z1 = "Z1"
    Z2 = "Z2"
    Z3 = "Z3"
    Z4 = "Z4"
    Z5 = "Z5"


class ReadinessSource(str, Enum):
    """Where a readiness score came from."""
    EXPLICIT = "explicit"
    INFERRED = "inferred"
    DEFAULT = "default"


class Confidence(str, Enum):
    """Confidence in an inferred value."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SpikeSeverity(str, Enum):
    """Magnitude of a load increase relative to the recent average."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ConflictType(str, Enum):
    """Kinds of schedule conflicts."""
    GAME_DAY = "game_day"
    BACK_TO_BACK = "back_to_back"
    RECOVERY = "recovery"
    BODY_PART_OVERLAP = "body_part_overlap"


class ConflictSeverity(str, Enum):
    """High-severity conflicts stop the plan from proceeding unmodified."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class CheckSeverity(str, Enum):
    """Outcome of a single guardrail check."""
    PASS = "pass"
    WARN = "warn"
    BLOCK = "block"


class AdjustmentType(str, Enum):
    """Automatic adjustments a guardrail check can request."""
    LOAD_REDUCTION = "load_reduction"
    INTENSITY_REDUCTION = "intensity_reduction"
    DELOAD_WEEK = "deload_week"
    READINESS_ADJUSTMENT = "readiness_adjustment"
    RAMP_ADJUSTMENT = "ramp_adjustment"


# ============================================================================
# Context Components
# ============================================================================


class AthleteProfile(BaseModel):
    """Static description of the athlete."""

    sport: str = Field(default="general", description="Primary sport (e.g. soccer, basketball)")
    position: Optional[str] = Field(None, description="Playing position, if the sport has one")
    age: Optional[int] = Field(None, ge=10, le=100, description="Age in years")
    weight_kg: Optional[float] = Field(None, gt=0, le=300, description="Body weight in kilograms")
    height_cm: Optional[float] = Field(None, gt=0, le=260, description="Height in centimeters")
    training_level: TrainingLevel = Field(
        default=TrainingLevel.INTERMEDIATE,
        description="Experience level; selects weekly load caps",
    )


class Competition(BaseModel):
    """An upcoming game or race."""

    competition_date: date = Field(..., description="Date of the competition")
    importance: CompetitionImportance = Field(
        default=CompetitionImportance.MEDIUM, description="How much the competition matters"
    )
    name: Optional[str] = Field(None, description="Opponent or event name")


class ScheduledSession(BaseModel):
    """A training session on the athlete's calendar (past or future)."""

    session_date: date = Field(..., description="Calendar date of the session")
    start_time: Optional[time] = Field(None, description="Planned start time")
    intensity: SessionIntensity = Field(
        default=SessionIntensity.MODERATE, description="Planned or performed intensity"
    )
    body_region: Optional[BodyRegion] = Field(None, description="Primary body region trained")


class Schedule(BaseModel):
    """
    Upcoming competitions and scheduled sessions.

    Satisfies the schedule supplier contract used by the conflict resolver.
    """

    competitions: List[Competition] = Field(default_factory=list)
    sessions: List[ScheduledSession] = Field(default_factory=list)

    def upcoming_competitions(self, on_date: date) -> List[Competition]:
        """Competitions on or after ``on_date``, nearest first."""
        return sorted(
            (c for c in self.competitions if c.competition_date >= on_date),
            key=lambda c: c.competition_date,
        )

    def next_competition(self, on_date: date) -> Optional[Competition]:
        """Nearest competition on or after ``on_date``, if any."""
        upcoming = self.upcoming_competitions(on_date)
        return upcoming[0] if upcoming else None

    def nearest_prior_session(self, on_date: date) -> Optional[ScheduledSession]:
        """Latest session strictly before ``on_date``; same-day sessions are excluded."""
        prior = [s for s in self.sessions if s.session_date < on_date]
        if not prior:
            return None
        return max(prior, key=lambda s: s.session_date)


class ExerciseResult(BaseModel):
    """
    Performed exercise within a completed session.

    Sets, reps and weight are not range-checked here: malformed values from
    upstream trackers are accepted and clamped when load is computed.
    """

    name: str = Field(..., min_length=1, description="Exercise name")
    sets: int = Field(default=0, description="Sets performed")
    reps: int = Field(default=0, description="Reps per set")
    weight: float = Field(default=0.0, description="Load per rep in kilograms")
    rpe: Optional[float] = Field(None, ge=1, le=10, description="Reported RPE, if recorded")
    completed: bool = Field(default=True, description="Whether the exercise was finished")
    duration_minutes: Optional[float] = Field(
        None, ge=0, description="Duration for timed/cardio work"
    )


class SessionRecord(BaseModel):
    """A completed training session in the athlete's history."""

    session_date: date = Field(..., description="Date the session was performed")
    start_time: Optional[time] = Field(None, description="Time the session started")
    rpe: Optional[float] = Field(None, ge=1, le=10, description="Session RPE")
    volume: Optional[float] = Field(None, description="Volume (sets x reps x weight)")
    load: Optional[float] = Field(None, description="Computed session load")
    duration_minutes: Optional[float] = Field(None, ge=0, description="Session duration")
    intensity: SessionIntensity = Field(default=SessionIntensity.MODERATE)
    body_region: Optional[BodyRegion] = Field(None, description="Primary body region trained")
    average_zone: Optional[IntensityZone] = Field(None, description="Average intensity zone")
    hard_minutes: float = Field(default=0.0, ge=0, description="Minutes spent in Z4-Z5")
    completion_rate: Optional[float] = Field(None, ge=0, le=1)
    readiness_score: Optional[int] = Field(None, ge=1, le=10, description="Readiness on the day")
    is_deload: bool = Field(default=False, description="Whether this was a deload session")
    exercises: List[ExerciseResult] = Field(default_factory=list)

    def started_at(self) -> datetime:
        """Start timestamp; sessions without a time are treated as starting at noon."""
        return datetime.combine(self.session_date, self.start_time or time(12, 0))


class ReadinessCheckIn(BaseModel):
    """Explicit daily check-in. All sub-metrics are on a 1-10 scale."""

    check_in_date: date = Field(..., description="Date the check-in refers to")
    sleep_quality: int = Field(..., ge=1, le=10, description="Sleep quality (10 = excellent)")
    stress: int = Field(..., ge=1, le=10, description="Life stress (10 = very high)")
    soreness: int = Field(..., ge=1, le=10, description="Muscle soreness (10 = very sore)")
    energy: int = Field(..., ge=1, le=10, description="Energy level (10 = very high)")
    pain_level: Optional[int] = Field(None, ge=0, le=10, description="Reported pain (0 = none)")
    pain_location: Optional[str] = Field(None, description="Where pain is felt, e.g. 'knee'")


class InjuryFlag(BaseModel):
    """A reported injury or niggle."""

    flag_date: date = Field(..., description="Date the flag was raised")
    body_part: str = Field(..., min_length=1, description="Affected body part")
    severity: int = Field(default=5, ge=0, le=10)
    active: bool = Field(default=True)
    notes: Optional[str] = None


class ExternalActivity(BaseModel):
    """Non-training physical activity (manual labour, hiking, pickup games)."""

    started_at: datetime = Field(..., description="When the activity started")
    duration_minutes: float = Field(..., ge=0)
    intensity: float = Field(..., ge=0, le=10, description="Perceived intensity 0-10")
    description: Optional[str] = None


class Preferences(BaseModel):
    """Athlete preferences for the session."""

    goal_focus: GoalFocus = Field(default=GoalFocus.STRENGTH)
    training_mode: TrainingMode = Field(default=TrainingMode.FULL)
    available_days: List[str] = Field(default_factory=list)
    session_length_minutes: int = Field(
        default=60, ge=10, le=240, description="Preferred session length"
    )


class Constraints(BaseModel):
    """Hard constraints on today's session."""

    time_limit_minutes: Optional[int] = Field(
        None, ge=5, le=240, description="Hard cap on session duration"
    )
    equipment: List[str] = Field(default_factory=list, description="Available equipment")
    safety_flags: List[str] = Field(
        default_factory=list, description="Safety flags such as 'knee_pain'"
    )


class Context(BaseModel):
    """
    Everything known about the athlete for one planning request.

    Assembled fresh per request. Missing data is represented as None or an
    empty list, never as an error.
    """

    user_id: str = Field(..., min_length=1, description="Athlete identifier")
    plan_date: date = Field(..., description="Date the plan is for")
    profile: AthleteProfile = Field(default_factory=AthleteProfile)
    season_phase: SeasonPhase = Field(default=SeasonPhase.IN_SEASON)
    training_week: Optional[int] = Field(
        None, ge=1, description="1-indexed week within the current training cycle"
    )
    session_start: Optional[time] = Field(None, description="Planned start time today")
    schedule: Schedule = Field(default_factory=Schedule)
    history: List[SessionRecord] = Field(
        default_factory=list, description="Past sessions, ascending by date"
    )
    readiness: Optional[ReadinessCheckIn] = Field(None, description="Today's check-in")
    injury_flags: List[InjuryFlag] = Field(default_factory=list)
    external_activities: List[ExternalActivity] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    constraints: Constraints = Field(default_factory=Constraints)

    @field_validator("history")
    @classmethod
    def sort_history(cls, v: List[SessionRecord]) -> List[SessionRecord]:
        """Keep history ordered by date ascending."""
        return sorted(v, key=lambda s: s.started_at())

    def last_session(self) -> Optional[SessionRecord]:
        """Most recent session strictly before the plan date."""
        prior = [s for s in self.history if s.session_date < self.plan_date]
        return prior[-1] if prior else None

    def todays_check_in(self) -> Optional[ReadinessCheckIn]:
        """The explicit check-in, only if it refers to the plan date."""
        if self.readiness and self.readiness.check_in_date == self.plan_date:
            return self.readiness
        return None

    def effective_time_limit(self) -> int:
        """Hard time limit if set, otherwise the preferred session length."""
        if self.constraints.time_limit_minutes is not None:
            return self.constraints.time_limit_minutes
        return self.preferences.session_length_minutes

    def flagged_body_parts(self) -> List[str]:
        """
        Body parts that must not be loaded today.

        Collected from constraint safety flags, today's reported pain location,
        and injury flags raised in the trailing 7 days that are still active.
        """
        parts = [normalize_body_part(flag) for flag in self.constraints.safety_flags]

        check_in = self.todays_check_in()
        if check_in and check_in.pain_location and (check_in.pain_level or 0) > 0:
            parts.append(normalize_body_part(check_in.pain_location))

        window_start = self.plan_date - timedelta(days=7)
        for flag in self.injury_flags:
            if flag.active and window_start <= flag.flag_date <= self.plan_date:
                parts.append(normalize_body_part(flag.body_part))

        # Preserve order, drop duplicates
        return list(dict.fromkeys(p for p in parts if p))


# ============================================================================
# Long-lived Records
# ============================================================================


class ReadinessRecord(BaseModel):
    """Readiness score for one user on one date."""

    user_id: str = Field(..., min_length=1)
    record_date: date = Field(...)
    score: int = Field(..., ge=1, le=10, description="Composite readiness 1-10")
    source: ReadinessSource = Field(...)
    confidence: Confidence = Field(...)
    reasons: List[str] = Field(
        default_factory=list, description="Human-readable contributing reasons"
    )


class LoadRecord(BaseModel):
    """Derived load statistics for one completed session."""

    user_id: str = Field(..., min_length=1)
    record_date: date = Field(...)
    session_load: float = Field(..., ge=0, description="Computed session load")
    rpe: Optional[float] = Field(None, ge=1, le=10)
    completion_rate: Optional[float] = Field(None, ge=0, le=1)
    rolling_average_7d: float = Field(..., ge=0, description="7-day rolling average load")
    ewma_baseline: float = Field(..., ge=0, description="Exponentially weighted baseline")
    trend_slope: float = Field(default=0.0, description="Least-squares load slope per session")


class LoadSpike(BaseModel):
    """Result of comparing a session load against the recent average."""

    ratio: float = Field(..., ge=0.1, le=10.0)
    is_spike: bool = Field(...)
    severity: SpikeSeverity = Field(default=SpikeSeverity.NONE)


class ConflictRecord(BaseModel):
    """A schedule conflict detected against a proposed plan."""

    conflict_type: ConflictType = Field(...)
    severity: ConflictSeverity = Field(...)
    message: str = Field(..., min_length=5)
    recommendation: Optional[str] = Field(None, description="Suggested resolution")


class AuditEvent(BaseModel):
    """Traceability entry appended to the audit log."""

    user_id: str = Field(..., min_length=1)
    event_type: str = Field(..., min_length=1)
    occurred_at: datetime = Field(default_factory=utc_now)
    payload: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Guardrail Verdict Components
# ============================================================================


class ReadinessSnapshot(BaseModel):
    """Readiness data handed to the guardrail validator."""

    score: Optional[int] = Field(None, ge=1, le=10)
    soreness: Optional[int] = Field(None, ge=1, le=10)
    pain_level: Optional[int] = Field(None, ge=0, le=10)
    pain_location: Optional[str] = None
    recent_scores: List[int] = Field(
        default_factory=list, description="Readiness scores over the trailing 28 days"
    )


class AutoAdjustment(BaseModel):
    """An automatic change a guardrail check requests."""

    adjustment_type: AdjustmentType = Field(...)
    magnitude: float = Field(..., ge=0.0, le=1.0, description="Fractional reduction 0-1")
    reason: str = Field(..., min_length=5)
    source_check: str = Field(..., min_length=1, description="Check that requested it")

    def describe(self) -> str:
        """Short human-readable description."""
        label = self.adjustment_type.value.replace("_", " ")
        return f"{label}: -{self.magnitude * 100:.0f}% ({self.source_check})"


class GuardrailCheckResult(BaseModel):
    """Outcome of a single guardrail check."""

    check_name: str = Field(..., min_length=1)
    passed: bool = Field(...)
    severity: CheckSeverity = Field(...)
    message: str = Field(default="")
    suggested_adjustment: Optional[AutoAdjustment] = None


class GuardrailVerdict(BaseModel):
    """
    Aggregate result of all guardrail checks.

    ``is_allowed`` is False if and only if at least one check has block
    severity.
    """

    is_allowed: bool = Field(...)
    checks: List[GuardrailCheckResult] = Field(default_factory=list)
    modifications: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    auto_adjustments: List[AutoAdjustment] = Field(default_factory=list)
    blocks: List[GuardrailCheckResult] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_allowed_flag(self) -> "GuardrailVerdict":
        """Ensure is_allowed agrees with the presence of block-severity checks."""
        has_block = any(c.severity == CheckSeverity.BLOCK for c in self.checks) or bool(self.blocks)
        if self.is_allowed == has_block:
            raise ValueError("is_allowed must be False exactly when a check blocks")
        return self


# ============================================================================
# Outcome Feedback
# ============================================================================


class SessionOutcome(BaseModel):
    """Results of a completed session, reported after training."""

    user_id: str = Field(..., min_length=1)
    session_date: date = Field(...)
    exercises: List[ExerciseResult] = Field(default_factory=list)
    duration_minutes: Optional[float] = Field(None, ge=0)
    session_rpe: Optional[float] = Field(None, ge=1, le=10)
    notes: Optional[str] = None


class NextSessionRecommendation(BaseModel):
    """Adjustments to carry into the next session."""

    load_delta: float = Field(..., ge=-1.0, le=1.0, description="Fractional load change")
    volume_multiplier: float = Field(default=1.0, gt=0, le=1.0)
    rationale: List[str] = Field(default_factory=list)


class OutcomeSummary(BaseModel):
    """Derived summary of a logged outcome."""

    user_id: str = Field(...)
    session_date: date = Field(...)
    average_rpe: Optional[float] = Field(
        None, description="Mean of recorded RPEs; None when nothing was recorded"
    )
    completion_rate: float = Field(..., ge=0, le=1)
    session_load: float = Field(..., ge=0)
    recommendation: NextSessionRecommendation = Field(...)

"""
Safety guardrail validation.

This module implements the last line of defence before a plan reaches the
athlete. Every registered check is evaluated, even after one of them blocks,
so the caller sees the complete picture of what needs addressing.

Checks are independent objects sharing one capability, ``evaluate(inputs)``.
New checks are added by registering them with the validator; the aggregation
logic never changes.
"""

from datetime import datetime, time, timedelta
from typing import Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field

from adaptive_coach.config import Settings
from adaptive_coach.load_tracker import LoadTracker
from adaptive_coach.logger import get_logger
from adaptive_coach.plan_schemas import Block, BlockName, Plan, PlanDecision
from adaptive_coach.planner import clamp_intensity, scale_sets
from adaptive_coach.schemas import (
    AdjustmentType,
    AthleteProfile,
    AutoAdjustment,
    CheckSeverity,
    GuardrailCheckResult,
    GuardrailVerdict,
    IntensityZone,
    ReadinessSnapshot,
    SessionRecord,
    TrainingLevel,
)

log = get_logger(__name__)

# (total load, hard minutes) per training level over a trailing 7 days
WEEKLY_LOAD_CAPS: Dict[TrainingLevel, Dict[str, float]] = {
    TrainingLevel.BEGINNER: {"total": 250, "hard": 50},
    TrainingLevel.INTERMEDIATE: {"total": 400, "hard": 80},
    TrainingLevel.ADVANCED: {"total": 600, "hard": 120},
    TrainingLevel.ELITE: {"total": 800, "hard": 160},
}

RAMP_LIMITS = {"load": 0.10, "volume": 0.10, "intensity": 0.05}

HARD_ZONES = (IntensityZone.Z4, IntensityZone.Z5)
HARD_ITEM_RPE = 8.0
HARD_MINUTES_PER_ITEM = 5.0
DEFAULT_ITEM_RPE = 7.0
MIN_HOURS_BETWEEN_HARD = 24
MAX_REDUCTION = 0.5


# ============================================================================
# Load helpers
# ============================================================================


def session_guardrail_load(session: SessionRecord) -> float:
    """
    Load of a past session in guardrail units (minutes x RPE intensity factor).

    Sessions without a duration fall back to their stored load.
    """
    if session.duration_minutes:
        return session.duration_minutes * LoadTracker.intensity_factor(session.rpe)
    if session.load is not None and session.load >= 0:
        return session.load
    return 0.0


def workout_effective_rpe(workout: Plan) -> float:
    """Highest target RPE in the workout, scaled by its intensity."""
    rpes = [item.target_rpe for item in workout.all_items() if item.target_rpe is not None]
    peak = max(rpes) if rpes else DEFAULT_ITEM_RPE
    return peak * workout.intensity_scale


def workout_load(workout: Plan) -> float:
    """Estimated load of a planned workout in guardrail units."""
    return workout.total_duration_minutes * LoadTracker.intensity_factor(workout_effective_rpe(workout))


def workout_hard_minutes(workout: Plan) -> float:
    """Rough hard-minute estimate: five minutes per item targeting RPE 8 or above."""
    hard_items = [
        item for item in workout.all_items()
        if item.target_rpe is not None and item.target_rpe >= HARD_ITEM_RPE
    ]
    return len(hard_items) * HARD_MINUTES_PER_ITEM


def is_hard_session(session: SessionRecord) -> bool:
    """A past session is hard if it averaged Z4/Z5 or logged any hard minutes."""
    return session.average_zone in HARD_ZONES or session.hard_minutes > 0


# ============================================================================
# Check protocol and inputs
# ============================================================================


class GuardrailInputs(BaseModel):
    """Everything a check may look at. Shared read-only by all checks."""

    model_config = ConfigDict(frozen=True)

    workout: Plan
    profile: AthleteProfile = Field(default_factory=AthleteProfile)
    sessions: List[SessionRecord] = Field(default_factory=list)
    readiness: ReadinessSnapshot = Field(default_factory=ReadinessSnapshot)
    training_week: Optional[int] = None
    as_of: datetime

    def sessions_between(self, start: datetime, end: datetime) -> List[SessionRecord]:
        """Sessions that started in ``[start, end)``."""
        return [s for s in self.sessions if start <= s.started_at() < end]


class GuardrailCheck(Protocol):
    """A single independent safety check."""

    name: str

    def evaluate(self, inputs: GuardrailInputs) -> GuardrailCheckResult: ...


def _passed(name: str, message: str = "", severity: CheckSeverity = CheckSeverity.PASS) -> GuardrailCheckResult:
    return GuardrailCheckResult(check_name=name, passed=True, severity=severity, message=message)


# ============================================================================
# Checks
# ============================================================================


class WeeklyLoadCapCheck:
    """Trailing 7-day load plus this workout against the athlete's level caps."""

    name = "weekly_load_cap"

    def __init__(self, caps: Optional[Dict[TrainingLevel, Dict[str, float]]] = None):
        self.caps = caps or WEEKLY_LOAD_CAPS

    def evaluate(self, inputs: GuardrailInputs) -> GuardrailCheckResult:
        caps = self.caps.get(inputs.profile.training_level, self.caps[TrainingLevel.INTERMEDIATE])
        week = inputs.sessions_between(inputs.as_of - timedelta(days=7), inputs.as_of)

        current_load = sum(session_guardrail_load(s) for s in week)
        current_hard = sum(s.hard_minutes for s in week if is_hard_session(s))
        planned_load = workout_load(inputs.workout)
        projected_load = current_load + planned_load
        projected_hard = current_hard + workout_hard_minutes(inputs.workout)

        if projected_load > caps["total"]:
            excess = projected_load - caps["total"]
            return GuardrailCheckResult(
                check_name=self.name,
                passed=False,
                severity=CheckSeverity.BLOCK,
                message=(
                    f"Weekly load cap exceeded: {projected_load:.0f} projected "
                    f"(current {current_load:.0f}, limit {caps['total']:.0f})"
                ),
                suggested_adjustment=AutoAdjustment(
                    adjustment_type=AdjustmentType.LOAD_REDUCTION,
                    magnitude=round(min(MAX_REDUCTION, excess / max(planned_load, 1.0)), 3),
                    reason="Weekly load cap exceeded",
                    source_check=self.name,
                ),
            )

        if projected_hard > caps["hard"]:
            return GuardrailCheckResult(
                check_name=self.name,
                passed=False,
                severity=CheckSeverity.BLOCK,
                message=(
                    f"Weekly hard minutes exceeded: {projected_hard:.0f} projected "
                    f"(limit {caps['hard']:.0f})"
                ),
                suggested_adjustment=AutoAdjustment(
                    adjustment_type=AdjustmentType.INTENSITY_REDUCTION,
                    magnitude=MAX_REDUCTION,
                    reason="Weekly hard-minute cap exceeded",
                    source_check=self.name,
                ),
            )

        if projected_load > caps["total"] * 0.9:
            return _passed(
                self.name,
                f"Approaching weekly load cap ({projected_load / caps['total'] * 100:.0f}%)",
                CheckSeverity.WARN,
            )

        return _passed(self.name, f"Weekly load {projected_load:.0f}/{caps['total']:.0f}")


class RampRateCheck:
    """Week-over-week increase in load, volume and intensity. Warns, never blocks."""

    name = "ramp_rate"

    def __init__(self, limits: Optional[Dict[str, float]] = None):
        self.limits = limits or RAMP_LIMITS

    def evaluate(self, inputs: GuardrailInputs) -> GuardrailCheckResult:
        as_of = inputs.as_of
        this_week = inputs.sessions_between(as_of - timedelta(days=7), as_of)
        last_week = inputs.sessions_between(as_of - timedelta(days=14), as_of - timedelta(days=7))
        if not last_week:
            return _passed(self.name, "No previous week to compare against")

        workout = inputs.workout
        planned_load = workout_load(workout)
        planned_minutes = float(workout.total_duration_minutes)

        last_load = sum(session_guardrail_load(s) for s in last_week)
        this_load = sum(session_guardrail_load(s) for s in this_week) + planned_load
        last_minutes = sum(s.duration_minutes or 0.0 for s in last_week)
        this_minutes = sum(s.duration_minutes or 0.0 for s in this_week) + planned_minutes

        # Excess expressed as a share of today's contribution
        excess: Dict[str, float] = {}
        increases: Dict[str, float] = {}
        if last_load > 0:
            increases["load"] = (this_load - last_load) / last_load
            excess["load"] = (this_load - last_load * (1 + self.limits["load"])) / max(planned_load, 1.0)
        if last_minutes > 0:
            increases["volume"] = (this_minutes - last_minutes) / last_minutes
            excess["volume"] = (
                this_minutes - last_minutes * (1 + self.limits["volume"])
            ) / max(planned_minutes, 1.0)

        last_rpes = [s.rpe for s in last_week if s.rpe is not None]
        this_rpes = [s.rpe for s in this_week if s.rpe is not None] + [workout_effective_rpe(workout)]
        if last_rpes:
            last_rpe = sum(last_rpes) / len(last_rpes)
            this_rpe = sum(this_rpes) / len(this_rpes)
            increases["intensity"] = (this_rpe - last_rpe) / max(last_rpe, 1.0)
            excess["intensity"] = increases["intensity"] - self.limits["intensity"]

        exceeded = [metric for metric, value in increases.items() if value > self.limits[metric]]
        if not exceeded:
            return _passed(self.name, "Week-over-week progression within limits")

        details = ", ".join(
            f"{metric} +{increases[metric] * 100:.0f}% (max {self.limits[metric] * 100:.0f}%)"
            for metric in exceeded
        )
        magnitude = min(MAX_REDUCTION, max(excess[metric] for metric in exceeded))
        return GuardrailCheckResult(
            check_name=self.name,
            passed=False,
            severity=CheckSeverity.WARN,
            message=f"Weekly increase too high: {details}",
            suggested_adjustment=AutoAdjustment(
                adjustment_type=AdjustmentType.RAMP_ADJUSTMENT,
                magnitude=round(max(0.0, magnitude), 3),
                reason="Excessive weekly progression",
                source_check=self.name,
            ),
        )


class RecoveryCheck:
    """Hard sessions need at least 24h between them and an easy day after two in a row."""

    name = "recovery"

    def __init__(self, min_hours: float = MIN_HOURS_BETWEEN_HARD):
        self.min_hours = min_hours

    def evaluate(self, inputs: GuardrailInputs) -> GuardrailCheckResult:
        if workout_hard_minutes(inputs.workout) <= 0:
            return _passed(self.name, "Easy session; no recovery requirement")

        hard = [s for s in inputs.sessions if is_hard_session(s) and s.started_at() < inputs.as_of]
        if not hard:
            return _passed(self.name, "No recent hard sessions")

        last_hard = max(hard, key=lambda s: s.started_at())
        hours = (inputs.as_of - last_hard.started_at()).total_seconds() / 3600
        if hours < self.min_hours:
            return GuardrailCheckResult(
                check_name=self.name,
                passed=False,
                severity=CheckSeverity.BLOCK,
                message=(
                    f"Insufficient recovery: {hours:.0f}h since last hard session, "
                    f"need {self.min_hours:.0f}h minimum"
                ),
                suggested_adjustment=AutoAdjustment(
                    adjustment_type=AdjustmentType.INTENSITY_REDUCTION,
                    magnitude=0.3,
                    reason="Insufficient recovery time",
                    source_check=self.name,
                ),
            )

        if last_hard.session_date == inputs.as_of.date() - timedelta(days=1):
            return GuardrailCheckResult(
                check_name=self.name,
                passed=False,
                severity=CheckSeverity.WARN,
                message="Consecutive hard days. Consider an easy session.",
                suggested_adjustment=AutoAdjustment(
                    adjustment_type=AdjustmentType.INTENSITY_REDUCTION,
                    magnitude=0.15,
                    reason="Second consecutive hard day",
                    source_check=self.name,
                ),
            )

        return _passed(self.name, f"{hours:.0f}h since last hard session")


class ReadinessCompatibilityCheck:
    """
    Pain, soreness and readiness against thresholds.

    Pain at or above the threshold always blocks, regardless of anything
    else the check would report.
    """

    name = "readiness_compatibility"

    def __init__(
        self,
        pain_threshold: int = 4,
        soreness_threshold: int = 7,
        soreness_reduction: float = 0.3,
        low_readiness: int = 6,
    ):
        self.pain_threshold = pain_threshold
        self.soreness_threshold = soreness_threshold
        self.soreness_reduction = soreness_reduction
        self.low_readiness = low_readiness

    def evaluate(self, inputs: GuardrailInputs) -> GuardrailCheckResult:
        readiness = inputs.readiness

        pain = readiness.pain_level or 0
        if pain >= self.pain_threshold:
            where = f" ({readiness.pain_location})" if readiness.pain_location else ""
            return GuardrailCheckResult(
                check_name=self.name,
                passed=False,
                severity=CheckSeverity.BLOCK,
                message=f"Pain level too high ({pain}/10){where}. Rest recommended.",
            )

        soreness = readiness.soreness or 0
        if soreness >= self.soreness_threshold:
            return GuardrailCheckResult(
                check_name=self.name,
                passed=False,
                severity=CheckSeverity.WARN,
                message=f"High soreness ({soreness}/10). Reducing workout load.",
                suggested_adjustment=AutoAdjustment(
                    adjustment_type=AdjustmentType.LOAD_REDUCTION,
                    magnitude=self.soreness_reduction,
                    reason="High muscle soreness",
                    source_check=self.name,
                ),
            )

        score = readiness.score
        if score is not None and score < self.low_readiness:
            reduction = max(0.2, min(MAX_REDUCTION, (10 - score) * 0.1))
            return GuardrailCheckResult(
                check_name=self.name,
                passed=False,
                severity=CheckSeverity.WARN,
                message=f"Low readiness score ({score}/10). Adjusting workout load.",
                suggested_adjustment=AutoAdjustment(
                    adjustment_type=AdjustmentType.READINESS_ADJUSTMENT,
                    magnitude=round(reduction, 3),
                    reason="Low readiness score",
                    source_check=self.name,
                ),
            )

        return _passed(self.name, "Readiness compatible with workout")


def consecutive_training_weeks(sessions: Sequence[SessionRecord], as_of: datetime) -> int:
    """
    Consecutive Monday-start weeks with training, walking back from the latest session.

    A week containing a deload session ends the streak.
    """
    prior = [s for s in sessions if s.started_at() < as_of]
    if not prior:
        return 0

    week_starts = {s.session_date - timedelta(days=s.session_date.weekday()) for s in prior}
    deload_weeks = {
        s.session_date - timedelta(days=s.session_date.weekday()) for s in prior if s.is_deload
    }

    week = max(week_starts)
    weeks = 0
    while week in week_starts and week not in deload_weeks:
        weeks += 1
        week -= timedelta(days=7)
    return weeks


class DeloadRequirementCheck:
    """Forces a volume reduction after N straight training weeks or accumulated fatigue."""

    name = "deload_requirement"

    def __init__(self, frequency: int = 4, volume_reduction: float = 0.2, fatigue_readiness: float = 6.5):
        self.frequency = frequency
        self.volume_reduction = volume_reduction
        self.fatigue_readiness = fatigue_readiness

    def evaluate(self, inputs: GuardrailInputs) -> GuardrailCheckResult:
        if "deload" in inputs.workout.modifications:
            return _passed(self.name, "Workout is already a deload")

        weeks = inputs.training_week
        if weeks is None:
            weeks = consecutive_training_weeks(inputs.sessions, inputs.as_of)

        message = None
        if weeks >= self.frequency and weeks % self.frequency == 0:
            message = f"Deload week required after {weeks} weeks of training"
        else:
            scores = list(inputs.readiness.recent_scores)
            if not scores:
                window = inputs.sessions_between(inputs.as_of - timedelta(days=28), inputs.as_of)
                scores = [s.readiness_score for s in window if s.readiness_score is not None]
            if scores:
                average = sum(scores) / len(scores)
                if average < self.fatigue_readiness:
                    message = f"Accumulated fatigue (average readiness {average:.1f}). Deload recommended."

        if message is None:
            return _passed(self.name, f"{weeks} consecutive training week(s)")

        return GuardrailCheckResult(
            check_name=self.name,
            passed=False,
            severity=CheckSeverity.WARN,
            message=message,
            suggested_adjustment=AutoAdjustment(
                adjustment_type=AdjustmentType.DELOAD_WEEK,
                magnitude=self.volume_reduction,
                reason="Scheduled deload",
                source_check=self.name,
            ),
        )


class DailyLoadCapCheck:
    """Same-day load plus this workout against a daily ceiling."""

    name = "daily_load_cap"

    def __init__(self, max_daily_load: float = 120.0):
        self.max_daily_load = max_daily_load

    def evaluate(self, inputs: GuardrailInputs) -> GuardrailCheckResult:
        day_start = datetime.combine(inputs.as_of.date(), time(0, 0))
        today = inputs.sessions_between(day_start, day_start + timedelta(days=1))
        today_load = sum(session_guardrail_load(s) for s in today)
        planned_load = workout_load(inputs.workout)
        projected = today_load + planned_load

        if projected <= self.max_daily_load:
            return _passed(self.name, f"Daily load {projected:.0f}/{self.max_daily_load:.0f}")

        excess = projected - self.max_daily_load
        return GuardrailCheckResult(
            check_name=self.name,
            passed=False,
            severity=CheckSeverity.WARN,
            message=(
                f"Daily load cap exceeded: {projected:.0f} projected "
                f"(already {today_load:.0f} today, limit {self.max_daily_load:.0f})"
            ),
            suggested_adjustment=AutoAdjustment(
                adjustment_type=AdjustmentType.LOAD_REDUCTION,
                magnitude=round(min(MAX_REDUCTION, excess / max(planned_load, 1.0)), 3),
                reason="Daily load cap exceeded",
                source_check=self.name,
            ),
        )


# ============================================================================
# Validator
# ============================================================================


class GuardrailValidator:
    """
    Runs every registered check and aggregates a verdict.

    The validator checks ALL guardrails even if one blocks. A plan is
    allowed unless at least one check has block severity.
    """

    def __init__(self, checks: Optional[List[GuardrailCheck]] = None):
        """
        Initialize the validator.

        Args:
            checks: Checks to run, in order. Defaults to the standard battery.
        """
        self.checks: List[GuardrailCheck] = list(checks) if checks is not None else self.default_checks()

    @staticmethod
    def default_checks(settings: Optional[Settings] = None) -> List[GuardrailCheck]:
        """The standard battery, with thresholds taken from settings when given."""
        if settings is None:
            return [
                WeeklyLoadCapCheck(),
                RampRateCheck(),
                RecoveryCheck(),
                ReadinessCompatibilityCheck(),
                DeloadRequirementCheck(),
                DailyLoadCapCheck(),
            ]
        return [
            WeeklyLoadCapCheck(),
            RampRateCheck(),
            RecoveryCheck(),
            ReadinessCompatibilityCheck(
                pain_threshold=settings.pain_threshold,
                soreness_threshold=settings.soreness_threshold,
            ),
            DeloadRequirementCheck(
                frequency=settings.deload_frequency_weeks,
                volume_reduction=round(1 - settings.deload_volume_multiplier, 4),
            ),
            DailyLoadCapCheck(max_daily_load=settings.max_daily_load),
        ]

    @classmethod
    def from_settings(cls, settings: Settings) -> "GuardrailValidator":
        return cls(checks=cls.default_checks(settings))

    def register(self, check: GuardrailCheck) -> None:
        """Add a check to the end of the battery."""
        self.checks.append(check)

    def validate_workout(
        self,
        workout: Plan,
        user_profile: Optional[AthleteProfile] = None,
        recent_sessions: Optional[Sequence[SessionRecord]] = None,
        readiness_data: Optional[ReadinessSnapshot] = None,
        training_week: Optional[int] = None,
        as_of: Optional[datetime] = None,
    ) -> GuardrailVerdict:
        """
        Validate a proposed workout against every guardrail.

        Args:
            workout: Proposed plan
            user_profile: Athlete profile (training level selects caps)
            recent_sessions: Recent training history
            readiness_data: Current readiness, soreness and pain
            training_week: 1-indexed week in the cycle; derived from history when None
            as_of: Planned start of the workout (defaults to noon on the plan date)

        Returns:
            GuardrailVerdict aggregating all check results
        """
        inputs = GuardrailInputs(
            workout=workout,
            profile=user_profile or AthleteProfile(),
            sessions=list(recent_sessions or []),
            readiness=readiness_data or ReadinessSnapshot(),
            training_week=training_week,
            as_of=as_of or datetime.combine(workout.plan_date, time(12, 0)),
        )

        checks = [check.evaluate(inputs) for check in self.checks]

        blocks = [c for c in checks if c.severity == CheckSeverity.BLOCK]
        warn_checks = [c for c in checks if c.severity == CheckSeverity.WARN]
        auto_adjustments = [c.suggested_adjustment for c in warn_checks if c.suggested_adjustment]

        verdict = GuardrailVerdict(
            is_allowed=not blocks,
            checks=checks,
            modifications=[a.describe() for a in auto_adjustments],
            warnings=[c.message for c in warn_checks],
            auto_adjustments=auto_adjustments,
            blocks=blocks,
        )

        for block in blocks:
            log.warning(f"[{workout.user_id}] Guardrail block ({block.check_name}): {block.message}")
        log.info(
            f"[{workout.user_id}] Guardrails: {'allowed' if verdict.is_allowed else 'BLOCKED'}, "
            f"{len(verdict.warnings)} warning(s), {len(auto_adjustments)} auto-adjustment(s)"
        )
        return verdict

    def apply_auto_adjustments(self, workout: Plan, adjustments: Sequence[AutoAdjustment]) -> Plan:
        """
        Apply adjustments in order to a copy of the workout.

        Args:
            workout: Plan to adjust (never mutated)
            adjustments: Adjustments in receipt order

        Returns:
            Adjusted plan; a value-equal copy when there is nothing to apply
        """
        adjusted = workout.model_copy(deep=True)
        if not adjustments:
            return adjusted

        applied: List[str] = []
        for adjustment in adjustments:
            factor = 1.0 - adjustment.magnitude
            kind = adjustment.adjustment_type
            if kind in (AdjustmentType.LOAD_REDUCTION, AdjustmentType.READINESS_ADJUSTMENT):
                adjusted = adjusted.model_copy(
                    update={"blocks": self._scale_training_blocks(adjusted.blocks, factor, weights=True)}
                )
            elif kind == AdjustmentType.INTENSITY_REDUCTION:
                adjusted = adjusted.model_copy(
                    update={"intensity_scale": clamp_intensity(adjusted.intensity_scale * factor)}
                )
            else:
                # Deload and ramp adjustments both reduce volume
                adjusted = adjusted.model_copy(
                    update={
                        "blocks": self._scale_training_blocks(adjusted.blocks, factor, weights=False),
                        "volume_multiplier": round(adjusted.volume_multiplier * factor, 4),
                    }
                )
            applied.append(adjustment.describe())

        modifications = list(adjusted.modifications)
        if "guardrail_adjusted" not in modifications:
            modifications.append("guardrail_adjusted")

        adjusted = adjusted.model_copy(
            update={
                "modifications": modifications,
                "rationale": adjusted.rationale + [f"Guardrail auto-adjustments: {'; '.join(applied)}"],
                "plan_decisions": adjusted.plan_decisions
                + [
                    PlanDecision(
                        decision_point="Guardrail auto-adjustment",
                        input_factors=[a.reason for a in adjustments],
                        reasoning="Warn-severity guardrails carry mandatory load or volume reductions",
                        outcome="; ".join(applied),
                    )
                ],
            }
        )
        return Plan.model_validate(adjusted.model_dump())

    @staticmethod
    def _scale_training_blocks(blocks: List[Block], factor: float, weights: bool) -> List[Block]:
        scaled = []
        for block in blocks:
            if block.name in (BlockName.MAIN, BlockName.ACCESSORIES):
                items = []
                for item in block.items:
                    update = {"sets": scale_sets(item.sets, factor)}
                    if weights and item.target_weight is not None:
                        update["target_weight"] = round(item.target_weight * factor, 1)
                    items.append(item.model_copy(update=update))
                block = block.with_items(items)
            scaled.append(block)
        return scaled

    def display_verdict_summary(self, verdict: GuardrailVerdict) -> str:
        """
        Generate a human-readable guardrail summary.

        Args:
            verdict: The guardrail verdict

        Returns:
            Formatted summary string
        """
        lines = []
        lines.append("=" * 70)
        lines.append("GUARDRAIL REPORT")
        lines.append("=" * 70)
        lines.append("")

        if verdict.is_allowed and not verdict.warnings:
            lines.append("✅ STATUS: ALLOWED")
            lines.append("")
            lines.append("All guardrails passed.")
        elif verdict.is_allowed:
            lines.append("⚠️  STATUS: ALLOWED WITH WARNINGS")
            lines.append("")
            for warning in verdict.warnings:
                lines.append(f"  • {warning}")
        else:
            lines.append("⛔ STATUS: BLOCKED")
            lines.append("")
            for block in verdict.blocks:
                lines.append(f"  ✗ [{block.check_name}] {block.message}")
            if verdict.warnings:
                lines.append("")
                lines.append("Warnings:")
                for warning in verdict.warnings:
                    lines.append(f"  • {warning}")

        if verdict.modifications:
            lines.append("")
            lines.append("Auto-adjustments:")
            for modification in verdict.modifications:
                lines.append(f"  → {modification}")

        lines.append("")
        lines.append("=" * 70)
        return "\n".join(lines)

"""
Schedule conflict resolution.

Checks a proposed plan against the athlete's schedule for four kinds of
conflict, each detected independently:
- game_day: a heavy session two days or less before a competition
- back_to_back: the nearest earlier scheduled session was also heavy
- recovery: a leg-dominant session happened too recently
- body_part_overlap: the same primary body region was trained under two days ago

High-severity conflicts stop the plan from proceeding as proposed and swap in
a predefined safe template. Moderate and low conflicts only add advisory
recommendations.
"""

from collections import Counter
from datetime import date, time
from typing import List, Optional

from adaptive_coach.exercise_catalog import game_day_template, get_exercise
from adaptive_coach.logger import get_logger
from adaptive_coach.plan_schemas import (
    Block,
    BlockName,
    ConflictResolution,
    Plan,
    PlanDecision,
    WorkoutType,
)
from adaptive_coach.planner import clamp_intensity, scale_sets
from adaptive_coach.schemas import (
    BodyRegion,
    CompetitionImportance,
    ConflictRecord,
    ConflictSeverity,
    ConflictType,
    Context,
    SessionIntensity,
)
from adaptive_coach.storage import ScheduleSupplier

log = get_logger(__name__)

AFTERNOON_START = time(12, 0)
HEAVY_INTENSITY_SCALE = 0.9
OVERLAP_DAYS = 2

GAME_DAY_VOLUME = 0.5
GAME_DAY_MAX_RPE = 6.0
RECOVERY_VOLUME = 0.75
RECOVERY_MAX_RPE = 7.0
RECOVERY_INTENSITY_CAP = 0.85


def plan_intensity(plan: Plan) -> SessionIntensity:
    """Coarse intensity of a plan as seen by the schedule."""
    if plan.workout_type in (WorkoutType.RECOVERY, WorkoutType.GAME_PREP):
        return SessionIntensity.LIGHT
    main = plan.get_block(BlockName.MAIN)
    if main is None:
        return SessionIntensity.LIGHT
    if any(item.heavy for item in main.items) and plan.intensity_scale >= HEAVY_INTENSITY_SCALE:
        return SessionIntensity.HEAVY
    return SessionIntensity.MODERATE


def plan_body_region(plan: Plan) -> Optional[BodyRegion]:
    """Region with the most Main-block sets; full-body work counts toward legs."""
    main = plan.get_block(BlockName.MAIN)
    if main is None or not main.items:
        return None
    sets_by_region: Counter = Counter()
    for item in main.items:
        region = BodyRegion.LEGS if item.body_region == BodyRegion.FULL_BODY else item.body_region
        sets_by_region[region] += item.sets
    return sets_by_region.most_common(1)[0][0]


def game_timing(days_out: int) -> str:
    if days_out == 0:
        return "today"
    if days_out == 1:
        return "tomorrow"
    return f"in {days_out} day(s)"


class ConflictResolver:
    """
    Detects and resolves schedule conflicts for a proposed plan.

    Args:
        min_recovery_days: Minimum days between leg-dominant sessions
    """

    def __init__(self, min_recovery_days: int = 2):
        self.min_recovery_days = min_recovery_days

    def resolve_conflicts(
        self, plan: Plan, schedule: ScheduleSupplier, context: Context
    ) -> ConflictResolution:
        """
        Detect conflicts and produce a resolution.

        The input plan is never mutated; ``modified_plan`` is either the
        original plan or a copy with a safe template applied.

        Args:
            plan: Proposed plan
            schedule: Schedule supplier (competitions and prior sessions)
            context: Athlete context (plan date and session start time)

        Returns:
            ConflictResolution with can_proceed, conflicts and recommendations
        """
        conflicts = self.detect_conflicts(plan, schedule, context)
        if not conflicts:
            return ConflictResolution(can_proceed=True, conflicts=[], recommendations=[], modified_plan=plan)

        high = [c for c in conflicts if c.severity == ConflictSeverity.HIGH]
        moderate = [c for c in conflicts if c.severity == ConflictSeverity.MODERATE]
        low = [c for c in conflicts if c.severity == ConflictSeverity.LOW]

        recommendations: List[str] = []
        modified = plan
        can_proceed = True

        high_types = {c.conflict_type for c in high}
        if ConflictType.GAME_DAY in high_types:
            # The game-day template is the more restrictive of the two
            modified = self.modify_for_game_day(plan, high)
            can_proceed = False
        elif ConflictType.BACK_TO_BACK in high_types:
            modified = self.modify_for_recovery(plan, high)
            can_proceed = False

        for conflict in high + moderate:
            if conflict.recommendation:
                recommendations.append(conflict.recommendation)
        for conflict in low:
            recommendations.append(conflict.message)

        for conflict in conflicts:
            log.info(f"[{context.user_id}] {conflict.severity.value} {conflict.conflict_type.value} conflict: {conflict.message}")

        return ConflictResolution(
            can_proceed=can_proceed,
            conflicts=conflicts,
            recommendations=recommendations,
            modified_plan=modified,
        )

    def detect_conflicts(
        self, plan: Plan, schedule: ScheduleSupplier, context: Context
    ) -> List[ConflictRecord]:
        """Run every detector and collect the conflicts found."""
        conflicts: List[ConflictRecord] = []
        for detector in (
            self._check_game_day,
            self._check_back_to_back,
            self._check_recovery,
            self._check_body_part_overlap,
        ):
            conflict = detector(plan, schedule, context)
            if conflict is not None:
                conflicts.append(conflict)
        return conflicts

    # ------------------------------------------------------------------
    # Detectors
    # ------------------------------------------------------------------

    def _check_game_day(
        self, plan: Plan, schedule: ScheduleSupplier, context: Context
    ) -> Optional[ConflictRecord]:
        if plan_intensity(plan) != SessionIntensity.HEAVY:
            return None

        # Unknown start time is treated as afternoon
        afternoon = context.session_start is None or context.session_start >= AFTERNOON_START

        for competition in schedule.upcoming_competitions(context.plan_date):
            days_out = (competition.competition_date - context.plan_date).days
            if days_out > 2:
                break
            if days_out <= 1 and competition.importance == CompetitionImportance.HIGH and afternoon:
                return ConflictRecord(
                    conflict_type=ConflictType.GAME_DAY,
                    severity=ConflictSeverity.HIGH,
                    message=f"Game {game_timing(days_out)} - heavy session may affect game performance",
                    recommendation="Light upper-body session or rest day",
                )
            return ConflictRecord(
                conflict_type=ConflictType.GAME_DAY,
                severity=ConflictSeverity.MODERATE,
                message=f"Game {game_timing(days_out)} - heavy work may delay recovery for game day",
                recommendation="Consider a lighter session or move heavy legs to game -3 days",
            )
        return None

    def _check_back_to_back(
        self, plan: Plan, schedule: ScheduleSupplier, context: Context
    ) -> Optional[ConflictRecord]:
        if plan_intensity(plan) != SessionIntensity.HEAVY:
            return None
        previous = schedule.nearest_prior_session(context.plan_date)
        if previous is not None and previous.intensity == SessionIntensity.HEAVY:
            return ConflictRecord(
                conflict_type=ConflictType.BACK_TO_BACK,
                severity=ConflictSeverity.HIGH,
                message=f"Back-to-back heavy sessions (previous heavy session on {previous.session_date})",
                recommendation="Add a rest day or reduce intensity",
            )
        return None

    def _check_recovery(
        self, plan: Plan, schedule: ScheduleSupplier, context: Context
    ) -> Optional[ConflictRecord]:
        previous = schedule.nearest_prior_session(context.plan_date)
        if previous is None or previous.body_region != BodyRegion.LEGS:
            return None
        days_between = self._days_between(previous.session_date, context.plan_date)
        if days_between < self.min_recovery_days:
            return ConflictRecord(
                conflict_type=ConflictType.RECOVERY,
                severity=ConflictSeverity.MODERATE,
                message=f"Only {days_between} day(s) since last leg session - may need more recovery",
                recommendation="Add an extra rest day or switch to an upper-body day",
            )
        return None

    def _check_body_part_overlap(
        self, plan: Plan, schedule: ScheduleSupplier, context: Context
    ) -> Optional[ConflictRecord]:
        region = plan_body_region(plan)
        previous = schedule.nearest_prior_session(context.plan_date)
        if region is None or previous is None or previous.body_region != region:
            return None
        days_between = self._days_between(previous.session_date, context.plan_date)
        if days_between < OVERLAP_DAYS:
            return ConflictRecord(
                conflict_type=ConflictType.BODY_PART_OVERLAP,
                severity=ConflictSeverity.LOW,
                message=f"Same body region ({region.value}) trained {days_between} day(s) ago",
                recommendation="Allow more recovery time between same-region sessions",
            )
        return None

    @staticmethod
    def _days_between(earlier: date, later: date) -> int:
        return (later - earlier).days

    # ------------------------------------------------------------------
    # Safe templates
    # ------------------------------------------------------------------

    def modify_for_game_day(self, plan: Plan, conflicts: List[ConflictRecord]) -> Plan:
        """Light upper-body primer at reduced volume with an RPE ceiling of 6."""
        items = [i for i in game_day_template() if not i.loads_any(plan.restricted_body_parts)]
        if not items:
            items = [get_exercise("Mobility Flow")]
        items = [
            i.model_copy(update={"sets": scale_sets(i.sets, GAME_DAY_VOLUME)}) for i in items
        ]

        blocks: List[Block] = []
        for block in plan.blocks:
            if block.name == BlockName.ACCESSORIES:
                continue
            if block.name == BlockName.MAIN:
                block = block.with_items(items)
            blocks.append(block)
        if not any(b.name == BlockName.MAIN for b in blocks):
            blocks.insert(min(1, len(blocks)), Block(name=BlockName.MAIN, duration_minutes=1, items=[]).with_items(items))

        return self._finish(
            plan,
            {
                "blocks": blocks,
                "workout_type": WorkoutType.GAME_PREP,
                "intensity_scale": clamp_intensity(min(plan.intensity_scale, 0.5)),
                "volume_multiplier": round(plan.volume_multiplier * GAME_DAY_VOLUME, 4),
                "max_target_rpe": GAME_DAY_MAX_RPE
                if plan.max_target_rpe is None
                else min(plan.max_target_rpe, GAME_DAY_MAX_RPE),
            },
            tag="game_day_modified",
            rationale="Schedule conflict (competition tomorrow): switched to light upper-body template",
            conflicts=conflicts,
            max_rpe=GAME_DAY_MAX_RPE,
        )

    def modify_for_recovery(self, plan: Plan, conflicts: List[ConflictRecord]) -> Plan:
        """Moderate intensity and 75% volume after a heavy session."""
        blocks = []
        for block in plan.blocks:
            if block.name in (BlockName.MAIN, BlockName.ACCESSORIES):
                block = block.with_items(
                    [i.model_copy(update={"sets": scale_sets(i.sets, RECOVERY_VOLUME)}) for i in block.items]
                )
            blocks.append(block)

        return self._finish(
            plan,
            {
                "blocks": blocks,
                "intensity_scale": clamp_intensity(min(plan.intensity_scale, RECOVERY_INTENSITY_CAP)),
                "volume_multiplier": round(plan.volume_multiplier * RECOVERY_VOLUME, 4),
                "max_target_rpe": RECOVERY_MAX_RPE
                if plan.max_target_rpe is None
                else min(plan.max_target_rpe, RECOVERY_MAX_RPE),
            },
            tag="recovery_focused",
            rationale="Schedule conflict (back-to-back heavy sessions): moderate intensity, 75% volume",
            conflicts=conflicts,
            max_rpe=RECOVERY_MAX_RPE,
        )

    @staticmethod
    def _finish(
        plan: Plan,
        update: dict,
        tag: str,
        rationale: str,
        conflicts: List[ConflictRecord],
        max_rpe: float,
    ) -> Plan:
        blocks = [
            block.model_copy(
                update={
                    "items": [
                        i.model_copy(update={"target_rpe": max_rpe})
                        if i.target_rpe is not None and i.target_rpe > max_rpe
                        else i
                        for i in block.items
                    ]
                }
            )
            for block in update.pop("blocks")
        ]
        modifications = plan.modifications + ([tag] if tag not in plan.modifications else [])
        decision = PlanDecision(
            decision_point="Schedule conflict resolution",
            input_factors=[f"{c.conflict_type.value} ({c.severity.value})" for c in conflicts],
            reasoning="High-severity schedule conflicts require a safe template",
            outcome=f"Applied {tag} template",
        )
        modified = plan.model_copy(
            update={
                **update,
                "blocks": blocks,
                "modifications": modifications,
                "rationale": plan.rationale + [rationale],
                "plan_decisions": plan.plan_decisions + [decision],
            }
        )
        return Plan.model_validate(modified.model_dump())

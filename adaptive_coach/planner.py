"""
Daily plan orchestration.

This module builds one day's session from the athlete's context by starting
from a baseline template and applying a fixed-order cascade of adjustments:

1. Safety/pain constraints (substitute or remove exercises on flagged body parts)
2. Competition proximity (game-day primer, RPE cap two days out)
3. Readiness scaling (recovery replacement, intensity scaling)
4. Deload cadence (every 4th training week)
5. Outcome feedback (volume cut after a poorly completed session)
6. Time-budget fitting (supersets, block dropping, trimming)
7. Goal-driven accessory selection (only if time remains)
8. Load progression (RPE-driven target weights)

Each stage is a pure function over an immutable plan value and appends a
rationale entry when it changes something. Later stages may restrict further
but never relax an earlier decision: overrides are applied as caps and
multiplicative scales compose underneath them.
"""

import math
from typing import Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError

from adaptive_coach.exceptions import DependencyUnavailableError, PlanInvariantError
from adaptive_coach.exercise_catalog import (
    ExerciseCatalog,
    ExerciseSubstituter,
    accessory_template,
    cool_down_template,
    game_day_template,
    get_exercise,
    goal_accessories,
    main_template,
    recovery_session_template,
    warm_up_template,
)
from adaptive_coach.load_tracker import LoadTracker
from adaptive_coach.logger import get_logger
from adaptive_coach.plan_schemas import (
    INTENSITY_SCALE_MAX,
    INTENSITY_SCALE_MIN,
    Block,
    BlockName,
    Plan,
    PlanDecision,
    PlanItem,
    WorkoutType,
    estimate_block_minutes,
)
from adaptive_coach.readiness import ReadinessInferencer
from adaptive_coach.schemas import Context, NextSessionRecommendation, ReadinessRecord, TrainingMode

log = get_logger(__name__)

GAME_DAY_INTENSITY_TARGET = 0.5
GAME_DAY_MAX_RPE = 6.0
PRE_GAME_MAX_RPE = 7.0
RECOVERY_INTENSITY_CAP = 0.6
RECOVERY_MAX_RPE = 4.0
MODERATE_READINESS_SCALE = 0.90
DEFAULT_DELOAD_FREQUENCY = 4
DEFAULT_DELOAD_MULTIPLIER = 0.80
MAX_GOAL_ACCESSORIES = 2

# Blocks dropped first when time is short (higher number = dropped earlier)
BLOCK_PRIORITIES = {
    BlockName.MAIN: 1,
    BlockName.WARM_UP: 3,
    BlockName.RECOVERY: 4,
    BlockName.ACCESSORIES: 5,
}


def clamp_intensity(value: float) -> float:
    """Clamp an intensity scale into the allowed plan range."""
    return round(min(INTENSITY_SCALE_MAX, max(INTENSITY_SCALE_MIN, value)), 4)


def scale_sets(sets: int, factor: float) -> int:
    """Scale a set count, rounding half up and never going below one set."""
    return max(1, int(math.floor(sets * factor + 0.5)))


def _make_block(name: BlockName, items: List[PlanItem]) -> Block:
    return Block(
        name=name,
        duration_minutes=estimate_block_minutes(items),
        items=items,
        priority=BLOCK_PRIORITIES[name],
    )


class PlanningInputs(BaseModel):
    """Read-only inputs shared by every cascade stage."""

    model_config = ConfigDict(frozen=True)

    context: Context
    readiness: ReadinessRecord
    last_rpe: Optional[float] = None
    carryover: Optional[NextSessionRecommendation] = None


Stage = Callable[[Plan, PlanningInputs], Plan]


class PlanOrchestrator:
    """
    Synthesizes today's plan from context, readiness and load signals.

    The orchestrator never raises for missing or stale data: absent readiness
    falls back to inference from the context, absent history means no
    progression, and an unavailable substitution collaborator leaves
    exercises in place with a "manual review required" warning.
    """

    def __init__(
        self,
        substituter: Optional[ExerciseSubstituter] = None,
        load_tracker: Optional[LoadTracker] = None,
        readiness_inferencer: Optional[ReadinessInferencer] = None,
        deload_frequency: int = DEFAULT_DELOAD_FREQUENCY,
        deload_multiplier: float = DEFAULT_DELOAD_MULTIPLIER,
    ):
        """
        Initialize the orchestrator.

        Args:
            substituter: Exercise substitution collaborator. Pass None to
                model the collaborator being unavailable.
            load_tracker: Load tracker used for RPE-driven progression
            readiness_inferencer: Used when no readiness record is supplied
            deload_frequency: Deload every Nth training week
            deload_multiplier: Volume multiplier applied on deload weeks
        """
        self.substituter = substituter
        self.load_tracker = load_tracker or LoadTracker()
        self.readiness_inferencer = readiness_inferencer or ReadinessInferencer()
        self.deload_frequency = deload_frequency
        self.deload_multiplier = deload_multiplier
        self.stages: List[Stage] = [
            self.apply_safety_constraints,
            self.apply_competition_proximity,
            self.apply_readiness_scaling,
            self.apply_deload_cadence,
            self.apply_outcome_feedback,
            self.fit_time_budget,
            self.select_goal_accessories,
            self.apply_load_progression,
        ]

    @classmethod
    def with_default_catalog(cls, **kwargs) -> "PlanOrchestrator":
        """Orchestrator wired to the in-process exercise catalog."""
        return cls(substituter=ExerciseCatalog(), **kwargs)

    def plan_today(
        self,
        context: Context,
        readiness: Optional[ReadinessRecord] = None,
        last_rpe: Optional[float] = None,
        carryover: Optional[NextSessionRecommendation] = None,
    ) -> Plan:
        """
        Build today's plan.

        Args:
            context: Athlete context for the plan date
            readiness: Readiness record; inferred from the context when None
            last_rpe: RPE of the previous session; read from history when None
            carryover: Recommendation from the last logged outcome, if any

        Returns:
            Validated Plan with rationale, warnings and modification tags

        Raises:
            PlanInvariantError: If the finished plan violates a structural
                invariant (a programming error, never a data problem)
        """
        if readiness is None:
            readiness = self.readiness_inferencer.from_context(context)
        if last_rpe is None:
            last_session = context.last_session()
            last_rpe = last_session.rpe if last_session else None

        inputs = PlanningInputs(
            context=context, readiness=readiness, last_rpe=last_rpe, carryover=carryover
        )

        plan = self.build_baseline(context)
        for stage in self.stages:
            plan = stage(plan, inputs)

        return self._finalize(plan)

    # ------------------------------------------------------------------
    # Baseline
    # ------------------------------------------------------------------

    def build_baseline(self, context: Context) -> Plan:
        """Unconstrained plan for the athlete's goal focus."""
        goal = context.preferences.goal_focus
        main_items = main_template(goal)
        blocks = [_make_block(BlockName.WARM_UP, warm_up_template())]

        if context.preferences.training_mode == TrainingMode.SIMPLE:
            main_items = sorted(main_items, key=lambda item: item.priority)[:2]
            blocks.append(_make_block(BlockName.MAIN, main_items))
        else:
            blocks.append(_make_block(BlockName.MAIN, main_items))
            blocks.append(_make_block(BlockName.ACCESSORIES, accessory_template()))

        blocks.append(_make_block(BlockName.RECOVERY, cool_down_template()))

        return Plan(user_id=context.user_id, plan_date=context.plan_date, blocks=blocks)

    # ------------------------------------------------------------------
    # Cascade stages
    # ------------------------------------------------------------------

    def apply_safety_constraints(self, plan: Plan, inputs: PlanningInputs) -> Plan:
        """
        Remove or substitute exercises that load a flagged body part.

        Main-priority exercises without a safe substitute are kept with a
        "manual review required" warning; lower-priority ones are removed.
        If the substitution collaborator is unavailable, nothing is changed
        and every affected exercise is flagged for manual review.
        """
        flagged = inputs.context.flagged_body_parts()
        if not flagged:
            return plan

        restricted = list(dict.fromkeys(plan.restricted_body_parts + flagged))
        affected = [item for item in plan.all_items() if item.loads_any(restricted)]
        parts = ", ".join(restricted)

        if not affected:
            return self._record(
                plan.model_copy(update={"restricted_body_parts": restricted}),
                rationale=f"Pain flag ({parts}): no planned exercise loads the flagged area",
                decision=PlanDecision(
                    decision_point="Safety constraints",
                    input_factors=[f"Flagged: {parts}"],
                    reasoning="Flagged body parts are excluded from every later stage",
                    outcome="No exercises needed changing",
                ),
            )

        substituter_available = self.substituter is not None
        warnings: List[str] = []
        substituted: List[str] = []
        removed: List[str] = []
        kept: List[str] = []
        new_blocks: List[Block] = []
        # Names already in the plan; a substitute must not repeat one
        present = {item.name for item in plan.all_items()}

        for block in plan.blocks:
            new_items: List[PlanItem] = []
            for item in block.items:
                if not item.loads_any(restricted):
                    new_items.append(item)
                    continue

                alternates: List[PlanItem] = []
                if substituter_available:
                    try:
                        alternates = self.substituter.alternates_for(item, restricted)
                    except DependencyUnavailableError as exc:
                        log.warning(f"Exercise substitution unavailable: {exc}")
                        substituter_available = False
                alternates = [alt for alt in alternates if alt.name not in present]

                if not substituter_available:
                    new_items.append(item)
                    kept.append(item.name)
                elif alternates:
                    new_items.append(alternates[0])
                    present.add(alternates[0].name)
                    substituted.append(f"{item.name} -> {alternates[0].name}")
                elif item.priority >= 4:
                    removed.append(item.name)
                else:
                    new_items.append(item)
                    kept.append(item.name)
                    warnings.append(
                        f"Manual review required: no safe substitute for {item.name} ({parts} flagged)"
                    )
            new_blocks.append(block.with_items(new_items) if new_items else None)

        if not substituter_available:
            warnings = [
                f"Manual review required: exercise substitution unavailable; "
                f"check {', '.join(kept)} for {parts} pain"
            ]

        blocks = [b for b in new_blocks if b is not None] or plan.blocks
        summary = []
        if substituted:
            summary.append(f"substituted {', '.join(substituted)}")
        if removed:
            summary.append(f"removed {', '.join(removed)}")
        if kept:
            summary.append(f"kept {', '.join(kept)} pending review")

        return self._record(
            plan.model_copy(update={"blocks": blocks, "restricted_body_parts": restricted}),
            rationale=f"Pain flag ({parts}): {'; '.join(summary)}",
            decision=PlanDecision(
                decision_point="Safety constraints",
                input_factors=[f"Flagged: {parts}", f"{len(affected)} affected exercises"],
                reasoning="Injury-first: flagged body parts must not be loaded",
                outcome="; ".join(summary),
            ),
            tag="pain_substitution",
            warnings=warnings,
        )

    def apply_competition_proximity(self, plan: Plan, inputs: PlanningInputs) -> Plan:
        """Game-day primer the day before competition; RPE cap two days out."""
        context = inputs.context
        competition = context.schedule.next_competition(context.plan_date)
        if competition is None:
            return plan

        days_out = (competition.competition_date - context.plan_date).days
        label = competition.name or "competition"

        if days_out <= 1:
            items = self._safe_items(game_day_template(), plan.restricted_body_parts)
            if not items:
                items = [get_exercise("Mobility Flow")]
            blocks = []
            for block in plan.blocks:
                if block.name == BlockName.ACCESSORIES:
                    continue
                if block.name == BlockName.MAIN:
                    block = block.with_items(items)
                blocks.append(block)

            scale = clamp_intensity(min(plan.intensity_scale, GAME_DAY_INTENSITY_TARGET))
            when = "today" if days_out <= 0 else "in 1 day"
            return self._record(
                plan.model_copy(
                    update={
                        "blocks": blocks,
                        "workout_type": WorkoutType.GAME_PREP,
                        "intensity_scale": scale,
                        "max_target_rpe": self._cap(plan.max_target_rpe, GAME_DAY_MAX_RPE),
                    }
                ),
                rationale=(
                    f"Competition {when} ({label}, {competition.importance.value} importance): "
                    f"light upper-body primer only, intensity capped at {scale:.2f}"
                ),
                decision=PlanDecision(
                    decision_point="Competition proximity",
                    input_factors=[f"Days to competition: {days_out}", f"Importance: {competition.importance.value}"],
                    reasoning="Heavy lower-body work the day before competition impairs performance",
                    outcome="Main block replaced with light upper-body primer",
                ),
                tag="game_day_modified",
            )

        if days_out == 2:
            return self._record(
                self._cap_rpe(plan, PRE_GAME_MAX_RPE),
                rationale=f"Competition in 2 days ({label}): target RPE capped at {PRE_GAME_MAX_RPE:g}",
                decision=PlanDecision(
                    decision_point="Competition proximity",
                    input_factors=["Days to competition: 2"],
                    reasoning="Keep freshness two days out while maintaining stimulus",
                    outcome=f"Target RPE capped at {PRE_GAME_MAX_RPE:g}",
                ),
                tag="rpe_capped",
            )

        return plan

    def apply_readiness_scaling(self, plan: Plan, inputs: PlanningInputs) -> Plan:
        """Recovery replacement at readiness <= 4; x0.90 at 5-7; unchanged at >= 8."""
        readiness = inputs.readiness
        score = readiness.score
        factors = [f"Readiness {score}/10 ({readiness.source.value}, {readiness.confidence.value} confidence)"]

        if score <= 4:
            items = self._safe_items(recovery_session_template(), plan.restricted_body_parts)
            warnings = []
            if not items:
                items = [get_exercise("Breathing Drills")]
                warnings.append("Manual review required: no recovery exercise avoids the flagged areas")
            warm_up = plan.get_block(BlockName.WARM_UP)
            blocks = ([warm_up] if warm_up else []) + [_make_block(BlockName.RECOVERY, items)]
            scale = clamp_intensity(min(plan.intensity_scale, RECOVERY_INTENSITY_CAP))
            return self._record(
                plan.model_copy(
                    update={
                        "blocks": blocks,
                        "workout_type": WorkoutType.RECOVERY,
                        "intensity_scale": scale,
                        "max_target_rpe": self._cap(plan.max_target_rpe, RECOVERY_MAX_RPE),
                    }
                ),
                rationale=f"Readiness {score}/10: Main block replaced with a recovery session",
                decision=PlanDecision(
                    decision_point="Readiness scaling",
                    input_factors=factors,
                    reasoning="Low readiness makes loaded training counterproductive",
                    outcome="Recovery session replaces Main and Accessories",
                ),
                tag="recovery_focused",
                warnings=warnings,
            )

        if score <= 7:
            scale = clamp_intensity(plan.intensity_scale * MODERATE_READINESS_SCALE)
            return self._record(
                plan.model_copy(update={"intensity_scale": scale}),
                rationale=f"Readiness {score}/10: intensity scaled by {MODERATE_READINESS_SCALE:.2f}",
                decision=PlanDecision(
                    decision_point="Readiness scaling",
                    input_factors=factors,
                    reasoning="Moderate readiness calls for slightly reduced intensity",
                    outcome=f"Intensity scale {scale:.2f}",
                ),
                tag="readiness_scaled",
            )

        return self._record(
            plan,
            rationale=f"Readiness {score}/10: full intensity",
            decision=PlanDecision(
                decision_point="Readiness scaling",
                input_factors=factors,
                reasoning="High readiness supports the planned intensity",
                outcome="Intensity unchanged",
            ),
        )

    def apply_deload_cadence(self, plan: Plan, inputs: PlanningInputs) -> Plan:
        """Every Nth training week, reduce volume multiplicatively."""
        week = inputs.context.training_week
        if week is None or week % self.deload_frequency != 0:
            return plan

        factor = self.deload_multiplier
        blocks = []
        for block in plan.blocks:
            if block.name in (BlockName.MAIN, BlockName.ACCESSORIES):
                block = block.with_items(
                    [item.model_copy(update={"sets": scale_sets(item.sets, factor)}) for item in block.items]
                )
            blocks.append(block)

        multiplier = round(plan.volume_multiplier * factor, 4)
        return self._record(
            plan.model_copy(update={"blocks": blocks, "volume_multiplier": multiplier}),
            rationale=f"Deload week {week}: volume reduced to {factor * 100:.0f}%",
            decision=PlanDecision(
                decision_point="Deload cadence",
                input_factors=[f"Training week {week}", f"Deload every {self.deload_frequency} weeks"],
                reasoning="Planned periodic volume reduction for recovery",
                outcome=f"Volume multiplier {multiplier:.2f}",
            ),
            tag="deload",
        )

    def apply_outcome_feedback(self, plan: Plan, inputs: PlanningInputs) -> Plan:
        """Carry a volume cut from the last logged outcome into a standard session."""
        carryover = inputs.carryover
        if carryover is None or carryover.volume_multiplier >= 1.0:
            return plan
        if plan.workout_type != WorkoutType.STANDARD:
            return plan

        factor = carryover.volume_multiplier
        blocks = []
        for block in plan.blocks:
            if block.name in (BlockName.MAIN, BlockName.ACCESSORIES):
                block = block.with_items(
                    [item.model_copy(update={"sets": scale_sets(item.sets, factor)}) for item in block.items]
                )
            blocks.append(block)

        multiplier = round(plan.volume_multiplier * factor, 4)
        return self._record(
            plan.model_copy(update={"blocks": blocks, "volume_multiplier": multiplier}),
            rationale=f"Last session not completed: volume reduced to {factor * 100:.0f}%",
            decision=PlanDecision(
                decision_point="Outcome feedback",
                input_factors=list(carryover.rationale),
                reasoning="Volume that was not finished last time is not repeated at full size",
                outcome=f"Volume multiplier {multiplier:.2f}",
            ),
            tag="completion_adjusted",
        )

    def fit_time_budget(self, plan: Plan, inputs: PlanningInputs) -> Plan:
        """
        Fit the plan inside the session time limit.

        Steps, in order, until the plan fits: superset accessories, drop
        blocks by drop priority, then trim the core block (see
        ``_trim_items``). Block durations always match their items.
        """
        limit = inputs.context.effective_time_limit()
        plan = plan.model_copy(update={"time_limit_minutes": limit})
        if plan.total_duration_minutes <= limit:
            return plan

        start_minutes = plan.total_duration_minutes
        actions: List[str] = []
        blocks = list(plan.blocks)

        accessories = next((b for b in blocks if b.name == BlockName.ACCESSORIES), None)
        if accessories and len(accessories.items) >= 2:
            paired = [
                item.model_copy(update={"superset_group": f"A{index // 2 + 1}"})
                for index, item in enumerate(accessories.items)
            ]
            blocks = [b.with_items(paired) if b.name == BlockName.ACCESSORIES else b for b in blocks]
            actions.append("accessories supersetted")

        names = [b.name for b in blocks]
        if BlockName.MAIN in names:
            core_name = BlockName.MAIN
        elif BlockName.RECOVERY in names:
            core_name = BlockName.RECOVERY
        else:
            core_name = names[0]

        while sum(b.duration_minutes for b in blocks) > limit and len(blocks) > 1:
            droppable = [b for b in blocks if b.name != core_name]
            if not droppable:
                break
            victim = max(droppable, key=lambda b: b.priority)
            blocks = [b for b in blocks if b.name != victim.name]
            actions.append(f"dropped {victim.name.value}")

        if sum(b.duration_minutes for b in blocks) > limit:
            core = next(b for b in blocks if b.name == core_name)
            items, trimmed = self._trim_items(core.items, limit)
            actions.extend(trimmed)
            actions.append(f"{core_name.value} trimmed")
            blocks = [core.with_items(items) if b.name == core_name else b for b in blocks]

        return self._record(
            plan.model_copy(update={"blocks": blocks}),
            rationale=f"Time limit {limit} min ({start_minutes} min planned): {', '.join(actions)}",
            decision=PlanDecision(
                decision_point="Time-budget fitting",
                input_factors=[f"Limit: {limit} min", f"Planned: {start_minutes} min"],
                reasoning="Total planned duration must never exceed the session limit",
                outcome=", ".join(actions),
            ),
            tag="time_fitted",
        )

    def select_goal_accessories(self, plan: Plan, inputs: PlanningInputs) -> Plan:
        """Add goal-focus accessories when a standard session has time to spare."""
        context = inputs.context
        if plan.workout_type != WorkoutType.STANDARD:
            return plan
        if context.preferences.training_mode == TrainingMode.SIMPLE:
            return plan
        if "time_fitted" in plan.modifications:
            return plan

        limit = plan.time_limit_minutes or context.effective_time_limit()
        present = {item.name for item in plan.all_items()}
        candidates = [
            item.model_copy(update={"sets": scale_sets(item.sets, plan.volume_multiplier)})
            for item in self._safe_items(goal_accessories(context.preferences.goal_focus), plan.restricted_body_parts)
            if item.name not in present
        ]
        if plan.max_target_rpe is not None:
            candidates = [self._cap_item_rpe(item, plan.max_target_rpe) for item in candidates]

        blocks = list(plan.blocks)
        accessories = plan.get_block(BlockName.ACCESSORIES) or _make_block(BlockName.ACCESSORIES, [])
        other_minutes = sum(b.duration_minutes for b in blocks if b.name != BlockName.ACCESSORIES)
        added: List[str] = []
        items = list(accessories.items)

        for candidate in candidates:
            if len(added) >= MAX_GOAL_ACCESSORIES:
                break
            trial = items + [candidate]
            if other_minutes + estimate_block_minutes(trial) <= limit:
                items = trial
                added.append(candidate.name)

        if not added:
            return plan

        new_block = accessories.with_items(items)
        if plan.get_block(BlockName.ACCESSORIES):
            blocks = [new_block if b.name == BlockName.ACCESSORIES else b for b in blocks]
        else:
            insert_at = next(
                (i for i, b in enumerate(blocks) if b.name == BlockName.RECOVERY), len(blocks)
            )
            blocks.insert(insert_at, new_block)

        goal = context.preferences.goal_focus.value
        return self._record(
            plan.model_copy(update={"blocks": blocks}),
            rationale=f"Goal focus {goal}: added {', '.join(added)}",
            decision=PlanDecision(
                decision_point="Goal-driven accessory selection",
                input_factors=[f"Goal: {goal}", f"Time limit: {limit} min"],
                reasoning="Spare time is used for goal-specific accessory work",
                outcome=f"Added {', '.join(added)}",
            ),
            tag="accessories_added",
        )

    def apply_load_progression(self, plan: Plan, inputs: PlanningInputs) -> Plan:
        """Scale target weights from the last session's RPE."""
        multiplier = self.load_tracker.adjust_from_rpe(inputs.last_rpe)
        if plan.workout_type == WorkoutType.RECOVERY:
            return plan.model_copy(update={"progression_multiplier": multiplier})

        last = inputs.context.last_session()
        previous_weights = {}
        if last is not None:
            previous_weights = {e.name: e.weight for e in last.exercises if e.weight > 0}

        blocks = []
        for block in plan.blocks:
            items = [
                item.model_copy(update={"target_weight": round(previous_weights[item.name] * multiplier, 1)})
                if item.name in previous_weights
                else item
                for item in block.items
            ]
            blocks.append(block.model_copy(update={"items": items}))

        plan = plan.model_copy(update={"blocks": blocks, "progression_multiplier": multiplier})
        if multiplier == 1.0:
            return plan

        direction = "reduced" if multiplier < 1.0 else "increased"
        return self._record(
            plan,
            rationale=f"Last session RPE {inputs.last_rpe:g}: working loads {direction} (x{multiplier:.3f})",
            decision=PlanDecision(
                decision_point="Load progression",
                input_factors=[f"Last session RPE: {inputs.last_rpe:g}"],
                reasoning="Effort on the previous session drives load progression",
                outcome=f"Progression multiplier {multiplier:.3f}",
            ),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _cap(current: Optional[float], ceiling: float) -> float:
        return ceiling if current is None else min(current, ceiling)

    @staticmethod
    def _cap_item_rpe(item: PlanItem, ceiling: float) -> PlanItem:
        if item.target_rpe is not None and item.target_rpe > ceiling:
            return item.model_copy(update={"target_rpe": ceiling})
        return item

    def _cap_rpe(self, plan: Plan, ceiling: float) -> Plan:
        blocks = [
            block.model_copy(update={"items": [self._cap_item_rpe(i, ceiling) for i in block.items]})
            for block in plan.blocks
        ]
        return plan.model_copy(
            update={"blocks": blocks, "max_target_rpe": self._cap(plan.max_target_rpe, ceiling)}
        )

    @staticmethod
    def _trim_items(items: Sequence[PlanItem], limit: int) -> Tuple[List[PlanItem], List[str]]:
        """
        Cut a block's items down to ``limit`` minutes.

        Items are removed first, preferring a removal that makes the rest fit
        (the least important such item), else the least important item. Then
        sets come off the item with the most sets. A single remaining item
        that is still too long has its set time and reps shortened in
        proportion.
        """
        items = list(items)
        actions: List[str] = []

        while len(items) > 1 and estimate_block_minutes(items) > limit:
            fitting = [
                item for item in items
                if estimate_block_minutes([other for other in items if other is not item]) <= limit
            ]
            victim = max(fitting or items, key=lambda i: (i.priority, i.estimated_minutes()))
            items = [item for item in items if item is not victim]
            actions.append(f"removed {victim.name}")

        while estimate_block_minutes(items) > limit and any(i.sets > 1 for i in items):
            index = max(range(len(items)), key=lambda i: (items[i].sets, items[i].priority))
            items[index] = items[index].model_copy(update={"sets": items[index].sets - 1})

        if items and estimate_block_minutes(items) > limit:
            item = items[0]
            ratio = limit / item.estimated_minutes()
            items[0] = item.model_copy(
                update={
                    "minutes_per_set": round(item.minutes_per_set * ratio, 2),
                    "reps": max(1, int(math.floor(item.reps * ratio))),
                }
            )
            actions.append(f"shortened {item.name} to {limit} min")

        return items, actions

    @staticmethod
    def _safe_items(items: Sequence[PlanItem], restricted: Sequence[str]) -> List[PlanItem]:
        return [item for item in items if not item.loads_any(restricted)]

    @staticmethod
    def _record(
        plan: Plan,
        rationale: str,
        decision: PlanDecision,
        tag: Optional[str] = None,
        warnings: Optional[List[str]] = None,
    ) -> Plan:
        update = {
            "rationale": plan.rationale + [rationale],
            "plan_decisions": plan.plan_decisions + [decision],
        }
        if tag and tag not in plan.modifications:
            update["modifications"] = plan.modifications + [tag]
        if warnings:
            update["warnings"] = plan.warnings + [w for w in warnings if w not in plan.warnings]
        log.debug(f"[{plan.user_id}] {rationale}")
        return plan.model_copy(update=update)

    def _finalize(self, plan: Plan) -> Plan:
        """Clamp, apply the RPE ceiling everywhere and re-validate."""
        if plan.max_target_rpe is not None:
            plan = self._cap_rpe(plan, plan.max_target_rpe)
        data = plan.model_dump()
        data["intensity_scale"] = clamp_intensity(plan.intensity_scale)
        try:
            final = Plan.model_validate(data)
        except ValidationError as exc:
            raise PlanInvariantError(f"Finished plan is invalid: {exc}") from exc
        log.info(
            f"Plan for {final.user_id} on {final.plan_date}: {final.workout_type.value}, "
            f"intensity {final.intensity_scale:.2f}, volume {final.volume_multiplier:.2f}, "
            f"{final.total_duration_minutes} min"
        )
        return final

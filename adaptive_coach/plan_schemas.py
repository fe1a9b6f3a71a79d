"""
Data schemas for daily plans.

This module contains Pydantic models for representing a single day's session
(blocks of exercise items), the structured decision trail behind it, and the
output of one full planning cycle.
"""

import math
from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from adaptive_coach.schemas import (
    BodyRegion,
    ConflictRecord,
    GuardrailVerdict,
    LoadSpike,
    ReadinessRecord,
    utc_now,
)

# Supersetting two exercises shares rest periods
SUPERSET_TIME_FACTOR = 0.6

INTENSITY_SCALE_MIN = 0.6
INTENSITY_SCALE_MAX = 1.1


class BlockName(str, Enum):
    """Fixed set of block names a plan may contain."""

    WARM_UP = "Warm-up"
    MAIN = "Main"
    ACCESSORIES = "Accessories"
    RECOVERY = "Recovery"


class WorkoutType(str, Enum):
    """Overall character of the day's session."""

    STANDARD = "standard"
    GAME_PREP = "game_prep"  # Light primer before competition
    RECOVERY = "recovery"


class PlanItem(BaseModel):
    """A single exercise prescription within a block."""

    name: str = Field(..., min_length=1, description="Exercise name")
    sets: int = Field(..., ge=1, description="Prescribed sets")
    reps: int = Field(..., ge=1, description="Reps per set (or seconds for holds)")
    target_weight: Optional[float] = Field(None, ge=0, description="Target load in kg")
    target_rpe: Optional[float] = Field(None, ge=1, le=10, description="Target effort")
    notes: Optional[str] = Field(None, description="Coaching notes")
    body_region: BodyRegion = Field(default=BodyRegion.FULL_BODY)
    loaded_joints: List[str] = Field(
        default_factory=list, description="Joints/body parts this exercise loads"
    )
    heavy: bool = Field(default=False, description="Heavy compound lift")
    priority: int = Field(default=3, ge=1, le=5, description="1 = most important")
    superset_group: Optional[str] = Field(None, description="Items sharing a group are supersetted")
    minutes_per_set: float = Field(default=2.5, gt=0, description="Work plus rest per set")

    def loads_any(self, body_parts: Iterable[str]) -> bool:
        """Whether this exercise loads any of the given body parts."""
        parts = set(body_parts)
        if not parts:
            return False
        if self.body_region.value in parts:
            return True
        return any(joint in parts for joint in self.loaded_joints)

    def estimated_minutes(self) -> float:
        """Planned minutes, ignoring supersetting."""
        return self.sets * self.minutes_per_set


def estimate_block_minutes(items: List[PlanItem], minimum: int = 1) -> int:
    """
    Estimate how long a list of items takes.

    Items sharing a superset group are performed back to back with shared rest,
    so their combined time is discounted.
    """
    total = 0.0
    groups: Dict[str, float] = {}
    for item in items:
        if item.superset_group:
            groups[item.superset_group] = groups.get(item.superset_group, 0.0) + item.estimated_minutes()
        else:
            total += item.estimated_minutes()
    total += sum(minutes * SUPERSET_TIME_FACTOR for minutes in groups.values())
    return max(minimum, int(math.ceil(total - 1e-9)))


class Block(BaseModel):
    """A named section of the session."""

    name: BlockName = Field(..., description="Block name from the fixed enum")
    duration_minutes: int = Field(..., ge=1, description="Planned block duration")
    items: List[PlanItem] = Field(default_factory=list)
    priority: int = Field(
        default=3, ge=1, le=5, description="Drop order when time is short (5 dropped first)"
    )

    def with_items(self, items: List[PlanItem]) -> "Block":
        """Copy of this block with new items and a recomputed duration."""
        return self.model_copy(
            update={"items": items, "duration_minutes": estimate_block_minutes(items)}
        )


class PlanDecision(BaseModel):
    """
    Documents a specific decision made while building the plan.

    Used for the decision trace to explain why each adjustment was applied.
    """

    decision_point: str = Field(..., min_length=5, description="The decision that was made")
    input_factors: List[str] = Field(
        ..., min_length=1, description="Factors that influenced this decision"
    )
    reasoning: str = Field(
        ..., min_length=10, description="Explanation of why this decision was made"
    )
    outcome: str = Field(..., min_length=5, description="The resulting choice or action taken")


class Plan(BaseModel):
    """
    One day's training plan.

    ``rationale`` is the explainability trail: one entry per applied
    adjustment, in application order. Consumers should key off enum fields
    and tags, not parse rationale or warning text.
    """

    user_id: str = Field(..., min_length=1)
    plan_date: date = Field(...)
    workout_type: WorkoutType = Field(default=WorkoutType.STANDARD)
    blocks: List[Block] = Field(..., min_length=1)
    intensity_scale: float = Field(
        default=1.0, ge=INTENSITY_SCALE_MIN, le=INTENSITY_SCALE_MAX,
        description="Multiplier applied to prescribed intensity",
    )
    volume_multiplier: float = Field(
        default=1.0, gt=0, le=1.1, description="Multiplier applied to prescribed volume"
    )
    progression_multiplier: float = Field(
        default=1.0, gt=0, le=1.2, description="RPE-driven load progression factor"
    )
    max_target_rpe: Optional[float] = Field(None, ge=1, le=10, description="RPE ceiling")
    time_limit_minutes: Optional[int] = Field(None, ge=1)
    restricted_body_parts: List[str] = Field(
        default_factory=list, description="Body parts no exercise may load"
    )
    rationale: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    modifications: List[str] = Field(default_factory=list, description="Modification tags")
    plan_decisions: List[PlanDecision] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("blocks")
    @classmethod
    def validate_unique_blocks(cls, v: List[Block]) -> List[Block]:
        """Each block name appears at most once."""
        names = [block.name for block in v]
        if len(names) != len(set(names)):
            raise ValueError("Block names must be unique within a plan")
        return v

    @model_validator(mode="after")
    def validate_rationale(self) -> "Plan":
        """A plan that deviates from baseline must explain itself."""
        deviates = (
            abs(self.intensity_scale - 1.0) > 1e-9
            or abs(self.volume_multiplier - 1.0) > 1e-9
            or bool(self.modifications)
        )
        if deviates and not self.rationale:
            raise ValueError("Rationale is required when the plan deviates from baseline")
        return self

    @property
    def intensity_multiplier(self) -> float:
        """Alias used by downstream consumers."""
        return self.intensity_scale

    @property
    def total_duration_minutes(self) -> int:
        """Sum of block durations."""
        return sum(block.duration_minutes for block in self.blocks)

    def get_block(self, name: BlockName) -> Optional[Block]:
        """Return the block with the given name, if present."""
        for block in self.blocks:
            if block.name == name:
                return block
        return None

    def all_items(self) -> List[PlanItem]:
        """Every item across all blocks, in order."""
        return [item for block in self.blocks for item in block.items]


class ConflictResolution(BaseModel):
    """Outcome of resolving schedule conflicts against a proposed plan."""

    can_proceed: bool = Field(...)
    conflicts: List[ConflictRecord] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    modified_plan: Plan = Field(..., description="Plan after any template substitution")


class PlanningResult(BaseModel):
    """Everything produced by one planning cycle."""

    plan: Plan = Field(..., description="Final plan after conflicts and guardrails")
    readiness: ReadinessRecord = Field(...)
    load_spike: LoadSpike = Field(...)
    conflicts: ConflictResolution = Field(...)
    verdict: GuardrailVerdict = Field(...)
    needs_acknowledgement: bool = Field(
        default=False,
        description="True when a block or high-severity conflict must be surfaced to the user",
    )

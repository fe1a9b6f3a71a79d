"""
Exercise templates and the exercise substitution collaborator.

Templates are plain ``PlanItem`` values; the orchestrator copies them into a
plan and adjusts sets, reps and targets. ``ExerciseCatalog`` implements the
``ExerciseSubstituter`` protocol used when a flagged body part has to be
avoided.
"""

from typing import Dict, List, Optional, Protocol, Sequence

from adaptive_coach.plan_schemas import PlanItem
from adaptive_coach.schemas import BodyRegion, GoalFocus


class ExerciseSubstituter(Protocol):
    """Looks up safe alternatives for an exercise."""

    def alternates_for(self, item: PlanItem, restricted: Sequence[str]) -> List[PlanItem]: ...


def _item(
    name: str,
    region: BodyRegion,
    joints: List[str],
    sets: int,
    reps: int,
    rpe: Optional[float] = None,
    heavy: bool = False,
    priority: int = 3,
    minutes_per_set: float = 2.5,
    notes: Optional[str] = None,
) -> PlanItem:
    return PlanItem(
        name=name,
        sets=sets,
        reps=reps,
        target_rpe=rpe,
        body_region=region,
        loaded_joints=joints,
        heavy=heavy,
        priority=priority,
        minutes_per_set=minutes_per_set,
        notes=notes,
    )


# ============================================================================
# Exercise library
# ============================================================================

EXERCISES: Dict[str, PlanItem] = {
    item.name: item
    for item in [
        # Lower body
        _item("Back Squat", BodyRegion.LEGS, ["knee", "hip", "lower_back"], 4, 5, 8, heavy=True, priority=1, minutes_per_set=3.0),
        _item("Romanian Deadlift", BodyRegion.LEGS, ["hip", "lower_back", "hamstring"], 3, 8, 8, heavy=True, priority=2, minutes_per_set=3.0),
        _item("Power Clean", BodyRegion.FULL_BODY, ["knee", "hip", "lower_back", "wrist"], 5, 3, 8, heavy=True, priority=1, minutes_per_set=3.0),
        _item("Box Jump", BodyRegion.LEGS, ["knee", "ankle"], 4, 4, 7, priority=2, minutes_per_set=2.0),
        _item("Walking Lunge", BodyRegion.LEGS, ["knee", "hip"], 3, 10, 7, priority=4, minutes_per_set=2.0),
        _item("Bulgarian Split Squat", BodyRegion.LEGS, ["knee", "hip"], 3, 8, 7, priority=4, minutes_per_set=2.5),
        _item("Leg Extension", BodyRegion.LEGS, ["knee"], 3, 12, 7, priority=5, minutes_per_set=2.0),
        _item("Lateral Bound", BodyRegion.LEGS, ["knee", "ankle"], 3, 6, 7, priority=4, minutes_per_set=1.5),
        _item("Hip Thrust", BodyRegion.LEGS, ["hip"], 3, 10, 7, priority=2, minutes_per_set=2.5),
        _item("Glute Bridge", BodyRegion.LEGS, ["hip"], 3, 12, 6, priority=4, minutes_per_set=2.0),
        _item("Hamstring Curl", BodyRegion.LEGS, ["knee", "hamstring"], 3, 10, 7, priority=4, minutes_per_set=2.0),
        _item("Bike Sprint", BodyRegion.LEGS, ["knee", "hip"], 6, 1, 9, priority=3, minutes_per_set=2.0, notes="20s all-out, 100s easy"),
        # Upper body
        _item("Bench Press", BodyRegion.UPPER, ["shoulder", "elbow", "wrist"], 4, 6, 8, heavy=True, priority=1, minutes_per_set=3.0),
        _item("Push Press", BodyRegion.UPPER, ["shoulder", "elbow", "knee"], 4, 5, 8, heavy=True, priority=2, minutes_per_set=3.0),
        _item("Pull-up", BodyRegion.UPPER, ["shoulder", "elbow"], 3, 8, 7, priority=2, minutes_per_set=2.5),
        _item("Dumbbell Row", BodyRegion.UPPER, ["shoulder", "elbow"], 3, 10, 7, priority=4, minutes_per_set=2.0),
        _item("Chest-supported Row", BodyRegion.UPPER, ["elbow"], 3, 10, 7, priority=4, minutes_per_set=2.0),
        _item("Floor Press", BodyRegion.UPPER, ["elbow", "wrist"], 4, 6, 7, priority=2, minutes_per_set=2.5),
        _item("Landmine Press", BodyRegion.UPPER, ["shoulder", "elbow"], 3, 8, 7, priority=2, minutes_per_set=2.5),
        _item("Lat Pulldown", BodyRegion.UPPER, ["shoulder", "elbow"], 3, 10, 7, priority=2, minutes_per_set=2.0),
        _item("Seated Cable Row", BodyRegion.UPPER, ["elbow"], 3, 10, 7, priority=3, minutes_per_set=2.0),
        _item("Face Pull", BodyRegion.UPPER, ["shoulder"], 3, 15, 6, priority=5, minutes_per_set=1.5),
        _item("Lateral Raise", BodyRegion.UPPER, ["shoulder"], 3, 12, 7, priority=5, minutes_per_set=1.5),
        _item("Dumbbell Curl", BodyRegion.UPPER, ["elbow"], 3, 12, 7, priority=5, minutes_per_set=1.5),
        _item("Band Pull-apart", BodyRegion.UPPER, ["shoulder"], 2, 15, 5, priority=3, minutes_per_set=1.5),
        _item("Push-up", BodyRegion.UPPER, ["shoulder", "wrist"], 2, 10, 6, priority=3, minutes_per_set=1.5),
        _item("Light Dumbbell Press", BodyRegion.UPPER, ["shoulder", "elbow"], 2, 10, 6, priority=3, minutes_per_set=2.0),
        # Full body and core
        _item("Medicine Ball Slam", BodyRegion.FULL_BODY, ["shoulder"], 3, 8, 7, priority=3, minutes_per_set=1.5),
        _item("Kettlebell Swing", BodyRegion.FULL_BODY, ["hip", "lower_back"], 4, 15, 8, priority=1, minutes_per_set=2.0),
        _item("Sled Push", BodyRegion.LEGS, ["knee", "hip", "ankle"], 6, 1, 8, priority=2, minutes_per_set=2.0, notes="20m pushes"),
        _item("Rowing Intervals", BodyRegion.FULL_BODY, ["lower_back", "knee"], 5, 1, 8, priority=2, minutes_per_set=3.0, notes="500m at threshold"),
        _item("Assault Bike Intervals", BodyRegion.FULL_BODY, ["knee", "hip"], 6, 1, 8, priority=2, minutes_per_set=2.5),
        _item("Arm Ergometer Intervals", BodyRegion.UPPER, ["shoulder"], 6, 1, 7, priority=2, minutes_per_set=2.5),
        _item("Farmer Carry", BodyRegion.FULL_BODY, ["shoulder", "lower_back", "grip"], 3, 1, 7, priority=5, minutes_per_set=1.5, notes="30m carries"),
        _item("Plank", BodyRegion.CORE, [], 3, 45, 6, priority=5, minutes_per_set=1.5, notes="45 second holds"),
        _item("Dead Bug", BodyRegion.CORE, [], 3, 10, 5, priority=5, minutes_per_set=1.5),
        _item("World's Greatest Stretch", BodyRegion.FULL_BODY, ["hip"], 2, 5, 3, priority=5, minutes_per_set=1.5),
        _item("Thoracic Rotation", BodyRegion.UPPER, [], 2, 10, 3, priority=5, minutes_per_set=1.5),
        # Warm-up, cool-down and recovery
        _item("Dynamic Warm-up", BodyRegion.FULL_BODY, [], 1, 1, 3, priority=2, minutes_per_set=6.0, notes="Leg swings, hip openers, arm circles"),
        _item("Activation Drills", BodyRegion.FULL_BODY, [], 2, 10, 4, priority=3, minutes_per_set=2.0, notes="Glute and scapular activation"),
        _item("Foam Rolling", BodyRegion.FULL_BODY, [], 1, 1, 2, priority=3, minutes_per_set=5.0),
        _item("Static Stretching", BodyRegion.FULL_BODY, [], 1, 1, 2, priority=3, minutes_per_set=5.0),
        _item("Easy Bike Spin", BodyRegion.LEGS, ["knee", "hip"], 1, 1, 3, priority=2, minutes_per_set=15.0, notes="Zone 1, conversational pace"),
        _item("Mobility Flow", BodyRegion.FULL_BODY, [], 1, 1, 3, priority=1, minutes_per_set=10.0),
        _item("Breathing Drills", BodyRegion.CORE, [], 1, 1, 1, priority=3, minutes_per_set=5.0, notes="Box breathing, 4-4-4-4"),
        _item("Band Shoulder Circuit", BodyRegion.UPPER, ["shoulder"], 2, 15, 3, priority=3, minutes_per_set=2.0),
    ]
}

# Ordered alternatives; the first one that avoids every restricted part wins
SUBSTITUTIONS: Dict[str, List[str]] = {
    "Back Squat": ["Hip Thrust", "Romanian Deadlift", "Glute Bridge"],
    "Romanian Deadlift": ["Hip Thrust", "Hamstring Curl", "Glute Bridge"],
    "Power Clean": ["Medicine Ball Slam", "Kettlebell Swing"],
    "Box Jump": ["Medicine Ball Slam", "Hip Thrust"],
    "Walking Lunge": ["Glute Bridge", "Hamstring Curl"],
    "Bulgarian Split Squat": ["Glute Bridge", "Hip Thrust"],
    "Leg Extension": ["Glute Bridge"],
    "Lateral Bound": ["Medicine Ball Slam"],
    "Bike Sprint": ["Arm Ergometer Intervals"],
    "Sled Push": ["Arm Ergometer Intervals", "Kettlebell Swing"],
    "Rowing Intervals": ["Arm Ergometer Intervals", "Assault Bike Intervals"],
    "Assault Bike Intervals": ["Arm Ergometer Intervals"],
    "Kettlebell Swing": ["Medicine Ball Slam", "Glute Bridge"],
    "Bench Press": ["Floor Press", "Landmine Press"],
    "Push Press": ["Landmine Press", "Floor Press"],
    "Pull-up": ["Lat Pulldown", "Seated Cable Row"],
    "Dumbbell Row": ["Chest-supported Row", "Seated Cable Row"],
    "Lat Pulldown": ["Seated Cable Row"],
    "Face Pull": ["Thoracic Rotation"],
    "Lateral Raise": ["Dumbbell Curl"],
    "Farmer Carry": ["Dead Bug"],
    "Easy Bike Spin": ["Arm Ergometer Intervals", "Mobility Flow"],
    "Band Shoulder Circuit": ["Thoracic Rotation"],
}


def get_exercise(name: str) -> PlanItem:
    """Copy of a library exercise."""
    return EXERCISES[name].model_copy(deep=True)


def _items(names: Sequence[str]) -> List[PlanItem]:
    return [get_exercise(name) for name in names]


# ============================================================================
# Templates
# ============================================================================

MAIN_TEMPLATES: Dict[GoalFocus, List[str]] = {
    GoalFocus.STRENGTH: ["Back Squat", "Bench Press", "Romanian Deadlift", "Pull-up"],
    GoalFocus.POWER: ["Power Clean", "Box Jump", "Push Press", "Pull-up"],
    GoalFocus.HYPERTROPHY: ["Back Squat", "Bench Press", "Romanian Deadlift", "Pull-up"],
    GoalFocus.CONDITIONING: ["Kettlebell Swing", "Rowing Intervals", "Sled Push", "Pull-up"],
    GoalFocus.MOBILITY: ["Hip Thrust", "Landmine Press", "Pull-up"],
}

# (sets, reps, target RPE) overrides for heavy lifts by goal
REP_SCHEMES: Dict[GoalFocus, tuple] = {
    GoalFocus.HYPERTROPHY: (3, 10, 7.5),
    GoalFocus.MOBILITY: (2, 10, 6.0),
}

GOAL_ACCESSORIES: Dict[GoalFocus, List[str]] = {
    GoalFocus.STRENGTH: ["Bulgarian Split Squat", "Face Pull", "Farmer Carry"],
    GoalFocus.POWER: ["Lateral Bound", "Medicine Ball Slam", "Face Pull"],
    GoalFocus.HYPERTROPHY: ["Lateral Raise", "Dumbbell Curl", "Leg Extension"],
    GoalFocus.CONDITIONING: ["Bike Sprint", "Farmer Carry", "Dead Bug"],
    GoalFocus.MOBILITY: ["World's Greatest Stretch", "Thoracic Rotation", "Dead Bug"],
}


def main_template(goal: GoalFocus) -> List[PlanItem]:
    """Baseline Main-block items for a goal focus."""
    items = _items(MAIN_TEMPLATES[goal])
    scheme = REP_SCHEMES.get(goal)
    if scheme:
        sets, reps, rpe = scheme
        items = [item.model_copy(update={"sets": sets, "reps": reps, "target_rpe": rpe}) for item in items]
    return items


def accessory_template() -> List[PlanItem]:
    """Baseline accessories shared by every goal."""
    return _items(["Walking Lunge", "Dumbbell Row", "Plank"])


def goal_accessories(goal: GoalFocus) -> List[PlanItem]:
    """Goal-specific accessories, in preference order."""
    return _items(GOAL_ACCESSORIES[goal])


def warm_up_template() -> List[PlanItem]:
    return _items(["Dynamic Warm-up", "Activation Drills"])


def cool_down_template() -> List[PlanItem]:
    return _items(["Foam Rolling", "Static Stretching"])


def recovery_session_template() -> List[PlanItem]:
    """Low-intensity session that replaces the Main block on low-readiness days."""
    return _items(["Mobility Flow", "Easy Bike Spin", "Band Shoulder Circuit", "Breathing Drills"])


def game_day_template() -> List[PlanItem]:
    """Light upper-body primer for the day before competition."""
    return _items(["Band Pull-apart", "Push-up", "Light Dumbbell Press"])


class ExerciseCatalog:
    """
    In-process exercise substitution collaborator.

    Args:
        exercises: Exercise library (defaults to ``EXERCISES``)
        substitutions: Ordered alternatives per exercise (defaults to ``SUBSTITUTIONS``)
    """

    def __init__(
        self,
        exercises: Optional[Dict[str, PlanItem]] = None,
        substitutions: Optional[Dict[str, List[str]]] = None,
    ):
        self.exercises = exercises if exercises is not None else EXERCISES
        self.substitutions = substitutions if substitutions is not None else SUBSTITUTIONS

    def alternates_for(self, item: PlanItem, restricted: Sequence[str]) -> List[PlanItem]:
        """
        Safe alternatives for ``item`` that load none of ``restricted``.

        The alternative keeps the original prescription (sets, reps, target
        RPE and priority) and is never marked heavy.
        """
        alternates = []
        for name in self.substitutions.get(item.name, []):
            candidate = self.exercises.get(name)
            if candidate is None or candidate.loads_any(restricted):
                continue
            alternates.append(
                candidate.model_copy(
                    update={
                        "sets": item.sets,
                        "reps": item.reps,
                        "target_rpe": item.target_rpe,
                        "priority": item.priority,
                        "heavy": False,
                        "superset_group": None,
                        "notes": f"Substituted for {item.name}",
                    },
                    deep=True,
                )
            )
        return alternates

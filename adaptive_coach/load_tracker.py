"""
Load and progression tracking.

Computes per-session training load, rolling and exponentially weighted
baselines, load spikes, and RPE-driven progression multipliers. Every
denominator derived from historical aggregates is floored at 1 so that
ratios stay finite when history is missing.
"""

import math
from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from adaptive_coach.logger import get_logger
from adaptive_coach.schemas import (
    Context,
    ExerciseResult,
    LoadRecord,
    LoadSpike,
    SessionRecord,
    SpikeSeverity,
)

log = get_logger(__name__)

# Multiplier applied to volume (or duration) for each whole RPE value
RPE_INTENSITY_FACTORS = {
    1: 0.6,
    2: 0.65,
    3: 0.7,
    4: 0.8,
    5: 0.9,
    6: 1.0,
    7: 1.1,
    8: 1.2,
    9: 1.3,
    10: 1.4,
}

# (rpe, multiplier) anchors for progression, ascending by RPE
RPE_PROGRESSION_ANCHORS = [(5.0, 1.10), (7.0, 1.0), (9.0, 0.95)]

SPIKE_RATIO_MIN = 0.1
SPIKE_RATIO_MAX = 10.0
SPIKE_LOW_RATIO = 1.1
SPIKE_MEDIUM_RATIO = 1.3

LoadEntry = Tuple[date, float]


def _is_valid_load(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value >= 0


class LoadTracker:
    """
    Training-load statistics and progression factors.

    Stateless: all methods operate on the values passed in.
    """

    def __init__(self, spike_threshold: float = 1.5, ewma_span: int = 28):
        self.spike_threshold = spike_threshold
        self.ewma_span = ewma_span

    # ------------------------------------------------------------------
    # Session load
    # ------------------------------------------------------------------

    @staticmethod
    def intensity_factor(rpe: Optional[float]) -> float:
        """RPE-derived intensity factor; unknown RPE counts as neutral (1.0)."""
        if rpe is None or not math.isfinite(rpe):
            return 1.0
        key = int(round(min(10.0, max(1.0, rpe))))
        return RPE_INTENSITY_FACTORS[key]

    @staticmethod
    def exercise_volume(exercise: ExerciseResult) -> float:
        """sets x reps x weight, with each factor clamped to be non-negative."""
        return max(0, exercise.sets) * max(0, exercise.reps) * max(0.0, exercise.weight)

    def duration_load(self, duration_minutes: Optional[float], rpe: Optional[float]) -> float:
        """Load for duration-based work: minutes x intensity factor."""
        if duration_minutes is None or not math.isfinite(duration_minutes):
            return 0.0
        return max(0.0, duration_minutes) * self.intensity_factor(rpe)

    def exercises_load(self, exercises: Iterable[ExerciseResult], session_rpe: Optional[float] = None) -> float:
        """
        Load for a list of performed exercises.

        Lifting work contributes volume x intensity factor; timed work with no
        lifting volume contributes duration x intensity factor. Exercise RPE
        takes precedence over the session RPE.
        """
        total = 0.0
        for exercise in exercises:
            rpe = exercise.rpe if exercise.rpe is not None else session_rpe
            volume = self.exercise_volume(exercise)
            if volume > 0:
                total += volume * self.intensity_factor(rpe)
            elif exercise.duration_minutes:
                total += self.duration_load(exercise.duration_minutes, rpe)
        return max(0.0, total)

    def session_load(self, session: SessionRecord) -> float:
        """
        Compute the load of a completed session.

        Resolution order: per-exercise results, then aggregate volume, then
        duration, then a previously stored load. The result is never negative.

        Args:
            session: Completed session

        Returns:
            Session load (>= 0)
        """
        if session.exercises:
            load = self.exercises_load(session.exercises, session.rpe)
            if load > 0:
                return load

        if session.volume is not None and math.isfinite(session.volume) and session.volume > 0:
            return session.volume * self.intensity_factor(session.rpe)

        if session.duration_minutes:
            return self.duration_load(session.duration_minutes, session.rpe)

        if _is_valid_load(session.load):
            return float(session.load)

        return 0.0

    # ------------------------------------------------------------------
    # Baselines
    # ------------------------------------------------------------------

    @staticmethod
    def rolling_average(
        entries: Sequence[LoadEntry], window_days: int = 7, as_of: Optional[date] = None
    ) -> float:
        """
        Arithmetic mean of valid loads in the trailing window.

        The window covers ``(as_of - window_days, as_of]``. An empty window
        returns 1 rather than 0 so downstream ratios stay finite.

        Args:
            entries: (date, load) pairs
            window_days: Window length in days
            as_of: Window end (defaults to the latest entry date)

        Returns:
            Mean load, or 1.0 for an empty window
        """
        valid = [(d, load) for d, load in entries if _is_valid_load(load)]
        if not valid:
            return 1.0
        end = as_of or max(d for d, _ in valid)
        start = end - timedelta(days=window_days)
        window = [load for d, load in valid if start < d <= end]
        if not window:
            return 1.0
        return sum(window) / len(window)

    def ewma(self, loads: Sequence[float], span: Optional[int] = None) -> float:
        """Exponentially weighted moving average (alpha = 2 / (span + 1)); 1.0 when empty."""
        valid = [load for load in loads if _is_valid_load(load)]
        if not valid:
            return 1.0
        alpha = 2.0 / ((span or self.ewma_span) + 1)
        baseline = valid[0]
        for load in valid[1:]:
            baseline = alpha * load + (1 - alpha) * baseline
        return baseline

    @staticmethod
    def trend_slope(loads: Sequence[float]) -> float:
        """Least-squares slope of load per session; 0 with fewer than two points."""
        valid = [load for load in loads if _is_valid_load(load)]
        n = len(valid)
        if n < 2:
            return 0.0
        mean_x = (n - 1) / 2.0
        mean_y = sum(valid) / n
        numerator = sum((i - mean_x) * (y - mean_y) for i, y in enumerate(valid))
        denominator = sum((i - mean_x) ** 2 for i in range(n))
        return numerator / max(denominator, 1.0)

    def acute_chronic_ratio(self, entries: Sequence[LoadEntry], as_of: Optional[date] = None) -> float:
        """7-day average over 28-day average, with the denominator floored at 1."""
        acute = self.rolling_average(entries, 7, as_of)
        chronic = self.rolling_average(entries, 28, as_of)
        return acute / max(chronic, 1.0)

    # ------------------------------------------------------------------
    # Spikes and progression
    # ------------------------------------------------------------------

    def detect_load_spike(self, current: float, average: float) -> LoadSpike:
        """
        Compare a load against its recent average.

        An average of exactly 0 means there is no history: the ratio is
        defined as 1.0 and it is not a spike.

        Args:
            current: Load under consideration
            average: Recent average load

        Returns:
            LoadSpike with clamped ratio, spike flag and severity
        """
        if average == 0:
            return LoadSpike(ratio=1.0, is_spike=False, severity=SpikeSeverity.NONE)

        current = max(0.0, current) if math.isfinite(current) else 0.0
        ratio = current / max(average, 1.0)
        ratio = min(SPIKE_RATIO_MAX, max(SPIKE_RATIO_MIN, ratio))

        if ratio > self.spike_threshold:
            severity = SpikeSeverity.HIGH
        elif ratio > SPIKE_MEDIUM_RATIO:
            severity = SpikeSeverity.MEDIUM
        elif ratio > SPIKE_LOW_RATIO:
            severity = SpikeSeverity.LOW
        else:
            severity = SpikeSeverity.NONE

        return LoadSpike(ratio=ratio, is_spike=ratio > self.spike_threshold, severity=severity)

    @staticmethod
    def adjust_from_rpe(last_rpe: Optional[float]) -> float:
        """
        Intensity multiplier for the next session from the last session's RPE.

        Anchors: RPE >= 9 -> 0.95, RPE 7 -> 1.0, RPE <= 5 -> 1.10, linear
        between neighbouring anchors. Unknown RPE holds at 1.0.
        """
        if last_rpe is None or not math.isfinite(last_rpe):
            return 1.0

        low_rpe, low_mult = RPE_PROGRESSION_ANCHORS[0]
        high_rpe, high_mult = RPE_PROGRESSION_ANCHORS[-1]
        if last_rpe <= low_rpe:
            return low_mult
        if last_rpe >= high_rpe:
            return high_mult

        for (x0, y0), (x1, y1) in zip(RPE_PROGRESSION_ANCHORS, RPE_PROGRESSION_ANCHORS[1:]):
            if x0 <= last_rpe <= x1:
                return round(y0 + (y1 - y0) * (last_rpe - x0) / (x1 - x0), 4)
        return 1.0

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def history_entries(self, sessions: Iterable[SessionRecord]) -> List[LoadEntry]:
        """(date, load) pairs for a session history."""
        return [(s.session_date, self.session_load(s)) for s in sessions]

    def build_load_record(
        self,
        user_id: str,
        session: SessionRecord,
        prior: Sequence[LoadEntry],
    ) -> LoadRecord:
        """
        Derive the LoadRecord for a newly completed session.

        Args:
            user_id: Athlete identifier
            session: The completed session
            prior: (date, load) history before this session

        Returns:
            LoadRecord including rolling average, EWMA baseline and trend
        """
        load = self.session_load(session)
        entries = list(prior) + [(session.session_date, load)]
        loads = [value for _, value in entries]
        record = LoadRecord(
            user_id=user_id,
            record_date=session.session_date,
            session_load=load,
            rpe=session.rpe,
            completion_rate=session.completion_rate,
            rolling_average_7d=self.rolling_average(entries, 7, session.session_date),
            ewma_baseline=self.ewma(loads),
            trend_slope=self.trend_slope(loads[-10:]),
        )
        log.debug(
            f"Load record for {user_id} on {session.session_date}: load={load:.1f}, "
            f"7d avg={record.rolling_average_7d:.1f}"
        )
        return record

    def spike_for_context(self, context: Context) -> LoadSpike:
        """
        Spike status of the most recent session against the week before it.

        With no earlier sessions the average is treated as 0 (no history).
        """
        last = context.last_session()
        if last is None:
            return LoadSpike(ratio=1.0, is_spike=False, severity=SpikeSeverity.NONE)

        window_start = last.session_date - timedelta(days=7)
        prior = [
            (s.session_date, self.session_load(s))
            for s in context.history
            if window_start <= s.session_date < last.session_date
        ]
        average = (
            self.rolling_average(prior, 7, last.session_date - timedelta(days=1)) if prior else 0.0
        )
        return self.detect_load_spike(self.session_load(last), average)

"""
Outcome feedback.

Turns a completed session into a summary and a next-session recommendation,
and persists the outcome plus its derived load record so the load tracker and
readiness inferencer pick it up on their next read. The logger keeps no state
of its own.
"""

from datetime import timedelta
from typing import List, Optional

from adaptive_coach.load_tracker import LoadTracker
from adaptive_coach.logger import get_logger
from adaptive_coach.schemas import (
    AuditEvent,
    NextSessionRecommendation,
    OutcomeSummary,
    SessionOutcome,
    SessionRecord,
)
from adaptive_coach.storage import StorageCollaborator

log = get_logger(__name__)

LOW_COMPLETION_RATE = 0.8
LOW_COMPLETION_VOLUME = 0.8
HISTORY_LOOKBACK_DAYS = 28


def average_rpe(outcome: SessionOutcome) -> Optional[float]:
    """Mean of the recorded exercise RPEs; None (never 0) when nothing was recorded."""
    rpes = [e.rpe for e in outcome.exercises if e.rpe is not None]
    if not rpes:
        return None
    return round(sum(rpes) / len(rpes), 2)


def completion_rate(outcome: SessionOutcome) -> float:
    """Completed exercises over total exercises; 0 for an empty session."""
    if not outcome.exercises:
        return 0.0
    completed = sum(1 for e in outcome.exercises if e.completed)
    return completed / len(outcome.exercises)


def recommend_next_session(avg_rpe: Optional[float], completion: float) -> NextSessionRecommendation:
    """
    Load and volume recommendation for the next session.

    Load delta by average RPE: >= 9 -> -5%, 7-8 -> hold, 5-6 -> +2.5%,
    below 5 -> +5% (+10% at 3 or below). A missing average holds load.
    Completion below 80% adds a 20% volume reduction.
    """
    rationale: List[str] = []

    if avg_rpe is None:
        delta = 0.0
        rationale.append("No RPE recorded: holding load")
    elif avg_rpe >= 9:
        delta = -0.05
        rationale.append(f"Average RPE {avg_rpe:g} is very high: reduce load 5%")
    elif avg_rpe >= 7:
        delta = 0.0
        rationale.append(f"Average RPE {avg_rpe:g} is on target: hold load")
    elif avg_rpe >= 5:
        delta = 0.025
        rationale.append(f"Average RPE {avg_rpe:g} is moderate: increase load 2.5%")
    elif avg_rpe > 3:
        delta = 0.05
        rationale.append(f"Average RPE {avg_rpe:g} is low: increase load 5%")
    else:
        delta = 0.10
        rationale.append(f"Average RPE {avg_rpe:g} is very low: increase load 10%")

    volume = 1.0
    if completion < LOW_COMPLETION_RATE:
        volume = LOW_COMPLETION_VOLUME
        rationale.append(f"Completion {completion * 100:.0f}% below 80%: reduce volume 20%")

    return NextSessionRecommendation(load_delta=delta, volume_multiplier=volume, rationale=rationale)


class OutcomeFeedbackLogger:
    """
    Records completed sessions and derives the next-session recommendation.

    Args:
        storage: Storage collaborator the outcome and load record are written to
        load_tracker: Load tracker used to compute session load and baselines
    """

    def __init__(self, storage: StorageCollaborator, load_tracker: Optional[LoadTracker] = None):
        self.storage = storage
        self.load_tracker = load_tracker or LoadTracker()

    def summarize(self, outcome: SessionOutcome) -> OutcomeSummary:
        """Summary and recommendation without touching storage."""
        avg = average_rpe(outcome)
        completion = completion_rate(outcome)
        load = self.load_tracker.session_load(self.to_session_record(outcome, avg, completion))
        return OutcomeSummary(
            user_id=outcome.user_id,
            session_date=outcome.session_date,
            average_rpe=avg,
            completion_rate=completion,
            session_load=load,
            recommendation=recommend_next_session(avg, completion),
        )

    @staticmethod
    def to_session_record(
        outcome: SessionOutcome, avg_rpe: Optional[float], completion: float
    ) -> SessionRecord:
        """History entry for a completed session. Session RPE wins over the exercise average."""
        return SessionRecord(
            session_date=outcome.session_date,
            rpe=outcome.session_rpe if outcome.session_rpe is not None else avg_rpe,
            duration_minutes=outcome.duration_minutes,
            completion_rate=completion,
            exercises=outcome.exercises,
        )

    def log_outcome(self, outcome: SessionOutcome) -> OutcomeSummary:
        """
        Persist a completed session and return its summary.

        Writes, in order: the outcome, the session history entry, the derived
        load record and an audit event. The history read and all four writes
        run in one ``user_transaction``: concurrent outcomes for the same
        athlete are serialized, and a failed write leaves none of them
        stored. Write failures propagate as ``StorageError``.

        Args:
            outcome: Completed session results

        Returns:
            OutcomeSummary with average RPE, completion rate, load and the
            next-session recommendation
        """
        summary = self.summarize(outcome)
        session = self.to_session_record(outcome, summary.average_rpe, summary.completion_rate)
        since = outcome.session_date - timedelta(days=HISTORY_LOOKBACK_DAYS)

        with self.storage.user_transaction(outcome.user_id):
            prior = self.load_tracker.history_entries(
                s for s in self.storage.get_sessions(outcome.user_id, since)
                if s.session_date <= outcome.session_date
            )
            load_record = self.load_tracker.build_load_record(outcome.user_id, session, prior)

            self.storage.append_outcome(outcome)
            self.storage.append_session(outcome.user_id, session)
            self.storage.append_load_record(load_record)
            self.storage.append_audit_event(
                AuditEvent(
                    user_id=outcome.user_id,
                    event_type="outcome_logged",
                    payload={
                        "outcome": outcome.model_dump(mode="json"),
                        "summary": summary.model_dump(mode="json"),
                        "load_record": load_record.model_dump(mode="json"),
                    },
                )
            )

        log.info(
            f"Outcome for {outcome.user_id} on {outcome.session_date}: load {summary.session_load:.1f}, "
            f"completion {summary.completion_rate * 100:.0f}%, "
            f"next load {summary.recommendation.load_delta * 100:+.1f}%"
        )
        return summary

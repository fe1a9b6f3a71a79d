"""
Daily planning engine.

Wires the decision components into one planning cycle:

    readiness -> load spike -> plan -> schedule conflicts -> guardrails -> auto-adjust

and exposes outcome logging for the feedback half of the loop. The engine is
the only place that knows about all components; each component stays usable
on its own.
"""

from datetime import datetime, time, timedelta
from typing import Optional

from adaptive_coach.config import Settings, get_settings
from adaptive_coach.conflicts import ConflictResolver
from adaptive_coach.exceptions import StorageError
from adaptive_coach.feedback import OutcomeFeedbackLogger
from adaptive_coach.load_tracker import LoadTracker
from adaptive_coach.logger import get_logger
from adaptive_coach.plan_schemas import Plan, PlanningResult
from adaptive_coach.planner import PlanOrchestrator
from adaptive_coach.readiness import HISTORY_LOOKBACK_DAYS, INJURY_LOOKBACK_DAYS, ReadinessInferencer
from adaptive_coach.schemas import (
    AuditEvent,
    ConflictSeverity,
    Context,
    LoadSpike,
    NextSessionRecommendation,
    OutcomeSummary,
    ReadinessRecord,
    ReadinessSnapshot,
    SessionOutcome,
)
from adaptive_coach.storage import InMemoryStorage, ResilientStorage, StorageCollaborator
from adaptive_coach.validator import GuardrailValidator

log = get_logger(__name__)

READINESS_HISTORY_DAYS = 28
OUTCOME_CARRYOVER_DAYS = 7


class DailyPlanningEngine:
    """
    Runs the full daily planning cycle for one athlete at a time.

    Args:
        storage: Storage collaborator. Defaults to an in-memory store. Reads
            are wrapped in a timeout that degrades to defaults.
        settings: Engine settings (defaults to environment-driven settings)
        orchestrator: Plan orchestrator (defaults to one wired to the exercise catalog)
        conflict_resolver: Schedule conflict resolver
        validator: Guardrail validator
    """

    def __init__(
        self,
        storage: Optional[StorageCollaborator] = None,
        settings: Optional[Settings] = None,
        orchestrator: Optional[PlanOrchestrator] = None,
        conflict_resolver: Optional[ConflictResolver] = None,
        validator: Optional[GuardrailValidator] = None,
    ):
        self.settings = settings or get_settings()
        self.storage = ResilientStorage(
            storage if storage is not None else InMemoryStorage(),
            timeout_seconds=self.settings.storage_timeout_seconds,
        )
        self.load_tracker = LoadTracker(
            spike_threshold=self.settings.spike_threshold,
            ewma_span=self.settings.ewma_span_days,
        )
        self.readiness_inferencer = ReadinessInferencer(self.storage)
        self.orchestrator = orchestrator or PlanOrchestrator.with_default_catalog(
            load_tracker=self.load_tracker,
            readiness_inferencer=self.readiness_inferencer,
            deload_frequency=self.settings.deload_frequency_weeks,
            deload_multiplier=self.settings.deload_volume_multiplier,
        )
        self.conflict_resolver = conflict_resolver or ConflictResolver(
            min_recovery_days=self.settings.min_recovery_days
        )
        self.validator = validator or GuardrailValidator.from_settings(self.settings)
        self.feedback = OutcomeFeedbackLogger(self.storage, self.load_tracker)

    def close(self) -> None:
        self.storage.close()

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan_day(self, context: Context) -> PlanningResult:
        """
        Produce today's plan and everything needed to explain it.

        The request context is first merged with stored history (see
        ``hydrate_context``), so outcomes logged through ``record_outcome``
        feed readiness, load progression and the guardrails.

        Args:
            context: Athlete context for the plan date

        Returns:
            PlanningResult with the final plan, readiness, load spike,
            conflict resolution and guardrail verdict
        """
        log.info(f"Planning {context.plan_date} for {context.user_id}")

        hydrated = self.hydrate_context(context)
        readiness = self.assess_readiness(context, hydrated=hydrated)
        context = hydrated
        spike = self.load_tracker.spike_for_context(context)

        plan = self.orchestrator.plan_today(
            context, readiness=readiness, carryover=self.outcome_carryover(context)
        )
        plan = self._add_spike_warning(plan, spike)

        resolution = self.conflict_resolver.resolve_conflicts(plan, context.schedule, context)
        plan = resolution.modified_plan
        conflict_warnings = [
            f"Schedule conflict ({c.conflict_type.value}): {c.message}"
            for c in resolution.conflicts
            if c.severity != ConflictSeverity.LOW
        ]
        if conflict_warnings:
            plan = plan.model_copy(update={"warnings": plan.warnings + conflict_warnings})

        verdict = self.validator.validate_workout(
            plan,
            user_profile=context.profile,
            recent_sessions=context.history,
            readiness_data=self.readiness_snapshot(context, readiness),
            training_week=context.training_week,
            as_of=datetime.combine(context.plan_date, context.session_start or time(12, 0)),
        )
        if verdict.is_allowed and verdict.auto_adjustments:
            plan = self.validator.apply_auto_adjustments(plan, verdict.auto_adjustments)

        result = PlanningResult(
            plan=plan,
            readiness=readiness,
            load_spike=spike,
            conflicts=resolution,
            verdict=verdict,
            needs_acknowledgement=not verdict.is_allowed or not resolution.can_proceed,
        )
        self._audit_plan(result)
        return result

    def hydrate_context(self, context: Context) -> Context:
        """
        Merge stored history into a request context.

        Adds sessions from the trailing 28 days up to the plan date, injury
        flags from the last 7 days, external activities since the day before
        and a stored check-in for the plan date. What the request carries wins
        over stored data for the same session, flag or activity. Reads that
        fail or time out add nothing.
        """
        user_id, plan_date = context.user_id, context.plan_date

        known_sessions = {(s.session_date, s.start_time) for s in context.history}
        stored_sessions = [
            s
            for s in self.storage.get_sessions(user_id, plan_date - timedelta(days=HISTORY_LOOKBACK_DAYS))
            if s.session_date <= plan_date and (s.session_date, s.start_time) not in known_sessions
        ]

        known_flags = {(f.flag_date, f.body_part) for f in context.injury_flags}
        stored_flags = [
            f
            for f in self.storage.get_injury_flags(user_id, plan_date - timedelta(days=INJURY_LOOKBACK_DAYS))
            if f.flag_date <= plan_date and (f.flag_date, f.body_part) not in known_flags
        ]

        known_activities = {a.started_at for a in context.external_activities}
        stored_activities = [
            a
            for a in self.storage.get_external_activities(user_id, plan_date - timedelta(days=1))
            if a.started_at not in known_activities
        ]

        update = {}
        if stored_sessions:
            update["history"] = sorted(context.history + stored_sessions, key=lambda s: s.started_at())
        if stored_flags:
            update["injury_flags"] = context.injury_flags + stored_flags
        if stored_activities:
            update["external_activities"] = context.external_activities + stored_activities
        if context.todays_check_in() is None:
            check_in = self.storage.get_check_in(user_id, plan_date)
            if check_in is not None:
                update["readiness"] = check_in

        if not update:
            return context
        log.debug(
            f"Context for {user_id} on {plan_date} merged with stored data: "
            f"{len(stored_sessions)} sessions, {len(stored_flags)} flags, "
            f"{len(stored_activities)} activities"
        )
        return context.model_copy(update=update)

    def outcome_carryover(self, context: Context) -> Optional[NextSessionRecommendation]:
        """Recommendation from the latest outcome logged in the week before the plan date."""
        since = context.plan_date - timedelta(days=OUTCOME_CARRYOVER_DAYS)
        outcomes = [
            o for o in self.storage.get_outcomes(context.user_id, since) if o.session_date < context.plan_date
        ]
        if not outcomes:
            return None
        latest = max(outcomes, key=lambda o: o.session_date)
        return self.feedback.summarize(latest).recommendation

    def assess_readiness(self, context: Context, hydrated: Optional[Context] = None) -> ReadinessRecord:
        """
        Infer readiness and store it for later reads.

        A request that carries no check-in, history, injury flags or external
        activities is scored from stored data alone; otherwise the request is
        merged with stored data (``hydrated``, when already built) and scored
        as a whole.
        """
        bare = not (
            context.todays_check_in()
            or context.history
            or context.injury_flags
            or context.external_activities
        )
        if bare:
            record = self.readiness_inferencer.infer_readiness(context.user_id, context.plan_date)
        else:
            record = self.readiness_inferencer.from_context(hydrated or self.hydrate_context(context))
        try:
            self.storage.append_readiness(record)
        except StorageError as exc:
            log.warning(f"Could not persist readiness for {context.user_id}: {exc}")
        return record

    def readiness_snapshot(self, context: Context, readiness: ReadinessRecord) -> ReadinessSnapshot:
        """Readiness data handed to the guardrails, including the trailing 28-day scores."""
        since = context.plan_date - timedelta(days=READINESS_HISTORY_DAYS)
        history = self.storage.get_readiness_history(context.user_id, since)
        check_in = context.todays_check_in()
        return ReadinessSnapshot(
            score=readiness.score,
            soreness=check_in.soreness if check_in else None,
            pain_level=check_in.pain_level if check_in else None,
            pain_location=check_in.pain_location if check_in else None,
            recent_scores=[r.score for r in history if r.record_date < context.plan_date],
        )

    @staticmethod
    def _add_spike_warning(plan: Plan, spike: LoadSpike) -> Plan:
        if not spike.is_spike:
            return plan
        warning = (
            f"Load spike: last session was {spike.ratio:.2f}x the recent average "
            f"({spike.severity.value} severity)"
        )
        return plan.model_copy(update={"warnings": plan.warnings + [warning]})

    def _audit_plan(self, result: PlanningResult) -> None:
        plan = result.plan
        event = AuditEvent(
            user_id=plan.user_id,
            event_type="plan_generated",
            payload={
                "plan_date": plan.plan_date.isoformat(),
                "workout_type": plan.workout_type.value,
                "intensity_scale": plan.intensity_scale,
                "volume_multiplier": plan.volume_multiplier,
                "modifications": plan.modifications,
                "is_allowed": result.verdict.is_allowed,
                "can_proceed": result.conflicts.can_proceed,
            },
        )
        try:
            self.storage.append_audit_event(event)
        except StorageError as exc:
            log.warning(f"Audit write failed for plan of {plan.user_id}: {exc}")

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def record_outcome(self, outcome: SessionOutcome) -> OutcomeSummary:
        """Log a completed session. Storage write failures propagate."""
        return self.feedback.log_outcome(outcome)

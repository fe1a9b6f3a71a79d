"""
Guardrails API Routes

Endpoint for validating a plan against the safety guardrails.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from adaptive_coach.api.dependencies import get_engine
from adaptive_coach.api.models.requests import GuardrailRequest
from adaptive_coach.api.models.responses import GuardrailResponse
from adaptive_coach.engine import DailyPlanningEngine

router = APIRouter()


@router.post("/guardrails/validate", response_model=GuardrailResponse)
def validate_plan(
    request: GuardrailRequest, engine: DailyPlanningEngine = Depends(get_engine)
) -> GuardrailResponse:
    """
    Run every guardrail check against a plan.

    When no plan is supplied, one is built from the context first. The
    verdict is returned as-is; no auto-adjustments are applied.

    Args:
        request: GuardrailRequest with the context and an optional plan

    Returns:
        GuardrailResponse with the verdict and a plain-text summary
    """
    try:
        context = request.context
        readiness = engine.readiness_inferencer.from_context(context)
        workout = request.plan or engine.orchestrator.plan_today(context, readiness=readiness)

        verdict = engine.validator.validate_workout(
            workout,
            user_profile=context.profile,
            recent_sessions=context.history,
            readiness_data=engine.readiness_snapshot(context, readiness),
            training_week=context.training_week,
        )

        return GuardrailResponse(
            is_allowed=verdict.is_allowed,
            summary=engine.validator.display_verdict_summary(verdict),
            verdict=verdict,
        )

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Guardrail validation failed: {str(e)}",
        )

"""
Readiness API Routes

Endpoint for readiness inference.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from adaptive_coach.api.dependencies import get_engine
from adaptive_coach.api.models.requests import ReadinessRequest
from adaptive_coach.api.models.responses import ReadinessResponse
from adaptive_coach.engine import DailyPlanningEngine

router = APIRouter()


def _interpret(score: int) -> str:
    if score >= 8:
        return "Well recovered - train as planned"
    if score >= 5:
        return "Moderately recovered - expect small adjustments"
    return "Poorly recovered - expect a recovery session"


@router.post("/readiness", response_model=ReadinessResponse)
def infer_readiness(
    request: ReadinessRequest, engine: DailyPlanningEngine = Depends(get_engine)
) -> ReadinessResponse:
    """
    Infer today's readiness from the check-in or passive signals.

    The score is stored so later planning calls and the deload guardrail
    can read it back.

    Args:
        request: ReadinessRequest with the athlete context

    Returns:
        ReadinessResponse with the score and its contributing reasons
    """
    try:
        record = engine.assess_readiness(request.context)
        return ReadinessResponse(
            score=record.score,
            interpretation=_interpret(record.score),
            record=record,
        )

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Readiness inference failed: {str(e)}",
        )

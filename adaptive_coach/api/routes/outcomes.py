"""
Outcomes API Routes

Endpoint for logging completed sessions.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from adaptive_coach.api.dependencies import get_engine
from adaptive_coach.api.models.requests import OutcomeRequest
from adaptive_coach.api.models.responses import OutcomeResponse
from adaptive_coach.engine import DailyPlanningEngine
from adaptive_coach.exceptions import StorageError

router = APIRouter()


@router.post("/outcomes", response_model=OutcomeResponse, status_code=status.HTTP_201_CREATED)
def log_outcome(
    request: OutcomeRequest, engine: DailyPlanningEngine = Depends(get_engine)
) -> OutcomeResponse:
    """
    Log a completed session and return the next-session recommendation.

    Args:
        request: OutcomeRequest with the session results

    Returns:
        OutcomeResponse with average RPE, completion, load and recommendation

    Raises:
        HTTPException: 503 if the outcome could not be stored
    """
    try:
        summary = engine.record_outcome(request.outcome)
        return OutcomeResponse(summary=summary)

    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Outcome could not be stored: {str(e)}",
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Outcome logging failed: {str(e)}",
        )

"""
Plans API Routes

Endpoint for today's adaptive plan.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from adaptive_coach.api.dependencies import get_engine
from adaptive_coach.api.models.requests import PlanRequest
from adaptive_coach.api.models.responses import PlanResponse
from adaptive_coach.engine import DailyPlanningEngine
from adaptive_coach.exceptions import PlanInvariantError
from adaptive_coach.trace import DecisionTraceBuilder

router = APIRouter()


@router.post("/plans/today", response_model=PlanResponse)
def plan_today(
    request: PlanRequest, engine: DailyPlanningEngine = Depends(get_engine)
) -> PlanResponse:
    """
    Build today's plan for the athlete in the request context.

    Complete workflow:
    1. Infer readiness and check the load trend
    2. Synthesize the plan from the adjustment pipeline
    3. Resolve schedule conflicts
    4. Run the safety guardrails and apply auto-adjustments

    A blocked plan is still returned; ``needs_acknowledgement`` tells the
    client it must be surfaced before training.

    Args:
        request: PlanRequest with the athlete context

    Returns:
        PlanResponse with the final plan and the full planning result

    Raises:
        HTTPException: If the plan cannot be built
    """
    try:
        result = engine.plan_day(request.context)

        trace_markdown = None
        if request.include_trace:
            trace_markdown = DecisionTraceBuilder(result).export_to_markdown()

        return PlanResponse(
            plan=result.plan,
            needs_acknowledgement=result.needs_acknowledgement,
            warnings=result.plan.warnings,
            result=result,
            trace_markdown=trace_markdown,
        )

    except PlanInvariantError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Plan could not satisfy its constraints: {str(e)}",
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Plan generation failed: {str(e)}",
        )

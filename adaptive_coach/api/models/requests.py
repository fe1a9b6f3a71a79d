"""
API Request Models

Pydantic models for API request validation.
"""

from typing import Optional

from pydantic import BaseModel, Field

from adaptive_coach.plan_schemas import Plan
from adaptive_coach.schemas import Context, SessionOutcome


class PlanRequest(BaseModel):
    """Request model for today's plan."""

    context: Context = Field(..., description="Athlete context for the plan date")
    include_trace: bool = Field(
        default=False, description="Attach the Markdown decision trace to the response"
    )


class ReadinessRequest(BaseModel):
    """Request model for readiness inference."""

    context: Context = Field(..., description="Athlete context with an optional check-in")


class GuardrailRequest(BaseModel):
    """Request model for guardrail validation."""

    context: Context = Field(..., description="Athlete context supplying history and readiness")
    plan: Optional[Plan] = Field(
        None, description="Plan to validate; built from the context when omitted"
    )


class OutcomeRequest(BaseModel):
    """Request model for logging a completed session."""

    outcome: SessionOutcome = Field(..., description="Completed session results")

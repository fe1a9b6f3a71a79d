"""
API Response Models

Pydantic models for API responses.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from adaptive_coach.plan_schemas import Plan, PlanningResult
from adaptive_coach.schemas import GuardrailVerdict, OutcomeSummary, ReadinessRecord


class PlanResponse(BaseModel):
    """Response for POST /api/plans/today."""

    plan: Plan = Field(..., description="Final plan after conflicts and guardrails")
    needs_acknowledgement: bool = Field(
        ..., description="Whether a block or high-severity conflict must be acknowledged"
    )
    warnings: List[str] = Field(default_factory=list, description="Plan warnings")
    result: PlanningResult = Field(..., description="Full planning result")
    trace_markdown: Optional[str] = Field(None, description="Markdown decision trace")


class ReadinessResponse(BaseModel):
    """Response for POST /api/readiness."""

    score: int = Field(..., description="Readiness score (1-10)")
    interpretation: str = Field(..., description="Human-readable interpretation")
    record: ReadinessRecord = Field(..., description="Full readiness record")


class GuardrailResponse(BaseModel):
    """Response for POST /api/guardrails/validate."""

    is_allowed: bool = Field(..., description="False when any check blocks")
    summary: str = Field(..., description="Plain-text verdict summary")
    verdict: GuardrailVerdict = Field(..., description="Full guardrail verdict")


class OutcomeResponse(BaseModel):
    """Response for POST /api/outcomes."""

    summary: OutcomeSummary = Field(..., description="Outcome summary and next-session recommendation")

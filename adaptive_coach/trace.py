"""
Decision trace export.

This module documents one planning cycle for human review and auditability:
readiness, load, the ordered adjustment trail, schedule conflicts and the
guardrail verdict. Traces are exported to JSON and Markdown.
"""

import json
from pathlib import Path

from pydantic import ValidationError

from adaptive_coach.plan_schemas import PlanningResult
from adaptive_coach.schemas import CheckSeverity


class DecisionTraceBuilder:
    """
    Builds and exports the decision trace for a planning result.

    The trace is the complete audit trail showing:
    - What readiness and load signals were used
    - Which adjustments were applied, in order, and why
    - What schedule conflicts were found
    - What each guardrail check decided
    """

    def __init__(self, result: PlanningResult):
        """
        Initialize trace builder.

        Args:
            result: Planning result to document
        """
        self.result = result

    def export_to_json(self) -> dict:
        """
        Export the planning result to a JSON-serializable dictionary.

        Returns:
            Dictionary representation of the result
        """
        return self.result.model_dump(mode="json")

    def export_to_markdown(self) -> str:
        """
        Export the trace to human-readable Markdown.

        Returns:
            Markdown-formatted trace report
        """
        result = self.result
        plan = result.plan
        readiness = result.readiness
        lines = []

        # Header
        lines.append("# Decision Trace")
        lines.append("")
        lines.append(f"**Athlete:** `{plan.user_id}`")
        lines.append(f"**Date:** {plan.plan_date.isoformat()}")
        lines.append(f"**Generated:** {plan.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
        lines.append(f"**Workout Type:** **{plan.workout_type.value.upper()}**")
        status = "ALLOWED" if result.verdict.is_allowed else "BLOCKED"
        lines.append(f"**Guardrails:** **{status}**")
        if result.needs_acknowledgement:
            lines.append("**Acknowledgement required:** yes")
        lines.append("")
        lines.append("---")
        lines.append("")

        # Signals
        lines.append("## Signals")
        lines.append("")
        lines.append(
            f"- **Readiness:** {readiness.score}/10 "
            f"({readiness.source.value}, {readiness.confidence.value} confidence)"
        )
        for reason in readiness.reasons:
            lines.append(f"  - {reason}")
        spike = result.load_spike
        spike_label = "spike" if spike.is_spike else "no spike"
        lines.append(f"- **Load ratio:** {spike.ratio:.2f} ({spike_label}, {spike.severity.value})")
        lines.append("")
        lines.append("---")
        lines.append("")

        # Plan
        lines.append("## Plan")
        lines.append("")
        lines.append(f"- **Intensity scale:** {plan.intensity_scale:.2f}")
        lines.append(f"- **Volume multiplier:** {plan.volume_multiplier:.2f}")
        lines.append(f"- **Progression multiplier:** {plan.progression_multiplier:.3f}")
        if plan.time_limit_minutes:
            lines.append(
                f"- **Duration:** {plan.total_duration_minutes} min (limit {plan.time_limit_minutes} min)"
            )
        if plan.restricted_body_parts:
            lines.append(f"- **Restricted:** {', '.join(plan.restricted_body_parts)}")
        lines.append("")

        for block in plan.blocks:
            lines.append(f"### {block.name.value} ({block.duration_minutes} min)")
            lines.append("")
            lines.append("| Exercise | Sets x Reps | Target RPE | Notes |")
            lines.append("|----------|-------------|------------|-------|")
            for item in block.items:
                rpe = f"{item.target_rpe:g}" if item.target_rpe is not None else "-"
                notes = item.notes or ""
                if item.superset_group:
                    notes = f"Superset {item.superset_group}. {notes}".strip()
                lines.append(f"| {item.name} | {item.sets} x {item.reps} | {rpe} | {notes} |")
            lines.append("")

        lines.append("---")
        lines.append("")

        # Rationale trail
        lines.append("## Adjustment Trail")
        lines.append("")
        if not plan.rationale:
            lines.append("*Baseline plan; no adjustments applied*")
        else:
            for i, entry in enumerate(plan.rationale, 1):
                lines.append(f"{i}. {entry}")
        lines.append("")

        if plan.plan_decisions:
            lines.append("### Decisions")
            lines.append("")
            for decision in plan.plan_decisions:
                lines.append(f"#### {decision.decision_point}")
                lines.append(f"- **Factors:** {', '.join(decision.input_factors)}")
                lines.append(f"- **Reasoning:** {decision.reasoning}")
                lines.append(f"- **Outcome:** {decision.outcome}")
                lines.append("")

        if plan.warnings:
            lines.append("### ⚠️ Warnings")
            lines.append("")
            for warning in plan.warnings:
                lines.append(f"- {warning}")
            lines.append("")

        lines.append("---")
        lines.append("")

        # Conflicts
        lines.append("## Schedule Conflicts")
        lines.append("")
        conflicts = result.conflicts
        if not conflicts.conflicts:
            lines.append("*No schedule conflicts*")
        else:
            proceed = "yes" if conflicts.can_proceed else "no (safe template applied)"
            lines.append(f"**Can proceed as proposed:** {proceed}")
            lines.append("")
            for conflict in conflicts.conflicts:
                lines.append(
                    f"- **{conflict.conflict_type.value}** ({conflict.severity.value}): {conflict.message}"
                )
                if conflict.recommendation:
                    lines.append(f"  - Recommendation: {conflict.recommendation}")
        lines.append("")
        lines.append("---")
        lines.append("")

        # Guardrails
        lines.append("## Guardrail Checks")
        lines.append("")
        icons = {CheckSeverity.PASS: "✅", CheckSeverity.WARN: "⚠️", CheckSeverity.BLOCK: "⛔"}
        for check in result.verdict.checks:
            lines.append(f"- {icons[check.severity]} `{check.check_name}`: {check.message}")
            if check.suggested_adjustment:
                lines.append(f"  - Suggested: {check.suggested_adjustment.describe()}")
        lines.append("")

        if result.verdict.modifications:
            lines.append("### Applied Auto-adjustments")
            lines.append("")
            for modification in result.verdict.modifications:
                lines.append(f"- {modification}")
            lines.append("")

        return "\n".join(lines)

    def save_to_file(self, output_dir: Path, format: str = "json") -> Path:
        """
        Save the trace to a file.

        Args:
            output_dir: Directory to save the trace in
            format: Output format ("json" or "markdown")

        Returns:
            Path to the saved file

        Raises:
            ValueError: If the format is unsupported
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        plan = self.result.plan
        stem = f"trace_{plan.user_id}_{plan.plan_date.isoformat()}"

        if format == "json":
            filepath = output_dir / f"{stem}.json"
            with open(filepath, "w") as f:
                json.dump(self.export_to_json(), f, indent=2, default=str)
        elif format == "markdown":
            filepath = output_dir / f"{stem}.md"
            with open(filepath, "w") as f:
                f.write(self.export_to_markdown())
        else:
            raise ValueError(f"Unsupported format: {format}. Use 'json' or 'markdown'")

        return filepath


def load_result_from_file(filepath: Path) -> PlanningResult:
    """
    Load a planning result from a JSON trace file.

    Args:
        filepath: Path to trace JSON file

    Returns:
        PlanningResult object

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If JSON is invalid
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Trace file not found: {filepath}")

    with open(filepath, "r") as f:
        data = json.load(f)

    try:
        return PlanningResult.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid trace file: {e}") from e

"""
Command-line interface for the adaptive training engine.

Provides commands for:
- Today's plan (with decision trace export)
- Readiness inference
- Outcome logging
- Guardrail validation
"""

import json
from pathlib import Path
from typing import Optional, Type, TypeVar

import typer
from pydantic import BaseModel, ValidationError
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adaptive_coach.config import get_settings
from adaptive_coach.database import DatabaseStorage
from adaptive_coach.engine import DailyPlanningEngine
from adaptive_coach.logger import setup_logger
from adaptive_coach.plan_schemas import Plan, PlanningResult
from adaptive_coach.schemas import (
    CheckSeverity,
    Context,
    GuardrailVerdict,
    OutcomeSummary,
    ReadinessRecord,
    SessionOutcome,
)
from adaptive_coach.storage import StorageCollaborator
from adaptive_coach.trace import DecisionTraceBuilder

# Initialize Typer app and Rich console
app = typer.Typer(help="Adaptive Coach - readiness-aware daily training plans with safety guardrails")
console = Console()

ModelT = TypeVar("ModelT", bound=BaseModel)


# ===== LOADING HELPERS =====


def _load_model(path: Path, model: Type[ModelT], label: str) -> ModelT:
    """Load and validate a JSON file, exiting with a readable error on failure."""
    try:
        with open(path, "r") as f:
            data = json.load(f)
        loaded = model.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        console.print(f"[red]✗ Failed to load {label}: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"✓ Loaded {label}: [green]{path}[/green]")
    return loaded


def _build_engine(database: Optional[str]) -> DailyPlanningEngine:
    settings = get_settings()
    setup_logger(level=settings.log_level, log_file=settings.log_file)
    storage: Optional[StorageCollaborator] = None
    if database:
        storage = DatabaseStorage(database)
    return DailyPlanningEngine(storage=storage, settings=settings)


# ===== DISPLAY HELPER FUNCTIONS =====


def _display_readiness(record: ReadinessRecord):
    """
    Display a readiness score with colour-coded interpretation.

    Args:
        record: ReadinessRecord from the inferencer
    """
    if record.score >= 8:
        color = "green"
    elif record.score >= 5:
        color = "yellow"
    else:
        color = "red"

    console.print(
        f"\n[bold]Readiness: [{color}]{record.score}/10[/{color}] "
        f"({record.source.value}, {record.confidence.value} confidence)[/bold]"
    )
    for reason in record.reasons:
        console.print(f"  • {reason}")


def _display_plan(plan: Plan):
    """
    Display a plan as one table per block plus its adjustment trail.

    Args:
        plan: Final plan
    """
    console.print(
        f"\n✓ [green]{plan.workout_type.value.replace('_', ' ').title()}[/green] session, "
        f"{plan.total_duration_minutes} min"
    )
    console.print(
        f"  Intensity: {plan.intensity_scale:.2f}  Volume: {plan.volume_multiplier:.2f}  "
        f"Progression: {plan.progression_multiplier:.3f}"
    )

    for block in plan.blocks:
        table = Table(title=f"{block.name.value} ({block.duration_minutes} min)", box=box.ROUNDED)
        table.add_column("Exercise", style="cyan")
        table.add_column("Sets x Reps", justify="center")
        table.add_column("RPE", justify="right", style="yellow")
        table.add_column("Notes")
        for item in block.items:
            rpe = f"{item.target_rpe:g}" if item.target_rpe is not None else "-"
            notes = item.notes or ""
            if item.superset_group:
                notes = f"[magenta]{item.superset_group}[/magenta] {notes}"
            table.add_row(item.name, f"{item.sets} x {item.reps}", rpe, notes)
        console.print(table)

    if plan.rationale:
        console.print("\n[bold]Why this plan:[/bold]")
        for i, entry in enumerate(plan.rationale, 1):
            console.print(f"  {i}. {entry}")

    if plan.warnings:
        console.print("\n[bold yellow]Warnings:[/bold yellow]")
        for warning in plan.warnings:
            console.print(f"  ⚠️  {warning}")


def _display_verdict(verdict: GuardrailVerdict):
    """
    Display guardrail check results.

    Args:
        verdict: GuardrailVerdict from the validator
    """
    if verdict.is_allowed:
        console.print("\n[bold green]✓ Guardrails: ALLOWED[/bold green]")
    else:
        console.print("\n[bold red]⛔ Guardrails: BLOCKED[/bold red]")
        for block in verdict.blocks:
            console.print(Panel(block.message, title=block.check_name, border_style="red"))

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Check", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Detail")
    icons = {CheckSeverity.PASS: "✅", CheckSeverity.WARN: "⚠️", CheckSeverity.BLOCK: "⛔"}
    for check in verdict.checks:
        table.add_row(check.check_name, icons[check.severity], check.message)
    console.print(table)

    if verdict.modifications:
        console.print("\n[bold]Auto-adjustments:[/bold]")
        for modification in verdict.modifications:
            console.print(f"  → {modification}")


def _display_result(result: PlanningResult):
    _display_readiness(result.readiness)
    spike = result.load_spike
    if spike.is_spike:
        console.print(f"[red]Load spike: ratio {spike.ratio:.2f} ({spike.severity.value})[/red]")
    _display_plan(result.plan)

    if result.conflicts.conflicts:
        console.print("\n[bold]Schedule conflicts:[/bold]")
        for conflict in result.conflicts.conflicts:
            console.print(f"  {conflict.conflict_type.value} ({conflict.severity.value}): {conflict.message}")
        for recommendation in result.conflicts.recommendations:
            console.print(f"    → {recommendation}")

    _display_verdict(result.verdict)

    if result.needs_acknowledgement:
        console.print(
            "\n[bold yellow]This plan needs your acknowledgement before training.[/bold yellow]"
        )


def _display_outcome(summary: OutcomeSummary):
    avg = f"{summary.average_rpe:g}" if summary.average_rpe is not None else "not recorded"
    console.print(f"\n[bold]Session {summary.session_date}[/bold]")
    console.print(f"  Average RPE: {avg}")
    console.print(f"  Completion: {summary.completion_rate * 100:.0f}%")
    console.print(f"  Load: {summary.session_load:.1f}")

    recommendation = summary.recommendation
    console.print(
        f"\n[bold]Next session:[/bold] load {recommendation.load_delta * 100:+.1f}%, "
        f"volume x{recommendation.volume_multiplier:.2f}"
    )
    for line in recommendation.rationale:
        console.print(f"  • {line}")


# ===== COMMANDS =====


@app.command()
def plan(
    context_file: Path = typer.Argument(..., help="Path to a context JSON file", exists=True),
    database: Optional[str] = typer.Option(
        None,
        "--database",
        "-d",
        help="SQLAlchemy URL for persistent storage (in-memory when omitted)",
    ),
    trace_out: Optional[Path] = typer.Option(
        None,
        "--trace-out",
        "-t",
        help="Directory to save the decision trace in",
    ),
    trace_format: str = typer.Option(
        "markdown",
        "--trace-format",
        "-f",
        help="Trace output format (json or markdown)",
    ),
):
    """
    Build today's plan from a context file.

    Runs readiness, load, plan synthesis, schedule conflicts and guardrails.
    """
    console.print("\n[bold cyan]Adaptive Coach - Today's Plan[/bold cyan]\n")
    context = _load_model(context_file, Context, "context")

    engine = _build_engine(database)
    try:
        result = engine.plan_day(context)
    finally:
        engine.close()

    _display_result(result)

    if trace_out:
        try:
            trace_path = DecisionTraceBuilder(result).save_to_file(trace_out, format=trace_format)
        except ValueError as e:
            console.print(f"[red]✗ {e}[/red]")
            raise typer.Exit(1)
        console.print(f"\n✓ Decision trace saved: [cyan]{trace_path}[/cyan]")

    console.print()


@app.command()
def readiness(
    context_file: Path = typer.Argument(..., help="Path to a context JSON file", exists=True),
):
    """Infer today's readiness score from a check-in or passive signals."""
    context = _load_model(context_file, Context, "context")
    engine = _build_engine(None)
    try:
        record = engine.readiness_inferencer.from_context(context)
    finally:
        engine.close()
    _display_readiness(record)
    console.print()


@app.command("log-outcome")
def log_outcome(
    outcome_file: Path = typer.Argument(..., help="Path to a session outcome JSON file", exists=True),
    database: Optional[str] = typer.Option(
        None,
        "--database",
        "-d",
        help="SQLAlchemy URL for persistent storage (in-memory when omitted)",
    ),
):
    """Log a completed session and show the next-session recommendation."""
    outcome = _load_model(outcome_file, SessionOutcome, "outcome")
    engine = _build_engine(database)
    try:
        summary = engine.record_outcome(outcome)
    finally:
        engine.close()
    _display_outcome(summary)
    console.print()


@app.command()
def validate(
    context_file: Path = typer.Argument(..., help="Path to a context JSON file", exists=True),
    plan_file: Optional[Path] = typer.Option(
        None,
        "--plan",
        "-p",
        help="Plan JSON to validate (built from the context when omitted)",
        exists=True,
    ),
):
    """Run the safety guardrails against a plan."""
    context = _load_model(context_file, Context, "context")
    engine = _build_engine(None)
    try:
        readiness_record = engine.readiness_inferencer.from_context(context)
        if plan_file:
            workout = _load_model(plan_file, Plan, "plan")
        else:
            workout = engine.orchestrator.plan_today(context, readiness=readiness_record)
        verdict = engine.validator.validate_workout(
            workout,
            user_profile=context.profile,
            recent_sessions=context.history,
            readiness_data=engine.readiness_snapshot(context, readiness_record),
            training_week=context.training_week,
        )
        console.print()
        console.print(engine.validator.display_verdict_summary(verdict))
    finally:
        engine.close()

    if not verdict.is_allowed:
        raise typer.Exit(2)


if __name__ == "__main__":
    app()

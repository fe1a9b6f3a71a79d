#!/usr/bin/env python3
"""
Quick start script to demonstrate the Adaptive Coach planning loop.

This script shows the complete workflow:
1. Plan a deload week for a well-recovered athlete
2. Plan around knee pain and poor readiness (guardrails block)
3. Plan the day before a game (safe template applied)
4. Log the completed session and read the next-session recommendation
5. Export a decision trace
"""

import json
from pathlib import Path

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adaptive_coach.config import Settings
from adaptive_coach.engine import DailyPlanningEngine
from adaptive_coach.logger import setup_logger
from adaptive_coach.plan_schemas import PlanningResult
from adaptive_coach.schemas import Context, SessionOutcome
from adaptive_coach.storage import InMemoryStorage
from adaptive_coach.trace import DecisionTraceBuilder

console = Console()

FIXTURES = Path("tests/fixtures")


def print_header(title: str):
    """Print a formatted header."""
    console.print(f"\n[bold cyan]{title}[/bold cyan]")
    console.print("=" * len(title))


def load_context(name: str) -> Context:
    with open(FIXTURES / name) as f:
        return Context.model_validate(json.load(f))


def show_result(result: PlanningResult):
    """Print readiness, the plan's main block and the guardrail status."""
    plan = result.plan
    console.print(
        f"  Readiness: {result.readiness.score}/10 ({result.readiness.source.value})"
    )
    console.print(
        f"  Workout: [green]{plan.workout_type.value}[/green], {plan.total_duration_minutes} min, "
        f"intensity {plan.intensity_scale:.2f}, volume {plan.volume_multiplier:.2f}"
    )

    table = Table(box=box.ROUNDED)
    table.add_column("Block", style="cyan")
    table.add_column("Exercises")
    for block in plan.blocks:
        table.add_row(block.name.value, ", ".join(item.name for item in block.items))
    console.print(table)

    for entry in plan.rationale:
        console.print(f"  • {entry}")

    if result.verdict.is_allowed:
        console.print("  Guardrails: [green]ALLOWED[/green]")
    else:
        console.print("  Guardrails: [red]BLOCKED[/red]")
        for block in result.verdict.blocks:
            console.print(f"    - {block.check_name}: {block.message}")

    for conflict in result.conflicts.conflicts:
        console.print(
            f"  Conflict ({conflict.severity.value}) {conflict.conflict_type.value}: {conflict.message}"
        )

    if result.needs_acknowledgement:
        console.print("  [yellow]Athlete acknowledgement required[/yellow]")


def main():
    """Run the complete demonstration workflow."""
    console.print("\n[bold magenta]🏋️  Adaptive Coach[/bold magenta]")
    console.print("[dim]Demonstration of the daily planning loop[/dim]\n")

    setup_logger(level="WARNING")
    engine = DailyPlanningEngine(storage=InMemoryStorage(), settings=Settings())

    # ===== STEP 1: Deload Week =====
    print_header("Step 1: Deload Week, Good Readiness")
    deload_result = engine.plan_day(load_context("context_deload_week.json"))
    show_result(deload_result)

    # ===== STEP 2: Knee Pain =====
    print_header("Step 2: Knee Pain, Poor Readiness")
    show_result(engine.plan_day(load_context("context_low_readiness_knee.json")))

    # ===== STEP 3: Game Tomorrow =====
    print_header("Step 3: Game Tomorrow")
    show_result(engine.plan_day(load_context("context_game_tomorrow.json")))

    # ===== STEP 4: Log Outcome =====
    print_header("Step 4: Log Session Outcome")
    with open(FIXTURES / "outcome_strength_session.json") as f:
        outcome = SessionOutcome.model_validate(json.load(f))
    summary = engine.record_outcome(outcome)

    avg = f"{summary.average_rpe:g}" if summary.average_rpe is not None else "not recorded"
    console.print(f"  Average RPE: {avg}")
    console.print(f"  Completion: {summary.completion_rate * 100:.0f}%")
    console.print(f"  Session load: {summary.session_load:.1f}")
    console.print(
        f"  Next session: load {summary.recommendation.load_delta * 100:+.1f}%, "
        f"volume x{summary.recommendation.volume_multiplier:.2f}"
    )

    # ===== STEP 5: Decision Trace =====
    print_header("Step 5: Export Decision Trace")
    trace_path = DecisionTraceBuilder(deload_result).save_to_file(Path("traces"), format="markdown")
    console.print(f"✓ Trace saved to: [cyan]{trace_path}[/cyan]")

    engine.close()

    # ===== COMPLETION =====
    console.print("\n")
    panel = Panel(
        "[green]✓[/green] Demonstration complete!\n\n"
        "The engine:\n"
        "  1. Scored readiness from check-ins\n"
        "  2. Adjusted plans for deloads, pain and games\n"
        "  3. Ran the safety guardrails\n"
        "  4. Turned a logged session into a recommendation\n\n"
        "Every adjustment is recorded in the decision trace.",
        title="[bold green]Success[/bold green]",
        border_style="green",
    )
    console.print(panel)

    console.print("\n[bold cyan]Next Steps:[/bold cyan]")
    console.print("  • Review the trace in traces/")
    console.print("  • Run CLI: adaptive-coach plan tests/fixtures/context_deload_week.json")
    console.print("  • Start the API: uvicorn adaptive_coach.api.main:app --reload")
    console.print("  • Run tests: python3 -m pytest\n")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        console.print(f"\n[red]Error: {e}[/red]")
        console.print("\n[dim]Run from the repository root after: pip install -e .[/dim]")
        raise

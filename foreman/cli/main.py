"""Main CLI entry point using Typer."""

import json
from pathlib import Path
from typing import Any

import anyio
import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from foreman import __version__
from foreman.core.errors import ForemanError
from foreman.decomposition.models import (
    BatchProgress,
    TechnicalSpecification,
    WorkOrder,
    bind_positional_dependencies,
    to_positional,
)

app = typer.Typer(
    name="foreman",
    help="Foreman - decomposition and execution orchestration engine",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]Foreman[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Foreman - turn a technical specification into refined code.

    Decomposes specifications into work orders, routes each one to a
    proposer under a daily budget, and refines the output until it passes
    its checks.
    """
    pass


# =============================================================================
# LOADING
# =============================================================================


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[bold red]Cannot read {path}: {e}[/bold red]")
        raise typer.Exit(code=1) from e


def load_specification(path: Path) -> TechnicalSpecification:
    """Load a TechnicalSpecification from a JSON file."""
    try:
        return TechnicalSpecification.model_validate(_read_json(path))
    except PydanticValidationError as e:
        console.print(f"[bold red]Invalid specification in {path}:[/bold red]\n{e}")
        raise typer.Exit(code=1) from e


def load_work_orders(path: Path) -> list[WorkOrder]:
    """Load work orders (positional dependencies) from a JSON file.

    Accepts a bare list or a saved decomposition with a ``work_orders`` key.
    """
    raw = _read_json(path)
    if isinstance(raw, dict):
        raw = raw.get("work_orders", [])

    try:
        work_orders = [WorkOrder.model_validate(item) for item in raw]
    except (PydanticValidationError, TypeError) as e:
        console.print(f"[bold red]Invalid work orders in {path}:[/bold red]\n{e}")
        raise typer.Exit(code=1) from e

    bind_positional_dependencies(work_orders)
    return work_orders


def _work_order_table(work_orders: list[WorkOrder], title: str) -> Table:
    index_by_id = {wo.id: i for i, wo in enumerate(work_orders)}

    table = Table(title=title)
    table.add_column("#", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Risk")
    table.add_column("Budget", justify="right")
    table.add_column("Dependencies")

    for i, wo in enumerate(work_orders):
        deps = ", ".join(str(index_by_id.get(d, d)) for d in wo.dependencies) or "-"
        table.add_row(
            str(i),
            wo.title,
            wo.risk_level.value,
            str(wo.context_budget_estimate),
            deps[:30] + "..." if len(deps) > 30 else deps,
        )
    return table


# =============================================================================
# COMMANDS
# =============================================================================


@app.command()
def estimate(
    spec_file: Path = typer.Argument(..., help="Path to specification JSON"),
) -> None:
    """
    Estimate how many work orders a specification needs.

    Example:
        foreman estimate ./spec.json
    """
    spec = load_specification(spec_file)

    async def do_estimate() -> None:
        from foreman.core.orchestrator import Foreman

        foreman = Foreman()
        result = await foreman.estimate(spec)

        console.print(
            Panel(
                f"[bold]Work orders:[/bold] {result.total_work_orders}\n"
                f"[bold]Batching:[/bold] {'yes' if result.requires_batching else 'no'}\n"
                f"[bold]Estimated cost:[/bold] ${result.estimated_cost:.2f}\n"
                f"[bold]Estimated time:[/bold] {result.estimated_time_seconds}s\n\n"
                f"{result.reasoning}",
                title=f"[bold blue]{spec.feature_name}[/bold blue]",
                border_style="blue",
            )
        )

        if result.batches:
            table = Table(title="Batch Plan")
            table.add_column("Batch", style="cyan")
            table.add_column("Work Orders", justify="right")
            table.add_column("Focus")
            for batch in result.batches:
                table.add_row(
                    batch.name, str(batch.estimated_work_orders), ", ".join(batch.focus_areas)
                )
            console.print(table)

    try:
        anyio.run(do_estimate)
    except ForemanError as e:
        console.print(f"[bold red]Estimation failed: {e}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command()
def decompose(
    spec_file: Path = typer.Argument(..., help="Path to specification JSON"),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file for the decomposition",
    ),
) -> None:
    """
    Decompose a specification into work orders without executing.

    Useful for previewing the work order graph.
    """
    spec = load_specification(spec_file)
    console.print("[bold]Decomposing specification...[/bold]")

    async def do_decompose() -> None:
        from foreman.core.orchestrator import Foreman

        foreman = Foreman()

        def on_progress(progress: BatchProgress) -> None:
            console.print(
                f"[dim]Batch {progress.batch_number}/{progress.total_batches} "
                f"({progress.batch_name}): {progress.status.value}[/dim]"
            )

        foreman.planner.add_callback(on_progress)
        result = await foreman.decompose(spec)

        console.print(_work_order_table(result.work_orders, "Work Order Breakdown"))
        console.print(f"Estimated cost: [bold]${result.total_estimated_cost:.2f}[/bold]")

        for warning in result.warnings:
            console.print(f"[yellow]Warning: {warning}[/yellow]")

        if output:
            output.write_text(json.dumps(result.to_dict(), indent=2))
            console.print(f"[green]Saved to {output}[/green]")

    try:
        anyio.run(do_decompose)
    except ForemanError as e:
        console.print(f"[bold red]Decomposition failed: {e}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command()
def validate(
    work_orders_file: Path = typer.Argument(..., help="Path to work orders JSON"),
    fix: bool = typer.Option(
        False,
        "--fix",
        help="Apply automatic fixes",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file for the fixed work orders",
    ),
) -> None:
    """
    Validate the dependency graph of a work order list.

    Example:
        foreman validate ./decomposition.json --fix -o fixed.json
    """
    from foreman.decomposition.dependency_validator import DependencyValidator

    work_orders = load_work_orders(work_orders_file)
    result = anyio.run(DependencyValidator().validate, work_orders, fix)

    if result.issues:
        table = Table(title="Validation Issues")
        table.add_column("Type", style="cyan")
        table.add_column("Severity")
        table.add_column("Description")
        for issue in result.issues:
            color = "red" if issue.severity.value == "error" else "yellow"
            table.add_row(
                issue.type.value,
                f"[{color}]{issue.severity.value}[/{color}]",
                issue.description,
            )
        console.print(table)

    for strategy in result.fix_strategies:
        marker = "[green]applied[/green]" if strategy.applied else "[dim]suggested[/dim]"
        console.print(f"{marker} {strategy.type.value}: {strategy.description}")

    if result.valid:
        console.print("[bold green]Dependency graph is valid[/bold green]")
    else:
        console.print("[bold red]Dependency graph is invalid[/bold red]")

    if output:
        output.write_text(json.dumps(to_positional(work_orders), indent=2))
        console.print(f"[green]Saved to {output}[/green]")

    if not result.valid:
        raise typer.Exit(code=1)


@app.command()
def route(
    description: str = typer.Argument(..., help="Task description"),
    complexity: float = typer.Option(
        0.5,
        "--complexity",
        "-c",
        min=0.0,
        max=1.0,
        help="Complexity score (0.0-1.0)",
    ),
    spend: float = typer.Option(
        0.0,
        "--spend",
        "-s",
        min=0.0,
        help="Daily spend so far (USD)",
    ),
) -> None:
    """
    Show which proposer a task would be routed to.

    Example:
        foreman route "Add password hashing to signup" --complexity 0.4
    """
    from foreman.core.config import get_settings
    from foreman.routing.models import BudgetLimits, RoutingContext
    from foreman.routing.policy import RoutingPolicy, detect_hard_stop
    from foreman.routing.registry import ProposerRegistry

    settings = get_settings()
    try:
        registry = ProposerRegistry.from_settings(settings)
        limits = BudgetLimits(
            daily_soft_cap=settings.foreman_daily_soft_cap,
            daily_hard_cap=settings.foreman_daily_hard_cap,
            emergency_kill=settings.foreman_emergency_kill,
        )
        context = RoutingContext(
            task_description=description,
            complexity_score=complexity,
            hard_stop_required=detect_hard_stop(description).required,
            daily_spend=spend,
        )
        decision = RoutingPolicy(settings.foreman_hard_stop_proposer).route(
            context, registry.all(), limits
        )
    except ForemanError as e:
        console.print(f"[bold red]Routing refused: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    metadata = decision.routing_metadata
    console.print(
        Panel(
            f"[bold]Proposer:[/bold] {decision.selected_proposer}\n"
            f"[bold]Strategy:[/bold] {metadata.routing_strategy.value}\n"
            f"[bold]Budget status:[/bold] {metadata.budget_status.value}\n"
            f"[bold]Confidence:[/bold] {decision.confidence:.2f}\n"
            f"[bold]Fallback:[/bold] {decision.fallback_proposer or '-'}\n\n"
            f"{decision.reason}",
            title="[bold cyan]Routing Decision[/bold cyan]",
            border_style="cyan",
        )
    )


@app.command()
def run(
    spec_file: Path = typer.Argument(..., help="Path to specification JSON"),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file for the execution report",
    ),
) -> None:
    """
    Decompose a specification and execute every work order.

    Example:
        foreman run ./spec.json -o report.json
    """
    spec = load_specification(spec_file)

    console.print(
        Panel(
            f"[bold]Feature:[/bold] {spec.feature_name}\n"
            f"[bold]Objectives:[/bold] {len(spec.objectives)}",
            title="[bold blue]Foreman[/bold blue]",
            border_style="blue",
        )
    )

    async def execute() -> None:
        from foreman.core.orchestrator import Foreman

        foreman = Foreman()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Executing work orders...", total=None)
            report = await foreman.execute(spec)
            progress.update(task, completed=True)

        status_colors = {
            "completed": "green",
            "partial": "yellow",
            "failed": "red",
            "blocked": "dim",
        }
        table = Table(title="Work Order Outcomes")
        table.add_column("Wave", style="cyan")
        table.add_column("Title", style="bold")
        table.add_column("Status")
        table.add_column("Attempts", justify="right")
        table.add_column("Cost", justify="right")
        for outcome in report.outcomes:
            color = status_colors.get(outcome.status.value, "white")
            table.add_row(
                str(outcome.wave),
                outcome.title,
                f"[{color}]{outcome.status.value}[/{color}]",
                str(outcome.attempts),
                f"${outcome.cost:.4f}",
            )
        console.print(table)

        if report.success:
            console.print("\n[bold green]All work orders completed![/bold green]")
        else:
            console.print("\n[bold yellow]Some work orders did not complete[/bold yellow]")
        console.print(f"[dim]Total cost: ${report.total_cost:.4f}[/dim]")

        if output:
            output.write_text(json.dumps(report.to_dict(), indent=2))
            console.print(f"[green]Saved to {output}[/green]")

    try:
        anyio.run(execute)
    except ForemanError as e:
        console.print(f"[bold red]Execution failed: {e}[/bold red]")
        raise typer.Exit(code=1) from e


if __name__ == "__main__":
    app()

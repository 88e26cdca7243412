"""governance-os CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from governance_os.config import DEFAULT_CONFIG_FILENAME, ConfigError, load_config
from governance_os.models import Task, TaskType
from governance_os.observability import close_file_logging, configure_logging, get_logger
from governance_os.routing import RouterError

# Load environment variables from .env file
load_dotenv()

if TYPE_CHECKING:
    from governance_os.config import GovernanceConfig
    from governance_os.models import PipelineResult
    from governance_os.system import GovernanceOS

log = get_logger(__name__)

app = typer.Typer(
    name="gos",
    help="governance-os: model routing and the governance pipeline.",
    no_args_is_help=True,
)
console = Console()

# Global state set by the callback, used by commands
_config_path: Path | None = None

STATUS_STYLES = {
    "completed": "[green]✓[/green] completed",
    "locked": "[yellow]🔒[/yellow] locked",
    "rejected": "[red]✗[/red] rejected",
    "error": "[red]✗[/red] error",
}


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_file: Annotated[
        Path | None,
        typer.Option("--log", help="Also write every log event to this JSONL file."),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help=f"Configuration file (default: ./{DEFAULT_CONFIG_FILENAME} when present).",
            envvar="GOS_CONFIG",
        ),
    ] = None,
) -> None:
    """governance-os: model routing and the governance pipeline."""
    global _config_path
    _config_path = config
    configure_logging(verbosity=verbose, log_file=log_file)
    if log_file is not None:
        atexit.register(close_file_logging)


def _load_config(mock: bool = False) -> GovernanceConfig:
    """Load configuration, exiting with a red message when it is invalid."""
    path = _config_path or Path(DEFAULT_CONFIG_FILENAME)
    try:
        config = load_config(path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    if mock:
        config.provider.name = "mock"
    log.debug("config_loaded", path=str(path), provider=config.provider.name)
    return config


def _build_system(mock: bool = False) -> GovernanceOS:
    from governance_os.system import GovernanceOS

    return GovernanceOS(_load_config(mock))


def _parse_task_type(value: str) -> TaskType:
    try:
        return TaskType(value)
    except ValueError:
        valid = ", ".join(t.value for t in TaskType)
        console.print(f"[red]Error:[/red] Unknown task type '{value}'. Valid: {valid}")
        raise typer.Exit(1) from None


@app.command()
def classify(
    prompt: Annotated[str, typer.Argument(help="Task prompt to classify.")],
    task_type: Annotated[
        str, typer.Option("--type", "-t", help="Task type (e.g. core_decision, chatter).")
    ] = TaskType.CORE_DECISION.value,
) -> None:
    """Classify a prompt's difficulty."""
    from governance_os.routing import TaskClassifier

    result = TaskClassifier().classify(Task.new(_parse_task_type(task_type), prompt))

    table = Table(title="Classification", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Difficulty", f"[bold]{result.difficulty}[/bold]")
    table.add_row("Confidence", f"{result.confidence}%")
    table.add_row("Suggested tokens", str(result.suggested_tokens))
    table.add_row("Requires tier 2", "yes" if result.requires_tier2 else "no")
    table.add_row("Requires review", "yes" if result.requires_review else "no")
    table.add_row("Reasoning", result.reasoning)
    console.print(table)


@app.command()
def route(
    prompt: Annotated[str, typer.Argument(help="Task prompt to route.")],
    task_type: Annotated[
        str, typer.Option("--type", "-t", help="Task type (e.g. core_decision, chatter).")
    ] = TaskType.CORE_DECISION.value,
    execute: Annotated[
        bool, typer.Option("--execute", "-x", help="Also generate through the chosen chain.")
    ] = False,
    mock: Annotated[bool, typer.Option("--mock", help="Use the deterministic mock provider.")] = False,
) -> None:
    """Show the model selection for a prompt, optionally executing it."""
    system = _build_system(mock)
    task = Task.new(_parse_task_type(task_type), prompt)
    try:
        selection = system.router.route(task)
    except RouterError as e:
        console.print(f"[red]Error:[/red] {e}")
        asyncio.run(system.close())
        raise typer.Exit(1) from None

    console.print(f"[bold]Primary:[/bold] [cyan]{selection.primary_model}[/cyan] (tier {int(selection.tier)})")
    if selection.fallback_models:
        console.print(f"[bold]Fallbacks:[/bold] {', '.join(selection.fallback_models)}")
    console.print(f"[dim]{selection.reasoning}[/dim]")

    if not execute:
        asyncio.run(system.close())
        return

    async def _execute() -> None:
        try:
            result = await system.router.execute(task)
        finally:
            await system.close()
        console.print()
        console.print(Panel(result.content, title=f"{result.model} · ${result.cost_usd:.4f}"))

    try:
        asyncio.run(_execute())
    except RouterError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


@app.command()
def models(
    tier: Annotated[int | None, typer.Option("--tier", help="Only models of this tier.")] = None,
) -> None:
    """List the model catalog."""
    system = _build_system(mock=True)
    entries = [e for e in system.registry.get_all() if tier is None or int(e.tier) == tier]

    table = Table(title=f"Models ({len(entries)})")
    table.add_column("Id", style="cyan")
    table.add_column("Provider")
    table.add_column("Tier", justify="right")
    table.add_column("Capabilities")
    table.add_column("$/1k", justify="right")
    table.add_column("Status")
    for entry in sorted(entries, key=lambda e: (int(e.tier), e.id)):
        table.add_row(
            entry.id,
            str(entry.provider),
            str(int(entry.tier)),
            ", ".join(str(c) for c in entry.capabilities),
            f"{entry.cost_per_1k_tokens:.4f}",
            str(entry.status),
        )
    console.print(table)


@app.command()
def health(
    check_models: Annotated[
        bool, typer.Option("--models", "-m", help="Also health-check every registered model.")
    ] = False,
) -> None:
    """Show system health and budget."""
    system = _build_system()

    async def _check() -> None:
        try:
            if check_models:
                results = await system.registry.check_all_health()
                table = Table(title="Model health")
                table.add_column("Model", style="cyan")
                table.add_column("Status")
                table.add_column("Latency", justify="right")
                for model_id, result in sorted(results.items()):
                    ok = str(result.status) == "available"
                    mark = "[green]✓[/green]" if ok else "[red]✗[/red]"
                    latency = f"{result.latency_ms:.0f} ms" if result.latency_ms is not None else "-"
                    table.add_row(model_id, f"{mark} {result.status}", latency)
                console.print(table)
        finally:
            await system.close()

    asyncio.run(_check())

    report = system.health()
    colour = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}[report.status]
    console.print(f"[bold]System:[/bold] [{colour}]{report.status}[/{colour}]")
    for name, ok in report.components.items():
        console.print(f"  {'[green]✓[/green]' if ok else '[red]✗[/red]'} {name}")

    budget = system.router.budget_status()
    console.print(
        f"[bold]Budget:[/bold] ${budget['spent_today_usd']:.2f} of "
        f"${budget['daily_budget_usd']:.2f} ({budget['percentage_used']:.0f}%)"
    )
    if not report.healthy:
        raise typer.Exit(1)


@app.command()
def run(
    action: Annotated[
        str | None,
        typer.Option("--action", "-a", help="Governance action; sets the risk level when --risk is omitted."),
    ] = None,
    risk: Annotated[
        str | None, typer.Option("--risk", "-r", help="Risk level: LOW, MID or HIGH.")
    ] = None,
    workflow: Annotated[
        str | None, typer.Option("--workflow", "-w", help="Workflow type A-E.")
    ] = None,
    issue: Annotated[str | None, typer.Option("--issue", "-i", help="Existing issue id.")] = None,
    signals: Annotated[
        list[str] | None, typer.Option("--signal", "-s", help="Signal id (repeatable).")
    ] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use the deterministic mock provider.")] = False,
    approve: Annotated[
        bool,
        typer.Option("--approve", help="Approve a locked HIGH-risk run and resume it."),
    ] = False,
) -> None:
    """Run the governance pipeline once."""
    from governance_os.models import RiskLevel

    risk_level = None
    if risk is not None:
        try:
            risk_level = RiskLevel(risk.upper())
        except ValueError:
            console.print(f"[red]Error:[/red] Unknown risk level '{risk}'")
            raise typer.Exit(1) from None
    workflow_type = workflow.upper() if workflow else None
    if workflow_type is not None and workflow_type not in ("A", "B", "C", "D", "E"):
        console.print(f"[red]Error:[/red] Unknown workflow type '{workflow}'")
        raise typer.Exit(1)

    system = _build_system(mock)

    async def _run() -> PipelineResult:
        try:
            result = await system.run_pipeline(
                issue_id=issue,
                workflow_type=workflow_type,
                risk_level=risk_level,
                action=action,
                signal_ids=list(signals or []),
            )
            if result.status == "locked" and approve:
                _print_result(result)
                system.approve(result.context.id)
                console.print("[yellow]Approved by both houses; resuming...[/yellow]")
                resumed = await system.resume_pipeline(result.context.id)
                if resumed is not None:
                    result = resumed
            return result
        finally:
            await system.close()

    result = asyncio.run(_run())
    _print_result(result)
    if result.status in ("error", "rejected"):
        raise typer.Exit(1)


def _print_result(result: PipelineResult) -> None:
    ctx = result.context
    console.print()
    console.print(f"[bold]Run[/bold] {ctx.id}: {STATUS_STYLES.get(result.status, result.status)}")
    console.print(f"  Risk: {ctx.risk_level}")
    console.print(f"  Stages: {' → '.join(str(s) for s in ctx.completed_stages) or '-'}")
    if result.documents:
        for document in result.documents:
            console.print(f"  [cyan]{document.type}[/cyan] {document.title} ({document.state})")
    if result.voting_result is not None:
        console.print(f"  Voting: {result.voting_result.status}")
    if result.approval_status is not None:
        approval = result.approval_status
        console.print(f"  Approval: {approval.lock_status} ({', '.join(approval.approvers) or 'none'})")
    if ctx.error:
        console.print(f"  [red]{ctx.error}[/red]")


@app.command()
def version() -> None:
    """Show version information."""
    from governance_os import __version__

    console.print(f"governance-os v{__version__}")

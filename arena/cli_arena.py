"""Command-line interface for running puzzle suites."""

import asyncio
import os
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from shared.adapters.openrouter_adapter import OpenRouterAdapter
from shared.utils.logging import setup_logging

from .config import ConfigError, SuiteConfig
from .events import RunEvent
from .puzzle_loader import PUZZLE_TYPES, PuzzleLoader, load_puzzles
from .runner import SUCCESS_STATUSES, RunResult, SuiteOrchestrator
from .trace import read_steps, read_summary

app = typer.Typer(help="Run puzzle suites against models", no_args_is_help=True)
console = Console()

STATUS_STYLES = {
    "success": "green",
    "success_clean": "green",
    "success_with_reveals": "green",
    "fail": "red",
    "gave_up": "yellow",
    "timeout": "magenta",
    "error": "red",
}


class ProgressObserver:
    """Event sink that advances a rich progress bar and prints finished runs."""

    def __init__(self, progress: Optional[Progress], total_runs: int):
        self.progress = progress
        self.completed = 0
        self.total_runs = total_runs
        self.task_id = progress.add_task("Running suite...", total=total_runs) if progress else None

    def _print(self, message: str) -> None:
        (self.progress.console if self.progress else console).print(message)

    def __call__(self, event: RunEvent) -> None:
        if event.type == "run_complete":
            self.completed += 1
            style = STATUS_STYLES.get(event.status, "white")
            icon = "✅" if event.status in SUCCESS_STATUSES else "❌"
            cost = f"${event.cost:.4f}" if event.cost is not None else "$?"
            self._print(
                f"[{style}]{icon} {self.completed}/{self.total_runs} | {event.model_id} | {event.puzzle_id} | "
                f"{event.status} in {event.total_steps} steps | {event.tokens} tokens | {cost}[/{style}]"
            )
            if self.progress is not None:
                self.progress.advance(self.task_id)
        elif event.type == "error":
            self._print(f"[red]❌ {event.model_id} | {event.puzzle_id} | FAILED: {event.error}[/red]")
            if self.progress is not None:
                self.progress.advance(self.task_id)


def _load_suite(suite: Path):
    try:
        config = SuiteConfig.from_yaml(suite)
        puzzles = load_puzzles(config.puzzles)
    except (ConfigError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if not puzzles:
        console.print("[red]Error: No puzzles match the suite's selection[/red]")
        raise typer.Exit(1)
    return config, puzzles


def _display_plan(config: SuiteConfig, puzzles: List) -> None:
    total_runs = len(config.models) * len(puzzles) * config.repeats
    console.print(f"[bold blue]🧩 Suite: {config.name}[/bold blue]")
    if config.description:
        console.print(f"[dim]{config.description}[/dim]")
    console.print(f"Task: {config.task}")
    console.print(f"Models: {', '.join(config.models)}")
    console.print(f"Puzzles: {len(puzzles)}  Repeats: {config.repeats}  Total runs: {total_runs}")
    console.print(
        f"Budgets: {config.max_steps} steps, {config.run_timeout_ms}ms per run, "
        f"{config.step_timeout_ms}ms per step, {config.max_invalid_actions} invalid actions"
    )
    if config.task == "crossword":
        console.print(f"Checks allowed: {config.crossword_rules.allow_checks}")


def _display_results(results: Dict[str, List[RunResult]]) -> None:
    table = Table(title="Suite Results")
    table.add_column("Model", style="cyan")
    table.add_column("Runs", justify="right")
    table.add_column("Solved", justify="right", style="green")
    table.add_column("Fail", justify="right", style="red")
    table.add_column("Gave up", justify="right", style="yellow")
    table.add_column("Timeout", justify="right", style="magenta")
    table.add_column("Error", justify="right", style="red")
    table.add_column("Avg steps", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")

    for model_id, runs in results.items():
        statuses = Counter(r.summary.status for r in runs)
        solved = sum(statuses[s] for s in SUCCESS_STATUSES)
        avg_steps = sum(r.summary.steps_taken for r in runs) / len(runs) if runs else 0
        tokens = sum(r.summary.usage.get("total_tokens", 0) for r in runs)
        costs = [r.summary.cost_total for r in runs]
        cost = f"${sum(costs):.4f}" if costs and None not in costs else "n/a"
        table.add_row(
            model_id,
            str(len(runs)),
            str(solved),
            str(statuses["fail"]),
            str(statuses["gave_up"]),
            str(statuses["timeout"]),
            str(statuses["error"]),
            f"{avg_steps:.1f}",
            str(tokens),
            cost,
        )

    console.print(table)


@app.command()
def run(
    suite: Path = typer.Option(..., "--suite", "-s", help="Path to the suite YAML file"),
    output: Path = typer.Option(Path("runs"), "--output", "-o", help="Directory for run traces"),
    log_path: Path = typer.Option(Path("logs/arena"), help="Directory for log files"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the run plan without calling any model"),
    show_progress: bool = typer.Option(True, "--progress/--no-progress", help="Show a live progress bar"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
):
    """Run a suite: every configured model plays every selected puzzle.

    Models run concurrently; each model plays its runs one after another.
    Every run writes steps.jsonl and summary.json under
    OUTPUT/<suite>/<timestamp>/<model>/<puzzle>/<run id>.
    """
    config, puzzles = _load_suite(suite)
    _display_plan(config, puzzles)

    if dry_run:
        console.print("\n[yellow]DRY RUN - no models were called[/yellow]")
        return

    if not os.getenv("OPENROUTER_API_KEY"):
        console.print("[red]Error: OPENROUTER_API_KEY not set. Try `source .env`[/red]")
        raise typer.Exit(1)

    setup_logging(log_dir=log_path, verbose=verbose)
    client = OpenRouterAdapter(include_usage=config.openrouter.include_usage)
    total_runs = len(config.models) * len(puzzles) * config.repeats

    console.print("\n[bold]Starting suite...[/bold]\n")
    if show_progress:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            observer = ProgressObserver(progress, total_runs)
            orchestrator = SuiteOrchestrator(config, puzzles, client, output_dir=output, emit=observer)
            results = asyncio.run(orchestrator.run())
    else:
        observer = ProgressObserver(None, total_runs)
        orchestrator = SuiteOrchestrator(config, puzzles, client, output_dir=output, emit=observer)
        results = asyncio.run(orchestrator.run())

    console.print("\n[bold]Suite Complete![/bold]")
    _display_results(results)
    console.print(f"[dim]Traces: {orchestrator.suite_dir}[/dim]")


@app.command()
def show(run_dir: Path = typer.Argument(..., help="Run directory containing summary.json")):
    """Show the summary of one run."""
    try:
        summary = read_summary(run_dir)
        steps = read_steps(run_dir)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    style = STATUS_STYLES.get(summary.status, "white")
    table = Table(title=f"Run {summary.run_id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Suite", summary.suite_name)
    table.add_row("Model", summary.model_id)
    table.add_row("Puzzle", f"{summary.puzzle_id} ({summary.task})")
    table.add_row("Status", f"[{style}]{summary.status}[/{style}]")
    table.add_row("Steps", f"{summary.steps_taken} recorded, {len(steps)} in trace")
    table.add_row("Invalid actions", str(summary.invalid_actions))
    table.add_row("Tokens", str(summary.usage.get("total_tokens", 0)))
    table.add_row("Latency", f"{summary.latency_ms_total:.0f}ms")
    table.add_row("Cost", f"${summary.cost_total:.4f}" if summary.cost_total is not None else "n/a")
    for key, value in summary.metrics.items():
        table.add_row(key, str(value))
    if summary.error:
        table.add_row("Error", f"[red]{summary.error}[/red]")
    console.print(table)


@app.command("list-puzzles")
def list_puzzles(
    puzzle_type: str = typer.Option("connections", "--type", "-t", help="Puzzle type: connections or crossword"),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Puzzle file or directory"),
):
    """List available puzzles."""
    if puzzle_type not in PUZZLE_TYPES:
        console.print(f"[red]Error: Unknown puzzle type '{puzzle_type}'. Use one of: {', '.join(PUZZLE_TYPES)}[/red]")
        raise typer.Exit(1)
    try:
        puzzles = PuzzleLoader(puzzle_type, path).load_all()
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Available {puzzle_type} puzzles")
    table.add_column("ID", style="cyan")
    table.add_column("Date")
    table.add_column("Source", style="dim")
    table.add_column("Details")
    for puzzle in puzzles:
        if puzzle_type == "connections":
            details = ", ".join(g.category for g in puzzle.groups)
        else:
            details = f"{puzzle.width}x{puzzle.height}, {len(puzzle.across) + len(puzzle.down)} clues"
        table.add_row(puzzle.id, puzzle.date or "", puzzle.source, details)
    console.print(table)

"""Command-line interface for Puzzle Arena.

This is the unified CLI entry point:
- `puzzle-arena suite run` - Run a suite of puzzles against models
- `puzzle-arena suite show` - Inspect one run
- `puzzle-arena suite list-puzzles` - List available puzzles
"""

import typer
from rich.console import Console

from arena.cli_arena import app as suite_app

# Main application
app = typer.Typer(
    help="Puzzle Arena - Evaluate language models on Connections and Crossword puzzles",
    no_args_is_help=True,
)
console = Console()

app.add_typer(suite_app, name="suite", help="Run and inspect puzzle suites")


@app.callback()
def callback():
    """Puzzle Arena - turn-by-turn puzzle evaluation for language models.

    Examples:

        # Preview a suite without calling any model
        puzzle-arena suite run --suite suites/connections_smoke.yml --dry-run

        # Run it
        puzzle-arena suite run --suite suites/connections_smoke.yml

        # Inspect one run
        puzzle-arena suite show runs/connections-smoke/<timestamp>/<model>/<puzzle>/<run id>
    """
    pass


@app.command()
def version():
    """Show version information."""
    from arena import __version__ as arena_version
    from shared import __version__ as shared_version

    console.print("[bold]Puzzle Arena[/bold]")
    console.print(f"  arena: {arena_version}")
    console.print(f"  shared: {shared_version}")


def main():
    app()


if __name__ == "__main__":
    main()

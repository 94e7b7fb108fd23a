#!/usr/bin/env python3
"""
pi-governor CLI

Rich-based command line for inspecting and running the resource governor.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from .commands.run import run_governor
from .commands.status import show_status
from .commands.storage import cache_stats as show_cache_stats
from .commands.storage import cleanup as run_cleanup
from .commands.storage import rotate_logs as run_rotate_logs
from .commands.validate import validate_config

# Initialize Rich console
console = Console()

# Main app
app = typer.Typer(
    name="pigov",
    help="pi-governor - resource governor for single-board computers",
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)

# Add version callback
def version_callback(value: bool):
    if value:
        from pi_governor_cli import __version__
        console.print(f"pi-governor v{__version__}")
        raise typer.Exit()

@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version information"
    ),
):
    """
    [bold blue]pi-governor[/bold blue]

    Samples CPU, memory, storage and network pressure and keeps a long-running
    service inside the limits of a single-board computer.

    [dim]Examples:[/dim]
        pigov status --json            # One metrics sample as JSON
        pigov cleanup --force          # Age out cache and temp files now
        pigov run                      # Govern until Ctrl+C
    """
    pass

@app.command("status")
def status(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to governor config YAML"),
    as_json: bool = typer.Option(False, "--json", help="Print the sample as JSON"),
):
    """🔍 Take one metrics sample and show the pressure classification."""
    show_status(config=config, as_json=as_json)

@app.command("validate")
def validate(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to governor config YAML"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show a summary of every section"),
):
    """✅ Validate governor configuration."""
    validate_config(config=config, verbose=verbose)

@app.command("rotate-logs")
def rotate_logs(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to governor config YAML"),
):
    """🔄 Rotate logs down to the configured size bound."""
    run_rotate_logs(config=config)

@app.command("cleanup")
def cleanup(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to governor config YAML"),
    force: bool = typer.Option(False, "--force", "-f", help="Clean up even below the usage threshold"),
    as_json: bool = typer.Option(False, "--json", help="Print the cleanup result as JSON"),
):
    """🧹 Remove aged cache and temp files."""
    run_cleanup(config=config, force=force, as_json=as_json)

@app.command("cache-stats")
def cache_stats(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to governor config YAML"),
):
    """🗄️  Show cache tiers and their usage."""
    show_cache_stats(config=config)

@app.command("run")
def run(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to governor config YAML"),
    duration: Optional[float] = typer.Option(None, "--duration", help="Stop after this many seconds"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Do not echo system events"),
):
    """▶️  Run the governor in the foreground until interrupted."""
    run_governor(config=config, duration=duration, quiet=quiet)


if __name__ == "__main__":
    app()

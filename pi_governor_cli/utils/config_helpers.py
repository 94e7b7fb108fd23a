"""
Configuration helper utilities for the pi-governor CLI

Functions to find and load configuration files, and shared message output.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from pi_governor.config import GovernorConfig, build_governor_config, load_governor_config
from pi_governor.exceptions import GovernorError

console = Console()


def find_default_config() -> Optional[Path]:
    """Find the governor configuration file, or None to run on defaults."""
    default_paths = [
        Path("config/governor_config.yaml"),
        Path("governor_config.yaml"),
        Path("/etc/pi-governor/governor_config.yaml"),
    ]

    for config_path in default_paths:
        if config_path.exists():
            return config_path
    return None


def resolve_config(config: Optional[str]) -> GovernorConfig:
    """Load ``config`` (or the default file) and exit with status 1 on errors."""
    config_path = Path(config) if config else find_default_config()
    try:
        if config_path is None:
            return build_governor_config()
        return load_governor_config(config_path)
    except FileNotFoundError as e:
        show_error_message(str(e))
        raise typer.Exit(1)
    except GovernorError as e:
        show_error_message(e.format_diagnostic_message())
        raise typer.Exit(1)


def format_bytes(size: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if abs(size) < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def show_success_message(message: str) -> None:
    console.print(f"✅ [green]{message}[/green]")


def show_warning_message(message: str) -> None:
    console.print(f"⚠️  [yellow]{message}[/yellow]")


def show_error_message(message: str) -> None:
    console.print(f"❌ [red]{escape(message)}[/red]")

"""
Validate command for the pi-governor CLI
"""

from __future__ import annotations

from typing import Optional

from rich.table import Table

from ..utils.config_helpers import console, resolve_config, show_success_message


def validate_config(config: Optional[str] = None, verbose: bool = False) -> None:
    """Load and validate the configuration; exits 1 on the first error."""
    cfg = resolve_config(config)
    show_success_message("Configuration is valid")

    if not verbose:
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Section", style="cyan")
    table.add_column("Enabled", justify="center")
    table.add_column("Key settings", style="dim")

    def flag(value: bool) -> str:
        return "✅" if value else "—"

    table.add_row(
        "collector",
        flag(cfg.collector.enabled),
        f"interval {cfg.collector.interval_seconds}s, adaptive scaling {cfg.collector.adaptive_scaling}",
    )
    table.add_row(
        "thresholds",
        "",
        f"gc {cfg.thresholds.memory_gc}, critical {cfg.thresholds.memory_critical}, cpu {cfg.thresholds.cpu_critical}",
    )
    table.add_row(
        "storage",
        flag(cfg.storage.enabled),
        f"log bound {cfg.storage.max_log_size_bytes} bytes, wear leveling {cfg.storage.wear_leveling_enabled}",
    )
    table.add_row(
        "queue",
        flag(cfg.queue.enabled),
        f"max queue {cfg.queue.max_queue_size}, reduce {cfg.queue.reduce_temperature_c}°C, pause {cfg.queue.pause_temperature_c}°C",
    )
    table.add_row("thermal", flag(cfg.thermal.enabled), "")
    table.add_row(
        "orchestrator",
        flag(cfg.orchestrator.enabled),
        f"health check {cfg.orchestrator.health_check_interval_seconds}s",
    )
    console.print(table)

"""
Storage commands for the pi-governor CLI

One-shot log rotation, cleanup and cache inspection with Rich formatting.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Optional

import typer
from rich.table import Table

from pi_governor.config import GovernorConfig
from pi_governor.storage import StorageManager

from ..utils.config_helpers import (
    console,
    format_bytes,
    resolve_config,
    show_success_message,
    show_warning_message,
)


def build_storage_manager(cfg: GovernorConfig) -> StorageManager:
    return StorageManager(cfg.storage, total_memory_mb=cfg.hardware.resolved_total_memory_mb())


def rotate_logs(config: Optional[str] = None) -> None:
    manager = build_storage_manager(resolve_config(config))
    result = manager.rotate_logs()

    if result.skipped:
        console.print(
            f"📄 Logs at {format_bytes(result.total_size_before)} "
            f"are within the {format_bytes(result.max_size)} bound, nothing to rotate"
        )
        return

    show_success_message(
        f"Logs reduced from {format_bytes(result.total_size_before)} "
        f"to {format_bytes(result.total_size_after)}"
    )
    for path in result.removed_files:
        console.print(f"  🗑️  [dim]removed {path}[/dim]")
    for path in result.rotated_files:
        console.print(f"  🔄 [dim]rotated {path}[/dim]")
    for path in result.failed_files:
        show_warning_message(f"could not process {path}")


def cleanup(config: Optional[str] = None, force: bool = False, as_json: bool = False) -> None:
    manager = build_storage_manager(resolve_config(config))
    result = manager.cleanup_storage(force=force)

    if as_json:
        typer.echo(json.dumps(asdict(result), indent=2))
        return

    if result.skipped:
        console.print(
            f"🧹 Filesystem at {result.usage_percentage_before:.1f}% is below the cleanup "
            f"threshold; use [bold]--force[/bold] to clean anyway"
        )
        return

    show_success_message(
        f"Removed {result.cleaned_files} files ({format_bytes(result.cleaned_size)}), "
        f"usage {result.usage_percentage_before:.1f}% → {result.usage_percentage_after:.1f}%"
    )
    if result.logs_rotated:
        console.print("  🔄 [dim]logs rotated[/dim]")


def cache_stats(config: Optional[str] = None) -> None:
    manager = build_storage_manager(resolve_config(config))
    manager.setup_intelligent_caching()
    cache = manager.cache

    table = Table(title="🗄️  Cache Tiers", show_header=True, header_style="bold blue")
    table.add_column("Tier", style="cyan")
    table.add_column("Path")
    table.add_column("Used", justify="right")

    tiers = []
    if cache.ram_dir is not None:
        tiers.append(("ram", cache.ram_dir))
    tiers.extend(("disk", d) for d in cache.disk_dirs)
    tiers.extend(("external", d) for d in cache.external_cache_dirs())
    for tier, path in tiers:
        used = sum(p.stat().st_size for p in path.rglob("*") if p.is_file()) if path.is_dir() else 0
        table.add_row(tier, str(path), format_bytes(used))

    console.print(table)
    console.print(f"Total cache usage: [bold]{format_bytes(cache.usage())}[/bold]")
    if not cache.external_paths:
        console.print("💡 [dim]No writable external storage detected[/dim]")

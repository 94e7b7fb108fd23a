"""
Status command for the pi-governor CLI

Takes one metrics sample and shows it with the pressure classification.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import typer
from rich.table import Table

from pi_governor.config import GovernorConfig
from pi_governor.orchestration.system_events import plain
from pi_governor.resources import MetricsCollector, SystemMetrics, build_hardware_profile

from ..utils.config_helpers import console, format_bytes, resolve_config


def build_collector(cfg: GovernorConfig) -> MetricsCollector:
    hardware = build_hardware_profile(cfg.hardware.resolved_total_memory_mb())
    return MetricsCollector(hardware, cfg.collector, cfg.thresholds)


def status_snapshot(collector: MetricsCollector, metrics: SystemMetrics) -> Dict[str, Any]:
    limit = collector.get_memory_limit_usage(metrics)
    return {
        "metrics": plain(metrics.without_timestamp()),
        "timestamp": metrics.timestamp,
        "memory_pressure_level": collector.get_memory_pressure_level().value,
        "performance_profile": collector.get_performance_profile(metrics).value,
        "hardware": {
            "total_memory_mb": collector.hardware.total_memory_mb,
            "memory_limit_mb": collector.hardware.memory_limit_mb,
            "within_limit": limit.within_limit,
        },
        "thresholds": collector.get_thresholds().model_dump(),
    }


def show_status(config: Optional[str] = None, as_json: bool = False) -> None:
    cfg = resolve_config(config)
    collector = build_collector(cfg)
    metrics = collector.sample()
    snapshot = status_snapshot(collector, metrics)

    if as_json:
        typer.echo(json.dumps(snapshot, indent=2, sort_keys=True))
        return

    cpu, memory, storage, network = metrics.cpu, metrics.memory, metrics.storage, metrics.network
    table = Table(title="🖥️  Resource Status", show_header=True, header_style="bold blue")
    table.add_column("Resource", style="cyan")
    table.add_column("Value", justify="right")
    table.add_column("Detail", style="dim")

    throttled = " (throttled)" if cpu.throttled else ""
    table.add_row("CPU", f"{cpu.usage_percent:.1f}%", f"{cpu.temperature_c:.1f}°C, {cpu.frequency_mhz:.0f} MHz{throttled}")
    table.add_row(
        "Memory",
        f"{memory.usage_ratio:.0%}",
        f"{format_bytes(memory.used)} of {format_bytes(memory.total)}, swap {format_bytes(memory.swap_used)}",
    )
    table.add_row(
        "Storage",
        f"{storage.usage_ratio:.0%}",
        f"{format_bytes(storage.used)} of {format_bytes(storage.total)}",
    )
    table.add_row(
        "Network",
        f"{network.latency_ms:.0f} ms",
        f"{network.interface}, {network.bandwidth_mbps:.0f} Mbps, {network.packets_lost} lost",
    )
    console.print(table)

    level = snapshot["memory_pressure_level"]
    colour = {"normal": "green", "gc": "yellow", "critical": "red"}.get(level, "white")
    console.print(f"Memory pressure: [{colour}]{level}[/{colour}]")
    console.print(f"Performance profile: [bold]{snapshot['performance_profile']}[/bold]")
    console.print(
        f"Hardware limit: {collector.hardware.memory_limit_mb} MB "
        f"of {collector.hardware.total_memory_mb} MB"
    )

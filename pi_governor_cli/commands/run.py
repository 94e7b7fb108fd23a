"""
Run command for the pi-governor CLI

Starts the orchestrator in the foreground until interrupted.
"""

from __future__ import annotations

import threading
from typing import Optional

import typer

from pi_governor.events import SystemEventRecorded
from pi_governor.exceptions import GovernorError
from pi_governor.orchestration import Orchestrator, Severity

from ..utils.config_helpers import console, resolve_config, show_error_message, show_success_message

SEVERITY_STYLES = {
    Severity.INFO: "dim",
    Severity.WARNING: "yellow",
    Severity.CRITICAL: "red",
    Severity.EMERGENCY: "bold red",
}


def run_governor(
    config: Optional[str] = None,
    duration: Optional[float] = None,
    quiet: bool = False,
    stop_event: Optional[threading.Event] = None,
) -> None:
    """Run until Ctrl+C, ``duration`` seconds, or ``stop_event`` is set."""
    cfg = resolve_config(config)
    orchestrator = Orchestrator(cfg)

    if not quiet:
        def echo(event: SystemEventRecorded) -> None:
            record = event.event
            style = SEVERITY_STYLES.get(record.severity, "white")
            console.print(f"[{style}]{record.severity.value:>9}[/{style}] {record.source}: {record.message}")

        orchestrator.events.subscribe(SystemEventRecorded, echo)

    try:
        orchestrator.start()
    except GovernorError as e:
        show_error_message(e.format_diagnostic_message())
        raise typer.Exit(1)

    show_success_message(f"Governor running (run {orchestrator.logger.get_run_id()}), press Ctrl+C to stop")
    stop_event = stop_event or threading.Event()
    try:
        stop_event.wait(duration)
    except KeyboardInterrupt:
        console.print("\n⏹️  Stopping governor...")
    finally:
        cancelled = orchestrator.stop()

    console.print(
        f"Recorded {orchestrator.history.total_recorded} system events, "
        f"{cancelled} queued requests cancelled at shutdown"
    )

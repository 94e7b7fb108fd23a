"""Recurring background tasks with explicit cancellation handles."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``callback`` every ``interval`` seconds on a daemon thread.

    The wait between runs is an ``Event.wait`` so ``cancel()`` returns
    promptly instead of sleeping out the interval. A failing callback is
    logged and the schedule continues.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], None],
        run_immediately: bool = False,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.callback = callback
        self.run_immediately = run_immediately
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, daemon=True, name=self.name)
            self._thread.start()

    def cancel(self, timeout: float = 2.0) -> None:
        with self._lock:
            self._stop_event.set()
            thread = self._thread
            self._thread = None
        # A task may cancel itself from inside its own callback
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=timeout)

    def _run(self) -> None:
        if self.run_immediately:
            self._execute()
        while not self._stop_event.wait(self._interval):
            self._execute()

    def _execute(self) -> None:
        try:
            self.callback()
        except Exception:
            logger.exception("Periodic task %s failed", self.name)

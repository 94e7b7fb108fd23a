"""
Structured JSON Logging for pi-governor

Every orchestrator-level event is written as one JSON line correlated by a
run id, with a human-readable copy on the console. Log files rotate on size
so the logger never becomes the thing that fills the SD card.
"""

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union


class JSONFormatter(logging.Formatter):
    """Formatter that outputs structured JSON log lines"""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "run_id": self.run_id,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }

        if record.exc_info:
            exc_info = (
                record.exc_info if isinstance(record.exc_info, tuple) else sys.exc_info()
            )
            if exc_info and isinstance(exc_info, tuple):
                log_data["exception"] = {
                    "type": exc_info[0].__name__ if exc_info[0] else None,
                    "message": str(exc_info[1]) if exc_info[1] else None,
                    "traceback": self.formatException(exc_info),
                }

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ProductionLogger:
    """
    Structured logger with run correlation and bounded file output.

    Features:
    - JSON lines to a size-rotated file (when a log directory is given)
    - Human-readable console output
    - Arbitrary structured fields per event via ``log_event(**fields)``
    """

    def __init__(
        self,
        run_id: Optional[str] = None,
        log_level: str = "INFO",
        log_dir: Optional[Union[str, Path]] = None,
        max_bytes: int = 5 * 1024 * 1024,
        backup_count: int = 3,
        console: bool = True,
    ):
        """
        Args:
            run_id: Identifier correlating every line of one governor run.
            log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for the JSON log file. Console only when omitted.
            max_bytes: Size at which the JSON file is rolled over.
            backup_count: Number of rolled files kept.
            console: Attach a console handler.
        """
        self.run_id = run_id or self._generate_run_id()
        self.log_level = getattr(logging, log_level.upper())
        self.log_dir = Path(log_dir) if log_dir else None
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._console = console
        self._setup_logging()

    def _generate_run_id(self) -> str:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        unique_suffix = str(uuid.uuid4())[:8]
        return f"{timestamp}-{unique_suffix}"

    def _setup_logging(self) -> None:
        self.logger = logging.getLogger(f"pi_governor.run.{self.run_id}")
        self.logger.setLevel(self.log_level)

        # Prevent duplicate handlers if logger already exists
        if self.logger.handlers:
            return

        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            json_handler = RotatingFileHandler(
                self.log_dir / "pi-governor.log",
                maxBytes=self._max_bytes,
                backupCount=self._backup_count,
            )
            json_handler.setFormatter(JSONFormatter(self.run_id))
            json_handler.setLevel(self.log_level)
            self.logger.addHandler(json_handler)

        if self._console:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            console_handler.setLevel(self.log_level)
            self.logger.addHandler(console_handler)

        if not self.logger.handlers:
            self.logger.addHandler(logging.NullHandler())

        self.logger.propagate = False

    def log_event(self, level: str, message: str, **kwargs) -> None:
        """
        Log structured event with additional context

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            message: Human-readable log message
            **kwargs: Additional structured data to include in JSON
        """
        record = self.logger.makeRecord(
            name=self.logger.name,
            level=getattr(logging, level.upper()),
            fn="",
            lno=0,
            msg=message,
            args=(),
            exc_info=None,
        )
        record.extra_data = kwargs
        self.logger.handle(record)

    def info(self, message: str, **kwargs) -> None:
        self.log_event("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.log_event("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self.log_event("ERROR", message, **kwargs)

    def critical(self, message: str, **kwargs) -> None:
        self.log_event("CRITICAL", message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log exception with traceback"""
        record = self.logger.makeRecord(
            name=self.logger.name,
            level=logging.ERROR,
            fn="",
            lno=0,
            msg=message,
            args=(),
            exc_info=sys.exc_info(),
        )
        record.extra_data = kwargs
        self.logger.handle(record)

    def get_run_id(self) -> str:
        return self.run_id

    def close(self) -> None:
        """Close all handlers and cleanup"""
        for handler in self.logger.handlers[:]:
            handler.close()
            self.logger.removeHandler(handler)


def get_logger(
    run_id: Optional[str] = None,
    log_level: str = "INFO",
    log_dir: Optional[Union[str, Path]] = None,
    console: bool = True,
) -> ProductionLogger:
    """Factory function returning a configured production logger."""
    return ProductionLogger(
        run_id=run_id, log_level=log_level, log_dir=log_dir, console=console
    )

"""Structured logging module with JSON output support."""

import json
import sys
import traceback
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pricebar.utils.config import config

LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}


class StructuredLogger:
    """Logger that writes one JSON object per line."""

    def __init__(self, component: str, file_path: str | None = None, level: str = "INFO"):
        """
        Initialize the structured logger.

        Args:
            component: Name of the component using this logger
            file_path: Optional path to append log lines to
            level: Minimum level that is written
        """
        self.component = component
        self.file_path = file_path
        self.level = level.upper()
        if file_path:
            Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    def is_enabled_for(self, level: str) -> bool:
        return LEVELS.get(level.upper(), LEVELS["INFO"]) >= LEVELS.get(self.level, LEVELS["INFO"])

    def _format_log_entry(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level,
            "component": self.component,
            "message": message,
        }

        if context:
            entry["context"] = context

        if exception is not None:
            entry["exception"] = {
                "type": type(exception).__name__,
                "message": str(exception),
                "stack_trace": "".join(
                    traceback.format_exception(type(exception), exception, exception.__traceback__)
                ),
            }

        return json.dumps(entry, default=str)

    def _write_log(self, log_entry: str) -> None:
        print(log_entry, file=sys.stdout)
        if self.file_path:
            try:
                with open(self.file_path, "a", encoding="utf-8") as f:
                    f.write(log_entry + "\n")
            except OSError as e:
                print(f"Failed to write log file {self.file_path}: {e}", file=sys.stderr)

    def log(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        """
        Log a message with specified level.

        Unknown levels are written as INFO.
        """
        level = level.upper()
        if level not in LEVELS:
            level = "INFO"
        if not self.is_enabled_for(level):
            return
        self._write_log(self._format_log_entry(level, message, context, exception))

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("DEBUG", message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("INFO", message, context)

    def warning(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        self.log("WARNING", message, context, exception)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        """Log an error message with optional exception details."""
        self.log("ERROR", message, context, exception)

    def critical(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        self.log("CRITICAL", message, context, exception)


def get_logger(component: str) -> StructuredLogger:
    """Build a logger for ``component`` using the configured level and file."""
    return StructuredLogger(component, file_path=config.logging.file_path, level=config.logging.level)

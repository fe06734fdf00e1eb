"""Logging for simcheck: one ``simcheck`` logger tree, console and optional file."""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

ROOT_LOGGER_NAME = "simcheck"

_PREFIX = f"{ROOT_LOGGER_NAME}."


class SimCheckFormatter(logging.Formatter):
    """``[time] LEVEL [component] message``, colored on a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True, include_timestamp: bool = True):
        super().__init__()
        self.use_colors = use_colors
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        parts = []
        if self.include_timestamp:
            stamp = datetime.fromtimestamp(record.created, UTC).strftime("%Y-%m-%d %H:%M:%S")
            parts.append(f"[{stamp}]")

        level = f"{record.levelname:8}"
        if self.use_colors:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        parts.append(level)

        component = record.name.removeprefix(_PREFIX)
        parts.append(f"[{component:12}]")
        parts.append(record.getMessage())

        if record.exc_info:
            parts.append(self.formatException(record.exc_info))
        return " ".join(parts)


def _handler(handler: logging.Handler, level: int, use_colors: bool) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(SimCheckFormatter(use_colors=use_colors))
    return handler


def setup_logging(
    level: LogLevel = "INFO",
    log_dir: str | Path | None = None,
    console_output: bool = True,
    log_filename: str = "simcheck.log",
) -> None:
    """Route the ``simcheck`` tree to stdout and, with ``log_dir``, a file.

    Replaces any handlers from an earlier call.
    """
    level_no = getattr(logging, level)
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level_no)
    root.handlers = []

    if console_output:
        root.addHandler(_handler(logging.StreamHandler(sys.stdout), level_no, sys.stdout.isatty()))

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path / log_filename, encoding="utf-8")
        root.addHandler(_handler(file_handler, level_no, use_colors=False))

    root.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Logger for one component, e.g. ``get_logger("evaluator")``."""
    if not name.startswith(_PREFIX):
        name = f"{_PREFIX}{name}"
    return logging.getLogger(name)


def log_operation(logger: logging.Logger, operation: str, details: dict | None = None) -> None:
    """Log ``operation: key=value, ...``."""
    if details:
        operation = f"{operation}: " + ", ".join(f"{k}={v}" for k, v in details.items())
    logger.info(operation)


def log_error(
    logger: logging.Logger,
    operation: str,
    error: Exception,
    context: dict | None = None,
) -> None:
    """Log a failed operation with its traceback and context."""
    msg = f"FAILED {operation}: {type(error).__name__}: {error}"
    if context:
        msg += " | Context: " + ", ".join(f"{k}={v}" for k, v in context.items())
    logger.error(msg, exc_info=error)

"""Logging setup for cometqa.

Modules log through the standard library (``logging.getLogger(__name__)``);
this module configures the ``cometqa`` logger tree and provides a
``log_context`` scope so that lines emitted by concurrently running scenario
executions carry their scenario name and fuzz variant.

Example:
    >>> configure_logging(level="DEBUG", json_format=True)
    >>> with log_context(scenario="borrow", variant="[utilization=0.5]"):
    ...     logger.info("Applying 3 solutions")

Structured fields can be attached to a single record with
``logger.info("...", extra={"structured_data": {...}})``.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import IO, Any

LOGGER_NAME = "cometqa"

# asyncio tasks copy the current context on creation, so fields bound inside
# one execution never leak into a sibling execution.
_context_fields: ContextVar[dict[str, Any] | None] = ContextVar("cometqa_log_context", default=None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for machine consumption.

    Each record becomes one JSON object with ``timestamp``, ``level``,
    ``message``, ``logger``, the bound ``context`` fields, any per-record
    ``data`` and, when present, the ``exception``.
    """

    def __init__(
        self,
        include_location: bool = False,
        extra_fields: dict[str, Any] | None = None,
    ) -> None:
        super().__init__()
        self.include_location = include_location
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "message": record.getMessage(),
            "logger": record.name,
        }

        if self.include_location:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        context = _context_fields.get()
        if context:
            log_data["context"] = dict(context)

        structured_data = getattr(record, "structured_data", None)
        if structured_data:
            log_data["data"] = dict(structured_data)

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in self.extra_fields.items():
            log_data.setdefault(key, value)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class HumanReadableFormatter(logging.Formatter):
    """Colored single-line formatter for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True, stream: IO[str] | None = None) -> None:
        super().__init__()
        self.use_colors = use_colors and self._supports_color(stream or sys.stderr)

    @staticmethod
    def _supports_color(stream: IO[str]) -> bool:
        if os.environ.get("NO_COLOR"):
            return False
        return hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            level = f"{color}{record.levelname:8}{self.RESET}"
        else:
            level = f"{record.levelname:8}"

        base = f"{timestamp} {level} [{record.name}] {record.getMessage()}"

        context = _context_fields.get()
        if context:
            scope = " ".join(f"{key}={value}" for key, value in context.items())
            base += f" | {scope}"

        structured_data = getattr(record, "structured_data", None)
        if structured_data:
            base += f" | data={json.dumps(structured_data, default=str)}"

        if record.exc_info:
            base += f"\n{self.formatException(record.exc_info)}"

        return base


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    include_location: bool = False,
    extra_fields: dict[str, Any] | None = None,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Configure the ``cometqa`` logger tree.

    Replaces any handler previously installed by this function, so calling it
    twice does not duplicate output.

    Args:
        level: Minimum log level (int or name such as "DEBUG").
        json_format: Emit JSON lines instead of human-readable text.
        include_location: Include file/line/function in JSON output.
        extra_fields: Static fields added to every JSON record.
        stream: Output stream, defaults to stderr.

    Returns:
        The configured ``cometqa`` logger.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger(LOGGER_NAME)
    root_logger.handlers.clear()
    root_logger.propagate = False

    output = stream or sys.stderr
    handler = logging.StreamHandler(output)
    handler.setLevel(level)

    formatter: logging.Formatter
    if json_format:
        formatter = StructuredFormatter(
            include_location=include_location,
            extra_fields=extra_fields,
        )
    else:
        formatter = HumanReadableFormatter(stream=output)

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return root_logger


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind fields to every log line emitted inside the block.

    The previous context is restored on exit, including on exceptions.
    """
    current = dict(_context_fields.get() or {})
    current.update(kwargs)
    token = _context_fields.set(current)
    try:
        yield
    finally:
        _context_fields.reset(token)


def get_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    current = _context_fields.get()
    return dict(current) if current else {}

"""Logging utilities with structured output and context propagation.

This module provides enhanced logging capabilities:
    - JSON structured logging for log aggregation systems
    - Run ID and operation context propagation across all log messages
    - Console plus rotating file output, degrading to console only

Every digest run and schedule action executes inside log_context(), so
all messages it emits (including those from the service clients) carry the
same run_id and operation name.

Usage:
    >>> from observability.logging import setup_logging, log_context
    >>> setup_logging(config)
    >>> with log_context(run_id="a1b2c3d4", operation="digest_run"):
    ...     logger.info("Run started")  # Includes run_id automatically
"""

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any, Generator

LOG_FILE_NAME = "digestctl.log"

# Context variable for run ID propagation
run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")

# Context variable for the operation being performed (digest_run, schedule.pause, ...)
operation_var: contextvars.ContextVar[str] = contextvars.ContextVar("operation", default="-")

_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "run_id", "operation", "message",
})


@contextmanager
def log_context(run_id: str, operation: str = "-") -> Generator[None, None, None]:
    """Bind run_id and operation to every log record emitted inside the block.

    Context is restored on exit, so nested or concurrent tasks do not
    leak their ids into each other.
    """
    run_token = run_id_var.set(run_id)
    op_token = operation_var.set(operation)
    try:
        yield
    finally:
        operation_var.reset(op_token)
        run_id_var.reset(run_token)


class ContextFilter(logging.Filter):
    """Filter that injects run_id and operation into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_var.get()
        record.operation = operation_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Output format:
        {"timestamp": "...", "level": "INFO", "logger": "...", "message": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", "-"),
        }

        operation = getattr(record, "operation", "-")
        if operation != "-":
            log_data["operation"] = operation

        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Text formatter with context information.

    Format: TIMESTAMP [LEVEL] [run_id operation] logger: message
    """

    def __init__(self, include_date: bool = False):
        datefmt = "%Y-%m-%d %H:%M:%S" if include_date else "%H:%M:%S"
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] [%(run_id)s %(operation)s] %(name)s: %(message)s",
            datefmt=datefmt,
        )


def _file_handler(config: Any) -> logging.Handler | None:
    """Rotating handler for LOG_DIR, or None if the directory is unusable.

    LOG_MAX_BYTES > 0 rotates by size; otherwise the file rotates at midnight.
    """
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = config.log_dir / LOG_FILE_NAME
        if config.log_max_bytes > 0:
            return RotatingFileHandler(
                log_file,
                maxBytes=config.log_max_bytes,
                backupCount=config.log_backup_count,
                encoding="utf-8",
            )
        return TimedRotatingFileHandler(
            log_file,
            when="midnight",
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        print(
            f"Warning: Cannot write to log directory '{config.log_dir}': {e}. "
            "Falling back to console-only logging.",
            file=sys.stderr,
        )
        return None


def setup_logging(config: Any, verbose: bool = False) -> bool:
    """Configure console and file logging for the CLI.

    Console output goes to stderr so that command output on stdout (JSON
    status, history listings) stays machine-readable. The file handler
    always records DEBUG.

    Args:
        config: Application configuration with logging settings
        verbose: Force DEBUG on the console regardless of LOG_LEVEL

    Returns:
        True if file logging is enabled, False if console-only
    """
    console_level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    json_output = config.log_format == "json"
    context_filter = ContextFilter()

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(JsonFormatter() if json_output else TextFormatter())
    console.addFilter(context_filter)
    root.addHandler(console)

    file_handler = _file_handler(config)
    if file_handler is not None:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter() if json_output else TextFormatter(include_date=True))
        file_handler.addFilter(context_filter)
        root.addHandler(file_handler)

    # Reduce noise from third-party libraries
    for lib in ("aiohttp", "asyncio"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return file_handler is not None

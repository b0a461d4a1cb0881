"""Observability infrastructure for logging and tracing.

This package provides structured logging with run-id propagation and
optional distributed tracing using Logfire.

setup_tracing:
    Initialize Logfire with aiohttp client instrumentation.

trace_operation:
    Context manager for custom span creation.

TracingContext:
    Configuration dataclass for tracing state.

Requirements:
    pip install "logfire[aiohttp-client]"

Enable via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional

Example:
    >>> from observability import setup_tracing, trace_operation
    >>> setup_tracing(enabled=True, service_name="digestctl")
    >>> with trace_operation("digest_run"):
    ...     # Your code here
    ...     pass
"""

from observability.tracing import setup_tracing, trace_operation, TracingContext

__all__ = [
    "setup_tracing",
    "trace_operation",
    "TracingContext",
]

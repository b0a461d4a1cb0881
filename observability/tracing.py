"""Optional Logfire/OpenTelemetry spans for digest runs and schedule actions.

Tracing is off unless ENABLE_LOGFIRE is set. When on, every digest run and
schedule action gets one span, and the aiohttp client calls the service
clients make show up as child spans.

Requirements:
    pip install 'logfire[aiohttp-client]'

Enable via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional for cloud dashboard

Usage:
    >>> from observability.tracing import setup_tracing, trace_operation
    >>> setup_tracing(enabled=True, service_name="digestctl")
    >>> with trace_operation("digest_run", {"topics": 3}) as attrs:
    ...     attrs["paper_count"] = 12
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generator

logger = logging.getLogger(__name__)


@dataclass
class TracingContext:
    """Process-wide tracing settings."""

    enabled: bool = False
    service_name: str = "digestctl"
    token: str = ""
    configured: bool = False
    http_instrumented: bool = False

    @property
    def active(self) -> bool:
        return self.enabled and self.configured


_context = TracingContext()


def setup_tracing(
    enabled: bool = False,
    service_name: str = "digestctl",
    token: str = "",
) -> TracingContext:
    """Configure Logfire and instrument the aiohttp client.

    Tracing failures never stop the CLI: a missing package or a bad token
    just leaves tracing disabled.

    Args:
        enabled: Whether to enable tracing
        service_name: Service name reported on every span
        token: Logfire write token, empty for local-only export

    Returns:
        The process-wide TracingContext
    """
    _context.enabled = enabled
    _context.service_name = service_name
    _context.token = token
    _context.configured = False
    _context.http_instrumented = False

    if not enabled:
        logger.debug("Tracing disabled")
        return _context

    try:
        import logfire
    except ImportError:
        logger.warning("Logfire not installed, tracing disabled | install=logfire[aiohttp-client]")
        _context.enabled = False
        return _context

    try:
        logfire.configure(service_name=service_name, token=token or None)
    except Exception as e:
        logger.error("Logfire configuration failed, tracing disabled | error=%s", e)
        _context.enabled = False
        return _context
    _context.configured = True

    try:
        logfire.instrument_aiohttp_client()
        _context.http_instrumented = True
    except Exception as e:
        # Operation spans still work without HTTP spans
        logger.warning("aiohttp instrumentation unavailable | error=%s", e)

    logger.info(
        "Tracing enabled | service=%s http_spans=%s", service_name, _context.http_instrumented
    )
    return _context


@contextmanager
def trace_operation(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[dict[str, Any], None, None]:
    """Wrap a block in a span.

    The yielded dict collects result attributes (outcome, counts); they are
    attached to the span when the block exits, including on error. With
    tracing disabled this only times the block.

    Args:
        name: Span name
        attributes: Attributes known when the span opens
    """
    result_attrs: dict[str, Any] = {}
    start = time.monotonic()

    if not _context.active:
        try:
            yield result_attrs
        finally:
            logger.debug("Operation done | name=%s duration=%.2fs", name, time.monotonic() - start)
        return

    import logfire

    with logfire.span(name, **(attributes or {})) as span:
        try:
            yield result_attrs
        except Exception as e:
            result_attrs.setdefault("error_type", type(e).__name__)
            raise
        finally:
            result_attrs["duration_seconds"] = round(time.monotonic() - start, 3)
            span.set_attributes(result_attrs)

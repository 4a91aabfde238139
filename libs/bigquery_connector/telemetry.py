"""Structured logging and tracing helpers for the connector."""

import functools
import logging
import sys
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

F = TypeVar("F", bound=Callable[..., Any])

MAX_ATTRIBUTE_LENGTH = 1024


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure structlog for applications embedding the connector.

    Args:
        level: Standard logging level name
        fmt: ``json`` for machine-readable output, anything else for console
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_trace_context,
    ]
    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def add_trace_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add OpenTelemetry trace context to log entries."""
    span = trace.get_current_span()

    if span and span.is_recording():
        span_context = span.get_span_context()
        event_dict["trace_id"] = format(span_context.trace_id, "032x")
        event_dict["span_id"] = format(span_context.span_id, "016x")

    return event_dict


def span_attributes(attributes: dict[str, Any]) -> dict[str, str]:
    """Stringify attribute values and cap their length."""
    filtered = {}
    for key, value in attributes.items():
        if value is None:
            continue
        str_value = str(value)
        if len(str_value) > MAX_ATTRIBUTE_LENGTH:
            str_value = str_value[: MAX_ATTRIBUTE_LENGTH - 3] + "..."
        filtered[key] = str_value
    return filtered


def traced(
    name: str | None = None,
    kind: trace.SpanKind = trace.SpanKind.CLIENT,
) -> Callable[[F], F]:
    """Decorator wrapping a call in an OpenTelemetry span.

    Exceptions are recorded on the span and re-raised.
    """

    def decorator(func: F) -> F:
        span_name = name or f"{func.__module__}.{func.__qualname__}"
        tracer = trace.get_tracer(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(
                span_name, kind=kind, record_exception=False
            ) as span:
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        return wrapper  # type: ignore[return-value]

    return decorator

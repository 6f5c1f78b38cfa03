"""OpenTelemetry tracing helpers for order operations."""

import asyncio
import functools
from collections.abc import Callable
from typing import Any, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

F = TypeVar("F", bound=Callable[..., Any])

# Keyword arguments copied onto the span when a traced call receives them
SPAN_ARGUMENTS = ("order_id", "item_id", "menu_item_id", "target_status")


def annotate_span(**attributes: Any) -> None:
    """Attach ``order.*`` attributes to the current span.

    None values are skipped and enums are recorded by value.

    Example:
        annotate_span(previous_status="PENDING", attempt=2)
    """
    span = trace.get_current_span()
    for name, value in attributes.items():
        if value is None:
            continue
        span.set_attribute(f"order.{name}", getattr(value, "value", value))


def _start(span: Span, service_name: str, kwargs: dict[str, Any], args: tuple[Any, ...]) -> None:
    span.set_attribute("service.name", service_name)
    for name in SPAN_ARGUMENTS:
        value = kwargs.get(name)
        if value is not None:
            span.set_attribute(f"order.{name}", getattr(value, "value", value))
    # Service methods take the order id as their first positional argument
    if "order_id" not in kwargs and len(args) > 1 and isinstance(args[1], str):
        span.set_attribute("order.order_id", args[1])


def _fail(span: Span, e: Exception) -> None:
    span.set_attribute("success", False)
    span.set_attribute("error.type", type(e).__name__)
    span.set_attribute("error.code", getattr(e, "code", "INTERNAL_ERROR"))
    span.record_exception(e)
    span.set_status(Status(StatusCode.ERROR, str(e)))


def traced(span_name: str | None = None, service_name: str = "order-svc") -> Callable[[F], F]:
    """Decorator to run a function inside its own span.

    Order identifiers passed to the call are recorded as ``order.*``
    attributes. Exceptions are recorded with their error code and re-raised.

    Args:
        span_name: Name for the span (defaults to the function name)
        service_name: Service name for span attributes

    Returns:
        Decorated function with tracing

    Example:
        @traced("order.update_status")
        async def update_status(self, order_id: str, target_status: OrderStatus) -> Order:
            ...
    """

    def decorator(func: F) -> F:
        name = span_name or func.__name__
        tracer = trace.get_tracer(service_name)

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(name) as span:
                _start(span, service_name, kwargs, args)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _fail(span, e)
                    raise
                span.set_attribute("success", True)
                return result

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(name) as span:
                _start(span, service_name, kwargs, args)
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    _fail(span, e)
                    raise
                span.set_attribute("success", True)
                return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator

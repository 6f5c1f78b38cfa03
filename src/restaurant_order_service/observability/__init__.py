"""OpenTelemetry instrumentation and observability utilities."""

from restaurant_order_service.observability.config import configure_logging, setup_observability
from restaurant_order_service.observability.decorators import annotate_span, traced

__all__ = ["setup_observability", "configure_logging", "traced", "annotate_span"]

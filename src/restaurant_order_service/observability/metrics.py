"""Custom metrics for the restaurant order service."""

from opentelemetry import metrics

meter = metrics.get_meter("order-svc")

status_transition_counter = meter.create_counter(
    name="order_status_transition_total",
    description="Total number of committed order status transitions",
    unit="1",
)

event_emit_counter = meter.create_counter(
    name="order_event_emit_total",
    description="Total number of order events published",
    unit="1",
)

event_emit_failure_counter = meter.create_counter(
    name="order_event_emit_failure_total",
    description="Total number of order events that failed to publish",
    unit="1",
)

bulk_update_size_histogram = meter.create_histogram(
    name="order_bulk_update_size",
    description="Number of orders in committed bulk status updates",
    unit="1",
)

status_conflict_counter = meter.create_counter(
    name="order_status_conflict_total",
    description="Status writes rejected because another writer got there first",
    unit="1",
)


def record_status_transition(previous_status: str, new_status: str) -> None:
    """Record a committed status transition.

    Args:
        previous_status: Status before the change
        new_status: Status after the change
    """
    status_transition_counter.add(1, {"from": previous_status, "to": new_status})


def record_event_emitted(event_name: str) -> None:
    event_emit_counter.add(1, {"event": event_name})


def record_event_failure(event_name: str, error_type: str) -> None:
    """Record a failed event publish.

    Args:
        event_name: The event that failed to publish
        error_type: Exception class name
    """
    event_emit_failure_counter.add(1, {"event": event_name, "error_type": error_type})


def record_bulk_update(size: int) -> None:
    bulk_update_size_histogram.record(size)


def record_status_conflict() -> None:
    status_conflict_counter.add(1)

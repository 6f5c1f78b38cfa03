"""Domain errors raised by the order service.

Each error carries a stable ``code`` and the HTTP status the API layer maps it
to, so handlers never need to inspect messages.
"""

from collections.abc import Iterable


class OrderServiceError(Exception):
    """Base class for all order service errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(OrderServiceError):
    """An order or order item does not exist (or is not on the stated order)."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, missing_ids: Iterable[str] | None = None) -> None:
        self.resource = resource
        self.missing_ids = list(missing_ids or [])
        message = f"{resource} not found"
        if self.missing_ids:
            message = f"{message}: {', '.join(self.missing_ids)}"
        super().__init__(message)


class InvalidTransitionError(OrderServiceError):
    """Requested status change is not allowed from the current status."""

    code = "INVALID_STATUS_TRANSITION"
    status_code = 400

    def __init__(self, current_status: str, requested_status: str, order_id: str | None = None) -> None:
        self.current_status = current_status
        self.requested_status = requested_status
        self.order_id = order_id
        message = f"Cannot transition from {current_status} to {requested_status}"
        if order_id:
            message = f"{message} (order {order_id})"
        super().__init__(message)


class MenuItemNotFoundError(OrderServiceError):
    """The referenced menu item does not exist."""

    code = "MENU_ITEM_NOT_FOUND"
    status_code = 404

    def __init__(self, menu_item_id: str) -> None:
        self.menu_item_id = menu_item_id
        super().__init__(f"Menu item {menu_item_id} not found")


class MenuItemUnavailableError(OrderServiceError):
    """The referenced menu item exists but is marked unavailable."""

    code = "MENU_ITEM_UNAVAILABLE"
    status_code = 400

    def __init__(self, menu_item_id: str, name: str) -> None:
        self.menu_item_id = menu_item_id
        self.name = name
        super().__init__(f"Menu item '{name}' is currently unavailable")


class OrderValidationError(OrderServiceError):
    """Input failed validation."""

    code = "VALIDATION_ERROR"
    status_code = 400


class ConcurrentModificationError(OrderServiceError):
    """Another writer changed the order between read and write."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409


class StoreError(OrderServiceError):
    """The backing store failed for reasons other than a failed condition."""

    code = "INTERNAL_ERROR"
    status_code = 500

"""Order, order item and order status models.

Orders are stored as two record types: one ``orders`` record per ticket and one
``order_items`` record per line. ``Order.items`` is assembled by the service
when an order is loaded and is never persisted on the order record itself.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from restaurant_order_service.models.menu_models import MenuItem


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    HALTED = "HALTED"
    CANCELED = "CANCELED"


# Every status must have an entry; COMPLETED and CANCELED are terminal.
STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELED}),
    OrderStatus.IN_PROGRESS: frozenset(
        {OrderStatus.COMPLETED, OrderStatus.HALTED, OrderStatus.CANCELED}
    ),
    OrderStatus.HALTED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELED: frozenset(),
}

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    status for status, targets in STATUS_TRANSITIONS.items() if not targets
)


def is_valid_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    """Check whether an order may move from one status to another.

    Self-transitions are never valid since no status lists itself.

    Args:
        from_status: Current order status
        to_status: Requested order status

    Returns:
        True if the transition is allowed, False otherwise
    """
    return to_status in STATUS_TRANSITIONS[from_status]


def get_valid_target_statuses(from_status: OrderStatus) -> list[OrderStatus]:
    """Get the statuses an order in ``from_status`` may move to.

    Args:
        from_status: Current order status

    Returns:
        Allowed target statuses in declaration order (empty for terminal statuses)
    """
    allowed = STATUS_TRANSITIONS[from_status]
    return [status for status in OrderStatus if status in allowed]


class OrderItem(BaseModel):
    """A single line on an order."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Unique identifier for the order item")
    order_id: str = Field(..., description="Order this line belongs to")
    menu_item_id: str = Field(..., description="Referenced menu item")
    quantity: int = Field(..., description="Number of portions", ge=1)
    special_instructions: str | None = Field(None, description="Free-text kitchen notes")
    menu_item_name: str | None = Field(None, description="Menu item name when the line was added")
    unit_price: Decimal | None = Field(None, description="Menu item price when the line was added")
    created_at: datetime = Field(..., description="Creation timestamp")
    menu_item: MenuItem | None = Field(None, description="Current catalog entry, when loaded")

    def to_record(self) -> dict[str, Any]:
        """Convert to a store record.

        The embedded ``menu_item`` is a read-side join and is not stored.

        Returns:
            dict: Store-compatible representation
        """
        record: dict[str, Any] = {
            "id": self.id,
            "order_id": self.order_id,
            "menu_item_id": self.menu_item_id,
            "quantity": self.quantity,
            "created_at": self.created_at.isoformat(),
        }

        if self.special_instructions is not None:
            record["special_instructions"] = self.special_instructions

        if self.menu_item_name is not None:
            record["menu_item_name"] = self.menu_item_name

        if self.unit_price is not None:
            record["unit_price"] = self.unit_price

        return record

    @classmethod
    def from_record(
        cls, record: dict[str, Any], menu_item: MenuItem | None = None
    ) -> "OrderItem":
        """Create OrderItem from a store record.

        Args:
            record: Store record dictionary
            menu_item: Optional catalog entry to embed

        Returns:
            OrderItem: Parsed model instance
        """
        data: dict[str, Any] = {
            "id": record["id"],
            "order_id": record["order_id"],
            "menu_item_id": record["menu_item_id"],
            "quantity": int(record["quantity"]),
            "created_at": datetime.fromisoformat(record["created_at"]),
            "menu_item": menu_item,
        }

        if record.get("special_instructions") is not None:
            data["special_instructions"] = record["special_instructions"]

        if record.get("menu_item_name") is not None:
            data["menu_item_name"] = record["menu_item_name"]

        if record.get("unit_price") is not None:
            data["unit_price"] = Decimal(str(record["unit_price"]))

        return cls(**data)


class Order(BaseModel):
    """One dining table's ticket."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Unique identifier for the order")
    table_number: int = Field(..., description="Table the order belongs to", gt=0)
    server_name: str = Field(..., description="Name of the server who took the order")
    status: OrderStatus = Field(default=OrderStatus.PENDING, description="Lifecycle status")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")
    items: list[OrderItem] = Field(default_factory=list, description="Order lines")

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        """Validate that server_name is not blank."""
        if not v.strip():
            raise ValueError("server_name must not be empty")
        return v

    def to_record(self) -> dict[str, Any]:
        """Convert to a store record (without items).

        Returns:
            dict: Store-compatible representation
        """
        return {
            "id": self.id,
            "table_number": self.table_number,
            "server_name": self.server_name,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_record(
        cls, record: dict[str, Any], items: list[OrderItem] | None = None
    ) -> "Order":
        """Create Order from a store record.

        Args:
            record: Store record dictionary
            items: Order lines loaded separately

        Returns:
            Order: Parsed model instance
        """
        return cls(
            id=record["id"],
            table_number=int(record["table_number"]),
            server_name=record["server_name"],
            status=OrderStatus(record["status"]),
            created_at=datetime.fromisoformat(record["created_at"]),
            updated_at=datetime.fromisoformat(record["updated_at"]),
            items=items or [],
        )

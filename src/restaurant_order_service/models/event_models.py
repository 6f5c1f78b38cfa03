"""Real-time event names, channels and payload models.

Payloads are serialised with camelCase keys so display clients receive the
same shapes the REST API returns.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from restaurant_order_service.models.order_models import Order, OrderItem, OrderStatus


class Channel(str, Enum):
    """Broadcast rooms display clients subscribe to."""

    KITCHEN = "kitchen"
    ORDERS = "orders"


ORDER_CHANNELS: list[str] = [Channel.KITCHEN.value, Channel.ORDERS.value]


class OrderEvent(str, Enum):
    """Names of events emitted after order mutations."""

    ORDER_CREATED = "order:created"
    ORDER_UPDATED = "order:updated"
    ORDER_DELETED = "order:deleted"
    ORDER_STATUS_CHANGED = "order:status-changed"
    ORDER_ITEM_ADDED = "order-item:added"
    ORDER_ITEM_UPDATED = "order-item:updated"
    ORDER_ITEM_REMOVED = "order-item:removed"


class EventPayload(BaseModel):
    """Base class for event payloads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        """Serialise to a JSON-compatible dictionary with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class OrderCreatedPayload(EventPayload):
    order: Order


class OrderUpdatedPayload(EventPayload):
    order: Order
    changed_fields: list[str] = Field(default_factory=list)


class OrderDeletedPayload(EventPayload):
    order_id: str


class OrderStatusChangedPayload(EventPayload):
    order_id: str
    previous_status: OrderStatus
    new_status: OrderStatus
    updated_at: datetime


class OrderItemAddedPayload(EventPayload):
    order_id: str
    item: OrderItem


class OrderItemUpdatedPayload(EventPayload):
    order_id: str
    item: OrderItem


class OrderItemRemovedPayload(EventPayload):
    order_id: str
    item_id: str

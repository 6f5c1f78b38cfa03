"""Order service: order lifecycle, item management and event emission.

Every mutating operation runs in two phases. The commit phase validates input
against the current stored state and writes through the store; only once the
write has committed does the notify phase publish the matching event. Notify
failures are logged and counted but never undo or fail the operation.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from restaurant_order_service.broadcasters.base_broadcaster import Broadcaster
from restaurant_order_service.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    MenuItemNotFoundError,
    MenuItemUnavailableError,
    NotFoundError,
    OrderValidationError,
    StoreError,
)
from restaurant_order_service.models.event_models import (
    ORDER_CHANNELS,
    EventPayload,
    OrderCreatedPayload,
    OrderDeletedPayload,
    OrderEvent,
    OrderItemAddedPayload,
    OrderItemRemovedPayload,
    OrderItemUpdatedPayload,
    OrderStatusChangedPayload,
    OrderUpdatedPayload,
)
from restaurant_order_service.models.menu_models import MenuItem
from restaurant_order_service.models.order_models import (
    Order,
    OrderItem,
    OrderStatus,
    is_valid_transition,
)
from restaurant_order_service.observability import annotate_span, traced
from restaurant_order_service.observability.metrics import (
    record_bulk_update,
    record_event_emitted,
    record_event_failure,
    record_status_conflict,
    record_status_transition,
)
from restaurant_order_service.repositories.base_store import (
    MAX_TRANSACTION_ITEMS,
    Entity,
    Store,
    StoreOperation,
)

logger = logging.getLogger(__name__)

ORDER_ITEM_NOT_FOUND = "Order or Order Item"


@dataclass
class OrderItemInput:
    """A line supplied when creating an order.

    Attributes:
        menu_item_id: Menu item to order
        quantity: Number of portions (at least 1)
        special_instructions: Optional kitchen notes
    """

    menu_item_id: str
    quantity: int
    special_instructions: str | None = None


class OrderService:
    """Service owning the order lifecycle.

    The store and broadcaster are injected so several service instances (and
    test doubles) can coexist in one process.
    """

    def __init__(
        self,
        store: Store,
        broadcaster: Broadcaster,
        validate_initial_items: bool = False,
        max_status_attempts: int = 3,
    ) -> None:
        """Initialize the OrderService.

        Args:
            store: Transactional store holding menu items, orders and order items
            broadcaster: Publisher for real-time order events
            validate_initial_items: Check catalog existence and availability of
                items supplied at order creation, as add_order_item does
            max_status_attempts: Attempts at a status write before giving up on
                concurrent writers
        """
        self.store = store
        self.broadcaster = broadcaster
        self.validate_initial_items = validate_initial_items
        self.max_status_attempts = max(1, max_status_attempts)

    # Reads

    @traced("order.get")
    async def get_order(self, order_id: str) -> Order:
        """Get an order with its items.

        Raises:
            NotFoundError: If the order does not exist
        """
        return self._require_order(order_id)

    @traced("order.list")
    async def list_orders(
        self,
        status: OrderStatus | None = None,
        table_number: int | None = None,
    ) -> list[Order]:
        """List orders, oldest first, optionally filtered by status and table.

        Args:
            status: Only orders currently in this status
            table_number: Only orders for this table

        Returns:
            Matching orders with items, empty list if none
        """
        filters: dict[str, Any] = {}
        if status is not None:
            filters["status"] = OrderStatus(status).value
        if table_number is not None:
            filters["table_number"] = table_number

        records = self.store.find_many(Entity.ORDERS, filters)
        records.sort(key=lambda record: (record["created_at"], record["id"]))
        menu_cache: dict[str, MenuItem | None] = {}
        return [
            Order.from_record(record, self._load_items(record["id"], menu_cache))
            for record in records
        ]

    # Order mutations

    @traced("order.create")
    async def create_order(
        self,
        table_number: int,
        server_name: str,
        items: list[OrderItemInput] | None = None,
    ) -> Order:
        """Create a new order, always in PENDING status.

        The order and any initial items are written in one transaction.

        Args:
            table_number: Table the order is for (positive)
            server_name: Server taking the order (non-empty)
            items: Optional initial lines

        Returns:
            The created order with its items

        Raises:
            OrderValidationError: If table number, server name or a quantity is invalid
            MenuItemNotFoundError: If validate_initial_items is on and an item is unknown
            MenuItemUnavailableError: If validate_initial_items is on and an item is 86'd
        """
        self._validate_table_number(table_number)
        self._validate_server_name(server_name)
        items = items or []
        if len(items) + 1 > MAX_TRANSACTION_ITEMS:
            raise OrderValidationError(
                f"An order can be created with at most {MAX_TRANSACTION_ITEMS - 1} items"
            )

        now = self._now()
        order = Order(
            id=self._new_id(),
            table_number=table_number,
            server_name=server_name,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

        for position, item_input in enumerate(items):
            self._validate_quantity(item_input.quantity)
            if self.validate_initial_items:
                menu_item: MenuItem | None = self._get_orderable_menu_item(item_input.menu_item_id)
            else:
                menu_item = self._find_menu_item(item_input.menu_item_id)

            order.items.append(
                OrderItem(
                    id=self._new_id(),
                    order_id=order.id,
                    menu_item_id=item_input.menu_item_id,
                    quantity=item_input.quantity,
                    special_instructions=item_input.special_instructions,
                    menu_item_name=menu_item.name if menu_item else None,
                    unit_price=menu_item.price if menu_item else None,
                    # Spread timestamps so items keep their submitted order
                    created_at=now + timedelta(microseconds=position),
                    menu_item=menu_item,
                )
            )

        annotate_span(order_id=order.id, table_number=table_number, item_count=len(order.items))
        operations = [StoreOperation.create(Entity.ORDERS, order.to_record())]
        operations.extend(
            StoreOperation.create(Entity.ORDER_ITEMS, item.to_record()) for item in order.items
        )
        if self.store.transaction(operations) is None:
            raise StoreError(f"Failed to create order {order.id}")

        logger.info(
            f"Created order {order.id} for table {table_number} with {len(order.items)} items"
        )

        await self._notify(OrderEvent.ORDER_CREATED, OrderCreatedPayload(order=order))
        return order

    @traced("order.update")
    async def update_order(
        self,
        order_id: str,
        table_number: int | None = None,
        server_name: str | None = None,
    ) -> Order:
        """Update an order's table number and/or server name.

        Status changes go through update_status.

        Returns:
            The updated order with its items

        Raises:
            OrderValidationError: If no field is supplied or a value is invalid
            NotFoundError: If the order does not exist
        """
        patch: dict[str, Any] = {}
        changed_fields: list[str] = []
        if table_number is not None:
            self._validate_table_number(table_number)
            patch["table_number"] = table_number
            changed_fields.append("tableNumber")
        if server_name is not None:
            self._validate_server_name(server_name)
            patch["server_name"] = server_name
            changed_fields.append("serverName")

        if not patch:
            raise OrderValidationError("No fields to update")

        patch["updated_at"] = self._now().isoformat()
        updated = self.store.update(Entity.ORDERS, order_id, patch)
        if updated is None:
            raise NotFoundError("Order")

        order = self._reload_order(order_id, updated)
        logger.info(f"Updated order {order_id}: {', '.join(changed_fields)}")

        await self._notify(
            OrderEvent.ORDER_UPDATED,
            OrderUpdatedPayload(order=order, changed_fields=changed_fields),
        )
        return order

    @traced("order.delete")
    async def delete_order(self, order_id: str) -> Order:
        """Delete an order and all of its items.

        Returns:
            The order as it was immediately before deletion

        Raises:
            NotFoundError: If the order does not exist
            ConcurrentModificationError: If its items changed while it was being deleted
        """
        order = self._require_order(order_id)

        if not self.store.delete(Entity.ORDERS, order_id):
            raise NotFoundError("Order")

        logger.info(f"Deleted order {order_id} with {len(order.items)} items")

        await self._notify(OrderEvent.ORDER_DELETED, OrderDeletedPayload(order_id=order_id))
        return order

    # Status transitions

    @traced("order.update_status")
    async def update_status(self, order_id: str, target_status: OrderStatus) -> Order:
        """Move an order to a new status.

        The write only applies if the stored status is still the one that was
        validated. If another writer got there first the transition is
        re-validated against the fresh status and retried.

        Args:
            order_id: Order to transition
            target_status: Requested status

        Returns:
            The updated order with its items

        Raises:
            NotFoundError: If the order does not exist
            InvalidTransitionError: If the current status does not allow target_status
            ConcurrentModificationError: If every attempt lost a race with another writer
        """
        target_status = OrderStatus(target_status)

        for attempt in range(1, self.max_status_attempts + 1):
            record = self.store.find(Entity.ORDERS, order_id)
            if record is None:
                raise NotFoundError("Order")

            previous_status = OrderStatus(record["status"])
            annotate_span(previous_status=previous_status, attempt=attempt)
            if not is_valid_transition(previous_status, target_status):
                raise InvalidTransitionError(previous_status.value, target_status.value)

            updated_at = self._now()
            updated = self.store.update(
                Entity.ORDERS,
                order_id,
                {"status": target_status.value, "updated_at": updated_at.isoformat()},
                condition={"status": previous_status.value},
            )
            if updated is not None:
                break

            record_status_conflict()
            logger.warning(
                f"Status of order {order_id} changed concurrently "
                f"(attempt {attempt}/{self.max_status_attempts})"
            )
        else:
            raise ConcurrentModificationError(
                f"Order {order_id} is being updated concurrently, please retry"
            )

        record_status_transition(previous_status.value, target_status.value)
        logger.info(f"Order {order_id} status {previous_status.value} -> {target_status.value}")

        await self._notify(
            OrderEvent.ORDER_STATUS_CHANGED,
            OrderStatusChangedPayload(
                order_id=order_id,
                previous_status=previous_status,
                new_status=target_status,
                updated_at=updated_at,
            ),
        )
        return self._reload_order(order_id, updated)

    @traced("order.bulk_update_status")
    async def bulk_update_status(
        self, order_ids: list[str], target_status: OrderStatus
    ) -> list[Order]:
        """Move several orders to the same status as one atomic action.

        Every order must exist and allow the transition before anything is
        written; the writes then commit in a single transaction, each guarded
        by the status it was validated against.

        Args:
            order_ids: Orders to transition (duplicates are ignored)
            target_status: Requested status

        Returns:
            The updated orders in request order

        Raises:
            OrderValidationError: If the batch exceeds the transaction limit
            NotFoundError: If any order does not exist
            InvalidTransitionError: If any order's status does not allow target_status
            ConcurrentModificationError: If any order changed between validation and commit
        """
        target_status = OrderStatus(target_status)
        unique_ids = list(dict.fromkeys(order_ids))
        if not unique_ids:
            return []
        if len(unique_ids) > MAX_TRANSACTION_ITEMS:
            raise OrderValidationError(
                f"Bulk status update is limited to {MAX_TRANSACTION_ITEMS} orders"
            )

        annotate_span(batch_size=len(unique_ids))
        records = {order_id: self.store.find(Entity.ORDERS, order_id) for order_id in unique_ids}
        missing = [order_id for order_id, record in records.items() if record is None]
        if missing:
            raise NotFoundError("Order", missing)

        previous_statuses = {
            order_id: OrderStatus(record["status"])
            for order_id, record in records.items()
            if record is not None
        }
        for order_id, previous_status in previous_statuses.items():
            if not is_valid_transition(previous_status, target_status):
                raise InvalidTransitionError(
                    previous_status.value, target_status.value, order_id=order_id
                )

        updated_at = self._now()
        operations = [
            StoreOperation.update(
                Entity.ORDERS,
                order_id,
                {"status": target_status.value, "updated_at": updated_at.isoformat()},
                condition={"status": previous_statuses[order_id].value},
            )
            for order_id in unique_ids
        ]
        if self.store.transaction(operations) is None:
            record_status_conflict()
            raise ConcurrentModificationError(
                "One or more orders changed during the bulk update; no orders were updated"
            )

        record_bulk_update(len(unique_ids))
        for order_id in unique_ids:
            record_status_transition(previous_statuses[order_id].value, target_status.value)
        logger.info(f"Bulk updated {len(unique_ids)} orders to {target_status.value}")

        orders = [
            self._reload_order(order_id, {**(records[order_id] or {}), **operation.data})
            for order_id, operation in zip(unique_ids, operations)
        ]

        for order_id in unique_ids:
            await self._notify(
                OrderEvent.ORDER_STATUS_CHANGED,
                OrderStatusChangedPayload(
                    order_id=order_id,
                    previous_status=previous_statuses[order_id],
                    new_status=target_status,
                    updated_at=updated_at,
                ),
            )
        return orders

    # Item mutations

    @traced("order.add_item")
    async def add_order_item(
        self,
        order_id: str,
        menu_item_id: str,
        quantity: int,
        special_instructions: str | None = None,
    ) -> Order:
        """Add a line to an order.

        Availability is checked once, here; later catalog changes do not
        affect lines already on an order.

        Returns:
            The order re-read with all of its items

        Raises:
            OrderValidationError: If quantity is below 1
            NotFoundError: If the order does not exist
            MenuItemNotFoundError: If the menu item does not exist
            MenuItemUnavailableError: If the menu item is marked unavailable
        """
        self._validate_quantity(quantity)
        order_record = self.store.find(Entity.ORDERS, order_id)
        if order_record is None:
            raise NotFoundError("Order")

        menu_item = self._get_orderable_menu_item(menu_item_id)
        now = self._now()
        item = OrderItem(
            id=self._new_id(),
            order_id=order_id,
            menu_item_id=menu_item_id,
            quantity=quantity,
            special_instructions=special_instructions,
            menu_item_name=menu_item.name,
            unit_price=menu_item.price,
            created_at=now,
            menu_item=menu_item,
        )

        # Touching the order in the same transaction fails the insert if the
        # order was deleted in the meantime, so no orphan line is written.
        operations = [
            StoreOperation.create(Entity.ORDER_ITEMS, item.to_record()),
            StoreOperation.update(Entity.ORDERS, order_id, {"updated_at": now.isoformat()}),
        ]
        if self.store.transaction(operations) is None:
            raise NotFoundError("Order")

        logger.info(f"Added {quantity} x {menu_item.name} to order {order_id}")

        await self._notify(
            OrderEvent.ORDER_ITEM_ADDED, OrderItemAddedPayload(order_id=order_id, item=item)
        )
        return self._reload_order(order_id, {**order_record, "updated_at": now.isoformat()})

    @traced("order.update_item")
    async def update_order_item(
        self,
        order_id: str,
        item_id: str,
        quantity: int | None = None,
        special_instructions: str | None = None,
    ) -> Order:
        """Change the quantity and/or instructions of a line.

        Returns:
            The order re-read with all of its items

        Raises:
            OrderValidationError: If no field is supplied or quantity is below 1
            NotFoundError: If the order or item does not exist, or the item is
                on a different order
        """
        patch: dict[str, Any] = {}
        if quantity is not None:
            self._validate_quantity(quantity)
            patch["quantity"] = quantity
        if special_instructions is not None:
            patch["special_instructions"] = special_instructions
        if not patch:
            raise OrderValidationError("No fields to update")

        order_record, item_record = self._require_owned_item(order_id, item_id)

        order_patch = {"updated_at": self._now().isoformat()}
        operations = [
            StoreOperation.update(
                Entity.ORDER_ITEMS, item_id, patch, condition={"order_id": order_id}
            ),
            StoreOperation.update(Entity.ORDERS, order_id, order_patch),
        ]
        if self.store.transaction(operations) is None:
            raise NotFoundError(ORDER_ITEM_NOT_FOUND)

        item = OrderItem.from_record(
            {**item_record, **patch}, self._find_menu_item(item_record["menu_item_id"])
        )
        logger.info(f"Updated item {item_id} on order {order_id}")

        await self._notify(
            OrderEvent.ORDER_ITEM_UPDATED, OrderItemUpdatedPayload(order_id=order_id, item=item)
        )
        return self._reload_order(order_id, {**order_record, **order_patch})

    @traced("order.remove_item")
    async def remove_order_item(self, order_id: str, item_id: str) -> Order:
        """Remove a line from an order.

        Returns:
            The order re-read with its remaining items

        Raises:
            NotFoundError: If the order or item does not exist, or the item is
                on a different order
        """
        order_record, _ = self._require_owned_item(order_id, item_id)

        order_patch = {"updated_at": self._now().isoformat()}
        operations = [
            StoreOperation.delete(Entity.ORDER_ITEMS, item_id),
            StoreOperation.update(Entity.ORDERS, order_id, order_patch),
        ]
        if self.store.transaction(operations) is None:
            raise NotFoundError(ORDER_ITEM_NOT_FOUND)

        logger.info(f"Removed item {item_id} from order {order_id}")

        await self._notify(
            OrderEvent.ORDER_ITEM_REMOVED,
            OrderItemRemovedPayload(order_id=order_id, item_id=item_id),
        )
        return self._reload_order(order_id, {**order_record, **order_patch})

    # Notify phase

    async def _notify(self, event: OrderEvent, payload: EventPayload) -> None:
        """Publish an event for a committed mutation.

        Any failure, including payload serialisation, is logged and counted
        here and never reaches the caller.
        """
        try:
            await self.broadcaster.publish(ORDER_CHANNELS, event.value, payload.to_json())
            record_event_emitted(event.value)
        except Exception as e:
            logger.exception(f"Failed to publish {event.value}: {e}")
            record_event_failure(event.value, type(e).__name__)

    # Helpers

    def _load_order(self, order_id: str) -> Order | None:
        record = self.store.find(Entity.ORDERS, order_id)
        if record is None:
            return None
        return Order.from_record(record, self._load_items(order_id))

    def _require_order(self, order_id: str) -> Order:
        order = self._load_order(order_id)
        if order is None:
            raise NotFoundError("Order")
        return order

    def _load_items(
        self, order_id: str, menu_cache: dict[str, MenuItem | None] | None = None
    ) -> list[OrderItem]:
        """Load an order's lines, oldest first, with their current menu items."""
        if menu_cache is None:
            menu_cache = {}

        records = self.store.find_many(Entity.ORDER_ITEMS, {"order_id": order_id})
        records.sort(key=lambda record: (record["created_at"], record["id"]))

        items = []
        for record in records:
            menu_item_id = record["menu_item_id"]
            if menu_item_id not in menu_cache:
                menu_cache[menu_item_id] = self._find_menu_item(menu_item_id)
            items.append(OrderItem.from_record(record, menu_cache[menu_item_id]))
        return items

    def _reload_order(self, order_id: str, committed: dict[str, Any]) -> Order:
        """Re-read an order after a commit.

        Another request may delete the order between the commit and this
        read; the caller then gets the state it committed.
        """
        order = self._load_order(order_id)
        if order is None:
            logger.warning(f"Order {order_id} was deleted after commit, returning committed state")
            return Order.from_record(committed, self._load_items(order_id))
        return order

    def _require_owned_item(
        self, order_id: str, item_id: str
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Return the order and item records if the item is on the given order.

        A missing order, a missing item and an item on another order all
        raise the same error.
        """
        order_record = self.store.find(Entity.ORDERS, order_id)
        if order_record is None:
            raise NotFoundError(ORDER_ITEM_NOT_FOUND)

        item_record = self.store.find(Entity.ORDER_ITEMS, item_id)
        if item_record is None or item_record["order_id"] != order_id:
            raise NotFoundError(ORDER_ITEM_NOT_FOUND)
        return order_record, item_record

    def _find_menu_item(self, menu_item_id: str) -> MenuItem | None:
        record = self.store.find(Entity.MENU_ITEMS, menu_item_id)
        return MenuItem.from_record(record) if record is not None else None

    def _get_orderable_menu_item(self, menu_item_id: str) -> MenuItem:
        menu_item = self._find_menu_item(menu_item_id)
        if menu_item is None:
            raise MenuItemNotFoundError(menu_item_id)
        if not menu_item.available:
            raise MenuItemUnavailableError(menu_item_id, menu_item.name)
        return menu_item

    @staticmethod
    def _validate_table_number(table_number: int) -> None:
        if isinstance(table_number, bool) or not isinstance(table_number, int) or table_number < 1:
            raise OrderValidationError("Table number must be a positive integer")

    @staticmethod
    def _validate_server_name(server_name: str) -> None:
        if not isinstance(server_name, str) or not server_name.strip():
            raise OrderValidationError("Server name is required")

    @staticmethod
    def _validate_quantity(quantity: int) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise OrderValidationError("Quantity must be at least 1")

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

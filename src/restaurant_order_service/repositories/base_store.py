"""Store interface used by the order service.

Records are plain dictionaries keyed by snake_case attribute names with an
``id`` primary key. Following the rest of the codebase, expected failures
(missing record, failed write condition) are reported through return values
(None/False); infrastructure failures raise ``StoreError`` and lost races
during multi-step writes raise ``ConcurrentModificationError``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from restaurant_order_service.exceptions import ConcurrentModificationError

MAX_TRANSACTION_ITEMS = 100


class Entity(str, Enum):
    """Record types held by the store."""

    MENU_ITEMS = "menu_items"
    ORDERS = "orders"
    ORDER_ITEMS = "order_items"


# Parent entity -> (child entity, foreign key attribute on the child)
CASCADE_DELETES: dict[Entity, tuple[Entity, str]] = {
    Entity.ORDERS: (Entity.ORDER_ITEMS, "order_id"),
}


class OperationType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class StoreOperation:
    """A single write inside an atomic transaction.

    Attributes:
        action: Kind of write
        entity: Record type the write targets
        record_id: Primary key of the target record
        data: Full record for creates, attribute patch for updates
        condition: Attribute values the stored record must hold for the write to apply
    """

    action: OperationType
    entity: Entity
    record_id: str
    data: dict[str, Any] = field(default_factory=dict)
    condition: dict[str, Any] | None = None

    @classmethod
    def create(cls, entity: Entity, data: dict[str, Any]) -> "StoreOperation":
        return cls(action=OperationType.CREATE, entity=entity, record_id=data["id"], data=data)

    @classmethod
    def update(
        cls,
        entity: Entity,
        record_id: str,
        patch: dict[str, Any],
        condition: dict[str, Any] | None = None,
    ) -> "StoreOperation":
        return cls(
            action=OperationType.UPDATE,
            entity=entity,
            record_id=record_id,
            data=patch,
            condition=condition,
        )

    @classmethod
    def delete(
        cls, entity: Entity, record_id: str, condition: dict[str, Any] | None = None
    ) -> "StoreOperation":
        return cls(
            action=OperationType.DELETE,
            entity=entity,
            record_id=record_id,
            condition=condition,
        )


class Store(ABC):
    """Transactional record store.

    Implementations must make ``transaction`` all-or-nothing and must apply
    ``condition`` checks atomically with the write they guard.
    """

    @abstractmethod
    def find(self, entity: Entity, record_id: str) -> dict[str, Any] | None:
        """Retrieve a record by primary key.

        Returns:
            The record if found, None otherwise
        """

    @abstractmethod
    def find_many(
        self, entity: Entity, filters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """List records whose attributes equal every value in ``filters``.

        Returns:
            Matching records (empty list if none), in no guaranteed order
        """

    @abstractmethod
    def create(self, entity: Entity, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a new record.

        Returns:
            The stored record
        """

    @abstractmethod
    def update(
        self,
        entity: Entity,
        record_id: str,
        patch: dict[str, Any],
        condition: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Apply ``patch`` to an existing record.

        Args:
            entity: Record type
            record_id: Primary key
            patch: Attributes to set
            condition: Attribute values the stored record must currently hold

        Returns:
            The updated record, or None if the record is missing or the
            condition did not hold (nothing is written in either case)
        """

    @abstractmethod
    def transaction(self, operations: list[StoreOperation]) -> list[dict[str, Any]] | None:
        """Execute writes atomically.

        Updates and deletes require the target record to exist; creates
        require it not to.

        Returns:
            One result per operation in order, or None if any existence or
            condition check failed (nothing is written)
        """

    def delete(self, entity: Entity, record_id: str) -> bool:
        """Delete a record together with its dependent records.

        Child writes touch the parent's ``updated_at``, so the parent delete is
        conditioned on the value read before the child scan. A line added in
        between cancels the delete instead of being left without its parent.

        Args:
            entity: Record type
            record_id: Primary key

        Returns:
            True if the record existed and was deleted, False if it was missing

        Raises:
            ConcurrentModificationError: If dependent records changed while deleting
        """
        record = self.find(entity, record_id)
        if record is None:
            return False

        child_operations: list[StoreOperation] = []
        condition = None
        cascade = CASCADE_DELETES.get(entity)
        if cascade is not None:
            child_entity, foreign_key = cascade
            children = self.find_many(child_entity, {foreign_key: record_id})
            child_operations = [
                StoreOperation.delete(child_entity, child["id"]) for child in children
            ]
            if "updated_at" in record:
                condition = {"updated_at": record["updated_at"]}

        parent_operation = StoreOperation.delete(entity, record_id, condition=condition)

        if len(child_operations) < MAX_TRANSACTION_ITEMS:
            if self.transaction([parent_operation, *child_operations]) is None:
                return self._lost_delete(entity, record_id)
            return True

        # Too many rows for one transaction: children go first so no child outlives its parent
        for start in range(0, len(child_operations), MAX_TRANSACTION_ITEMS):
            chunk = child_operations[start : start + MAX_TRANSACTION_ITEMS]
            if self.transaction(chunk) is None:
                raise ConcurrentModificationError(
                    f"{entity.value} record {record_id} changed while its "
                    f"{len(child_operations)} dependent records were being deleted"
                )
        if self.transaction([parent_operation]) is None:
            return self._lost_delete(entity, record_id)
        return True

    def _lost_delete(self, entity: Entity, record_id: str) -> bool:
        if self.find(entity, record_id) is None:
            return False
        raise ConcurrentModificationError(
            f"{entity.value} record {record_id} changed while being deleted, please retry"
        )

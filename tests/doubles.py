"""In-memory test doubles for the store and broadcaster interfaces."""

import copy
from typing import Any

from restaurant_order_service.broadcasters.base_broadcaster import Broadcaster
from restaurant_order_service.repositories.base_store import (
    Entity,
    OperationType,
    Store,
    StoreOperation,
)


class InMemoryStore(Store):
    """Dictionary-backed store with all-or-nothing transactions.

    ``fail_next_commit`` makes the next write raise, to simulate the backing
    store going away mid-request.
    """

    def __init__(self) -> None:
        self.tables: dict[Entity, dict[str, dict[str, Any]]] = {entity: {} for entity in Entity}
        self.fail_next_commit = False
        self.transactions: list[list[StoreOperation]] = []

    def seed(self, entity: Entity, record: dict[str, Any]) -> None:
        self.tables[entity][record["id"]] = copy.deepcopy(record)

    def find(self, entity: Entity, record_id: str) -> dict[str, Any] | None:
        record = self.tables[entity].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def find_many(
        self, entity: Entity, filters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        filters = filters or {}
        return [
            copy.deepcopy(record)
            for record in self.tables[entity].values()
            if all(record.get(key) == value for key, value in filters.items())
        ]

    def create(self, entity: Entity, data: dict[str, Any]) -> dict[str, Any]:
        self._check_commit()
        self.tables[entity][data["id"]] = copy.deepcopy(data)
        return copy.deepcopy(data)

    def update(
        self,
        entity: Entity,
        record_id: str,
        patch: dict[str, Any],
        condition: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        self._check_commit()
        record = self.tables[entity].get(record_id)
        if record is None or not self._matches(record, condition):
            return None
        record.update(copy.deepcopy(patch))
        return copy.deepcopy(record)

    def transaction(self, operations: list[StoreOperation]) -> list[dict[str, Any]] | None:
        self._check_commit()
        self.transactions.append(list(operations))

        for operation in operations:
            existing = self.tables[operation.entity].get(operation.record_id)
            if operation.action == OperationType.CREATE:
                if existing is not None:
                    return None
            elif existing is None or not self._matches(existing, operation.condition):
                return None

        results: list[dict[str, Any]] = []
        for operation in operations:
            table = self.tables[operation.entity]
            if operation.action == OperationType.CREATE:
                table[operation.record_id] = copy.deepcopy(operation.data)
                results.append(copy.deepcopy(operation.data))
            elif operation.action == OperationType.UPDATE:
                table[operation.record_id].update(copy.deepcopy(operation.data))
                results.append(copy.deepcopy(table[operation.record_id]))
            else:
                results.append(table.pop(operation.record_id))
        return results

    def _check_commit(self) -> None:
        if self.fail_next_commit:
            self.fail_next_commit = False
            raise RuntimeError("Store unavailable")

    @staticmethod
    def _matches(record: dict[str, Any], condition: dict[str, Any] | None) -> bool:
        return all(record.get(key) == value for key, value in (condition or {}).items())


class RecordingBroadcaster(Broadcaster):
    """Broadcaster that keeps every published event in memory."""

    def __init__(self) -> None:
        self.events: list[tuple[list[str], str, dict[str, Any]]] = []

    async def publish(self, channels: list[str], event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((list(channels), event_name, payload))

    @property
    def event_names(self) -> list[str]:
        return [name for _, name, _ in self.events]

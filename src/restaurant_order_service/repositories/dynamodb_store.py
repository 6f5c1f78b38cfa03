"""DynamoDB implementation of the order store.

Each entity lives in its own table keyed by ``id``. Lookups by foreign key go
through Global Secondary Indexes; multi-record writes use TransactWriteItems
so they commit all-or-nothing.
"""

import logging
from functools import reduce
from typing import Any

from boto3.dynamodb.conditions import Attr, ConditionBase, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from restaurant_order_service.exceptions import StoreError
from restaurant_order_service.repositories.base_store import (
    MAX_TRANSACTION_ITEMS,
    Entity,
    OperationType,
    Store,
    StoreOperation,
)

logger = logging.getLogger(__name__)

# (entity, attribute) -> GSI whose partition key is that attribute
QUERY_INDEXES: dict[tuple[Entity, str], str] = {
    (Entity.ORDERS, "status"): "status-index",
    (Entity.ORDERS, "table_number"): "table_number-index",
    (Entity.ORDER_ITEMS, "order_id"): "order_id-index",
}


class DynamoDBStore(Store):
    """Store backed by one DynamoDB table per entity."""

    def __init__(
        self, dynamodb_resource: DynamoDBServiceResource, table_names: dict[Entity, str]
    ) -> None:
        """Initialize store.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_names: Table name for each entity
        """
        self.dynamodb = dynamodb_resource
        self.table_names = table_names
        self.tables: dict[Entity, Table] = {
            entity: dynamodb_resource.Table(name) for entity, name in table_names.items()
        }
        self.client = dynamodb_resource.meta.client
        self._serializer = TypeSerializer()

    def find(self, entity: Entity, record_id: str) -> dict[str, Any] | None:
        try:
            response = self.tables[entity].get_item(Key={"id": record_id}, ConsistentRead=True)
        except ClientError as e:
            logger.error(f"Failed to get {entity.value} record {record_id}: {e}")
            raise StoreError(f"Failed to read {entity.value}") from e

        return response.get("Item")

    def find_many(
        self, entity: Entity, filters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        filters = dict(filters or {})
        table = self.tables[entity]

        kwargs: dict[str, Any] = {}
        index_attribute = next(
            (attr for attr in filters if (entity, attr) in QUERY_INDEXES), None
        )
        if index_attribute is not None:
            kwargs["IndexName"] = QUERY_INDEXES[(entity, index_attribute)]
            kwargs["KeyConditionExpression"] = Key(index_attribute).eq(
                filters.pop(index_attribute)
            )

        if filters:
            kwargs["FilterExpression"] = self._filter_expression(filters)

        operation = table.query if index_attribute is not None else table.scan
        items: list[dict[str, Any]] = []
        try:
            while True:
                response = operation(**kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            logger.error(f"Failed to list {entity.value} records: {e}")
            raise StoreError(f"Failed to list {entity.value}") from e

        return items

    def create(self, entity: Entity, data: dict[str, Any]) -> dict[str, Any]:
        try:
            self.tables[entity].put_item(
                Item=data,
                ConditionExpression="attribute_not_exists(#pk)",
                ExpressionAttributeNames={"#pk": "id"},
            )
        except ClientError as e:
            logger.error(f"Failed to create {entity.value} record {data.get('id')}: {e}")
            raise StoreError(f"Failed to create {entity.value}") from e

        return data

    def update(
        self,
        entity: Entity,
        record_id: str,
        patch: dict[str, Any],
        condition: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        expression = self._update_expression(patch, condition)
        try:
            response = self.tables[entity].update_item(
                Key={"id": record_id},
                ReturnValues="ALL_NEW",
                **expression,
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                logger.info(f"Conditional update skipped for {entity.value} record {record_id}")
                return None
            logger.error(f"Failed to update {entity.value} record {record_id}: {e}")
            raise StoreError(f"Failed to update {entity.value}") from e

        return response.get("Attributes")

    def transaction(self, operations: list[StoreOperation]) -> list[dict[str, Any]] | None:
        if not operations:
            return []

        if len(operations) > MAX_TRANSACTION_ITEMS:
            raise StoreError(
                f"Transaction of {len(operations)} writes exceeds limit of {MAX_TRANSACTION_ITEMS}"
            )

        transact_items = [self._transact_item(operation) for operation in operations]
        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as e:
            if e.response["Error"]["Code"] == "TransactionCanceledException":
                reasons = e.response.get("CancellationReasons", [])
                if any(reason.get("Code") == "ConditionalCheckFailed" for reason in reasons):
                    logger.info(f"Transaction of {len(operations)} writes cancelled by condition")
                    return None
            logger.error(f"Failed to commit transaction: {e}")
            raise StoreError("Failed to commit transaction") from e

        return [self._operation_result(operation) for operation in operations]

    def _filter_expression(self, filters: dict[str, Any]) -> ConditionBase:
        conditions = [Attr(name).eq(value) for name, value in filters.items()]
        return reduce(lambda left, right: left & right, conditions)

    def _update_expression(
        self, patch: dict[str, Any], condition: dict[str, Any] | None
    ) -> dict[str, Any]:
        """Build UpdateExpression arguments with placeholder names and values.

        The record must already exist; ``condition`` adds equality checks.
        """
        names: dict[str, str] = {"#pk": "id"}
        values: dict[str, Any] = {}
        assignments = []
        for index, (name, value) in enumerate(patch.items()):
            names[f"#f{index}"] = name
            values[f":v{index}"] = value
            assignments.append(f"#f{index} = :v{index}")

        expression = self._condition_expression(condition, names, values)
        expression["UpdateExpression"] = "SET " + ", ".join(assignments)
        return expression

    def _condition_expression(
        self,
        condition: dict[str, Any] | None,
        names: dict[str, str] | None = None,
        values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build a ConditionExpression requiring the record to exist and match ``condition``."""
        names = names if names is not None else {"#pk": "id"}
        values = values if values is not None else {}
        checks = ["attribute_exists(#pk)"]
        for index, (name, value) in enumerate((condition or {}).items()):
            names[f"#c{index}"] = name
            values[f":c{index}"] = value
            checks.append(f"#c{index} = :c{index}")

        expression: dict[str, Any] = {
            "ConditionExpression": " AND ".join(checks),
            "ExpressionAttributeNames": names,
        }
        if values:
            expression["ExpressionAttributeValues"] = values
        return expression

    def _serialize(self, data: dict[str, Any]) -> dict[str, Any]:
        return {name: self._serializer.serialize(value) for name, value in data.items()}

    def _transact_item(self, operation: StoreOperation) -> dict[str, Any]:
        """Convert a StoreOperation into a low-level TransactItems entry."""
        table_name = self.table_names[operation.entity]
        key = self._serialize({"id": operation.record_id})

        if operation.action == OperationType.CREATE:
            return {
                "Put": {
                    "TableName": table_name,
                    "Item": self._serialize(operation.data),
                    "ConditionExpression": "attribute_not_exists(#pk)",
                    "ExpressionAttributeNames": {"#pk": "id"},
                }
            }

        if operation.action == OperationType.UPDATE:
            expression = self._update_expression(operation.data, operation.condition)
            action = "Update"
        else:
            expression = self._condition_expression(operation.condition)
            action = "Delete"

        if "ExpressionAttributeValues" in expression:
            expression["ExpressionAttributeValues"] = self._serialize(
                expression["ExpressionAttributeValues"]
            )
        return {action: {"TableName": table_name, "Key": key, **expression}}

    def _operation_result(self, operation: StoreOperation) -> dict[str, Any]:
        if operation.action == OperationType.DELETE:
            return {"id": operation.record_id}
        return {"id": operation.record_id, **operation.data}

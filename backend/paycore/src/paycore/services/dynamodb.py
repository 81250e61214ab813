"""DynamoDB service wrapper for the payment tables."""

import os
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

import boto3
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)

# Table names without the environment prefix
BOOKINGS_TABLE = "bookings"
SESSIONS_TABLE = "payment-sessions"
TRANSACTIONS_TABLE = "transactions"
EVENTS_TABLE = "payment-events"
METRICS_TABLE = "payment-metrics"
ALERTS_TABLE = "payment-alerts"
NOTIFICATIONS_TABLE = "payment-notifications"
WEBHOOK_EVENTS_TABLE = "webhook-events"

_dynamodb_service_instance: "DynamoDBService | None" = None
_serializer = TypeSerializer()


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Get or create the shared DynamoDB service instance.

    Args:
        environment: Environment name. Only used on first call.

    Returns:
        Shared DynamoDBService instance
    """
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Reset the shared instance (for testing only).

    This allows tests to create a fresh DynamoDBService inside
    a mock_aws context.
    """
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


def _to_attribute(value: Any) -> Any:
    if isinstance(value, datetime):
        # Stored as UTC so ISO strings sort chronologically
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_attribute(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_to_attribute(v) for v in value]
    return value


def to_item(model: BaseModel) -> dict[str, Any]:
    """Convert a model to a DynamoDB item.

    Amounts stay Decimal, datetimes become ISO-8601 strings and enums their
    values. ``None`` fields are dropped.
    """
    item: dict[str, Any] = _to_attribute(model.model_dump(exclude_none=True))
    return item


def from_item(model: type[T], item: dict[str, Any]) -> T:
    """Build a model from a stored item.

    Stored items carry strings for enums and datetimes, so validation runs
    in lax mode regardless of the model's own strictness.
    """
    return model.model_validate(item, strict=False)


class DynamoDBService:
    """Service for DynamoDB operations with environment-aware table names."""

    def __init__(self, environment: str | None = None) -> None:
        """Initialize DynamoDB service.

        Args:
            environment: Environment name (dev/prod). Defaults to ENVIRONMENT env var.
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        # Allow override via DYNAMODB_TABLE_PREFIX for testing
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"paycore-{self.environment}"
        )
        self._dynamodb = boto3.resource("dynamodb")
        self._client = boto3.client("dynamodb")

    def _table_name(self, table: str) -> str:
        """Get full table name with prefix."""
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        """Get DynamoDB table resource."""
        return self._dynamodb.Table(self._table_name(table))

    # Generic CRUD operations

    def get_item(
        self,
        table: str,
        key: dict[str, Any],
        consistent_read: bool = False,
    ) -> dict[str, Any] | None:
        """Item by primary key, or None."""
        response = self._get_table(table).get_item(
            Key=key, ConsistentRead=consistent_read
        )
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
        expression_attribute_names: dict[str, str] | None = None,
    ) -> bool:
        """Put an item into the table.

        Args:
            table: Table name without prefix
            item: Item to store
            condition_expression: Optional condition for write
            expression_attribute_values: Values referenced by the condition
            expression_attribute_names: Names referenced by the condition

        Returns:
            True if successful, False if condition failed
        """
        try:
            kwargs: dict[str, Any] = {"Item": item}
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression
            if expression_attribute_values:
                kwargs["ExpressionAttributeValues"] = expression_attribute_values
            if expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = expression_attribute_names

            self._get_table(table).put_item(**kwargs)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            raise

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply an update expression.

        Returns:
            All attributes after the update, or None if the condition failed
        """
        try:
            kwargs: dict[str, Any] = {
                "Key": key,
                "UpdateExpression": update_expression,
                "ExpressionAttributeValues": expression_attribute_values,
                "ReturnValues": "ALL_NEW",
            }
            if expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = expression_attribute_names
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression

            response = self._get_table(table).update_item(**kwargs)
            attrs: dict[str, Any] | None = response.get("Attributes")
            return attrs
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise

    def increment(
        self,
        table: str,
        key: dict[str, Any],
        counters: dict[str, int | Decimal],
    ) -> None:
        """Atomically add to numeric attributes, creating them at zero.

        Args:
            table: Table name without prefix
            key: Primary key dict
            counters: Attribute name -> amount to add
        """
        names = {f"#c{i}": name for i, name in enumerate(counters)}
        values = {f":v{i}": amount for i, amount in enumerate(counters.values())}
        clauses = ", ".join(f"#c{i} :v{i}" for i in range(len(counters)))
        self._get_table(table).update_item(
            Key=key,
            UpdateExpression=f"ADD {clauses}",
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
        )

    def query(
        self,
        table: str,
        key_condition: Any,
        index_name: str | None = None,
        filter_expression: Any | None = None,
        limit: int | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query table or GSI, following pagination.

        Args:
            table: Table name without prefix
            key_condition: Boto3 Key condition
            index_name: GSI name (optional)
            filter_expression: Additional filter (optional)
            limit: Max items to return
            scan_index_forward: Sort order (True=ascending)

        Returns:
            List of items
        """
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": scan_index_forward,
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if filter_expression:
            kwargs["FilterExpression"] = filter_expression

        items: list[dict[str, Any]] = []
        while True:
            response = self._get_table(table).query(**kwargs)
            items.extend(response.get("Items", []))
            if limit and len(items) >= limit:
                return items[:limit]
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def batch_get(
        self,
        table: str,
        keys: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Batch get items by keys, 100 keys per request.

        Args:
            table: Table name without prefix
            keys: List of primary key dicts

        Returns:
            List of found items
        """
        if not keys:
            return []

        table_name = self._table_name(table)
        items: list[dict[str, Any]] = []
        for start in range(0, len(keys), 100):
            request: dict[str, Any] = {table_name: {"Keys": keys[start : start + 100]}}
            while request:
                response = self._dynamodb.batch_get_item(RequestItems=request)
                items.extend(response.get("Responses", {}).get(table_name, []))
                request = response.get("UnprocessedKeys") or {}
        return items

    def transact_write(
        self,
        items: list[dict[str, Any]],
    ) -> bool:
        """Execute a transactional write across tables.

        Each entry is a single-key dict (``Put``, ``Update`` or
        ``ConditionCheck``) whose body uses plain Python values and a
        ``table`` name without prefix, e.g.::

            {"Update": {"table": "bookings", "Key": {"booking_id": "b1"},
                        "UpdateExpression": "SET #status = :s",
                        "ExpressionAttributeNames": {"#status": "status"},
                        "ExpressionAttributeValues": {":s": "Upcoming"}}}

        Args:
            items: List of TransactWriteItem dicts

        Returns:
            True if committed, False if any condition cancelled the transaction
        """
        try:
            self._client.transact_write_items(
                TransactItems=[self._serialize_transact_item(i) for i in items]  # type: ignore[misc]
            )
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "TransactionCanceledException":
                return False
            raise

    def _serialize_transact_item(self, entry: dict[str, Any]) -> dict[str, Any]:
        ((operation, body),) = entry.items()
        wire: dict[str, Any] = {"TableName": self._table_name(body["table"])}
        for field, value in body.items():
            if field == "table":
                continue
            if field in ("Key", "Item", "ExpressionAttributeValues"):
                wire[field] = {
                    name: _serializer.serialize(_to_attribute(v))
                    for name, v in value.items()
                }
            else:
                wire[field] = value
        return {operation: wire}

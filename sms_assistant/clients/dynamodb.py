"""
DynamoDB implementation of the record store used for credentials and subscriptions.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import boto3
from boto3.dynamodb.conditions import Key

from sms_assistant.core.config import StorageSettings


class DynamoDBStore:
    """Whole-item CRUD against a table keyed by ``pk`` (hash) and ``sk`` (range)."""

    def __init__(self, settings: StorageSettings, *, table: Any | None = None) -> None:
        if table is None:
            if not settings.dynamodb_table_name:
                raise ValueError("DYNAMODB_TABLE_NAME is required for the dynamodb backend.")
            resource = boto3.resource("dynamodb", region_name=settings.region_name)
            table = resource.Table(settings.dynamodb_table_name)
        self._table = table

    def put_item(self, item: Dict[str, Any]) -> None:
        """PutItem replaces the whole item atomically."""
        if not item.get("pk") or not item.get("sk"):
            raise ValueError("Item must include 'pk' and 'sk' keys")
        self._table.put_item(Item=item)

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]:
        response = self._table.get_item(
            Key={"pk": partition_key, "sk": sort_key}, ConsistentRead=True
        )
        return response.get("Item")

    def delete_item(self, *, partition_key: str, sort_key: str) -> None:
        self._table.delete_item(Key={"pk": partition_key, "sk": sort_key})

    def list_items_with_prefix(
        self, *, partition_key: str, sort_key_prefix: str
    ) -> list[Dict[str, Any]]:
        condition = Key("pk").eq(partition_key) & Key("sk").begins_with(sort_key_prefix)
        response = self._table.query(KeyConditionExpression=condition)
        items = list(response.get("Items", []))
        while "LastEvaluatedKey" in response:
            response = self._table.query(
                KeyConditionExpression=condition,
                ExclusiveStartKey=response["LastEvaluatedKey"],
            )
            items.extend(response.get("Items", []))
        return items


__all__ = ["DynamoDBStore"]

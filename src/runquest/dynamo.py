"""Single-table DynamoDB access shared by the persistent stores.

Items are stored as ``{"pk": <prefix>:<id>, "data": <json string>}`` so that
sessions, medals and claims can live in one table.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import boto3  # type: ignore[reportMissingTypeStubs]
from boto3.dynamodb.conditions import Attr  # type: ignore[reportMissingTypeStubs]
from botocore.exceptions import ClientError  # type: ignore[reportMissingTypeStubs]

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


class DynamoItemTable:
    """Async wrapper around a boto3 DynamoDB table holding JSON items."""

    def __init__(
        self,
        table_name: str,
        *,
        region_name: str | None = None,
        boto3_resource: Any | None = None,
    ) -> None:
        self.table_name = table_name
        resource = boto3_resource or boto3.resource("dynamodb", region_name=region_name)  # type: ignore[reportUnknownMemberType]
        self._table = resource.Table(table_name)  # type: ignore[reportAttributeAccessIssue]

    async def put(self, pk: str, data: dict[str, Any], *, only_new: bool = False) -> bool:
        """Write an item; with ``only_new`` an existing key is left untouched.

        Returns False when ``only_new`` is set and the key already exists.
        """
        item = {"pk": pk, "data": json.dumps(data)}
        kwargs: dict[str, Any] = {"Item": item}
        if only_new:
            kwargs["ConditionExpression"] = Attr("pk").not_exists()
        try:
            await asyncio.to_thread(self._table.put_item, **kwargs)  # type: ignore[reportUnknownMemberType]
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == CONDITIONAL_CHECK_FAILED:
                return False
            raise
        return True

    async def get(self, pk: str) -> dict[str, Any] | None:
        response = await asyncio.to_thread(self._table.get_item, Key={"pk": pk})  # type: ignore[reportUnknownMemberType]
        item = response.get("Item")
        if item is None:
            return None
        return json.loads(item["data"])

    async def delete(self, pk: str) -> None:
        await asyncio.to_thread(self._table.delete_item, Key={"pk": pk})  # type: ignore[reportUnknownMemberType]

    async def scan_prefix(self, prefix: str) -> list[dict[str, Any]]:
        """Return the data of every item whose key starts with ``prefix``."""
        results: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {"FilterExpression": Attr("pk").begins_with(prefix)}
        while True:
            response = await asyncio.to_thread(self._table.scan, **kwargs)  # type: ignore[reportUnknownMemberType]
            results.extend(
                json.loads(item["data"])
                for item in response.get("Items", [])
                if str(item["pk"]).startswith(prefix)
            )
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return results
            kwargs["ExclusiveStartKey"] = last_key

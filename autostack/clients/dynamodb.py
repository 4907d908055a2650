"""
DynamoDB-backed token store for deployments that share tokens across hosts.
"""

from __future__ import annotations

from typing import Any, Optional

import boto3

from autostack.clients.token_store import TokenRecordCodec
from autostack.models.token import TokenKey, TokenRecord


class DynamoDBTokenStore:
    """Store serialized token records in a (pk, sk) keyed DynamoDB table."""

    def __init__(
        self,
        table_name: str,
        region_name: str,
        codec: TokenRecordCodec | None = None,
        table: Any = None,
    ) -> None:
        self._codec = codec or TokenRecordCodec()
        if table is None:
            resource = boto3.resource("dynamodb", region_name=region_name)
            table = resource.Table(table_name)
        self._table = table

    def put(self, key: TokenKey, record: TokenRecord) -> None:
        """Unconditionally overwrite the record stored for ``key``."""
        self._table.put_item(
            Item={
                "pk": key.partition_key,
                "sk": key.sort_key,
                "data": self._codec.dumps(record),
            }
        )

    def get(self, key: TokenKey) -> Optional[TokenRecord]:
        """Retrieve the record with a strongly consistent read."""
        response = self._table.get_item(
            Key={"pk": key.partition_key, "sk": key.sort_key},
            ConsistentRead=True,
        )
        item = response.get("Item")
        if not item:
            return None
        return self._codec.loads(item["data"])


__all__ = ["DynamoDBTokenStore"]

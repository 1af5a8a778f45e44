"""Shared plumbing for the DynamoDB repositories."""

import json
import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, Dict

import aioboto3
from botocore.exceptions import ClientError
from pydantic import BaseModel

from ..domain.errors import PersistenceFailure

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def model_to_item(model: BaseModel) -> Dict[str, Any]:
    """Convert an entity to a DynamoDB item.

    Floats become Decimals and top-level None values are dropped so sparse
    index attributes stay absent.
    """
    item = json.loads(model.model_dump_json(), parse_float=Decimal)
    return {key: value for key, value in item.items() if value is not None}


def plain(value: Any) -> Any:
    """Convert DynamoDB Decimals back to ints and floats, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {key: plain(inner) for key, inner in value.items()}
    if isinstance(value, list):
        return [plain(inner) for inner in value]
    return value


def is_conditional_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == CONDITIONAL_CHECK_FAILED


class DynamoDBRepository:
    """Base class holding the aioboto3 session and table access."""

    def __init__(self, table_name: str, region_name: str = "us-east-1"):
        """Initialize the repository.

        Args:
            table_name: The name of the DynamoDB table.
            region_name: AWS region name (default: us-east-1).
        """
        self.table_name = table_name
        self.region_name = region_name
        self._session = aioboto3.Session()

    @asynccontextmanager
    async def _table(self, operation: str, table_name: str | None = None) -> AsyncIterator[Any]:
        """Yield a table resource, translating storage errors to PersistenceFailure."""
        try:
            async with self._session.resource("dynamodb", region_name=self.region_name) as dynamodb:
                yield await dynamodb.Table(table_name or self.table_name)
        except ClientError as e:
            logger.error(f"DynamoDB {operation} failed on {table_name or self.table_name}: {e}")
            raise PersistenceFailure(operation) from e

    @staticmethod
    async def _query_all(table: Any, **kwargs: Any) -> list[Dict[str, Any]]:
        """Run a query and follow pagination."""
        items: list[Dict[str, Any]] = []
        while True:
            response = await table.query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    @staticmethod
    async def _scan_all(table: Any, **kwargs: Any) -> list[Dict[str, Any]]:
        """Run a scan and follow pagination."""
        items: list[Dict[str, Any]] = []
        while True:
            response = await table.scan(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    @staticmethod
    async def _count(table: Any, **kwargs: Any) -> int:
        """Count query matches without fetching items."""
        total = 0
        kwargs["Select"] = "COUNT"
        while True:
            response = await table.query(**kwargs)
            total += int(response.get("Count", 0))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return total
            kwargs["ExclusiveStartKey"] = last_key

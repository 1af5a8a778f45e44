"""DynamoDB implementation of Progress Repository."""

from typing import Optional
from uuid import UUID

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from ..domain.entities.progress import ProgressRecord
from ..domain.interfaces.progress_repository import ProgressRepository
from .dynamodb_support import DynamoDBRepository, is_conditional_failure, model_to_item, plain


class DynamoDBProgressRepository(DynamoDBRepository, ProgressRepository):
    """DynamoDB repository for reading progress.

    Hash key ``document_id``, range key ``participant_id``. Writes are
    conditional on the stored percentage not exceeding the new one, so a
    late retry can never move a reader backwards.
    """

    async def upsert_progress(self, record: ProgressRecord) -> None:
        item = model_to_item(record)
        async with self._table("upsert_progress") as table:
            try:
                await table.update_item(
                    Key={
                        "document_id": item["document_id"],
                        "participant_id": item["participant_id"],
                    },
                    UpdateExpression=(
                        "SET username = :username, percentage = :p, #loc = :location, "
                        "chapter = :chapter, last_updated_at = :updated, "
                        "created_at = if_not_exists(created_at, :created)"
                    ),
                    ConditionExpression="attribute_not_exists(percentage) OR percentage <= :p",
                    ExpressionAttributeNames={"#loc": "location"},
                    ExpressionAttributeValues={
                        ":username": item["username"],
                        ":p": item["percentage"],
                        ":location": item["location"],
                        ":chapter": item.get("chapter"),
                        ":updated": item["last_updated_at"],
                        ":created": item["created_at"],
                    },
                )
            except ClientError as e:
                if not is_conditional_failure(e):
                    raise

    async def get_progress(self, document_id: UUID, participant_id: UUID) -> Optional[ProgressRecord]:
        async with self._table("get_progress") as table:
            response = await table.get_item(
                Key={"document_id": str(document_id), "participant_id": str(participant_id)}
            )

        if "Item" not in response:
            return None
        return ProgressRecord.model_validate(plain(response["Item"]))

    async def list_progress(self, document_id: UUID) -> list[ProgressRecord]:
        async with self._table("list_progress") as table:
            items = await self._query_all(
                table,
                KeyConditionExpression=Key("document_id").eq(str(document_id)),
            )

        records = [ProgressRecord.model_validate(plain(item)) for item in items]
        return sorted(records, key=lambda r: r.last_updated_at, reverse=True)

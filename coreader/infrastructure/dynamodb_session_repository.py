"""DynamoDB implementation of Session Repository."""

from datetime import datetime
from typing import Any, Dict
from uuid import UUID

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from ..domain.entities.reading_session import Document, ReadingSession, utc_now
from ..domain.errors import NotFound
from ..domain.interfaces.session_repository import SessionRepository
from .dynamodb_support import DynamoDBRepository, is_conditional_failure, model_to_item, plain

SLUG_INDEX = "slug-index"


class DynamoDBSessionRepository(DynamoDBRepository, SessionRepository):
    """DynamoDB repository for documents and sessions.

    Sessions live in ``table_name`` keyed by ``id``; documents live in
    ``documents_table_name`` keyed by ``id`` with a ``slug-index`` GSI.
    """

    def __init__(
        self,
        table_name: str,
        documents_table_name: str,
        region_name: str = "us-east-1",
    ):
        super().__init__(table_name, region_name)
        self.documents_table_name = documents_table_name

    async def save_document(self, document: Document) -> None:
        async with self._table("save_document", self.documents_table_name) as table:
            await table.put_item(Item=model_to_item(document))

    async def get_document(self, document_id: UUID) -> Document:
        async with self._table("get_document", self.documents_table_name) as table:
            response = await table.get_item(Key={"id": str(document_id)})

        if "Item" not in response:
            raise NotFound("document", document_id)
        return Document.model_validate(plain(response["Item"]))

    async def get_document_by_slug(self, slug: str) -> Document:
        async with self._table("get_document_by_slug", self.documents_table_name) as table:
            items = await self._query_all(
                table,
                IndexName=SLUG_INDEX,
                KeyConditionExpression=Key("slug").eq(slug),
            )

        if not items:
            raise NotFound("document", slug)
        return Document.model_validate(plain(items[0]))

    async def save_session(self, session: ReadingSession) -> None:
        """Save a session to DynamoDB.

        Args:
            session: The session entity to save.
        """
        async with self._table("save_session") as table:
            await table.put_item(Item=self._session_to_item(session))

    async def get_session(self, session_id: UUID) -> ReadingSession:
        """Retrieve a session by ID from DynamoDB.

        Args:
            session_id: The unique identifier of the session.

        Returns:
            ReadingSession: The session entity.

        Raises:
            NotFound: If the session is not found.
        """
        async with self._table("get_session") as table:
            response = await table.get_item(Key={"id": str(session_id)})

        if "Item" not in response:
            raise NotFound("session", session_id)
        return self._item_to_session(response["Item"])

    async def list_sessions(self) -> list[ReadingSession]:
        async with self._table("list_sessions") as table:
            items = await self._scan_all(table)
        return [self._item_to_session(item) for item in items]

    async def increment_participants(self, session_id: UUID, ceiling: int) -> bool:
        async with self._table("increment_participants") as table:
            try:
                await table.update_item(
                    Key={"id": str(session_id)},
                    UpdateExpression=(
                        "SET participant_count = participant_count + :one, "
                        "is_active = :active, last_activity_at = :now"
                    ),
                    ConditionExpression=Attr("id").exists() & Attr("participant_count").lt(ceiling),
                    ExpressionAttributeValues={
                        ":one": 1,
                        ":active": True,
                        ":now": utc_now().isoformat(),
                    },
                )
            except ClientError as e:
                if is_conditional_failure(e):
                    return False
                raise
        return True

    async def decrement_participants(self, session_id: UUID) -> None:
        async with self._table("decrement_participants") as table:
            try:
                await table.update_item(
                    Key={"id": str(session_id)},
                    UpdateExpression="SET participant_count = participant_count - :one, last_activity_at = :now",
                    ConditionExpression=Attr("participant_count").gt(0),
                    ExpressionAttributeValues={":one": 1, ":now": utc_now().isoformat()},
                )
            except ClientError as e:
                if not is_conditional_failure(e):
                    raise

    async def reset_participant_counts(self) -> int:
        async with self._table("reset_participant_counts") as table:
            items = await self._scan_all(table, FilterExpression=Attr("participant_count").gt(0))
            for item in items:
                await table.update_item(
                    Key={"id": item["id"]},
                    UpdateExpression="SET participant_count = :zero",
                    ExpressionAttributeValues={":zero": 0},
                )
        return len(items)

    async def mark_inactive(self, session_id: UUID) -> None:
        async with self._table("mark_inactive") as table:
            await table.update_item(
                Key={"id": str(session_id)},
                UpdateExpression="SET is_active = :inactive",
                ExpressionAttributeValues={":inactive": False},
            )

    def _session_to_item(self, session: ReadingSession) -> Dict[str, Any]:
        """Convert a Session entity to a DynamoDB item.

        Args:
            session: The session entity.

        Returns:
            Dict: The DynamoDB item representation.
        """
        return {
            "id": str(session.id),
            "document_id": str(session.document_id),
            "participant_count": session.participant_count,
            "is_active": session.is_active,
            "created_at": session.created_at.isoformat(),
            "last_activity_at": session.last_activity_at.isoformat(),
        }

    def _item_to_session(self, item: Dict[str, Any]) -> ReadingSession:
        """Convert a DynamoDB item to a Session entity.

        Args:
            item: The DynamoDB item.

        Returns:
            ReadingSession: The session entity.
        """
        return ReadingSession(
            id=UUID(item["id"]),
            document_id=UUID(item["document_id"]),
            participant_count=int(item.get("participant_count", 0)),
            is_active=bool(item.get("is_active", True)),
            created_at=datetime.fromisoformat(item["created_at"]),
            last_activity_at=datetime.fromisoformat(item["last_activity_at"]),
        )

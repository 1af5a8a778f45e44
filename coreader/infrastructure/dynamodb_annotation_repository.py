"""DynamoDB implementation of Annotation Repository."""

from typing import Optional
from uuid import UUID

from boto3.dynamodb.conditions import Attr, Key

from ..domain.entities.annotation import Comment, Highlight
from ..domain.interfaces.annotation_repository import AnnotationRepository
from .dynamodb_support import DynamoDBRepository, model_to_item, plain

DOCUMENT_INDEX = "document-index"
HIGHLIGHT_INDEX = "highlight-index"
PARENT_INDEX = "parent-index"


class DynamoDBAnnotationRepository(DynamoDBRepository, AnnotationRepository):
    """DynamoDB repository for highlights and comments.

    Highlights live in ``table_name`` with a ``document-index`` GSI
    (hash ``document_id``, range ``created_at``). Comments live in
    ``comments_table_name`` with ``highlight-index``, ``document-index``
    and a sparse ``parent-index`` that only holds replies.
    """

    def __init__(
        self,
        table_name: str,
        comments_table_name: str,
        region_name: str = "us-east-1",
    ):
        super().__init__(table_name, region_name)
        self.comments_table_name = comments_table_name

    async def save_highlight(self, highlight: Highlight) -> None:
        item = model_to_item(highlight)
        item.pop("durable", None)
        async with self._table("save_highlight") as table:
            await table.put_item(Item=item)

    async def get_highlight(self, highlight_id: UUID) -> Optional[Highlight]:
        async with self._table("get_highlight") as table:
            response = await table.get_item(Key={"id": str(highlight_id)})

        if "Item" not in response:
            return None
        return Highlight.model_validate(plain(response["Item"]))

    async def list_highlights(
        self,
        document_id: UUID,
        chapter: Optional[int] = None,
        participant_id: Optional[UUID] = None,
    ) -> list[Highlight]:
        query = {
            "IndexName": DOCUMENT_INDEX,
            "KeyConditionExpression": Key("document_id").eq(str(document_id)),
        }
        conditions = []
        if chapter is not None:
            conditions.append(Attr("anchor.chapter").eq(chapter))
        if participant_id is not None:
            conditions.append(Attr("participant_id").eq(str(participant_id)))
        if conditions:
            expression = conditions[0]
            for condition in conditions[1:]:
                expression = expression & condition
            query["FilterExpression"] = expression

        async with self._table("list_highlights") as table:
            items = await self._query_all(table, **query)
        return [Highlight.model_validate(plain(item)) for item in items]

    async def count_highlights(self, document_id: UUID, participant_id: UUID) -> int:
        async with self._table("count_highlights") as table:
            return await self._count(
                table,
                IndexName=DOCUMENT_INDEX,
                KeyConditionExpression=Key("document_id").eq(str(document_id)),
                FilterExpression=Attr("participant_id").eq(str(participant_id)),
            )

    async def save_comment(self, comment: Comment) -> None:
        item = model_to_item(comment)
        item.pop("durable", None)
        async with self._table("save_comment", self.comments_table_name) as table:
            await table.put_item(Item=item)

    async def get_comment(self, comment_id: UUID) -> Optional[Comment]:
        async with self._table("get_comment", self.comments_table_name) as table:
            response = await table.get_item(Key={"id": str(comment_id)})

        if "Item" not in response:
            return None
        return Comment.model_validate(plain(response["Item"]))

    async def list_comments(self, highlight_id: UUID) -> list[Comment]:
        async with self._table("list_comments", self.comments_table_name) as table:
            items = await self._query_all(
                table,
                IndexName=HIGHLIGHT_INDEX,
                KeyConditionExpression=Key("highlight_id").eq(str(highlight_id)),
            )
        return [Comment.model_validate(plain(item)) for item in items]

    async def list_document_comments(
        self,
        document_id: UUID,
        participant_id: Optional[UUID] = None,
    ) -> list[Comment]:
        query = {
            "IndexName": DOCUMENT_INDEX,
            "KeyConditionExpression": Key("document_id").eq(str(document_id)),
        }
        if participant_id is not None:
            query["FilterExpression"] = Attr("participant_id").eq(str(participant_id))

        async with self._table("list_document_comments", self.comments_table_name) as table:
            items = await self._query_all(table, **query)
        return [Comment.model_validate(plain(item)) for item in items]

    async def count_comments(self, highlight_id: UUID) -> int:
        async with self._table("count_comments", self.comments_table_name) as table:
            return await self._count(
                table,
                IndexName=HIGHLIGHT_INDEX,
                KeyConditionExpression=Key("highlight_id").eq(str(highlight_id)),
            )

    async def count_replies(self, parent_id: UUID) -> int:
        async with self._table("count_replies", self.comments_table_name) as table:
            return await self._count(
                table,
                IndexName=PARENT_INDEX,
                KeyConditionExpression=Key("parent_id").eq(str(parent_id)),
            )

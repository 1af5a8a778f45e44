"""Local in-memory implementation of AnnotationRepository."""

from typing import Dict, Optional
from uuid import UUID

from ..domain.entities.annotation import Comment, Highlight
from ..domain.interfaces.annotation_repository import AnnotationRepository


class LocalAnnotationRepository(AnnotationRepository):
    """Local in-memory implementation of the AnnotationRepository protocol.

    Dictionaries keep insertion order, which doubles as creation order.
    """

    def __init__(self):
        self._highlights: Dict[UUID, Highlight] = {}
        self._comments: Dict[UUID, Comment] = {}

    async def save_highlight(self, highlight: Highlight) -> None:
        self._highlights[highlight.id] = highlight

    async def get_highlight(self, highlight_id: UUID) -> Optional[Highlight]:
        return self._highlights.get(highlight_id)

    async def list_highlights(
        self,
        document_id: UUID,
        chapter: Optional[int] = None,
        participant_id: Optional[UUID] = None,
    ) -> list[Highlight]:
        return [
            h
            for h in self._highlights.values()
            if h.document_id == document_id
            and (chapter is None or h.anchor.chapter == chapter)
            and (participant_id is None or h.participant_id == participant_id)
        ]

    async def count_highlights(self, document_id: UUID, participant_id: UUID) -> int:
        return sum(
            1
            for h in self._highlights.values()
            if h.document_id == document_id and h.participant_id == participant_id
        )

    async def save_comment(self, comment: Comment) -> None:
        self._comments[comment.id] = comment

    async def get_comment(self, comment_id: UUID) -> Optional[Comment]:
        return self._comments.get(comment_id)

    async def list_comments(self, highlight_id: UUID) -> list[Comment]:
        return [c for c in self._comments.values() if c.highlight_id == highlight_id]

    async def list_document_comments(
        self,
        document_id: UUID,
        participant_id: Optional[UUID] = None,
    ) -> list[Comment]:
        return [
            c
            for c in self._comments.values()
            if c.document_id == document_id
            and (participant_id is None or c.participant_id == participant_id)
        ]

    async def count_comments(self, highlight_id: UUID) -> int:
        return sum(1 for c in self._comments.values() if c.highlight_id == highlight_id)

    async def count_replies(self, parent_id: UUID) -> int:
        return sum(1 for c in self._comments.values() if c.parent_id == parent_id)

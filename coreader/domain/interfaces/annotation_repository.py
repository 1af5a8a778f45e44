"""Annotation repository protocol."""

from typing import Optional, Protocol, runtime_checkable
from uuid import UUID

from ..entities.annotation import Comment, Highlight


@runtime_checkable
class AnnotationRepository(Protocol):
    """Protocol for highlight and comment storage."""

    async def save_highlight(self, highlight: Highlight) -> None:
        ...

    async def get_highlight(self, highlight_id: UUID) -> Optional[Highlight]:
        ...

    async def list_highlights(
        self,
        document_id: UUID,
        chapter: Optional[int] = None,
        participant_id: Optional[UUID] = None,
    ) -> list[Highlight]:
        """List highlights of a document in creation order, optionally filtered."""
        ...

    async def count_highlights(self, document_id: UUID, participant_id: UUID) -> int:
        """Count the highlights one participant created in one document."""
        ...

    async def save_comment(self, comment: Comment) -> None:
        ...

    async def get_comment(self, comment_id: UUID) -> Optional[Comment]:
        ...

    async def list_comments(self, highlight_id: UUID) -> list[Comment]:
        """List every comment and reply of a highlight in creation order."""
        ...

    async def list_document_comments(
        self,
        document_id: UUID,
        participant_id: Optional[UUID] = None,
    ) -> list[Comment]:
        """List every comment of a document in creation order."""
        ...

    async def count_comments(self, highlight_id: UUID) -> int:
        """Count every comment of a highlight, replies included."""
        ...

    async def count_replies(self, parent_id: UUID) -> int:
        """Count the direct replies to a comment."""
        ...

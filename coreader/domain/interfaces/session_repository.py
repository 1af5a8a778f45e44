"""Session Repository interface."""

from typing import Protocol, runtime_checkable
from uuid import UUID

from ..entities.reading_session import Document, ReadingSession


@runtime_checkable
class SessionRepository(Protocol):
    """Protocol defining the interface for document and session persistence.

    This interface can be implemented by different storage backends
    (in-memory, DynamoDB, etc.). Participant counters must be changed through
    the conditional methods so the storage layer itself refuses to exceed the
    configured ceiling.
    """

    async def save_document(self, document: Document) -> None:
        """Save a document to the repository."""
        ...

    async def get_document(self, document_id: UUID) -> Document:
        """Retrieve a document by ID.

        Raises:
            NotFound: If the document is not found.
        """
        ...

    async def get_document_by_slug(self, slug: str) -> Document:
        """Retrieve a document by its shareable slug.

        Raises:
            NotFound: If no document has that slug.
        """
        ...

    async def save_session(self, session: ReadingSession) -> None:
        """Save a session to the repository."""
        ...

    async def get_session(self, session_id: UUID) -> ReadingSession:
        """Retrieve a session by ID.

        Raises:
            NotFound: If the session is not found.
        """
        ...

    async def list_sessions(self) -> list[ReadingSession]:
        """List all sessions."""
        ...

    async def increment_participants(self, session_id: UUID, ceiling: int) -> bool:
        """Add one participant if the count is below ``ceiling``.

        The check and the increment are a single conditional write. The session
        is marked active and its last activity refreshed on success.

        Returns:
            bool: True if the participant was counted, False if the session is full.
        """
        ...

    async def decrement_participants(self, session_id: UUID) -> None:
        """Remove one participant, never going below zero."""
        ...

    async def reset_participant_counts(self) -> int:
        """Zero every participant counter. Used once at process start.

        Returns:
            int: Number of sessions that were reset.
        """
        ...

    async def mark_inactive(self, session_id: UUID) -> None:
        """Mark a session inactive without deleting it."""
        ...

"""Local in-memory implementation of Session Repository."""

from typing import Dict
from uuid import UUID

from ..domain.entities.reading_session import Document, ReadingSession, utc_now
from ..domain.errors import NotFound
from ..domain.interfaces.session_repository import SessionRepository


class LocalSessionRepository(SessionRepository):
    """Local in-memory implementation of the Session Repository.

    Stores documents and sessions in dictionaries for testing and development
    purposes. Every method runs without suspending between its read and its
    write, so the conditional counter updates are atomic on the event loop.
    """

    def __init__(self):
        """Initialize the local session repository with empty dictionaries."""
        self._documents: Dict[UUID, Document] = {}
        self._sessions: Dict[UUID, ReadingSession] = {}

    async def save_document(self, document: Document) -> None:
        self._documents[document.id] = document

    async def get_document(self, document_id: UUID) -> Document:
        if document_id not in self._documents:
            raise NotFound("document", document_id)

        return self._documents[document_id]

    async def get_document_by_slug(self, slug: str) -> Document:
        for document in self._documents.values():
            if document.slug == slug:
                return document
        raise NotFound("document", slug)

    async def save_session(self, session: ReadingSession) -> None:
        """Save a session to the in-memory dictionary.

        Args:
            session: The session entity to save.
        """
        self._sessions[session.id] = session

    async def get_session(self, session_id: UUID) -> ReadingSession:
        """Retrieve a session by ID from the in-memory dictionary.

        Args:
            session_id: The unique identifier of the session.

        Returns:
            ReadingSession: The session entity.

        Raises:
            NotFound: If the session is not found.
        """
        if session_id not in self._sessions:
            raise NotFound("session", session_id)

        return self._sessions[session_id]

    async def list_sessions(self) -> list[ReadingSession]:
        return list(self._sessions.values())

    async def increment_participants(self, session_id: UUID, ceiling: int) -> bool:
        session = await self.get_session(session_id)
        if session.participant_count >= ceiling:
            return False

        session.participant_count += 1
        session.is_active = True
        session.last_activity_at = utc_now()
        return True

    async def decrement_participants(self, session_id: UUID) -> None:
        session = await self.get_session(session_id)
        session.participant_count = max(0, session.participant_count - 1)
        session.last_activity_at = utc_now()

    async def reset_participant_counts(self) -> int:
        reset = 0
        for session in self._sessions.values():
            if session.participant_count:
                session.participant_count = 0
                reset += 1
        return reset

    async def mark_inactive(self, session_id: UUID) -> None:
        session = await self.get_session(session_id)
        session.is_active = False

"""Progress repository protocol."""

from typing import Optional, Protocol, runtime_checkable
from uuid import UUID

from ..entities.progress import ProgressRecord


@runtime_checkable
class ProgressRepository(Protocol):
    """Protocol for furthest-progress storage."""

    async def upsert_progress(self, record: ProgressRecord) -> None:
        """Insert or update a record, never lowering a stored percentage.

        The write is idempotent, so callers may retry it.
        """
        ...

    async def get_progress(self, document_id: UUID, participant_id: UUID) -> Optional[ProgressRecord]:
        ...

    async def list_progress(self, document_id: UUID) -> list[ProgressRecord]:
        """List every record of a document, most recently updated first."""
        ...

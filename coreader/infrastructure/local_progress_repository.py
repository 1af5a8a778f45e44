"""Local in-memory implementation of ProgressRepository."""

from typing import Dict, Optional
from uuid import UUID

from ..domain.entities.progress import ProgressRecord
from ..domain.interfaces.progress_repository import ProgressRepository


class LocalProgressRepository(ProgressRepository):
    """Local in-memory implementation of the ProgressRepository protocol."""

    def __init__(self):
        self._records: Dict[tuple[UUID, UUID], ProgressRecord] = {}
        self.write_count = 0

    async def upsert_progress(self, record: ProgressRecord) -> None:
        key = (record.document_id, record.participant_id)
        existing = self._records.get(key)
        self.write_count += 1

        if existing is None:
            self._records[key] = record.model_copy()
            return
        if record.percentage < existing.percentage:
            return

        self._records[key] = record.model_copy(update={"created_at": existing.created_at})

    async def get_progress(self, document_id: UUID, participant_id: UUID) -> Optional[ProgressRecord]:
        return self._records.get((document_id, participant_id))

    async def list_progress(self, document_id: UUID) -> list[ProgressRecord]:
        records = [r for r in self._records.values() if r.document_id == document_id]
        return sorted(records, key=lambda r: r.last_updated_at, reverse=True)

"""Reading progress entities."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .reading_session import utc_now


class ProgressOutcome(str, Enum):
    """Result of reporting a reading position."""

    ACCEPTED = "accepted"
    IGNORED = "ignored"


class ProgressPosition(BaseModel):
    """A reported reading position."""

    percentage: float = Field(ge=0, le=100)
    location: Optional[str] = Field(default=None, max_length=2048)
    chapter: Optional[int] = Field(default=None, ge=0)


class ProgressRecord(BaseModel):
    """Furthest position reached by one participant in one document."""

    document_id: UUID
    participant_id: UUID
    username: Optional[str] = None
    percentage: float = Field(default=0, ge=0, le=100)
    location: Optional[str] = None
    chapter: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)
    last_updated_at: datetime = Field(default_factory=utc_now)

    @property
    def position(self) -> ProgressPosition:
        return ProgressPosition(
            percentage=self.percentage,
            location=self.location,
            chapter=self.chapter,
        )

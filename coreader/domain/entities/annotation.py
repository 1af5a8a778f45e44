"""Highlight and comment entities."""

import uuid
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .reading_session import utc_now

DEFAULT_HIGHLIGHT_COLOR = "#ffeb3b"


class Anchor(BaseModel):
    """Opaque location pointer into document content.

    The location string comes from the rendering library (a CFI for EPUB) and is
    never interpreted here.
    """

    location: str = Field(min_length=1, max_length=2048)
    position: Optional[int] = Field(default=None, ge=0, description="Optional linear position")
    chapter: Optional[int] = Field(default=None, ge=0, description="Chapter index")


class Highlight(BaseModel):
    """Annotation anchored to a range within a document."""

    id: UUID = Field(default_factory=uuid.uuid4)
    document_id: UUID
    session_id: Optional[UUID] = None
    participant_id: UUID
    username: str
    anchor: Anchor
    text: str
    color: str = DEFAULT_HIGHLIGHT_COLOR
    created_at: datetime = Field(default_factory=utc_now)
    durable: bool = True


class Comment(BaseModel):
    """Threaded discussion entry on a highlight.

    A root comment has no parent and depth 0; a reply sits one level below its
    parent.
    """

    id: UUID = Field(default_factory=uuid.uuid4)
    highlight_id: UUID
    document_id: UUID
    parent_id: Optional[UUID] = None
    participant_id: UUID
    username: str
    text: str
    depth: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    durable: bool = True

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None

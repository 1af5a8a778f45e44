"""Document and session entities for the collaborative reader."""

import secrets
import string
import uuid
from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, Field

SLUG_ALPHABET = string.ascii_letters + string.digits
SLUG_LENGTH = 8


def utc_now() -> datetime:
    """Timezone-aware current time used for every entity timestamp."""
    return datetime.now(timezone.utc)


def generate_slug() -> str:
    """Generate the short shareable slug handed out for a document."""
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(SLUG_LENGTH))


class Document(BaseModel):
    """An ingested document that readers can share a session on."""

    id: UUID = Field(default_factory=uuid.uuid4)
    title: str = Field(min_length=1, max_length=200)
    author: str = Field(default="Unknown Author", max_length=200)
    slug: str = Field(default_factory=generate_slug, min_length=1, max_length=32)
    session_id: UUID = Field(default_factory=uuid.uuid4)
    created_at: datetime = Field(default_factory=utc_now)


class ReadingSession(BaseModel):
    """Session entity representing one shared reading context for a document."""

    id: UUID = Field(default_factory=uuid.uuid4)
    document_id: UUID
    participant_count: int = Field(default=0, ge=0)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    last_activity_at: datetime = Field(default_factory=utc_now)

    class Config:
        """Pydantic model configuration."""

        json_schema_extra = {
            "example": {
                "id": "0f6c2a52-2f2d-4df6-9d8e-3b1f3f0c9b10",
                "document_id": "5b8d3c1e-6a0b-4c3e-8f7a-9d2e1c0b4a55",
                "participant_count": 2,
                "is_active": True,
            }
        }

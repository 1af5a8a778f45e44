"""Anonymous participant profile entities."""

import uuid
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from .reading_session import utc_now


class Profile(BaseModel):
    """Anonymous identity scoped to one document, reused across reconnects."""

    id: UUID = Field(default_factory=uuid.uuid4)
    document_id: UUID
    username: str = Field(min_length=1, max_length=50)
    color: str = Field(pattern=r"^#[0-9A-Fa-f]{6}$", description="Hex display color")
    created_at: datetime = Field(default_factory=utc_now)
    last_used_at: datetime = Field(default_factory=utc_now)

    class Config:
        """Pydantic model configuration."""

        json_schema_extra = {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174000",
                "document_id": "5b8d3c1e-6a0b-4c3e-8f7a-9d2e1c0b4a55",
                "username": "Curious Penguin",
                "color": "#4ECDC4",
            }
        }

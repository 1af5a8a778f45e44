"""Profile repository protocol."""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable
from uuid import UUID

from ..entities.profile import Profile


@runtime_checkable
class ProfileRepository(Protocol):
    """Protocol for anonymous participant profile storage."""

    async def create_profile(self, profile: Profile) -> None:
        """Store a new profile.

        Raises:
            ProfileConflict: If the username is already taken in the document.
        """
        ...

    async def get_profile(self, profile_id: UUID) -> Optional[Profile]:
        """Retrieve a profile by ID, or None if it does not exist (or expired)."""
        ...

    async def touch_profile(self, profile_id: UUID, used_at: datetime) -> Optional[Profile]:
        """Refresh ``last_used_at`` and return the updated profile, or None."""
        ...

    async def list_profiles(self, document_id: UUID) -> list[Profile]:
        """List profiles of a document, most recently used first."""
        ...

    async def delete_expired(self, cutoff: datetime) -> int:
        """Delete profiles last used before ``cutoff``.

        Returns:
            int: Number of deleted profiles.
        """
        ...

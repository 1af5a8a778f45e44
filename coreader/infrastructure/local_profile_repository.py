"""Local in-memory implementation of ProfileRepository."""

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from ..domain.entities.profile import Profile
from ..domain.errors import ProfileConflict
from ..domain.interfaces.profile_repository import ProfileRepository


class LocalProfileRepository(ProfileRepository):
    """Local in-memory implementation of the ProfileRepository protocol.

    Stores profiles in a dictionary for testing and development purposes.
    Usernames are unique per document.
    """

    def __init__(self):
        self._profiles: Dict[UUID, Profile] = {}

    async def create_profile(self, profile: Profile) -> None:
        for existing in self._profiles.values():
            if (
                existing.document_id == profile.document_id
                and existing.username == profile.username
                and existing.id != profile.id
            ):
                raise ProfileConflict(profile.username)

        self._profiles[profile.id] = profile

    async def get_profile(self, profile_id: UUID) -> Optional[Profile]:
        return self._profiles.get(profile_id)

    async def touch_profile(self, profile_id: UUID, used_at: datetime) -> Optional[Profile]:
        profile = self._profiles.get(profile_id)
        if profile is None:
            return None

        profile.last_used_at = used_at
        return profile

    async def list_profiles(self, document_id: UUID) -> list[Profile]:
        profiles = [p for p in self._profiles.values() if p.document_id == document_id]
        return sorted(profiles, key=lambda p: p.last_used_at, reverse=True)

    async def delete_expired(self, cutoff: datetime) -> int:
        expired = [pid for pid, p in self._profiles.items() if p.last_used_at < cutoff]
        for profile_id in expired:
            del self._profiles[profile_id]
        return len(expired)

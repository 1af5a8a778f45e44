"""Anonymous profile generation."""

import logging
import random
from typing import Optional
from uuid import UUID

from ..entities.profile import Profile
from ..errors import ProfileConflict
from ..interfaces.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)

ADJECTIVES = [
    "Cheerful",
    "Curious",
    "Witty",
    "Brave",
    "Clever",
    "Friendly",
    "Gentle",
    "Happy",
    "Kind",
    "Lively",
]

ANIMALS = [
    "Penguin",
    "Dolphin",
    "Elephant",
    "Giraffe",
    "Kangaroo",
    "Lion",
    "Owl",
    "Panda",
    "Tiger",
    "Zebra",
]

COLORS = [
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FFEAA7",
    "#DDA0DD",
    "#98D8C8",
    "#F7DC6F",
    "#BB8FCE",
    "#85C1E9",
]

MAX_NAME_ATTEMPTS = 5


def generate_username(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return f"{rng.choice(ADJECTIVES)} {rng.choice(ANIMALS)}"


def generate_color(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return rng.choice(COLORS)


def generate_profile(document_id: UUID, rng: Optional[random.Random] = None) -> Profile:
    """Build a fresh anonymous profile for a document.

    Args:
        document_id: The document the profile is scoped to.
        rng: Optional random source, for reproducible names in tests.

    Returns:
        Profile: A profile with an "Adjective Animal" username and a palette color.
    """
    return Profile(
        document_id=document_id,
        username=generate_username(rng),
        color=generate_color(rng),
    )


async def create_unique_profile(
    repository: ProfileRepository,
    document_id: UUID,
    rng: Optional[random.Random] = None,
) -> Profile:
    """Generate and persist a profile whose username is free in the document.

    The name space is small, so after ``MAX_NAME_ATTEMPTS`` collisions a
    numeric suffix is appended to the last candidate.
    """
    rng = rng or random
    profile = generate_profile(document_id, rng)
    for attempt in range(MAX_NAME_ATTEMPTS):
        try:
            await repository.create_profile(profile)
            return profile
        except ProfileConflict:
            logger.debug(f"Generated username {profile.username} taken (attempt {attempt + 1})")
            profile = generate_profile(document_id, rng)

    while True:
        candidate = profile.model_copy(
            update={"username": f"{profile.username} {rng.randint(2, 9999)}"}
        )
        try:
            await repository.create_profile(candidate)
            return candidate
        except ProfileConflict:
            continue

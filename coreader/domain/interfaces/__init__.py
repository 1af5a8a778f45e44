"""Domain interfaces for the collaborative reader."""

from .annotation_repository import AnnotationRepository
from .profile_repository import ProfileRepository
from .progress_repository import ProgressRepository
from .session_repository import SessionRepository

__all__ = [
    "AnnotationRepository",
    "ProfileRepository",
    "ProgressRepository",
    "SessionRepository",
]

"""Infrastructure layer components."""

from .dynamodb_annotation_repository import DynamoDBAnnotationRepository
from .dynamodb_profile_repository import DynamoDBProfileRepository
from .dynamodb_progress_repository import DynamoDBProgressRepository
from .dynamodb_session_repository import DynamoDBSessionRepository
from .local_annotation_repository import LocalAnnotationRepository
from .local_profile_repository import LocalProfileRepository
from .local_progress_repository import LocalProgressRepository
from .local_session_repository import LocalSessionRepository

__all__ = [
    "DynamoDBAnnotationRepository",
    "DynamoDBProfileRepository",
    "DynamoDBProgressRepository",
    "DynamoDBSessionRepository",
    "LocalAnnotationRepository",
    "LocalProfileRepository",
    "LocalProgressRepository",
    "LocalSessionRepository",
]

"""Test that repository implementations conform to their protocols."""

import pytest

from coreader.domain.interfaces import (
    AnnotationRepository,
    ProfileRepository,
    ProgressRepository,
    SessionRepository,
)
from coreader.infrastructure import (
    DynamoDBAnnotationRepository,
    DynamoDBProfileRepository,
    DynamoDBProgressRepository,
    DynamoDBSessionRepository,
    LocalAnnotationRepository,
    LocalProfileRepository,
    LocalProgressRepository,
    LocalSessionRepository,
)


@pytest.mark.parametrize(
    "factory,protocol",
    [
        (LocalSessionRepository, SessionRepository),
        (LocalProfileRepository, ProfileRepository),
        (LocalAnnotationRepository, AnnotationRepository),
        (LocalProgressRepository, ProgressRepository),
        (lambda: DynamoDBSessionRepository("sessions", "documents"), SessionRepository),
        (lambda: DynamoDBProfileRepository("profiles"), ProfileRepository),
        (lambda: DynamoDBAnnotationRepository("highlights", "comments"), AnnotationRepository),
        (lambda: DynamoDBProgressRepository("progress"), ProgressRepository),
    ],
)
def test_repository_implements_protocol(factory, protocol):
    """Test that each repository is an instance of its protocol."""
    repository = factory()

    assert isinstance(repository, protocol)


def test_repositories_are_interchangeable():
    """Test that local and DynamoDB repositories expose the same methods."""
    pairs = [
        (LocalSessionRepository, DynamoDBSessionRepository),
        (LocalProfileRepository, DynamoDBProfileRepository),
        (LocalAnnotationRepository, DynamoDBAnnotationRepository),
        (LocalProgressRepository, DynamoDBProgressRepository),
    ]
    for local, dynamodb in pairs:
        local_methods = {name for name in vars(local) if not name.startswith("_")}
        for name in local_methods:
            assert callable(getattr(dynamodb, name, None)), f"{dynamodb.__name__} missing {name}"

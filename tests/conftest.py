"""Shared fixtures: a fully wired service graph over in-memory repositories."""

import pytest
import pytest_asyncio

from coreader.application.config import Settings
from coreader.application.controller import CollaborationController
from coreader.domain.entities.connection import Connection


@pytest.fixture
def settings():
    return Settings(
        environment="production",
        storage_backend="local",
        persistence_retry_attempts=3,
        persistence_retry_base_delay=0.0,
        disconnect_grace_seconds=0.0,
    )


@pytest.fixture
def controller(settings):
    return CollaborationController.from_settings(settings)


@pytest.fixture
def service(controller):
    return controller.service


@pytest_asyncio.fixture
async def document(service):
    return await service.create_document("Moby Dick", "Herman Melville")


@pytest_asyncio.fixture
async def joined(service, document):
    """Factory joining a fresh connection to the document's session."""

    async def _join(participant_id=None):
        connection = Connection()
        await service.join_session(connection, document.session_id, participant_id)
        return connection

    return _join

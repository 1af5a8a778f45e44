"""Collaboration controller: builds the service graph and owns its lifecycle."""

import asyncio
import logging
from typing import Optional

from fastapi import WebSocket

from ..domain.entities.connection import Connection
from ..domain.entities.limits import load_limits
from ..domain.interfaces.annotation_repository import AnnotationRepository
from ..domain.interfaces.profile_repository import ProfileRepository
from ..domain.interfaces.progress_repository import ProgressRepository
from ..domain.interfaces.session_repository import SessionRepository
from ..domain.services import (
    BroadcastRouter,
    CollaborationService,
    DisconnectReclaimer,
    ProgressAggregator,
    QuotaEnforcer,
    SessionRegistry,
)
from ..infrastructure import (
    DynamoDBAnnotationRepository,
    DynamoDBProfileRepository,
    DynamoDBProgressRepository,
    DynamoDBSessionRepository,
    LocalAnnotationRepository,
    LocalProfileRepository,
    LocalProgressRepository,
    LocalSessionRepository,
)
from .config import Settings
from .websocket_handler import WebSocketHandler

logger = logging.getLogger(__name__)


class CollaborationController:
    """
    Controller for coordinating collaboration operations.

    This controller is injected with the repositories and wires the domain
    services around them, keeping the API layer thin.
    """

    def __init__(
        self,
        settings: Settings,
        session_repository: SessionRepository,
        profile_repository: ProfileRepository,
        annotation_repository: AnnotationRepository,
        progress_repository: ProgressRepository,
    ):
        """
        Initialize the controller with injected dependencies.

        Args:
            settings: Application settings
            session_repository: Repository for documents and sessions
            profile_repository: Repository for reader profiles
            annotation_repository: Repository for highlights and comments
            progress_repository: Repository for reading progress
        """
        self.settings = settings
        self.session_repository = session_repository
        self.profile_repository = profile_repository
        self.annotation_repository = annotation_repository
        self.progress_repository = progress_repository

        self.quota = QuotaEnforcer(load_limits(settings.environment))
        self.registry = SessionRegistry(session_repository, profile_repository, self.quota)
        self.router = BroadcastRouter(self.registry)
        self.progress = ProgressAggregator(
            progress_repository,
            self.quota,
            retry_attempts=settings.persistence_retry_attempts,
            retry_base_delay=settings.persistence_retry_base_delay,
        )
        self.reclaimer = DisconnectReclaimer(
            self.registry,
            self.router,
            profile_repository,
            self.progress,
            self.quota,
            grace_seconds=settings.disconnect_grace_seconds,
            sweep_interval_seconds=settings.sweep_interval_seconds,
        )
        self.service = CollaborationService(
            session_repository,
            profile_repository,
            annotation_repository,
            self.registry,
            self.router,
            self.quota,
            self.progress,
            self.reclaimer,
        )
        self._sweep_task: Optional[asyncio.Task] = None

        logger.info(
            f"CollaborationController initialized ({settings.environment}, "
            f"{type(session_repository).__name__})"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "CollaborationController":
        """Build a controller with the repositories selected by ``storage_backend``."""
        if settings.storage_backend == "dynamodb":
            region = settings.aws_region
            return cls(
                settings,
                DynamoDBSessionRepository(settings.sessions_table_name, settings.documents_table_name, region),
                DynamoDBProfileRepository(settings.profiles_table_name, region),
                DynamoDBAnnotationRepository(settings.highlights_table_name, settings.comments_table_name, region),
                DynamoDBProgressRepository(settings.progress_table_name, region),
            )

        return cls(
            settings,
            LocalSessionRepository(),
            LocalProfileRepository(),
            LocalAnnotationRepository(),
            LocalProgressRepository(),
        )

    async def start(self) -> None:
        """Reset stale counters, apply the configured phase and start sweeping."""
        await self.registry.init()
        if self.settings.scaling_phase:
            await self.service.upgrade_phase(self.settings.scaling_phase)
        self._sweep_task = asyncio.create_task(self.reclaimer.run_sweeps())
        logger.info("CollaborationController started")

    async def stop(self) -> None:
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        await self.reclaimer.shutdown()
        await self.progress.flush_all()
        for connection in self.registry.all_connections():
            connection.close()
        logger.info("CollaborationController stopped")

    async def handle_websocket_connection(self, websocket: WebSocket) -> None:
        logger.info(f"Handling new WebSocket connection from {websocket.client}")
        connection = Connection(queue_size=self.settings.outbound_queue_size)
        handler = WebSocketHandler(self.service, connection)
        await handler.handle_websocket(websocket)

    def get_health_status(self) -> dict:
        """
        Get application health status.

        Returns:
            Dict containing health status information
        """
        return {
            "status": "healthy",
            "environment": self.settings.environment,
            "live_sessions": len(self.registry.session_ids()),
            "live_connections": len(self.registry.all_connections()),
            "pending_reclaims": self.reclaimer.pending,
            "repositories": {
                "session_repository": type(self.session_repository).__name__,
                "profile_repository": type(self.profile_repository).__name__,
                "annotation_repository": type(self.annotation_repository).__name__,
                "progress_repository": type(self.progress_repository).__name__,
            },
        }

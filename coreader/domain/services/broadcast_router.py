"""Fan-out of events to the live participants of a session."""

import asyncio
import logging
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from ..entities.connection import Connection
from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class BroadcastRouter:
    """Puts outbound events on connection queues.

    Delivery is best effort and at most once. Each connection has a single
    bounded FIFO queue drained by its send loop, so every recipient sees events
    in the order they were published. Enqueueing never suspends: a full queue
    drops the event for that recipient only.
    """

    def __init__(self, registry: SessionRegistry):
        self._registry = registry

    def send(self, connection: Connection, message: BaseModel) -> bool:
        """Queue a message for one connection.

        Returns:
            bool: False if the connection is closed or its queue is full.
        """
        if connection.closed:
            return False
        try:
            connection.outbound.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(
                f"Outbound queue full for connection {connection.id}, dropping {type(message).__name__}"
            )
            return False
        return True

    def publish(
        self,
        session_id: UUID,
        message: BaseModel,
        exclude_participant: Optional[UUID] = None,
    ) -> int:
        """Queue a message for every joined connection of a session.

        Args:
            session_id: The session to fan out to.
            message: The event to deliver.
            exclude_participant: Participant (usually the originator) to skip.

        Returns:
            int: The number of connections the message was queued for.
        """
        delivered = 0
        for connection in self._registry.connections(session_id):
            if not connection.is_joined or connection.participant_id == exclude_participant:
                continue
            if self.send(connection, message):
                delivered += 1

        logger.debug(f"Published {type(message).__name__} to {delivered} connections in session {session_id}")
        return delivered

    def publish_all(self, message: BaseModel) -> int:
        return sum(self.publish(session_id, message) for session_id in self._registry.session_ids())

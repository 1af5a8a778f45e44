"""WebSocket client for a collaborative reading session with bounded reconnection."""

import asyncio
import json
import logging
from typing import Any, Callable, Optional
from uuid import UUID

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .domain.entities.limits import WebSocketLimits
from .domain.entities.websocket_messages import ErrorCode
from .domain.errors import CollaborationError, NotFound, QuotaExceeded, TransportLost

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


def error_from_event(event: dict, session_id: UUID) -> CollaborationError:
    """Rebuild the error carried by an ``error`` event."""
    code = event.get("code")
    message = event.get("message", "")
    reason = event.get("reason")
    if code == ErrorCode.QUOTA_EXCEEDED.value:
        return QuotaExceeded(reason or QuotaExceeded.SESSION_FULL, message)
    if code == ErrorCode.NOT_FOUND.value:
        return NotFound(reason or "session", session_id)
    return CollaborationError(message, reason)


class CollaborationClient:
    """
    Joins one session over a WebSocket and keeps it joined.

    When the transport drops, the client reconnects at most
    ``reconnection_attempts`` times, waiting ``reconnection_delay_ms`` before
    each attempt, and re-joins with the participant id it was given, so the
    server treats it as the same reader. Running out of attempts raises
    ``TransportLost``; other clients of the session are unaffected.
    """

    def __init__(
        self,
        url: str,
        session_id: UUID,
        participant_id: Optional[UUID] = None,
        reconnection_attempts: int = WebSocketLimits().reconnection_attempts,
        reconnection_delay_ms: int = WebSocketLimits().reconnection_delay_ms,
        connect: Callable[..., Any] = websockets.connect,
    ):
        self.url = url
        self.session_id = session_id
        self.participant_id = participant_id
        self.reconnection_attempts = reconnection_attempts
        self.reconnection_delay_ms = reconnection_delay_ms
        self.roster: Optional[dict] = None
        self.reconnects = 0
        self._connect = connect
        self._websocket = None
        self._closed = False

    async def __aenter__(self) -> "CollaborationClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def connect(self) -> dict:
        """Open the socket and join; returns the ``session-roster`` event."""
        self._websocket = await self._connect(self.url)
        return await self._join()

    async def _join(self) -> dict:
        join = {"type": "join-session", "session_id": str(self.session_id)}
        if self.participant_id is not None:
            join["participant_id"] = str(self.participant_id)
        await self._websocket.send(json.dumps(join))

        while True:
            event = json.loads(await self._websocket.recv())
            if event.get("type") == "session-roster":
                self.roster = event
                self.participant_id = UUID(event["participant"]["id"])
                logger.info(f"Joined session {self.session_id} as {event['participant']['username']}")
                return event
            if event.get("type") == "error":
                raise error_from_event(event, self.session_id)
            logger.debug(f"Ignoring {event.get('type')} before roster")

    async def _reconnect(self) -> None:
        """Re-establish the socket and re-join.

        Raises:
            TransportLost: When every attempt failed.
        """
        if self._websocket is not None:
            try:
                await self._websocket.close()
            except TRANSPORT_ERRORS as e:
                logger.debug(f"Error closing dropped socket: {e}")
            self._websocket = None

        for attempt in range(1, self.reconnection_attempts + 1):
            await asyncio.sleep(self.reconnection_delay_ms / 1000)
            try:
                self._websocket = await self._connect(self.url)
                await self._join()
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Reconnection attempt {attempt}/{self.reconnection_attempts} failed: {e}")
                self._websocket = None
                continue

            self.reconnects += 1
            logger.info(f"Reconnected to session {self.session_id} on attempt {attempt}")
            return

        raise TransportLost(self.reconnection_attempts)

    async def send(self, message: dict) -> None:
        """Send a message, reconnecting once the transport is gone."""
        if self._closed:
            raise RuntimeError("Client is closed")
        try:
            await self._websocket.send(json.dumps(message))
        except ConnectionClosed:
            logger.info("Connection closed while sending, reconnecting")
            await self._reconnect()
            await self._websocket.send(json.dumps(message))

    async def receive(self, timeout: Optional[float] = None) -> dict:
        """Return the next event, reconnecting if the transport drops."""
        while True:
            if self._closed:
                raise RuntimeError("Client is closed")
            try:
                raw = await asyncio.wait_for(self._websocket.recv(), timeout=timeout)
                return json.loads(raw)
            except ConnectionClosed:
                logger.info("Connection closed while receiving, reconnecting")
                await self._reconnect()

    async def create_highlight(
        self,
        location: str,
        text: str,
        chapter: Optional[int] = None,
        position: Optional[int] = None,
        color: Optional[str] = None,
    ) -> None:
        message = {
            "type": "create-highlight",
            "anchor": {"location": location, "chapter": chapter, "position": position},
            "text": text,
        }
        if color:
            message["color"] = color
        await self.send(message)

    async def create_comment(self, highlight_id: UUID, text: str, parent_id: Optional[UUID] = None) -> None:
        message = {"type": "create-comment", "highlight_id": str(highlight_id), "text": text}
        if parent_id is not None:
            message["parent_id"] = str(parent_id)
        await self.send(message)

    async def update_progress(
        self,
        percentage: float,
        location: Optional[str] = None,
        chapter: Optional[int] = None,
    ) -> None:
        await self.send(
            {
                "type": "update-progress",
                "position": {"percentage": percentage, "location": location, "chapter": chapter},
            }
        )

    async def ping(self) -> None:
        await self.send({"type": "ping"})

    async def close(self) -> None:
        self._closed = True
        if self._websocket is not None:
            await self._websocket.close()
            self._websocket = None

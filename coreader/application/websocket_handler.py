import asyncio
import logging

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from ..domain.entities.connection import Connection
from ..domain.services import CollaborationService

logger = logging.getLogger(__name__)


class WebSocketHandler:
    """Pumps one WebSocket: inbound frames to the service, queued events out.

    Each inbound frame is handled in a task shielded from the receive loop, so
    a socket closing mid-request never cuts a write off from its broadcast.
    Frames are still handled one at a time, in arrival order.
    """

    def __init__(self, service: CollaborationService, connection: Connection):
        self._service = service
        self._connection = connection
        self._in_flight: set[asyncio.Task] = set()

    async def handle_websocket(self, websocket: WebSocket) -> None:
        # Note: websocket.accept() is called by the API endpoint before this
        connection = self._connection
        logger.info(f"Connection {connection.id} open from {websocket.client}")
        send_task = asyncio.create_task(self._send_loop(websocket))
        receive_task = asyncio.create_task(self._receive_loop(websocket))
        done, pending = await asyncio.wait(
            {send_task, receive_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        try:
            for task in done:
                exc = task.exception()
                if exc:
                    raise exc
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected: {websocket.client}")
        except Exception as e:
            logger.error(f"WebSocket error on connection {connection.id}: {e}", exc_info=True)
        finally:
            for t in (send_task, receive_task):
                if not t.done():
                    t.cancel()
            await asyncio.gather(send_task, receive_task, return_exceptions=True)

            # Requests already accepted finish (and broadcast) before the
            # participant is reported gone.
            if self._in_flight:
                await asyncio.gather(*self._in_flight, return_exceptions=True)
            await self._service.reclaimer.connection_lost(connection)

            if websocket.client_state == WebSocketState.CONNECTED and websocket.application_state == WebSocketState.CONNECTED:
                try:
                    await websocket.close()
                except (RuntimeError, WebSocketDisconnect) as e:
                    logger.debug(f"WebSocket already closed: {e}")
            logger.info(f"WebSocket connection closed: {websocket.client}")

    async def _send_loop(self, websocket: WebSocket) -> None:
        outbound = self._connection.outbound
        while True:
            item = await outbound.get()
            if item is None:
                logger.debug(f"_send_loop stopping for connection {self._connection.id}")
                return
            await websocket.send_text(item.model_dump_json())

    async def _receive_loop(self, websocket: WebSocket) -> None:
        """Receive messages from the client and hand them to the service."""
        while True:
            data = await websocket.receive()

            if data.get("type") == "websocket.disconnect":
                logger.info(f"Client disconnected - received disconnect message: {data}")
                break

            if data.get("type") != "websocket.receive":
                continue

            raw = data.get("text")
            if raw is None:
                raw = data.get("bytes") or b""

            task = asyncio.create_task(self._service.handle_message(self._connection, raw))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            await asyncio.shield(task)

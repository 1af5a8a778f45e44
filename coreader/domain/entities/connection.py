"""Live connection entities (in memory only)."""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from .profile import Profile

DEFAULT_OUTBOUND_QUEUE_SIZE = 1000


class ConnectionState(str, Enum):
    """Lifecycle of one transport binding."""

    CONNECTING = "connecting"
    JOINED = "joined"
    DISCONNECTED = "disconnected"
    RECLAIM_PENDING = "reclaim_pending"
    RECLAIMED = "reclaimed"


@dataclass(eq=False)
class Connection:
    """A live binding between one participant and one session.

    ``outbound`` is the single FIFO queue drained by the connection's send loop,
    so delivery order to this recipient always matches enqueue order. ``None``
    on the queue tells the send loop to stop.
    """

    id: UUID = field(default_factory=uuid.uuid4)
    queue_size: int = DEFAULT_OUTBOUND_QUEUE_SIZE
    session_id: Optional[UUID] = None
    document_id: Optional[UUID] = None
    participant: Optional[Profile] = None
    state: ConnectionState = ConnectionState.CONNECTING
    connected_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)
    window_start: float = 0.0
    window_count: int = 0
    closed: bool = False
    outbound: "asyncio.Queue[Optional[BaseModel]]" = field(init=False)

    def __post_init__(self):
        self.outbound = asyncio.Queue(maxsize=self.queue_size)

    @property
    def participant_id(self) -> Optional[UUID]:
        return self.participant.id if self.participant else None

    @property
    def is_joined(self) -> bool:
        return self.state == ConnectionState.JOINED and not self.closed

    def touch(self, now: Optional[float] = None) -> None:
        self.last_activity = time.monotonic() if now is None else now

    def count_message(self, now: float) -> int:
        """Count one inbound message in the current one-second window."""
        if now - self.window_start >= 1.0:
            self.window_start = now
            self.window_count = 0
        self.window_count += 1
        return self.window_count

    def close(self) -> None:
        """Stop the send loop after the messages already queued."""
        if self.closed:
            return
        self.closed = True
        try:
            self.outbound.put_nowait(None)
        except asyncio.QueueFull:
            # Drop the backlog so the stop marker always gets through.
            while not self.outbound.empty():
                self.outbound.get_nowait()
            self.outbound.put_nowait(None)

"""Disconnect handling and periodic reclaim sweeps."""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
from uuid import UUID

from ..entities.connection import Connection, ConnectionState
from ..entities.reading_session import utc_now
from ..entities.websocket_messages import ErrorCode, ErrorMessage, UserLeft
from ..interfaces.profile_repository import ProfileRepository
from .broadcast_router import BroadcastRouter
from .progress_aggregator import ProgressAggregator
from .quota import QuotaEnforcer
from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class DisconnectReclaimer:
    """
    Returns the slot of a vanished participant to the session.

    A lost connection is reclaimed either at once or, with a grace window, when
    its timer expires without the participant rejoining. Reclaiming removes the
    participant from the roster and tells everyone else exactly once.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        router: BroadcastRouter,
        profile_repository: ProfileRepository,
        progress: ProgressAggregator,
        quota: QuotaEnforcer,
        grace_seconds: float = 0.0,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._registry = registry
        self._router = router
        self._profiles = profile_repository
        self._progress = progress
        self._quota = quota
        self._grace_seconds = grace_seconds
        self._sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._timers: Dict[tuple[UUID, UUID], asyncio.Task] = {}

    @property
    def pending(self) -> int:
        return len(self._timers)

    async def connection_lost(self, connection: Connection) -> None:
        """Handle the end of a transport."""
        connection.close()
        if connection.state in (ConnectionState.RECLAIMED, ConnectionState.RECLAIM_PENDING):
            return
        if connection.state == ConnectionState.CONNECTING:
            connection.state = ConnectionState.DISCONNECTED
            return
        if not self._registry.is_current(connection):
            connection.state = ConnectionState.RECLAIMED
            logger.debug(f"Superseded connection {connection.id} closed")
            return

        connection.state = ConnectionState.DISCONNECTED
        if self._grace_seconds <= 0:
            await self.reclaim(connection)
            return

        key = (connection.session_id, connection.participant_id)
        connection.state = ConnectionState.RECLAIM_PENDING
        self._cancel_timer(key)
        self._timers[key] = asyncio.create_task(self._expire(key, connection))
        logger.info(
            f"Participant {connection.participant_id} disconnected from session "
            f"{connection.session_id}, reclaiming in {self._grace_seconds}s"
        )

    async def _expire(self, key: tuple[UUID, UUID], connection: Connection) -> None:
        await asyncio.sleep(self._grace_seconds)
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]
        try:
            await self.reclaim(connection)
        except Exception as e:
            logger.error(f"Error reclaiming connection {connection.id}: {e}", exc_info=True)

    async def reclaim(self, connection: Connection) -> bool:
        """Remove the connection's participant and announce it once.

        Returns:
            bool: True if this call removed the participant.
        """
        session_id = connection.session_id
        participant_id = connection.participant_id
        if session_id is None or participant_id is None:
            return False

        removed = await self._registry.leave(session_id, participant_id, connection)
        connection.state = ConnectionState.RECLAIMED
        if removed:
            self._router.publish(session_id, UserLeft(participant_id=participant_id))
        return removed

    def cancel_pending(self, session_id: UUID, participant_id: UUID) -> bool:
        """Stop a pending reclaim because the participant came back."""
        cancelled = self._cancel_timer((session_id, participant_id))
        if cancelled:
            logger.info(f"Participant {participant_id} rejoined session {session_id} within grace window")
        return cancelled

    def _cancel_timer(self, key: tuple[UUID, UUID]) -> bool:
        task = self._timers.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def sweep_idle_connections(self, now: Optional[float] = None) -> int:
        """Time out joined connections that have been silent too long."""
        now = self._clock() if now is None else now
        timeout = self._quota.limits.user.session_timeout_minutes * 60
        timed_out = 0

        for connection in self._registry.all_connections():
            if not connection.is_joined or now - connection.last_activity <= timeout:
                continue

            self._router.send(
                connection,
                ErrorMessage(
                    code=ErrorCode.SESSION_TIMEOUT,
                    reason="session_timeout",
                    message="Your session has expired due to inactivity. Please refresh the page to continue reading.",
                ),
            )
            connection.close()
            if await self.reclaim(connection):
                timed_out += 1

        if timed_out:
            logger.info(f"Timed out {timed_out} idle connections")
        return timed_out

    async def purge_expired_profiles(self, now: Optional[datetime] = None) -> int:
        hours = self._quota.limits.user.profile_persistence_hours
        cutoff = (now or utc_now()) - timedelta(hours=hours)
        purged = await self._profiles.delete_expired(cutoff)
        if purged:
            logger.info(f"Purged {purged} profiles unused for {hours} hours")
        return purged

    async def sweep(self) -> None:
        """Run every reclaim sweep once."""
        for name, step in (
            ("idle connections", self.sweep_idle_connections),
            ("idle sessions", self._registry.evict_idle),
            ("expired profiles", self.purge_expired_profiles),
        ):
            try:
                await step()
            except Exception as e:
                logger.error(f"Error sweeping {name}: {e}", exc_info=True)

        evicted = self._progress.evict_stale()
        if evicted:
            logger.debug(f"Evicted {evicted} stale progress marks")

    async def run_sweeps(self) -> None:
        """Sweep forever at the configured interval until cancelled."""
        while True:
            try:
                await asyncio.sleep(self._sweep_interval_seconds)
                await self.sweep()
            except asyncio.CancelledError:
                logger.debug("Sweep task cancelled")
                break

    async def shutdown(self) -> None:
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

"""Session registry and presence tracking.

The registry owns the in-memory roster of every live session: which
participants are connected, through which connection, in join order. Every
membership change for a session runs under that session's lock, so the quota
check, the persisted counter update and the roster insert form one atomic unit
even though they cross ``await`` points.
"""

import asyncio
import logging
import random
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional
from uuid import UUID

from ..entities.connection import Connection, ConnectionState
from ..entities.profile import Profile
from ..entities.reading_session import ReadingSession, utc_now
from ..errors import PersistenceFailure
from ..interfaces.profile_repository import ProfileRepository
from ..interfaces.session_repository import SessionRepository
from .profile_generator import create_unique_profile
from .quota import QuotaEnforcer

logger = logging.getLogger(__name__)


@dataclass
class JoinResult:
    """Outcome of a successful join."""

    session: ReadingSession
    participant: Profile
    roster: list[Profile]
    resumed: bool = False
    superseded: Optional[Connection] = None


class SessionRegistry:
    """Tracks live participants per session and enforces the join ceiling."""

    def __init__(
        self,
        session_repository: SessionRepository,
        profile_repository: ProfileRepository,
        quota: QuotaEnforcer,
        rng: Optional[random.Random] = None,
    ):
        self._sessions = session_repository
        self._profiles = profile_repository
        self._quota = quota
        self._rng = rng
        # session id -> participant id -> authoritative connection (join order)
        self._rosters: Dict[UUID, Dict[UUID, Connection]] = {}
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock(self, session_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def init(self) -> int:
        """Reset persisted participant counts left over from a previous process."""
        reset = await self._sessions.reset_participant_counts()
        if reset:
            logger.info(f"Reset participant counts on {reset} sessions")
        return reset

    async def join(
        self,
        session_id: UUID,
        connection: Connection,
        participant_id: Optional[UUID] = None,
    ) -> JoinResult:
        """Admit a connection into a session.

        Args:
            session_id: The session to join.
            connection: The connection being bound.
            participant_id: A remembered profile id, if the client has one.

        Returns:
            JoinResult: The resolved participant and the roster after the join.

        Raises:
            NotFound: If the session does not exist.
            QuotaExceeded: If the session is already at its participant ceiling.
        """
        async with self._lock(session_id):
            session = await self._sessions.get_session(session_id)
            roster = self._rosters.setdefault(session_id, {})

            if participant_id is not None and participant_id in roster:
                return await self._resume(session, roster, connection, participant_id)

            self._quota.check_join(len(roster))
            ceiling = self._quota.limits.user.max_concurrent_per_session
            if not await self._sessions.increment_participants(session_id, ceiling):
                logger.warning(f"Session {session_id} refused increment at ceiling {ceiling}")
                raise self._quota.session_full()

            try:
                participant = await self._resolve_participant(session.document_id, participant_id)
            except Exception:
                await self._sessions.decrement_participants(session_id)
                raise

            self._bind(connection, session, participant)
            roster[participant.id] = connection
            logger.info(
                f"{participant.username} ({participant.id}) joined session {session_id} "
                f"[{len(roster)}/{ceiling}]"
            )
            return JoinResult(session=session, participant=participant, roster=self._profiles_of(roster))

    async def _resume(
        self,
        session: ReadingSession,
        roster: Dict[UUID, Connection],
        connection: Connection,
        participant_id: UUID,
    ) -> JoinResult:
        superseded = roster[participant_id]
        participant = await self._profiles.touch_profile(participant_id, utc_now())
        if participant is None:
            participant = superseded.participant

        self._bind(connection, session, participant)
        roster[participant_id] = connection
        if superseded is connection:
            superseded = None
        else:
            superseded.state = ConnectionState.RECLAIMED
            superseded.close()

        logger.info(f"{participant.username} ({participant_id}) resumed in session {session.id}")
        return JoinResult(
            session=session,
            participant=participant,
            roster=self._profiles_of(roster),
            resumed=True,
            superseded=superseded,
        )

    async def _resolve_participant(self, document_id: UUID, participant_id: Optional[UUID]) -> Profile:
        if participant_id is not None:
            profile = await self._profiles.get_profile(participant_id)
            if profile is not None and profile.document_id == document_id:
                return await self._profiles.touch_profile(profile.id, utc_now()) or profile
            logger.info(f"Unknown participant {participant_id} for document {document_id}, generating a new profile")

        return await create_unique_profile(self._profiles, document_id, self._rng)

    @staticmethod
    def _bind(connection: Connection, session: ReadingSession, participant: Profile) -> None:
        connection.session_id = session.id
        connection.document_id = session.document_id
        connection.participant = participant
        connection.state = ConnectionState.JOINED
        connection.touch()

    async def leave(
        self,
        session_id: UUID,
        participant_id: UUID,
        connection: Optional[Connection] = None,
    ) -> bool:
        """Remove a participant from a session.

        When ``connection`` is given, nothing happens unless it is still the
        participant's authoritative connection.

        Returns:
            bool: True if the participant was removed by this call.
        """
        async with self._lock(session_id):
            roster = self._rosters.get(session_id)
            if not roster or participant_id not in roster:
                return False
            if connection is not None and roster[participant_id] is not connection:
                return False

            del roster[participant_id]
            try:
                await self._sessions.decrement_participants(session_id)
            except PersistenceFailure as e:
                logger.error(f"Could not decrement participant count for session {session_id}: {e}")

            logger.info(f"Participant {participant_id} left session {session_id} [{len(roster)} remaining]")
            return True

    def roster(self, session_id: UUID) -> list[Profile]:
        return self._profiles_of(self._rosters.get(session_id, {}))

    def connections(self, session_id: UUID) -> list[Connection]:
        return list(self._rosters.get(session_id, {}).values())

    def all_connections(self) -> list[Connection]:
        return [c for roster in self._rosters.values() for c in roster.values()]

    def session_ids(self) -> list[UUID]:
        return list(self._rosters.keys())

    def is_current(self, connection: Connection) -> bool:
        """Whether ``connection`` is still the authoritative one for its participant."""
        if connection.session_id is None or connection.participant_id is None:
            return False
        roster = self._rosters.get(connection.session_id, {})
        return roster.get(connection.participant_id) is connection

    async def evict_idle(self, now: Optional[datetime] = None) -> int:
        """Drop empty rosters and mark idle empty sessions inactive.

        Returns:
            int: The number of sessions marked inactive.
        """
        now = now or utc_now()
        timeout = timedelta(minutes=self._quota.limits.user.session_timeout_minutes)

        for session_id in list(self._rosters):
            async with self._lock(session_id):
                if not self._rosters.get(session_id):
                    self._rosters.pop(session_id, None)

        marked = 0
        for session in await self._sessions.list_sessions():
            if not session.is_active or session.id in self._rosters:
                continue
            if now - session.last_activity_at > timeout:
                await self._sessions.mark_inactive(session.id)
                marked += 1
        if marked:
            logger.info(f"Marked {marked} idle sessions inactive")
        return marked

    @staticmethod
    def _profiles_of(roster: Dict[UUID, Connection]) -> list[Profile]:
        return [c.participant for c in roster.values() if c.participant is not None]

"""Collaboration service: orchestrates every inbound request.

The service owns no state of its own. It validates requests against the
quota enforcer, writes through the repositories and hands the resulting
events to the broadcast router. Both transports (WebSocket and HTTP) go
through it, so quotas and fan-out are identical for either.
"""

import asyncio
import logging
import time
import weakref
from typing import Callable, Hashable, Optional, Union
from uuid import UUID

from pydantic import ValidationError

from ..entities.annotation import Anchor, Comment, Highlight
from ..entities.connection import Connection, ConnectionState
from ..entities.limits import Limits, upgrade_to_phase
from ..entities.profile import Profile
from ..entities.progress import ProgressOutcome, ProgressPosition, ProgressRecord
from ..entities.reading_session import Document, ReadingSession, generate_slug, utc_now
from ..entities.websocket_messages import (
    ClientMessage,
    CommentAdded,
    CommentConfirmed,
    CreateComment,
    CreateHighlight,
    ErrorCode,
    ErrorMessage,
    HighlightAdded,
    HighlightConfirmed,
    JoinSession,
    LimitsUpdated,
    Ping,
    Pong,
    SessionRoster,
    SessionState,
    UpdateProgress,
    UserJoined,
    UserLeft,
    UserProgressUpdated,
    WarningMessage,
    client_message_adapter,
)
from ..errors import (
    CollaborationError,
    InvalidMessage,
    NotFound,
    NotJoined,
    PersistenceFailure,
    ValidationFailed,
)
from ..interfaces.annotation_repository import AnnotationRepository
from ..interfaces.profile_repository import ProfileRepository
from ..interfaces.session_repository import SessionRepository
from .broadcast_router import BroadcastRouter
from .disconnect_reclaimer import DisconnectReclaimer
from .profile_generator import generate_color
from .progress_aggregator import ProgressAggregator
from .quota import QuotaEnforcer
from .session_registry import JoinResult, SessionRegistry

logger = logging.getLogger(__name__)

# pydantic error types meaning "this is not a message we know"
_UNKNOWN_MESSAGE_ERRORS = {"json_invalid", "union_tag_invalid", "union_tag_not_found", "model_attributes_type"}


class CollaborationService:
    """
    Entry point for every collaboration operation.

    Content creation is serialised per key so a quota check and the write it
    guards cannot interleave with a concurrent request: highlights lock on
    (document, participant), comments on their highlight.
    """

    def __init__(
        self,
        session_repository: SessionRepository,
        profile_repository: ProfileRepository,
        annotation_repository: AnnotationRepository,
        registry: SessionRegistry,
        router: BroadcastRouter,
        quota: QuotaEnforcer,
        progress: ProgressAggregator,
        reclaimer: DisconnectReclaimer,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sessions = session_repository
        self.profiles = profile_repository
        self.annotations = annotation_repository
        self.registry = registry
        self.router = router
        self.quota = quota
        self.progress = progress
        self.reclaimer = reclaimer
        self._clock = clock
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # ===== Inbound message dispatch =====

    async def handle_message(self, connection: Connection, raw: Union[str, bytes]) -> None:
        """Process one inbound frame.

        Every ``CollaborationError`` becomes one ``error`` event for this
        connection only; anything else is logged and reported as an internal
        error so the process keeps serving.
        """
        size = len(raw.encode("utf-8")) if isinstance(raw, str) else len(raw)
        connection.touch()
        try:
            self.quota.check_message_rate(connection.count_message(self._clock()))
            self.quota.check_message_size(size)
            message = self.parse_message(raw)
            await self._dispatch(connection, message)
        except CollaborationError as e:
            logger.info(f"Request from connection {connection.id} rejected: {e.code.value} {e.reason}: {e.message}")
            self.router.send(connection, e.to_message())
        except Exception as e:
            logger.error(f"Unexpected error handling message on connection {connection.id}: {e}", exc_info=True)
            self.router.send(
                connection,
                ErrorMessage(code=ErrorCode.INTERNAL_ERROR, reason="internal", message="Internal processing error"),
            )

    @staticmethod
    def parse_message(raw: Union[str, bytes]) -> ClientMessage:
        """Parse a JSON frame into a client message.

        Raises:
            InvalidMessage: If the frame is not JSON or has an unknown type.
            ValidationFailed: If a known message carries an invalid field.
        """
        try:
            return client_message_adapter.validate_json(raw)
        except ValidationError as e:
            first = e.errors()[0]
            if first["type"] in _UNKNOWN_MESSAGE_ERRORS:
                raise InvalidMessage(f"Unrecognised message: {first['msg']}") from e
            field = ".".join(str(part) for part in first["loc"][1:]) or "message"
            raise ValidationFailed(field, first["msg"]) from e

    async def _dispatch(self, connection: Connection, message: ClientMessage) -> None:
        match message:
            case JoinSession():
                await self.join_session(connection, message.session_id, message.participant_id)
            case CreateHighlight():
                await self.create_highlight(connection, message)
            case CreateComment():
                await self.create_comment(connection, message)
            case UpdateProgress():
                await self.update_progress(connection, message)
            case Ping():
                self.router.send(connection, Pong())
            case _:
                raise InvalidMessage(f"Unhandled message type: {type(message).__name__}")

    # ===== Session membership =====

    async def join_session(
        self,
        connection: Connection,
        session_id: UUID,
        participant_id: Optional[UUID] = None,
    ) -> JoinResult:
        """Join a session and send the roster and state replay to the joiner."""
        if connection.is_joined:
            if connection.session_id == session_id and participant_id in (None, connection.participant_id):
                participant_id = connection.participant_id
            else:
                await self._leave_current(connection)

        result = await self.registry.join(session_id, connection, participant_id)
        participant = result.participant
        self.reclaimer.cancel_pending(session_id, participant.id)

        self.router.send(
            connection,
            SessionRoster(
                session_id=session_id,
                document_id=result.session.document_id,
                participant=participant,
                participants=result.roster,
                resumed=result.resumed,
                limits=self.quota.limits,
            ),
        )
        if not result.resumed:
            self.router.publish(session_id, UserJoined(participant=participant), exclude_participant=participant.id)

        self.router.send(connection, await self.session_state(result.session))
        return result

    async def _leave_current(self, connection: Connection) -> None:
        session_id, participant_id = connection.session_id, connection.participant_id
        connection.state = ConnectionState.CONNECTING
        if await self.registry.leave(session_id, participant_id, connection):
            self.router.publish(session_id, UserLeft(participant_id=participant_id))

    async def session_state(self, session: ReadingSession) -> SessionState:
        """Full replay of a session's annotations and progress.

        Progress comes from the in-memory high-water marks, which can be ahead
        of the durable records by at most one flush interval.
        """
        return SessionState(
            session_id=session.id,
            highlights=await self.annotations.list_highlights(session.document_id),
            comments=await self.annotations.list_document_comments(session.document_id),
            progress=await self.progress.snapshot(session.document_id),
        )

    # ===== Highlights =====

    async def create_highlight(self, connection: Connection, request: CreateHighlight) -> Highlight:
        participant = self._require_joined(connection)
        document_id = self._document_of(connection, request.document_id)
        return await self._create_highlight(
            connection.session_id,
            document_id,
            participant,
            request.anchor,
            request.text,
            request.color,
            origin=connection,
        )

    async def _create_highlight(
        self,
        session_id: UUID,
        document_id: UUID,
        participant: Profile,
        anchor: Anchor,
        text: str,
        color: Optional[str],
        origin: Optional[Connection] = None,
    ) -> Highlight:
        text = text.strip()
        async with self._lock(("highlight", document_id, participant.id)):
            count = await self.annotations.count_highlights(document_id, participant.id)
            self.quota.check_highlight(text, count)

            highlight = Highlight(
                document_id=document_id,
                session_id=session_id,
                participant_id=participant.id,
                username=participant.username,
                anchor=anchor,
                text=text,
                color=color or participant.color,
            )
            durable = await self._save(self.annotations.save_highlight, highlight)
            highlight.durable = durable

        self._announce(
            session_id,
            participant.id,
            origin,
            HighlightConfirmed(highlight=highlight),
            HighlightAdded(highlight=highlight),
            durable,
            "Highlight may not be saved",
        )
        logger.info(f"Highlight {highlight.id} created by {participant.username} in document {document_id}")
        return highlight

    # ===== Comments =====

    async def create_comment(self, connection: Connection, request: CreateComment) -> Comment:
        participant = self._require_joined(connection)
        return await self._create_comment(
            connection.session_id,
            connection.document_id,
            participant,
            request.highlight_id,
            request.text,
            request.parent_id,
            origin=connection,
        )

    async def _create_comment(
        self,
        session_id: UUID,
        document_id: UUID,
        participant: Profile,
        highlight_id: UUID,
        text: str,
        parent_id: Optional[UUID],
        origin: Optional[Connection] = None,
    ) -> Comment:
        highlight = await self.annotations.get_highlight(highlight_id)
        if highlight is None or highlight.document_id != document_id:
            raise NotFound("highlight", highlight_id)

        text = text.strip()
        async with self._lock(("comment", highlight.id)):
            depth = 0
            if parent_id is not None:
                parent = await self.annotations.get_comment(parent_id)
                if parent is None or parent.highlight_id != highlight.id:
                    raise NotFound("comment", parent_id)
                replies = await self.annotations.count_replies(parent.id)
                total = await self.annotations.count_comments(highlight.id)
                self.quota.check_reply(text, parent.depth, replies, total)
                depth = parent.depth + 1
            else:
                total = await self.annotations.count_comments(highlight.id)
                self.quota.check_comment(text, total)

            comment = Comment(
                highlight_id=highlight.id,
                document_id=document_id,
                parent_id=parent_id,
                participant_id=participant.id,
                username=participant.username,
                text=text,
                depth=depth,
            )
            durable = await self._save(self.annotations.save_comment, comment)
            comment.durable = durable

        self._announce(
            session_id,
            participant.id,
            origin,
            CommentConfirmed(comment=comment),
            CommentAdded(comment=comment),
            durable,
            "Comment may not be saved",
        )
        logger.info(f"Comment {comment.id} (depth {depth}) created by {participant.username} on {highlight.id}")
        return comment

    # ===== Progress =====

    async def update_progress(self, connection: Connection, request: UpdateProgress) -> ProgressOutcome:
        participant = self._require_joined(connection)
        document_id = self._document_of(connection, request.document_id)
        return await self._update_progress(connection.session_id, document_id, participant, request.position)

    async def _update_progress(
        self,
        session_id: UUID,
        document_id: UUID,
        participant: Profile,
        position: ProgressPosition,
    ) -> ProgressOutcome:
        outcome = await self.progress.report(document_id, participant.id, position, participant.username)
        if outcome == ProgressOutcome.ACCEPTED:
            self.router.publish(
                session_id,
                UserProgressUpdated(
                    participant_id=participant.id,
                    username=participant.username,
                    color=participant.color,
                    position=position,
                ),
                exclude_participant=participant.id,
            )
        return outcome

    # ===== Limits =====

    async def upgrade_phase(self, phase: str) -> Limits:
        """Replace the active limits with a scaling phase and tell every session."""
        try:
            limits = upgrade_to_phase(phase)
        except KeyError as e:
            raise ValidationFailed("phase", f"Unknown scaling phase: {phase}") from e

        self.quota.replace(limits)
        self.router.publish_all(LimitsUpdated(phase=phase, limits=limits))
        logger.info(f"Upgraded to scaling phase {phase}")
        return limits

    # ===== HTTP operations =====

    async def create_document(self, title: str, author: Optional[str] = None) -> Document:
        """Register a document and open its shared session."""
        document = Document(title=title, author=author or "Unknown Author")
        while True:
            try:
                await self.sessions.get_document_by_slug(document.slug)
            except NotFound:
                break
            document = document.model_copy(update={"slug": generate_slug()})

        await self.sessions.save_document(document)
        await self.sessions.save_session(ReadingSession(id=document.session_id, document_id=document.id))
        logger.info(f"Document {document.id} ({document.slug}) created with session {document.session_id}")
        return document

    async def get_document(self, document_id: UUID) -> Document:
        return await self.sessions.get_document(document_id)

    async def get_document_by_slug(self, slug: str) -> Document:
        return await self.sessions.get_document_by_slug(slug)

    async def get_session(self, session_id: UUID) -> tuple[ReadingSession, list[Profile]]:
        session = await self.sessions.get_session(session_id)
        return session, self.registry.roster(session_id)

    async def list_highlights(
        self,
        document_id: UUID,
        chapter: Optional[int] = None,
        participant_id: Optional[UUID] = None,
    ) -> list[Highlight]:
        await self.sessions.get_document(document_id)
        return await self.annotations.list_highlights(document_id, chapter=chapter, participant_id=participant_id)

    async def add_highlight(
        self,
        document_id: UUID,
        participant_id: UUID,
        anchor: Anchor,
        text: str,
        color: Optional[str] = None,
    ) -> Highlight:
        document = await self.sessions.get_document(document_id)
        participant = await self._participant_of(document.id, participant_id)
        return await self._create_highlight(document.session_id, document.id, participant, anchor, text, color)

    async def list_comments(self, highlight_id: UUID) -> list[Comment]:
        if await self.annotations.get_highlight(highlight_id) is None:
            raise NotFound("highlight", highlight_id)
        return await self.annotations.list_comments(highlight_id)

    async def add_comment(
        self,
        highlight_id: UUID,
        participant_id: UUID,
        text: str,
        parent_id: Optional[UUID] = None,
    ) -> Comment:
        highlight = await self.annotations.get_highlight(highlight_id)
        if highlight is None:
            raise NotFound("highlight", highlight_id)
        document = await self.sessions.get_document(highlight.document_id)
        participant = await self._participant_of(document.id, participant_id)
        return await self._create_comment(
            document.session_id, document.id, participant, highlight.id, text, parent_id
        )

    async def list_profiles(self, document_id: UUID) -> list[Profile]:
        await self.sessions.get_document(document_id)
        return await self.profiles.list_profiles(document_id)

    async def create_profile(self, document_id: UUID, username: str) -> Profile:
        """Create a named profile; the username must be free in the document."""
        await self.sessions.get_document(document_id)
        username = username.strip()
        if not username:
            raise ValidationFailed("username", "Username is required")

        profile = Profile(document_id=document_id, username=username, color=generate_color())
        await self.profiles.create_profile(profile)
        logger.info(f"Profile {profile.id} ({profile.username}) created for document {document_id}")
        return profile

    async def use_profile(self, document_id: UUID, participant_id: UUID) -> Profile:
        await self._participant_of(document_id, participant_id)
        profile = await self.profiles.touch_profile(participant_id, utc_now())
        if profile is None:
            raise NotFound("profile", participant_id)
        return profile

    async def list_progress(self, document_id: UUID) -> list[ProgressRecord]:
        await self.sessions.get_document(document_id)
        return await self.progress.active_readers(document_id)

    async def get_progress(self, document_id: UUID, participant_id: UUID) -> ProgressRecord:
        record = await self.progress.current(document_id, participant_id)
        if record is None:
            raise NotFound("progress", participant_id)
        return record

    async def report_progress(
        self,
        document_id: UUID,
        participant_id: UUID,
        position: ProgressPosition,
    ) -> ProgressOutcome:
        document = await self.sessions.get_document(document_id)
        participant = await self._participant_of(document.id, participant_id)
        return await self._update_progress(document.session_id, document.id, participant, position)

    # ===== Helpers =====

    @staticmethod
    def _require_joined(connection: Connection) -> Profile:
        if not connection.is_joined or connection.participant is None:
            raise NotJoined()
        return connection.participant

    @staticmethod
    def _document_of(connection: Connection, requested: Optional[UUID]) -> UUID:
        if requested is not None and requested != connection.document_id:
            raise ValidationFailed("document_id", "Document does not belong to the joined session")
        return connection.document_id

    async def _participant_of(self, document_id: UUID, participant_id: UUID) -> Profile:
        profile = await self.profiles.get_profile(participant_id)
        if profile is None or profile.document_id != document_id:
            raise NotFound("profile", participant_id)
        return profile

    @staticmethod
    async def _save(write: Callable, entity: Union[Highlight, Comment]) -> bool:
        try:
            await write(entity)
            return True
        except PersistenceFailure as e:
            logger.warning(f"{type(entity).__name__} {entity.id} not persisted: {e}")
            return False

    def _announce(
        self,
        session_id: UUID,
        participant_id: UUID,
        origin: Optional[Connection],
        confirmed,
        added,
        durable: bool,
        warning: str,
    ) -> None:
        if origin is not None:
            self.router.send(origin, confirmed)
            self.router.publish(session_id, added, exclude_participant=participant_id)
            if not durable:
                self.router.send(origin, WarningMessage(code=ErrorCode.PERSISTENCE_FAILURE, message=warning))
        else:
            self.router.publish(session_id, added)

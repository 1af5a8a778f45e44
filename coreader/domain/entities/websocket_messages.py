"""WebSocket message models for the collaborative reader."""

from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter

from .annotation import Anchor, Comment, Highlight
from .limits import Limits
from .profile import Profile
from .progress import ProgressPosition, ProgressRecord


# ===== Client → Server Messages =====


class JoinSession(BaseModel):
    """Request to join a shared session, optionally reusing a remembered profile."""

    type: Literal["join-session"] = "join-session"
    session_id: UUID
    participant_id: Optional[UUID] = None


class CreateHighlight(BaseModel):
    """Request to highlight a range of the document."""

    type: Literal["create-highlight"] = "create-highlight"
    document_id: Optional[UUID] = None
    anchor: Anchor
    text: str
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class CreateComment(BaseModel):
    """Request to comment on a highlight or reply to a comment."""

    type: Literal["create-comment"] = "create-comment"
    highlight_id: UUID
    text: str
    parent_id: Optional[UUID] = None


class UpdateProgress(BaseModel):
    """Report of the sender's current reading position."""

    type: Literal["update-progress"] = "update-progress"
    document_id: Optional[UUID] = None
    position: ProgressPosition


class Ping(BaseModel):
    """Keep-alive from the client."""

    type: Literal["ping"] = "ping"


# Union type for all client messages
ClientMessage = Annotated[
    Union[JoinSession, CreateHighlight, CreateComment, UpdateProgress, Ping],
    Field(discriminator="type"),
]

client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


# ===== Server → Client Messages =====


class SessionRoster(BaseModel):
    """Current roster, sent only to the connection that just joined."""

    type: Literal["session-roster"] = "session-roster"
    session_id: UUID
    document_id: UUID
    participant: Profile
    participants: list[Profile]
    resumed: bool = False
    limits: Limits


class SessionState(BaseModel):
    """Full annotation and progress replay for a joining connection."""

    type: Literal["session-state"] = "session-state"
    session_id: UUID
    highlights: list[Highlight] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)
    progress: list[ProgressRecord] = Field(default_factory=list)


class UserJoined(BaseModel):
    type: Literal["user-joined"] = "user-joined"
    participant: Profile


class UserLeft(BaseModel):
    type: Literal["user-left"] = "user-left"
    participant_id: UUID


class HighlightAdded(BaseModel):
    """A peer created a highlight."""

    type: Literal["highlight-added"] = "highlight-added"
    highlight: Highlight


class HighlightConfirmed(BaseModel):
    """The originator's highlight was accepted; carries the authoritative id."""

    type: Literal["highlight-confirmed"] = "highlight-confirmed"
    highlight: Highlight


class CommentAdded(BaseModel):
    type: Literal["comment-added"] = "comment-added"
    comment: Comment


class CommentConfirmed(BaseModel):
    type: Literal["comment-confirmed"] = "comment-confirmed"
    comment: Comment


class UserProgressUpdated(BaseModel):
    type: Literal["user-progress-updated"] = "user-progress-updated"
    participant_id: UUID
    username: str
    color: str
    position: ProgressPosition


class LimitsUpdated(BaseModel):
    """Limits were replaced by a scaling phase upgrade."""

    type: Literal["limits-updated"] = "limits-updated"
    phase: str
    limits: Limits


class Pong(BaseModel):
    type: Literal["pong"] = "pong"


class ErrorCode(str, Enum):
    """Error codes for WebSocket errors."""

    INVALID_MESSAGE = "INVALID_MESSAGE"
    NOT_JOINED = "NOT_JOINED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    PROFILE_CONFLICT = "PROFILE_CONFLICT"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"
    SESSION_TIMEOUT = "SESSION_TIMEOUT"
    CONNECTION_LOST = "CONNECTION_LOST"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class WarningMessage(BaseModel):
    """Non-blocking problem report, e.g. an annotation that may not be saved."""

    type: Literal["warning"] = "warning"
    code: ErrorCode
    message: str


class ErrorMessage(BaseModel):
    """Error message from server."""

    type: Literal["error"] = "error"
    code: ErrorCode
    reason: Optional[str] = None
    message: str


# Union type for all server messages
ServerMessage = Union[
    SessionRoster,
    SessionState,
    UserJoined,
    UserLeft,
    HighlightAdded,
    HighlightConfirmed,
    CommentAdded,
    CommentConfirmed,
    UserProgressUpdated,
    LimitsUpdated,
    Pong,
    WarningMessage,
    ErrorMessage,
]

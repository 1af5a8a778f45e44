"""Domain entities for the collaborative reader."""

from .annotation import Anchor, Comment, Highlight
from .connection import Connection, ConnectionState
from .limits import Limits, load_limits, upgrade_to_phase
from .profile import Profile
from .progress import ProgressOutcome, ProgressPosition, ProgressRecord
from .reading_session import Document, ReadingSession, utc_now
from .websocket_messages import (
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
    ServerMessage,
    SessionRoster,
    SessionState,
    UpdateProgress,
    UserJoined,
    UserLeft,
    UserProgressUpdated,
    WarningMessage,
)

__all__ = [
    # Session entities
    "Document",
    "ReadingSession",
    "utc_now",
    # Participant entities
    "Profile",
    "Connection",
    "ConnectionState",
    # Annotation entities
    "Anchor",
    "Highlight",
    "Comment",
    # Progress entities
    "ProgressOutcome",
    "ProgressPosition",
    "ProgressRecord",
    # Limits
    "Limits",
    "load_limits",
    "upgrade_to_phase",
    # WebSocket message entities
    "ClientMessage",
    "ServerMessage",
    "JoinSession",
    "CreateHighlight",
    "CreateComment",
    "UpdateProgress",
    "Ping",
    "SessionRoster",
    "SessionState",
    "UserJoined",
    "UserLeft",
    "HighlightAdded",
    "HighlightConfirmed",
    "CommentAdded",
    "CommentConfirmed",
    "UserProgressUpdated",
    "LimitsUpdated",
    "Pong",
    "WarningMessage",
    "ErrorMessage",
    "ErrorCode",
]

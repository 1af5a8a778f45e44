"""Error taxonomy for the collaboration engine.

Every error raised inside an operation is recovered at the operation boundary
and turned into a single outbound ``error`` event (or an HTTP status) for the
requester only.
"""

from typing import Optional

from .entities.websocket_messages import ErrorCode, ErrorMessage


class CollaborationError(Exception):
    """Base class for recoverable collaboration errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_message(self) -> ErrorMessage:
        return ErrorMessage(code=self.code, reason=self.reason, message=self.message)


class QuotaExceeded(CollaborationError):
    """A configured ceiling was reached. Never retried."""

    code = ErrorCode.QUOTA_EXCEEDED

    SESSION_FULL = "session_full"
    HIGHLIGHT_LIMIT = "highlight_limit"
    COMMENT_LIMIT = "comment_limit"
    REPLY_LIMIT = "reply_limit"
    REPLY_DEPTH = "reply_depth"
    MESSAGE_RATE = "message_rate"

    def __init__(self, kind: str, message: str):
        super().__init__(message, reason=kind)
        self.kind = kind


class ValidationFailed(CollaborationError):
    """A request field failed validation; the request is dropped."""

    code = ErrorCode.VALIDATION_FAILED

    def __init__(self, field: str, message: str):
        super().__init__(message, reason=field)
        self.field = field


class NotFound(CollaborationError):
    """A referenced session, document, highlight, comment or profile is unknown."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, identifier: object):
        super().__init__(f"{entity.capitalize()} {identifier} not found", reason=entity)
        self.entity = entity
        self.identifier = identifier


class NotJoined(CollaborationError):
    """A session-scoped request arrived before a successful join."""

    code = ErrorCode.NOT_JOINED

    def __init__(self):
        super().__init__("Not connected to a session", reason="not_joined")


class ProfileConflict(CollaborationError):
    """Explicit profile creation with a username already taken in the document."""

    code = ErrorCode.PROFILE_CONFLICT

    def __init__(self, username: str):
        super().__init__(f"Username already exists for this document: {username}", reason="username")
        self.username = username


class PersistenceFailure(CollaborationError):
    """The storage backend failed to complete a write or read."""

    code = ErrorCode.PERSISTENCE_FAILURE

    def __init__(self, operation: str, message: Optional[str] = None):
        super().__init__(message or f"Persistence failure during {operation}", reason=operation)
        self.operation = operation


class TransportLost(CollaborationError):
    """The transport is gone and reconnection attempts are exhausted."""

    code = ErrorCode.CONNECTION_LOST

    def __init__(self, attempts: int):
        super().__init__(
            f"Connection error after {attempts} reconnection attempts. Please refresh the page to reconnect.",
            reason="reconnection_exhausted",
        )
        self.attempts = attempts


class InvalidMessage(CollaborationError):
    """An inbound frame is not JSON or names an unknown message type."""

    code = ErrorCode.INVALID_MESSAGE

    def __init__(self, message: str):
        super().__init__(message, reason="invalid_message")

"""Quota predicates and the enforcer holding the active limits snapshot.

The predicates are pure functions of a count (or text) and a ``Limits``
snapshot. ``QuotaEnforcer`` wraps them with ``check_*`` helpers that raise the
matching ``CollaborationError`` and never touch domain state.
"""

import logging

from ..entities.limits import Limits
from ..errors import QuotaExceeded, ValidationFailed

logger = logging.getLogger(__name__)


def can_join(current_count: int, limits: Limits) -> bool:
    return current_count < limits.user.max_concurrent_per_session


def can_create_highlight(user_highlight_count: int, limits: Limits) -> bool:
    return user_highlight_count < limits.highlights.max_per_user_per_book


def can_create_comment(highlight_comment_count: int, limits: Limits) -> bool:
    """Roots and replies alike count towards the per-highlight ceiling."""
    return highlight_comment_count < limits.comments.max_per_highlight


def can_create_reply(parent_depth: int, limits: Limits) -> bool:
    """A reply sits at ``parent_depth + 1``, which must not exceed the max depth."""
    return parent_depth < limits.comments.max_reply_depth


def can_add_reply_to(reply_count: int, limits: Limits) -> bool:
    return reply_count < limits.replies.max_per_comment


def comment_length_valid(text: str, limits: Limits) -> bool:
    return limits.comments.min_length_chars <= len(text) <= limits.comments.max_length_chars


def reply_length_valid(text: str, limits: Limits) -> bool:
    return limits.replies.min_length_chars <= len(text) <= limits.replies.max_length_chars


def highlight_text_valid(text: str, limits: Limits) -> bool:
    return limits.highlights.min_text_length <= len(text) <= limits.highlights.max_text_length


def can_send_message(count_in_window: int, limits: Limits) -> bool:
    return count_in_window <= limits.websocket.max_messages_per_second


def message_size_valid(size_bytes: int, limits: Limits) -> bool:
    return size_bytes <= limits.websocket.max_message_size_bytes


class QuotaEnforcer:
    """Holds the process-wide limits snapshot and raises on violations."""

    def __init__(self, limits: Limits):
        self._limits = limits

    @property
    def limits(self) -> Limits:
        return self._limits

    def replace(self, limits: Limits) -> Limits:
        """Swap the active snapshot; checks already running keep the old one."""
        previous = self._limits
        self._limits = limits
        logger.info(
            f"Limits replaced: users/session {previous.user.max_concurrent_per_session} -> "
            f"{limits.user.max_concurrent_per_session}, highlights/user "
            f"{previous.highlights.max_per_user_per_book} -> {limits.highlights.max_per_user_per_book}"
        )
        return previous

    def session_full(self) -> QuotaExceeded:
        maximum = self._limits.user.max_concurrent_per_session
        return QuotaExceeded(
            QuotaExceeded.SESSION_FULL,
            f"This reading session has reached the maximum of {maximum} users. "
            "Please try again later when someone leaves.",
        )

    def check_join(self, current_count: int) -> None:
        if not can_join(current_count, self._limits):
            raise self.session_full()

    def check_highlight(self, text: str, user_highlight_count: int) -> None:
        limits = self._limits
        if not highlight_text_valid(text, limits):
            raise ValidationFailed(
                "text",
                f"Highlight text must be between {limits.highlights.min_text_length} and "
                f"{limits.highlights.max_text_length} characters.",
            )
        if not can_create_highlight(user_highlight_count, limits):
            maximum = limits.highlights.max_per_user_per_book
            raise QuotaExceeded(
                QuotaExceeded.HIGHLIGHT_LIMIT,
                f"You've reached the maximum of {maximum} highlights.",
            )

    def check_comment(self, text: str, highlight_comment_count: int) -> None:
        limits = self._limits
        if not comment_length_valid(text, limits):
            if len(text) < limits.comments.min_length_chars:
                message = f"Comment too short. Minimum {limits.comments.min_length_chars} characters required."
            else:
                message = f"Comment too long. Maximum {limits.comments.max_length_chars} characters allowed."
            raise ValidationFailed("text", message)
        self._check_comment_total(highlight_comment_count)

    def check_reply(self, text: str, parent_depth: int, reply_count: int, highlight_comment_count: int) -> None:
        limits = self._limits
        if not reply_length_valid(text, limits):
            if len(text) < limits.replies.min_length_chars:
                message = f"Reply too short. Minimum {limits.replies.min_length_chars} characters required."
            else:
                message = f"Reply too long. Maximum {limits.replies.max_length_chars} characters allowed."
            raise ValidationFailed("text", message)
        if not can_create_reply(parent_depth, limits):
            raise QuotaExceeded(
                QuotaExceeded.REPLY_DEPTH,
                f"Maximum reply depth of {limits.comments.max_reply_depth} levels reached.",
            )
        self._check_comment_total(highlight_comment_count)
        if not can_add_reply_to(reply_count, limits):
            raise QuotaExceeded(
                QuotaExceeded.REPLY_LIMIT,
                f"Maximum {limits.replies.max_per_comment} replies per comment reached.",
            )

    def _check_comment_total(self, highlight_comment_count: int) -> None:
        if not can_create_comment(highlight_comment_count, self._limits):
            raise QuotaExceeded(
                QuotaExceeded.COMMENT_LIMIT,
                f"Maximum {self._limits.comments.max_per_highlight} comments per highlight reached.",
            )

    def check_message_rate(self, count_in_window: int) -> None:
        if not can_send_message(count_in_window, self._limits):
            raise QuotaExceeded(
                QuotaExceeded.MESSAGE_RATE,
                "Too many requests. Please slow down and try again.",
            )

    def check_message_size(self, size_bytes: int) -> None:
        limits = self._limits
        if not message_size_valid(size_bytes, limits):
            raise ValidationFailed(
                "message",
                f"Message too large. Maximum {limits.websocket.max_message_size_bytes} bytes allowed.",
            )

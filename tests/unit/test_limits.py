"""Tests for limits resolution and scaling phases."""

import pytest
from pydantic import ValidationError

from coreader.domain.entities.limits import Limits, deep_merge, load_limits, upgrade_to_phase


def test_defaults():
    """Test the default quota values."""
    limits = Limits()

    assert limits.user.max_concurrent_per_session == 5
    assert limits.user.session_timeout_minutes == 30
    assert limits.user.profile_persistence_hours == 24
    assert limits.highlights.max_per_user_per_book == 100
    assert limits.highlights.max_text_length == 1000
    assert limits.comments.max_per_highlight == 5
    assert limits.comments.max_length_chars == 500
    assert limits.comments.max_reply_depth == 2
    assert limits.replies.max_per_comment == 10
    assert limits.replies.max_length_chars == 300
    assert limits.websocket.max_messages_per_second == 10
    assert limits.websocket.max_message_size_bytes == 1024 * 1024
    assert limits.websocket.reconnection_attempts == 5
    assert limits.websocket.reconnection_delay_ms == 1000


@pytest.mark.parametrize(
    "environment,users,highlights",
    [
        ("development", 10, 100),
        ("testing", 3, 10),
        ("production", 5, 100),
        ("staging", 5, 100),
    ],
)
def test_environment_overrides(environment, users, highlights):
    """Test that each environment resolves its own overrides."""
    limits = load_limits(environment)

    assert limits.user.max_concurrent_per_session == users
    assert limits.highlights.max_per_user_per_book == highlights
    # Untouched sections keep their defaults
    assert limits.comments.max_per_highlight == 5


@pytest.mark.parametrize(
    "phase,users,highlights",
    [("PHASE_1", 5, 100), ("PHASE_2", 10, 200), ("PHASE_3", 25, 500)],
)
def test_upgrade_to_phase(phase, users, highlights):
    """Test scaling phases build on the defaults."""
    limits = upgrade_to_phase(phase)

    assert limits.user.max_concurrent_per_session == users
    assert limits.highlights.max_per_user_per_book == highlights
    assert limits.user.session_timeout_minutes == 30


def test_upgrade_to_unknown_phase():
    with pytest.raises(KeyError, match="PHASE_9"):
        upgrade_to_phase("PHASE_9")


def test_limits_are_immutable():
    """Test that a snapshot cannot be changed in place."""
    limits = Limits()

    with pytest.raises(ValidationError):
        limits.user.max_concurrent_per_session = 50


def test_deep_merge_does_not_mutate_inputs():
    target = {"user": {"a": 1, "b": 2}, "other": 1}
    source = {"user": {"b": 3}}

    merged = deep_merge(target, source)

    assert merged == {"user": {"a": 1, "b": 3}, "other": 1}
    assert target == {"user": {"a": 1, "b": 2}, "other": 1}

"""Quota configuration entities.

All ceilings live in one immutable ``Limits`` snapshot. A snapshot is resolved
once at startup from the environment selector and can later be replaced
wholesale by a scaling phase upgrade.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Environment = Literal["development", "testing", "production"]


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class UserLimits(_FrozenModel):
    max_concurrent_per_session: int = Field(default=5, ge=1)
    session_timeout_minutes: float = Field(default=30, gt=0)
    profile_persistence_hours: float = Field(default=24, gt=0)


class HighlightLimits(_FrozenModel):
    max_per_user_per_book: int = Field(default=100, ge=0)
    min_text_length: int = Field(default=1, ge=0)
    max_text_length: int = Field(default=1000, ge=1)


class CommentLimits(_FrozenModel):
    max_per_highlight: int = Field(default=5, ge=0)
    min_length_chars: int = Field(default=1, ge=0)
    max_length_chars: int = Field(default=500, ge=1)
    max_reply_depth: int = Field(default=2, ge=0)


class ReplyLimits(_FrozenModel):
    max_per_comment: int = Field(default=10, ge=0)
    min_length_chars: int = Field(default=1, ge=0)
    max_length_chars: int = Field(default=300, ge=1)


class WebSocketLimits(_FrozenModel):
    max_messages_per_second: int = Field(default=10, ge=1)
    max_message_size_bytes: int = Field(default=1024 * 1024, ge=1)
    reconnection_attempts: int = Field(default=5, ge=0)
    reconnection_delay_ms: int = Field(default=1000, ge=0)


class ProgressLimits(_FrozenModel):
    flush_interval_ms: int = Field(default=2000, ge=0)
    stale_after_minutes: float = Field(default=5, gt=0)


class Limits(_FrozenModel):
    """Process-wide quota configuration snapshot."""

    user: UserLimits = Field(default_factory=UserLimits)
    highlights: HighlightLimits = Field(default_factory=HighlightLimits)
    comments: CommentLimits = Field(default_factory=CommentLimits)
    replies: ReplyLimits = Field(default_factory=ReplyLimits)
    websocket: WebSocketLimits = Field(default_factory=WebSocketLimits)
    progress: ProgressLimits = Field(default_factory=ProgressLimits)


ENVIRONMENT_OVERRIDES: dict[str, dict[str, Any]] = {
    "development": {
        "user": {"max_concurrent_per_session": 10},
    },
    "testing": {
        "user": {"max_concurrent_per_session": 3},
        "highlights": {"max_per_user_per_book": 10},
    },
    "production": {},
}

SCALING_PHASES: dict[str, dict[str, Any]] = {
    "PHASE_1": {
        "user": {"max_concurrent_per_session": 5},
        "highlights": {"max_per_user_per_book": 100},
    },
    "PHASE_2": {
        "user": {"max_concurrent_per_session": 10},
        "highlights": {"max_per_user_per_book": 200},
    },
    "PHASE_3": {
        "user": {"max_concurrent_per_session": 25},
        "highlights": {"max_per_user_per_book": 500},
    },
}


def deep_merge(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``source`` over ``target`` without mutating either."""
    result = dict(target)
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_limits(environment: str = "production") -> Limits:
    """Resolve the limits for an environment selector.

    Unknown environments fall back to the production defaults.
    """
    overrides = ENVIRONMENT_OVERRIDES.get(environment, {})
    return Limits.model_validate(deep_merge(Limits().model_dump(), overrides))


def upgrade_to_phase(phase_name: str) -> Limits:
    """Build the limits for a named scaling phase.

    Raises:
        KeyError: If the phase is unknown.
    """
    if phase_name not in SCALING_PHASES:
        raise KeyError(f"Unknown scaling phase: {phase_name}")
    return Limits.model_validate(deep_merge(Limits().model_dump(), SCALING_PHASES[phase_name]))

"""Domain services for the collaborative reader."""

from .broadcast_router import BroadcastRouter
from .collaboration_service import CollaborationService
from .disconnect_reclaimer import DisconnectReclaimer
from .profile_generator import create_unique_profile, generate_profile
from .progress_aggregator import ProgressAggregator
from .quota import QuotaEnforcer
from .session_registry import JoinResult, SessionRegistry

__all__ = [
    "BroadcastRouter",
    "CollaborationService",
    "DisconnectReclaimer",
    "JoinResult",
    "ProgressAggregator",
    "QuotaEnforcer",
    "SessionRegistry",
    "create_unique_profile",
    "generate_profile",
]

"""Session layer: session documents and the coordinator."""

from emergency.session.session import Session, generate_session_code
from emergency.session.coordinator import SessionCoordinator, join_session, player_ready

__all__ = [
    "Session",
    "generate_session_code",
    "SessionCoordinator",
    "join_session",
    "player_ready",
]

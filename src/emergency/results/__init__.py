"""Results layer: player results, leaderboard, currency formatting."""

from emergency.results.summary import (
    PlayerResult,
    format_currency,
    format_percentage,
    hourly_frame,
    player_result,
    session_results,
)

__all__ = [
    "PlayerResult",
    "format_currency",
    "format_percentage",
    "hourly_frame",
    "player_result",
    "session_results",
]

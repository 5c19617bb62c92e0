"""Game model layer: patients, rooms, player state, turn engine."""

from emergency.model.engine import TurnEngine
from emergency.model.outcome import Outcome, OutcomeStatus, Rejection
from emergency.model.patient import Patient, Room
from emergency.model.state import PlayerGameState, initial_game_state

__all__ = [
    "TurnEngine",
    "Outcome",
    "OutcomeStatus",
    "Rejection",
    "Patient",
    "Room",
    "PlayerGameState",
    "initial_game_state",
]

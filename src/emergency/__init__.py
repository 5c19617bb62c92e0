"""
Emergency! - multiplayer emergency department management game.

Each player runs an ED hour by hour: staff rooms within a budget,
admit arrivals, assign patients to rooms, roll for risk events and
treat. A shared session clock advances once every player has
finished the hour.
"""

__version__ = "0.1.0"

from emergency.core.parameters import GameParameters
from emergency.model.engine import TurnEngine

__all__ = ["GameParameters", "TurnEngine", "__version__"]

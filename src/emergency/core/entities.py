"""Core entity definitions for the game.

This module contains enums and basic types that are used across
the codebase, placed here to avoid circular imports.
"""

from enum import Enum
from typing import Dict


class PatientType(str, Enum):
    """Patient acuity class. A is most severe."""
    A = "A"   # High acuity
    B = "B"   # Medium acuity
    C = "C"   # Low acuity


class RoomTier(str, Enum):
    """Room capability tier.

    Higher tiers can host every acuity a lower tier can, so the
    compatibility relation is a strict superset ordering.
    """
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PatientStatus(str, Enum):
    """Where a patient is in their (single-hour-granularity) journey."""
    ARRIVING = "arriving"
    WAITING = "waiting"
    TREATING = "treating"
    TREATED = "treated"
    LWBS = "lwbs"                      # Left without being seen
    CARDIAC_ARREST = "cardiac_arrest"
    TURNED_AWAY = "turned_away"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class Phase(str, Enum):
    """Per-player turn phase.

    The hourly loop is arriving -> sequencing -> rolling -> treating
    -> review -> waiting -> (arriving of next hour).
    """
    ARRIVING = "arriving"
    SEQUENCING = "sequencing"
    ROLLING = "rolling"
    TREATING = "treating"
    REVIEW = "review"
    WAITING = "waiting"

    @property
    def order(self) -> int:
        """Position in the canonical reconciliation order."""
        return PHASE_ORDER[self]


class SessionStatus(str, Enum):
    """Shared session lifecycle."""
    SETUP = "setup"
    STAFFING = "staffing"
    SEQUENCING = "sequencing"
    COMPLETED = "completed"


class RiskOutcome(str, Enum):
    """Adverse outcome for a waiting patient whose risk roll hits."""
    CARDIAC_ARREST = "cardiac_arrest"   # Type A
    LWBS = "lwbs"                       # Types B and C


TERMINAL_STATUSES = frozenset({
    PatientStatus.TREATED,
    PatientStatus.LWBS,
    PatientStatus.CARDIAC_ARREST,
    PatientStatus.TURNED_AWAY,
})

# Incoming snapshots must never move a player backwards in this order
# within the same arrivals hour.
PHASE_ORDER: Dict[Phase, int] = {
    Phase.WAITING: 0,
    Phase.ARRIVING: 1,
    Phase.SEQUENCING: 2,
    Phase.ROLLING: 3,
    Phase.TREATING: 4,
    Phase.REVIEW: 5,
}

# Which patient types each room tier can host
ROOM_COMPATIBILITY: Dict[RoomTier, frozenset] = {
    RoomTier.HIGH: frozenset({PatientType.A, PatientType.B, PatientType.C}),
    RoomTier.MEDIUM: frozenset({PatientType.B, PatientType.C}),
    RoomTier.LOW: frozenset({PatientType.C}),
}

# The tier each patient type is designed for
PRIMARY_TIER: Dict[PatientType, RoomTier] = {
    PatientType.A: RoomTier.HIGH,
    PatientType.B: RoomTier.MEDIUM,
    PatientType.C: RoomTier.LOW,
}

# Presentation order for new arrivals
TYPE_PRIORITY: Dict[PatientType, int] = {
    PatientType.A: 0,
    PatientType.B: 1,
    PatientType.C: 2,
}

PATIENT_TYPE_NAMES: Dict[PatientType, str] = {
    PatientType.A: "High Acuity",
    PatientType.B: "Medium Acuity",
    PatientType.C: "Low Acuity",
}

# Hour 1 of the game is 6 AM
HOURS_OF_DAY = [
    "6 AM", "7 AM", "8 AM", "9 AM", "10 AM", "11 AM",
    "12 PM", "1 PM", "2 PM", "3 PM", "4 PM", "5 PM",
    "6 PM", "7 PM", "8 PM", "9 PM", "10 PM", "11 PM",
    "12 AM", "1 AM", "2 AM", "3 AM", "4 AM", "5 AM",
]

HOURS_PER_DAY = 24
BOARD_POSITIONS = 16

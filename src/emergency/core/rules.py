"""Pure game rules: room compatibility, costs and the d20 risk check.

Nothing in this module mutates state. The turn engine and any display
layer share these functions so that what is highlighted is exactly what
is simulated.
"""

from typing import Iterable, List, Set, TYPE_CHECKING

import numpy as np

from emergency.core.entities import (
    BOARD_POSITIONS,
    PRIMARY_TIER,
    ROOM_COMPATIBILITY,
    PatientType,
    RoomTier,
)
from emergency.core.parameters import GameParameters

if TYPE_CHECKING:
    from emergency.model.patient import Room


def can_treat(patient_type: PatientType, room_tier: RoomTier) -> bool:
    """Whether a room of this tier can host the patient type."""
    return PatientType(patient_type) in ROOM_COMPATIBILITY[RoomTier(room_tier)]


def is_mismatch(patient_type: PatientType, room_tier: RoomTier) -> bool:
    """True unless the room is the patient's designated primary tier."""
    return PRIMARY_TIER[PatientType(patient_type)] != RoomTier(room_tier)


def treatment_time(patient_type: PatientType, params: GameParameters) -> int:
    """Hours of treatment a patient of this type needs."""
    return params.treatment_times[PatientType(patient_type)]


def staffing_cost(rooms: Iterable["Room"], params: GameParameters) -> int:
    """Total one-off cost of a set of rooms."""
    return sum(params.room_costs[room.tier] for room in rooms)


def roll_d20(rng: np.random.Generator) -> int:
    """Roll a fair twenty-sided die."""
    return int(rng.integers(1, 21))


def expand_risk_rolls(base_rolls: Iterable[int], waiting_time: int) -> Set[int]:
    """Widen a trigger set by the hours a patient has waited.

    Each trigger value v also matches v-1 ... v-waiting_time. Values
    below 1 are dropped.

    Example:
        >>> sorted(expand_risk_rolls([20], 2))
        [18, 19, 20]
    """
    wait = max(0, int(waiting_time))
    expanded = set()
    for roll in base_rolls:
        for i in range(wait + 1):
            value = roll - i
            if value >= 1:
                expanded.add(value)
    return expanded


def risk_rolls_for(
    patient_type: PatientType,
    params: GameParameters,
    waiting_time: int = 0,
    time_sensitive: bool = False,
) -> Set[int]:
    """The d20 values that trigger a risk event for this patient."""
    base = params.risk_event_rolls[PatientType(patient_type)]
    if time_sensitive:
        return expand_risk_rolls(base, waiting_time)
    return set(base)


def is_risk_roll(
    patient_type: PatientType,
    roll: int,
    params: GameParameters,
    waiting_time: int = 0,
    time_sensitive: bool = False,
) -> bool:
    """Whether a d20 roll triggers a risk event."""
    return roll in risk_rolls_for(patient_type, params, waiting_time, time_sensitive)


def calculate_utilisation(rooms: List["Room"]) -> float:
    """Fraction of rooms occupied (0 when there are no rooms)."""
    if not rooms:
        return 0.0
    occupied = sum(1 for room in rooms if room.is_occupied)
    return occupied / len(rooms)


def available_positions(rooms: Iterable["Room"]) -> List[int]:
    """Board positions (0-15) not yet holding a room."""
    taken = {room.position for room in rooms}
    return [pos for pos in range(BOARD_POSITIONS) if pos not in taken]

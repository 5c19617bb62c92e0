"""Automated player decisions for simulated sessions."""

from typing import Dict, List, Tuple

from emergency.core.entities import PRIMARY_TIER, TYPE_PRIORITY, RoomTier
from emergency.core.parameters import GameParameters
from emergency.core.rules import can_treat
from emergency.model.state import PlayerGameState

# Cheapest-first fallback when the primary tier is full
TIER_PREFERENCE = [RoomTier.LOW, RoomTier.MEDIUM, RoomTier.HIGH]

DEFAULT_STAFFING_PLAN: Dict[RoomTier, int] = {
    RoomTier.HIGH: 3,
    RoomTier.MEDIUM: 4,
    RoomTier.LOW: 3,
}


def staffing_layout(plan: Dict[RoomTier, int], params: GameParameters) -> List[Tuple[RoomTier, int]]:
    """Board positions for a staffing plan, highest tier first.

    Rooms that would exceed the budget are dropped from the end.

    Returns:
        (tier, position) pairs.
    """
    layout = []
    spent = 0
    position = 0
    for tier in (RoomTier.HIGH, RoomTier.MEDIUM, RoomTier.LOW):
        for _ in range(plan.get(tier, 0)):
            cost = params.room_costs[tier]
            if spent + cost > params.max_staffing_budget:
                break
            layout.append((tier, position))
            spent += cost
            position += 1
    return layout


def greedy_assignments(state: PlayerGameState, allow_mismatch: bool = True) -> List[Tuple[str, str]]:
    """Pick (patient_id, room_id) assignments for the sequencing phase.

    Highest acuity first, then longest wait. Each patient goes to a free
    room of its primary tier; failing that, to the cheapest free
    compatible room when ``allow_mismatch`` is set.
    """
    free = {tier: [] for tier in RoomTier}
    for room in sorted(state.rooms, key=lambda r: r.position):
        if not room.is_occupied:
            free[room.tier].append(room)

    queue = sorted(
        state.waiting_room,
        key=lambda p: (TYPE_PRIORITY[p.type], -p.waiting_time, p.arrived_at),
    )

    assignments = []
    for patient in queue:
        tiers = [PRIMARY_TIER[patient.type]]
        if allow_mismatch:
            tiers += [t for t in TIER_PREFERENCE if t not in tiers and can_treat(patient.type, t)]
        for tier in tiers:
            if free[tier]:
                room = free[tier].pop(0)
                assignments.append((patient.id, room.id))
                break
    return assignments

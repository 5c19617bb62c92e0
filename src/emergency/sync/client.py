"""Player-side binding of the turn engine to the replicated store.

The client mutates its engine's state optimistically, bumps the state
version, and writes the full state to the store. Store notifications
(including echoes of its own writes and coordinator corrections) are
passed through the reconciler before they may replace local state.

A failed write is logged and counted; local state stays the source of
truth until the next successful write.
"""

import logging
from typing import List, Optional

import numpy as np

from emergency.core.arrivals import HourlyArrivals
from emergency.core.entities import RoomTier
from emergency.core.parameters import GameParameters
from emergency.model.engine import TurnEngine
from emergency.model.outcome import Outcome
from emergency.model.state import PlayerGameState, RiskEvent, RiskRoll
from emergency.sync.reconciler import Reconciler
from emergency.sync.store import Document, ReplicatedStore, StoreError, Unsubscribe

logger = logging.getLogger(__name__)


class PlayerClient:
    """One player's view of the game.

    Attributes:
        store: Replicated store.
        player_id: Player document id.
        engine: Turn engine holding the local state.
        reconciler: Snapshot acceptance rules.
        write_failures: Count of store writes that raised StoreError.
        rejected_snapshots: Count of incoming snapshots the reconciler dropped.
    """

    def __init__(
        self,
        store: ReplicatedStore,
        player_id: str,
        params: GameParameters,
        rng: Optional[np.random.Generator] = None,
    ):
        self.store = store
        self.player_id = player_id
        doc = store.get_player(player_id)
        state = PlayerGameState.from_dict(doc["game_state"]) if doc else None
        self.engine = TurnEngine(params, state=state, rng=rng)
        self.reconciler = Reconciler()
        self.reconciler.note_local_arrivals(self.engine.state.last_arrivals_hour)
        self.write_failures = 0
        self.rejected_snapshots = 0
        self.kicked = False
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def state(self) -> PlayerGameState:
        return self.engine.state

    # ------------------------------------------------------------------
    # Store plumbing
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Start receiving snapshots of this player's document."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe_player(self.player_id, self.on_snapshot)

    def disconnect(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_snapshot(self, doc: Optional[Document]) -> Optional[Outcome]:
        """Handle a store notification for this player."""
        if doc is None:
            logger.warning(f"Player {self.player_id} removed from store")
            self.kicked = True
            return None

        incoming = PlayerGameState.from_dict(doc.get("game_state") or {})
        outcome = self.reconciler.evaluate(self.engine.state, incoming)
        if outcome.is_applied:
            self.engine.state = incoming
        else:
            self.rejected_snapshots += 1
        return outcome

    def _publish(self) -> bool:
        try:
            self.store.put_player_state(self.player_id, self.engine.state.to_dict())
        except StoreError as e:
            self.write_failures += 1
            logger.error(f"Error writing game state for player {self.player_id}: {e}")
            return False
        return True

    def _commit(self, outcome: Outcome) -> Outcome:
        if outcome.changed_state:
            self.engine.state.version += 1
            self._publish()
        return outcome

    # ------------------------------------------------------------------
    # Player actions
    # ------------------------------------------------------------------

    def add_room(self, tier: RoomTier, position: int) -> Outcome:
        return self._commit(self.engine.add_room(tier, position))

    def remove_room(self, room_id: str) -> Outcome:
        return self._commit(self.engine.remove_room(room_id))

    def move_room(self, room_id: str, position: int) -> Outcome:
        return self._commit(self.engine.move_room(room_id, position))

    def complete_staffing(self) -> Outcome:
        return self._commit(self.engine.complete_staffing())

    def process_arrivals(self, arrivals: HourlyArrivals, current_hour: int) -> Outcome:
        outcome = self.engine.process_arrivals(arrivals, current_hour)
        if outcome.is_applied:
            # Before the write, so its own echo is already covered
            self.reconciler.note_local_arrivals(current_hour)
        return self._commit(outcome)

    def move_patient_to_room(self, patient_id: str, room_id: str) -> Outcome:
        return self._commit(self.engine.move_patient_to_room(patient_id, room_id))

    def move_patient_back_to_queue(self, patient_id: str) -> Outcome:
        return self._commit(self.engine.move_patient_back_to_queue(patient_id))

    def complete_sequencing(self, current_hour: int) -> Outcome:
        return self._commit(self.engine.complete_sequencing(current_hour))

    def roll_for_risk_events(self) -> List[RiskRoll]:
        return self.engine.roll_for_risk_events()

    def apply_risk_event_results(self, results: List[RiskRoll], current_hour: int) -> Outcome:
        return self._commit(self.engine.apply_risk_event_results(results, current_hour))

    def process_treatment(self, risk_events: Optional[List[RiskEvent]] = None) -> Outcome:
        return self._commit(self.engine.process_treatment(risk_events))

    def complete_turn(self) -> Outcome:
        return self._commit(self.engine.complete_turn())

    def try_advance(self, current_hour: int, arrivals: Optional[HourlyArrivals] = None) -> Outcome:
        outcome = self.engine.try_advance(current_hour, arrivals)
        if outcome.is_applied and self.engine.state.last_arrivals_hour == current_hour:
            self.reconciler.note_local_arrivals(current_hour)
        return self._commit(outcome)

    def sync(self) -> bool:
        """Rewrite the full local state, e.g. after a failed write."""
        return self._publish()

    def reset(self) -> Outcome:
        self.reconciler = Reconciler()
        return self._commit(self.engine.reset())

"""Per-player turn engine.

The engine owns one player's ``PlayerGameState`` and moves it through
the hourly loop:

    arriving -> sequencing -> rolling -> treating -> review -> waiting

Staffing (building rooms within budget) happens once before hour 1.

Every operation returns an ``Outcome``. Calls made in the wrong phase,
with a stale watermark, or with an invalid assignment are rejected and
leave the state exactly as it was, so late or duplicate triggers
(client retries, remounts, coordinator rescues, timer fallbacks) can
never double-apply revenue, cost or patient removals.

Risk resolution is split into a pure ``roll_for_risk_events`` and a
mutating ``apply_risk_event_results`` so that a display layer can reveal
the raw rolls before they are committed. Only the order
roll -> apply -> treat matters; nothing depends on how long the reveal
takes.
"""

import logging
from typing import List, Optional

import numpy as np

from emergency.core.arrivals import HourlyArrivals
from emergency.core.entities import (
    BOARD_POSITIONS,
    PRIMARY_TIER,
    TYPE_PRIORITY,
    PatientStatus,
    PatientType,
    Phase,
    RiskOutcome,
    RoomTier,
)
from emergency.core.parameters import GameParameters
from emergency.core.rules import (
    calculate_utilisation,
    can_treat,
    is_mismatch,
    is_risk_roll,
    roll_d20,
    staffing_cost,
    treatment_time,
)
from emergency.model.outcome import Outcome, Rejection
from emergency.model.patient import create_patient, create_room
from emergency.model.state import (
    Completion,
    PlayerGameState,
    RiskEvent,
    RiskRoll,
    TurnEvents,
    initial_game_state,
)

logger = logging.getLogger(__name__)

MID_FLIGHT_PHASES = (Phase.ROLLING, Phase.TREATING)


class TurnEngine:
    """State machine for a single player's game.

    Attributes:
        state: The player's current game state (mutated in place).
        params: Session game parameters.
        rng: NumPy random generator used for dice rolls.
    """

    def __init__(
        self,
        params: GameParameters,
        state: Optional[PlayerGameState] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.params = params
        self.state = state if state is not None else initial_game_state()
        self.rng = rng if rng is not None else np.random.default_rng()

    # ------------------------------------------------------------------
    # Staffing
    # ------------------------------------------------------------------

    def add_room(self, tier: RoomTier, position: int) -> Outcome:
        """Build a room at a free board position within the staffing budget."""
        state = self.state
        if state.staffing_complete:
            return Outcome.rejected(Rejection.STAFFING_CLOSED)
        if not 0 <= position < BOARD_POSITIONS:
            return Outcome.rejected(Rejection.INVALID_POSITION)
        if any(r.position == position for r in state.rooms):
            return Outcome.rejected(Rejection.POSITION_TAKEN)

        room = create_room(tier, position)
        new_cost = staffing_cost(state.rooms + [room], self.params)
        if new_cost > self.params.max_staffing_budget:
            return Outcome.rejected(Rejection.OVER_BUDGET)

        state.rooms.append(room)
        state.staffing_cost = new_cost
        return Outcome.applied(room)

    def remove_room(self, room_id: str) -> Outcome:
        """Remove a vacant room during staffing."""
        state = self.state
        if state.staffing_complete:
            return Outcome.rejected(Rejection.STAFFING_CLOSED)
        room = state.room(room_id)
        if room is None:
            return Outcome.rejected(Rejection.UNKNOWN_ROOM)
        if room.is_occupied:
            return Outcome.rejected(Rejection.ROOM_OCCUPIED)

        state.rooms = [r for r in state.rooms if r.id != room_id]
        state.staffing_cost = staffing_cost(state.rooms, self.params)
        return Outcome.applied()

    def move_room(self, room_id: str, position: int) -> Outcome:
        """Move a room to another free board position during staffing."""
        state = self.state
        if state.staffing_complete:
            return Outcome.rejected(Rejection.STAFFING_CLOSED)
        room = state.room(room_id)
        if room is None:
            return Outcome.rejected(Rejection.UNKNOWN_ROOM)
        if not 0 <= position < BOARD_POSITIONS:
            return Outcome.rejected(Rejection.INVALID_POSITION)
        if any(r.position == position and r.id != room_id for r in state.rooms):
            return Outcome.rejected(Rejection.POSITION_TAKEN)

        room.position = position
        return Outcome.applied()

    def complete_staffing(self) -> Outcome:
        """Lock the room inventory and charge its cost. Happens once."""
        state = self.state
        if state.staffing_complete:
            return Outcome.rejected(Rejection.ALREADY_PROCESSED)

        state.staffing_cost = staffing_cost(state.rooms, self.params)
        state.staffing_complete = True
        state.total_cost = state.staffing_cost
        state.hour_complete = True
        logger.info(
            f"Staffing complete: {len(state.rooms)} rooms, cost {state.staffing_cost}"
        )
        return Outcome.applied()

    # ------------------------------------------------------------------
    # Hourly loop
    # ------------------------------------------------------------------

    def process_arrivals(self, arrivals: HourlyArrivals, current_hour: int) -> Outcome:
        """Admit this hour's arrivals into the waiting room.

        Patients are ordered A, B, C and admitted while the waiting room
        has space. Overflow patients are turned away and immediately
        charged their type's risk-event cost.

        Args:
            arrivals: Arrival counts for the hour.
            current_hour: Session hour being played.
        """
        state = self.state
        params = self.params

        if arrivals.hour != current_hour:
            return Outcome.rejected(Rejection.HOUR_MISMATCH)
        if state.last_arrivals_hour >= current_hour:
            return Outcome.rejected(Rejection.ALREADY_PROCESSED)
        if state.current_phase in MID_FLIGHT_PHASES:
            return Outcome.rejected(Rejection.MID_FLIGHT)
        if not state.staffing_complete:
            return Outcome.rejected(Rejection.STAFFING_OPEN)

        new_patients = []
        for patient_type in PatientType:
            for _ in range(arrivals[patient_type]):
                new_patients.append(create_patient(patient_type, current_hour))
        new_patients.sort(key=lambda p: TYPE_PRIORITY[p.type])

        # Point-in-time snapshots, taken before admission changes anything
        stats = state.stats
        for patient_type in PatientType:
            waiting = sum(1 for p in state.waiting_room if p.type == patient_type)
            stats.hourly_demand[patient_type].append(waiting + arrivals[patient_type])
            free = sum(
                1 for r in state.rooms
                if r.tier == PRIMARY_TIER[patient_type] and not r.is_occupied
            )
            stats.hourly_available_capacity[patient_type].append(free)

        turned_away = {t: 0 for t in PatientType}
        turn_away_cost = 0
        for patient in new_patients:
            if len(state.waiting_room) < params.max_waiting_room:
                patient.status = PatientStatus.WAITING
                state.waiting_room.append(patient)
            else:
                patient.status = PatientStatus.TURNED_AWAY
                turned_away[patient.type] += 1
                stats.turned_away[patient.type] += 1
                turn_away_cost += params.risk_event_cost[patient.type]

        stats.risk_event_costs += turn_away_cost
        state.total_cost += turn_away_cost

        if turn_away_cost:
            logger.info(
                f"Hour {current_hour}: turned away "
                f"{sum(turned_away.values())} patients (cost {turn_away_cost})"
            )

        state.current_phase = Phase.SEQUENCING
        state.hour_complete = False
        state.last_arrivals_hour = current_hour
        state.turn_events = TurnEvents(
            arrived={t: arrivals[t] for t in PatientType},
            turned_away=turned_away,
        )
        return Outcome.applied()

    def move_patient_to_room(self, patient_id: str, room_id: str) -> Outcome:
        """Assign a waiting patient to a free, compatible room."""
        state = self.state
        if state.current_phase != Phase.SEQUENCING:
            return Outcome.rejected(Rejection.WRONG_PHASE)

        patient = state.waiting_patient(patient_id)
        if patient is None:
            return Outcome.rejected(Rejection.UNKNOWN_PATIENT)
        room = state.room(room_id)
        if room is None:
            return Outcome.rejected(Rejection.UNKNOWN_ROOM)
        if room.is_occupied:
            return Outcome.rejected(Rejection.ROOM_OCCUPIED)
        if not can_treat(patient.type, room.tier):
            return Outcome.rejected(Rejection.INCOMPATIBLE_ROOM)

        state.waiting_room = [p for p in state.waiting_room if p.id != patient_id]
        patient.status = PatientStatus.TREATING
        patient.room_id = room.id
        patient.treatment_progress = treatment_time(patient.type, self.params)
        patient.treated_in_mismatch_room = is_mismatch(patient.type, room.tier)
        room.patient = patient
        return Outcome.applied()

    def move_patient_back_to_queue(self, patient_id: str) -> Outcome:
        """Undo an assignment made this hour, before treatment has ticked."""
        state = self.state
        if state.current_phase != Phase.SEQUENCING:
            return Outcome.rejected(Rejection.WRONG_PHASE)

        room = state.room_of(patient_id)
        if room is None:
            return Outcome.rejected(Rejection.UNKNOWN_PATIENT)
        patient = room.patient
        if patient.treatment_progress != treatment_time(patient.type, self.params):
            return Outcome.rejected(Rejection.TREATMENT_STARTED)

        room.patient = None
        patient.status = PatientStatus.WAITING
        patient.room_id = None
        patient.treatment_progress = None
        patient.treated_in_mismatch_room = False
        state.waiting_room.append(patient)
        return Outcome.applied()

    def complete_sequencing(self, current_hour: int) -> Outcome:
        """Submit room assignments for the hour."""
        state = self.state
        if state.current_phase != Phase.SEQUENCING:
            return Outcome.rejected(Rejection.WRONG_PHASE)

        state.last_sequencing_hour = max(state.last_sequencing_hour, current_hour)
        state.current_phase = Phase.ROLLING
        return Outcome.applied()

    def roll_for_risk_events(self) -> List[RiskRoll]:
        """Roll a d20 for every waiting patient without changing state.

        Patients in treatment are never at risk. With time-sensitive
        harms enabled the trigger set widens by each patient's wait.
        """
        params = self.params
        results = []
        for patient in self.state.waiting_room:
            roll = roll_d20(self.rng)
            is_event = is_risk_roll(
                patient.type,
                roll,
                params,
                waiting_time=patient.waiting_time,
                time_sensitive=params.time_sensitive_waiting_harms,
            )
            logger.debug(
                f"Risk roll: patient {patient.id} ({patient.type.value}, "
                f"waited {patient.waiting_time}h) rolled {roll}, event={is_event}"
            )
            results.append(RiskRoll(patient.id, roll, is_event, patient.type))
        return results

    def apply_risk_event_results(self, results: List[RiskRoll], current_hour: int) -> Outcome:
        """Commit previously rolled risk results.

        Type A events are cardiac arrests; B and C leave without being
        seen. Each removal is charged its type's risk-event cost. The
        remaining patients then wait one more hour and the hour's waiting
        cost is charged.

        Returns:
            Outcome whose value is the list of applied RiskEvent records.
        """
        state = self.state
        params = self.params
        if state.current_phase != Phase.ROLLING:
            return Outcome.rejected(Rejection.WRONG_PHASE)

        stats = state.stats
        applied: List[RiskEvent] = []
        risk_cost = 0

        for result in results:
            if not result.is_event:
                continue
            patient = state.waiting_patient(result.patient_id)
            if patient is None:
                logger.warning(f"Risk event for patient {result.patient_id} not in waiting room")
                continue

            if patient.type == PatientType.A:
                outcome = RiskOutcome.CARDIAC_ARREST
                patient.status = PatientStatus.CARDIAC_ARREST
                stats.cardiac_arrests += 1
            else:
                outcome = RiskOutcome.LWBS
                patient.status = PatientStatus.LWBS
                stats.lwbs[patient.type] += 1

            cost = params.risk_event_cost[patient.type]
            risk_cost += cost
            state.waiting_room = [p for p in state.waiting_room if p.id != patient.id]
            applied.append(RiskEvent(patient.id, patient.type, outcome))
            logger.info(
                f"Hour {current_hour}: {outcome.value} for type {patient.type.value} "
                f"patient (roll {result.roll}, cost {cost})"
            )

        for patient in state.waiting_room:
            patient.waiting_time += 1
        hourly_waiting_cost = sum(
            params.waiting_cost_per_hour[p.type] for p in state.waiting_room
        )
        for patient in state.waiting_room:
            if patient.waiting_time > stats.max_waiting_time[patient.type]:
                stats.max_waiting_time[patient.type] = patient.waiting_time

        stats.risk_event_costs += risk_cost
        stats.waiting_costs += hourly_waiting_cost
        state.total_cost += risk_cost + hourly_waiting_cost
        state.current_phase = Phase.TREATING
        state.last_sequencing_hour = max(state.last_sequencing_hour, current_hour)
        state.turn_events.risk_events = list(applied)
        state.turn_events.waiting_costs = hourly_waiting_cost
        return Outcome.applied(applied)

    def process_treatment(self, risk_events: Optional[List[RiskEvent]] = None) -> Outcome:
        """Tick every occupied room by one hour and discharge finished patients.

        Keyed to the hour this player has processed arrivals for, not the
        session clock, so a player who is behind or ahead still treats
        their own hour exactly once. When treatment for that hour has
        already run, the call only repairs the phase to ``waiting``.

        Args:
            risk_events: Applied risk events to show in the turn summary.
                Overrides whatever the state currently holds.
        """
        state = self.state
        params = self.params
        treatment_hour = state.last_arrivals_hour

        # Nothing admitted yet, so there is no hour to treat or settle
        if treatment_hour == 0:
            return Outcome.rejected(Rejection.WRONG_PHASE)

        if state.last_treatment_hour >= treatment_hour:
            if state.current_phase != Phase.WAITING or not state.hour_complete:
                state.current_phase = Phase.WAITING
                state.hour_complete = True
                state.last_completed_hour = max(state.last_completed_hour, treatment_hour)
                return Outcome.reconciled()
            return Outcome.rejected(Rejection.ALREADY_PROCESSED)

        if state.current_phase in (Phase.ARRIVING, Phase.SEQUENCING):
            return Outcome.rejected(Rejection.WRONG_PHASE)

        stats = state.stats
        completed: List[Completion] = []
        revenue = 0

        for room in state.rooms:
            patient = room.patient
            if patient is None:
                continue
            progress = patient.treatment_progress
            if progress is None:
                progress = treatment_time(patient.type, params)
            progress -= 1

            if progress > 0:
                patient.treatment_progress = progress
                continue

            patient.status = PatientStatus.TREATED
            patient.treatment_progress = 0
            patient.room_id = None
            room.patient = None
            state.completed_patients.append(patient)
            stats.patients_treated[patient.type] += 1
            stats.total_treatments += 1
            if patient.treated_in_mismatch_room:
                stats.mismatch_treatments += 1
            revenue += params.revenue_per_patient[patient.type]
            completed.append(Completion(patient.id, patient.type))

        stats.hourly_utilisation.append(calculate_utilisation(state.rooms))
        stats.hourly_queue_length.append(len(state.waiting_room))

        state.total_revenue += revenue
        state.current_phase = Phase.REVIEW
        state.hour_complete = False
        state.last_treatment_hour = treatment_hour
        state.last_completed_hour = treatment_hour
        state.turn_events.completed = completed
        if risk_events is not None:
            state.turn_events.risk_events = list(risk_events)
        return Outcome.applied(completed)

    def complete_turn(self) -> Outcome:
        """Player acknowledges the hour's summary."""
        self.state.current_phase = Phase.WAITING
        self.state.hour_complete = True
        return Outcome.applied()

    def try_advance(self, current_hour: int, arrivals: Optional[HourlyArrivals] = None) -> Outcome:
        """Push the player one idempotent step towards ``waiting``.

        Every advancement trigger (monitor, client auto-advance, rescue
        sweep, timer fallback) calls this. Concurrent or repeated calls
        converge on the same state because each step it delegates to is
        guarded by a watermark.

        Args:
            current_hour: Session hour.
            arrivals: The hour's arrivals, needed if they are still pending.
        """
        state = self.state
        if not state.staffing_complete:
            return Outcome.rejected(Rejection.STAFFING_OPEN)

        if state.last_arrivals_hour < current_hour and state.current_phase not in MID_FLIGHT_PHASES:
            if arrivals is None:
                return Outcome.rejected(Rejection.NO_ARRIVALS)
            return self.process_arrivals(arrivals, current_hour)

        if state.current_phase == Phase.SEQUENCING:
            return Outcome.rejected(Rejection.AWAITING_PLAYER)

        return self.process_treatment()

    def reset(self) -> Outcome:
        """Discard all progress (instructor reset)."""
        version = self.state.version
        self.state = initial_game_state()
        self.state.version = version
        return Outcome.applied()

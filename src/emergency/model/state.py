"""Per-player replicated game state.

``PlayerGameState`` is the unit written to and read from the store.
Everything here is plain data plus (de)serialisation; the rules that
mutate it live in ``emergency.model.engine``.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from emergency.core.entities import Phase, PatientType, RiskOutcome
from emergency.model.patient import Patient, Room


def _zero_counts(types=tuple(PatientType)) -> Dict[PatientType, int]:
    return {t: 0 for t in types}


def _empty_series() -> Dict[PatientType, List[int]]:
    return {t: [] for t in PatientType}


LWBS_TYPES = (PatientType.B, PatientType.C)


@dataclass(frozen=True)
class RiskRoll:
    """A d20 roll for one waiting patient, computed before commitment."""
    patient_id: str
    roll: int
    is_event: bool
    type: PatientType


@dataclass(frozen=True)
class RiskEvent:
    """An applied adverse outcome."""
    patient_id: str
    type: PatientType
    outcome: RiskOutcome

    def to_dict(self) -> Dict[str, str]:
        return {"patient_id": self.patient_id, "type": self.type.value, "outcome": self.outcome.value}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RiskEvent":
        return cls(d["patient_id"], PatientType(d["type"]), RiskOutcome(d["outcome"]))


@dataclass(frozen=True)
class Completion:
    """A patient discharged this hour."""
    patient_id: str
    type: PatientType

    def to_dict(self) -> Dict[str, str]:
        return {"patient_id": self.patient_id, "type": self.type.value}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Completion":
        return cls(d["patient_id"], PatientType(d["type"]))


@dataclass
class PlayerStats:
    """Running statistics across the session.

    Attributes:
        patients_treated: Discharges by type.
        cardiac_arrests: Type A risk events.
        lwbs: Left-without-being-seen by type (B and C only).
        turned_away: Patients refused at a full waiting room, by type.
        waiting_costs: Accrued waiting cost.
        risk_event_costs: Accrued cost of risk events and turn-aways.
        hourly_utilisation: Occupied/total rooms after each treatment step.
        hourly_queue_length: Waiting room size at each treatment step.
        hourly_demand: Waiting + newly arrived, by type, at each arrivals step.
        hourly_available_capacity: Free rooms of each type's primary tier.
        max_waiting_time: Longest wait seen, by type.
        mismatch_treatments: Discharges from a non-primary tier room.
        total_treatments: All discharges.
    """

    patients_treated: Dict[PatientType, int] = field(default_factory=_zero_counts)
    cardiac_arrests: int = 0
    lwbs: Dict[PatientType, int] = field(default_factory=lambda: _zero_counts(LWBS_TYPES))
    turned_away: Dict[PatientType, int] = field(default_factory=_zero_counts)
    waiting_costs: int = 0
    risk_event_costs: int = 0
    hourly_utilisation: List[float] = field(default_factory=list)
    hourly_queue_length: List[int] = field(default_factory=list)
    hourly_demand: Dict[PatientType, List[int]] = field(default_factory=_empty_series)
    hourly_available_capacity: Dict[PatientType, List[int]] = field(default_factory=_empty_series)
    max_waiting_time: Dict[PatientType, int] = field(default_factory=_zero_counts)
    mismatch_treatments: int = 0
    total_treatments: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patients_treated": {t.value: n for t, n in self.patients_treated.items()},
            "cardiac_arrests": self.cardiac_arrests,
            "lwbs": {t.value: n for t, n in self.lwbs.items()},
            "turned_away": {t.value: n for t, n in self.turned_away.items()},
            "waiting_costs": self.waiting_costs,
            "risk_event_costs": self.risk_event_costs,
            "hourly_utilisation": list(self.hourly_utilisation),
            "hourly_queue_length": list(self.hourly_queue_length),
            "hourly_demand": {t.value: list(s) for t, s in self.hourly_demand.items()},
            "hourly_available_capacity": {
                t.value: list(s) for t, s in self.hourly_available_capacity.items()
            },
            "max_waiting_time": {t.value: n for t, n in self.max_waiting_time.items()},
            "mismatch_treatments": self.mismatch_treatments,
            "total_treatments": self.total_treatments,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PlayerStats":
        def counts(key, types=tuple(PatientType)):
            raw = d.get(key) or {}
            return {t: int(raw.get(t.value, 0)) for t in types}

        def series(key):
            raw = d.get(key) or {}
            return {t: list(raw.get(t.value, [])) for t in PatientType}

        return cls(
            patients_treated=counts("patients_treated"),
            cardiac_arrests=int(d.get("cardiac_arrests", 0)),
            lwbs=counts("lwbs", LWBS_TYPES),
            turned_away=counts("turned_away"),
            waiting_costs=int(d.get("waiting_costs", 0)),
            risk_event_costs=int(d.get("risk_event_costs", 0)),
            hourly_utilisation=list(d.get("hourly_utilisation", [])),
            hourly_queue_length=list(d.get("hourly_queue_length", [])),
            hourly_demand=series("hourly_demand"),
            hourly_available_capacity=series("hourly_available_capacity"),
            max_waiting_time=counts("max_waiting_time"),
            mismatch_treatments=int(d.get("mismatch_treatments", 0)),
            total_treatments=int(d.get("total_treatments", 0)),
        )


@dataclass
class TurnEvents:
    """What happened in the current turn, for the review summary."""

    arrived: Dict[PatientType, int] = field(default_factory=_zero_counts)
    turned_away: Dict[PatientType, int] = field(default_factory=_zero_counts)
    risk_events: List[RiskEvent] = field(default_factory=list)
    completed: List[Completion] = field(default_factory=list)
    waiting_costs: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "arrived": {t.value: n for t, n in self.arrived.items()},
            "turned_away": {t.value: n for t, n in self.turned_away.items()},
            "risk_events": [e.to_dict() for e in self.risk_events],
            "completed": [c.to_dict() for c in self.completed],
            "waiting_costs": self.waiting_costs,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TurnEvents":
        arrived = d.get("arrived") or {}
        turned_away = d.get("turned_away") or {}
        return cls(
            arrived={t: int(arrived.get(t.value, 0)) for t in PatientType},
            turned_away={t: int(turned_away.get(t.value, 0)) for t in PatientType},
            risk_events=[RiskEvent.from_dict(e) for e in d.get("risk_events", [])],
            completed=[Completion.from_dict(c) for c in d.get("completed", [])],
            waiting_costs=int(d.get("waiting_costs", 0)),
        )


@dataclass
class PlayerGameState:
    """The replicated unit of truth for one player.

    The four ``last_*_hour`` watermarks only ever increase and are the
    sole basis for idempotency: a phase step for hour h is skipped when
    its watermark is already >= h.

    ``version`` increases on every write that originates from this
    state's owner or a coordinator correction; the reconciler uses it to
    drop echoes and stale snapshots.
    """

    rooms: List[Room] = field(default_factory=list)
    waiting_room: List[Patient] = field(default_factory=list)
    completed_patients: List[Patient] = field(default_factory=list)
    total_revenue: int = 0
    total_cost: int = 0
    staffing_cost: int = 0
    staffing_complete: bool = False
    current_phase: Phase = Phase.ARRIVING
    hour_complete: bool = False
    last_completed_hour: int = 0
    last_arrivals_hour: int = 0
    last_treatment_hour: int = 0
    last_sequencing_hour: int = 0
    stats: PlayerStats = field(default_factory=PlayerStats)
    turn_events: TurnEvents = field(default_factory=TurnEvents)
    version: int = 0

    @property
    def profit(self) -> int:
        return self.total_revenue - self.total_cost

    def room(self, room_id: str) -> Optional[Room]:
        return next((r for r in self.rooms if r.id == room_id), None)

    def waiting_patient(self, patient_id: str) -> Optional[Patient]:
        return next((p for p in self.waiting_room if p.id == patient_id), None)

    def room_of(self, patient_id: str) -> Optional[Room]:
        return next(
            (r for r in self.rooms if r.patient is not None and r.patient.id == patient_id),
            None,
        )

    def has_active_treatment(self) -> bool:
        return any(
            r.patient is not None and (r.patient.treatment_progress or 0) > 0
            for r in self.rooms
        )

    def copy(self) -> "PlayerGameState":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rooms": [r.to_dict() for r in self.rooms],
            "waiting_room": [p.to_dict() for p in self.waiting_room],
            "completed_patients": [p.to_dict() for p in self.completed_patients],
            "total_revenue": self.total_revenue,
            "total_cost": self.total_cost,
            "staffing_cost": self.staffing_cost,
            "staffing_complete": self.staffing_complete,
            "current_phase": self.current_phase.value,
            "hour_complete": self.hour_complete,
            "last_completed_hour": self.last_completed_hour,
            "last_arrivals_hour": self.last_arrivals_hour,
            "last_treatment_hour": self.last_treatment_hour,
            "last_sequencing_hour": self.last_sequencing_hour,
            "stats": self.stats.to_dict(),
            "turn_events": self.turn_events.to_dict(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PlayerGameState":
        """Rebuild state from a store document.

        Missing watermarks default to 0 so that documents written by
        older clients still load.
        """
        return cls(
            rooms=[Room.from_dict(r) for r in d.get("rooms", [])],
            waiting_room=[Patient.from_dict(p) for p in d.get("waiting_room", [])],
            completed_patients=[Patient.from_dict(p) for p in d.get("completed_patients", [])],
            total_revenue=int(d.get("total_revenue", 0)),
            total_cost=int(d.get("total_cost", 0)),
            staffing_cost=int(d.get("staffing_cost", 0)),
            staffing_complete=bool(d.get("staffing_complete", False)),
            current_phase=Phase(d.get("current_phase", Phase.ARRIVING.value)),
            hour_complete=bool(d.get("hour_complete", False)),
            last_completed_hour=int(d.get("last_completed_hour") or 0),
            last_arrivals_hour=int(d.get("last_arrivals_hour") or 0),
            last_treatment_hour=int(d.get("last_treatment_hour") or 0),
            last_sequencing_hour=int(d.get("last_sequencing_hour") or 0),
            stats=PlayerStats.from_dict(d.get("stats") or {}),
            turn_events=TurnEvents.from_dict(d.get("turn_events") or {}),
            version=int(d.get("version", 0)),
        )


def initial_game_state() -> PlayerGameState:
    """Zeroed state for a player joining a session."""
    return PlayerGameState()

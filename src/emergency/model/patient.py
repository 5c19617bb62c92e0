"""Patient and room entity definitions."""

import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from emergency.core.entities import PatientStatus, PatientType, RoomTier


def new_id() -> str:
    """Opaque unique identifier for patients and rooms."""
    return uuid.uuid4().hex


@dataclass
class Patient:
    """One simulated arrival.

    Attributes:
        id: Unique patient identifier.
        type: Acuity type (A/B/C).
        arrived_at: Game hour of arrival.
        waiting_time: Hours spent in the waiting room.
        treatment_progress: Remaining treatment hours (None when not in treatment).
        room_id: Room currently hosting the patient.
        status: Journey status.
        treated_in_mismatch_room: Assigned room is not the primary tier.
    """

    id: str
    type: PatientType
    arrived_at: int
    waiting_time: int = 0
    treatment_progress: Optional[int] = None
    room_id: Optional[str] = None
    status: PatientStatus = PatientStatus.ARRIVING
    treated_in_mismatch_room: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "arrived_at": self.arrived_at,
            "waiting_time": self.waiting_time,
            "treatment_progress": self.treatment_progress,
            "room_id": self.room_id,
            "status": self.status.value,
            "treated_in_mismatch_room": self.treated_in_mismatch_room,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Patient":
        return cls(
            id=d["id"],
            type=PatientType(d["type"]),
            arrived_at=int(d.get("arrived_at", 0)),
            waiting_time=int(d.get("waiting_time", 0)),
            treatment_progress=d.get("treatment_progress"),
            room_id=d.get("room_id"),
            status=PatientStatus(d.get("status", PatientStatus.ARRIVING.value)),
            treated_in_mismatch_room=bool(d.get("treated_in_mismatch_room", False)),
        )


@dataclass
class Room:
    """One treatment bay on a player's board.

    Attributes:
        id: Unique room identifier.
        tier: Capability tier.
        position: Board slot (0-15), unique per player.
        patient: Patient being treated, if any.
    """

    id: str
    tier: RoomTier
    position: int
    patient: Optional[Patient] = None

    @property
    def is_occupied(self) -> bool:
        return self.patient is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tier": self.tier.value,
            "position": self.position,
            "is_occupied": self.is_occupied,
            "patient": self.patient.to_dict() if self.patient is not None else None,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Room":
        patient = d.get("patient")
        return cls(
            id=d["id"],
            tier=RoomTier(d["tier"]),
            position=int(d["position"]),
            patient=Patient.from_dict(patient) if patient else None,
        )


def create_patient(patient_type: PatientType, hour: int) -> Patient:
    """Create a newly arriving patient."""
    return Patient(id=new_id(), type=PatientType(patient_type), arrived_at=hour)


def create_room(tier: RoomTier, position: int) -> Room:
    """Create an empty room at a board position."""
    return Room(id=new_id(), tier=RoomTier(tier), position=position)

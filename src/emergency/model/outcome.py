"""Tagged results for state-machine operations.

Every engine and reconciler operation returns an ``Outcome`` instead of
silently returning. A rejected outcome always means the state was left
untouched; the reason says which guard fired.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    RECONCILED = "reconciled"   # Idempotent re-entry that only repaired phase flags
    REJECTED = "rejected"


class Rejection(str, Enum):
    """Why an operation did nothing."""

    # Guard violations
    WRONG_PHASE = "wrong_phase"
    ALREADY_PROCESSED = "already_processed"
    MID_FLIGHT = "mid_flight"
    STAFFING_OPEN = "staffing_open"
    STAFFING_CLOSED = "staffing_closed"
    AWAITING_PLAYER = "awaiting_player"
    NO_ARRIVALS = "no_arrivals"
    HOUR_MISMATCH = "hour_mismatch"

    # Validation failures
    UNKNOWN_PATIENT = "unknown_patient"
    UNKNOWN_ROOM = "unknown_room"
    ROOM_OCCUPIED = "room_occupied"
    INCOMPATIBLE_ROOM = "incompatible_room"
    TREATMENT_STARTED = "treatment_started"
    OVER_BUDGET = "over_budget"
    POSITION_TAKEN = "position_taken"
    INVALID_POSITION = "invalid_position"

    # Reconciliation
    STALE_VERSION = "stale_version"
    BEHIND_PROCESSED_HOUR = "behind_processed_hour"
    BEHIND_LOCAL_HOUR = "behind_local_hour"
    PHASE_REGRESSION = "phase_regression"


@dataclass(frozen=True)
class Outcome:
    """Result of a state-machine operation.

    Attributes:
        status: Applied, reconciled or rejected.
        reason: Guard that fired, for rejected outcomes.
        value: Operation-specific payload (e.g. applied risk events).
    """

    status: OutcomeStatus
    reason: Optional[Rejection] = None
    value: Any = None

    @classmethod
    def applied(cls, value: Any = None) -> "Outcome":
        return cls(OutcomeStatus.APPLIED, value=value)

    @classmethod
    def reconciled(cls, reason: Rejection = Rejection.ALREADY_PROCESSED) -> "Outcome":
        return cls(OutcomeStatus.RECONCILED, reason=reason)

    @classmethod
    def rejected(cls, reason: Rejection) -> "Outcome":
        return cls(OutcomeStatus.REJECTED, reason=reason)

    @property
    def changed_state(self) -> bool:
        return self.status is not OutcomeStatus.REJECTED

    @property
    def is_applied(self) -> bool:
        return self.status is OutcomeStatus.APPLIED

    @property
    def is_rejected(self) -> bool:
        return self.status is OutcomeStatus.REJECTED

    def __bool__(self) -> bool:
        return self.changed_state

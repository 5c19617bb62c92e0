"""Tests for entities and pure game rules."""

import numpy as np
import pytest

from emergency.core.entities import (
    PHASE_ORDER,
    PatientStatus,
    PatientType,
    Phase,
    RoomTier,
)
from emergency.core.parameters import GameParameters
from emergency.core.rules import (
    available_positions,
    calculate_utilisation,
    can_treat,
    expand_risk_rolls,
    is_mismatch,
    is_risk_roll,
    risk_rolls_for,
    roll_d20,
    staffing_cost,
    treatment_time,
)
from emergency.model.patient import create_patient, create_room


class TestEntities:
    """Test enum helpers and constants."""

    def test_terminal_statuses(self):
        """Treated, LWBS, cardiac arrest and turned away are terminal."""
        assert PatientStatus.TREATED.is_terminal
        assert PatientStatus.LWBS.is_terminal
        assert PatientStatus.CARDIAC_ARREST.is_terminal
        assert PatientStatus.TURNED_AWAY.is_terminal
        assert not PatientStatus.WAITING.is_terminal
        assert not PatientStatus.TREATING.is_terminal

    def test_phase_order(self):
        """Waiting sorts first and review last."""
        assert Phase.WAITING.order == 0
        assert Phase.ARRIVING.order < Phase.SEQUENCING.order < Phase.ROLLING.order
        assert Phase.TREATING.order < Phase.REVIEW.order
        assert set(PHASE_ORDER) == set(Phase)

    def test_enums_are_strings(self):
        """Enum values serialise as plain strings."""
        assert PatientType.A == "A"
        assert RoomTier.HIGH.value == "high"


class TestCompatibility:
    """Test room capability rules."""

    @pytest.mark.parametrize("tier,allowed", [
        (RoomTier.HIGH, {PatientType.A, PatientType.B, PatientType.C}),
        (RoomTier.MEDIUM, {PatientType.B, PatientType.C}),
        (RoomTier.LOW, {PatientType.C}),
    ])
    def test_can_treat(self, tier, allowed):
        """Higher tiers host every type a lower tier can."""
        for patient_type in PatientType:
            assert can_treat(patient_type, tier) == (patient_type in allowed)

    def test_is_mismatch(self):
        """Only the primary tier is a match."""
        assert not is_mismatch(PatientType.A, RoomTier.HIGH)
        assert not is_mismatch(PatientType.B, RoomTier.MEDIUM)
        assert not is_mismatch(PatientType.C, RoomTier.LOW)
        assert is_mismatch(PatientType.B, RoomTier.HIGH)
        assert is_mismatch(PatientType.C, RoomTier.MEDIUM)

    def test_accepts_string_values(self):
        """Raw store strings are accepted."""
        assert can_treat("A", "high")
        assert not can_treat("A", "medium")


class TestCostsAndTimes:
    """Test treatment times and staffing cost."""

    def test_treatment_time_defaults(self, params):
        assert treatment_time(PatientType.A, params) == 4
        assert treatment_time(PatientType.B, params) == 3
        assert treatment_time(PatientType.C, params) == 2

    def test_staffing_cost(self, params):
        """Sum of per-tier room costs."""
        rooms = [create_room(RoomTier.HIGH, 0), create_room(RoomTier.LOW, 1)]
        assert staffing_cost(rooms, params) == 3900 + 1600

    def test_staffing_cost_empty(self, params):
        assert staffing_cost([], params) == 0


class TestRiskRolls:
    """Test the d20 and risk trigger sets."""

    def test_roll_range(self):
        """Rolls are integers in 1..20 and cover the range."""
        rng = np.random.default_rng(1)
        rolls = [roll_d20(rng) for _ in range(2000)]
        assert min(rolls) == 1
        assert max(rolls) == 20
        assert all(isinstance(r, int) for r in rolls)

    def test_roll_reproducible(self):
        """Same seed gives the same rolls."""
        a = [roll_d20(np.random.default_rng(7)) for _ in range(5)]
        b = [roll_d20(np.random.default_rng(7)) for _ in range(5)]
        assert a == b

    def test_widening(self):
        """Trigger {20} after a 2 hour wait becomes {18, 19, 20}."""
        assert expand_risk_rolls([20], 2) == {18, 19, 20}

    def test_widening_no_wait(self):
        assert expand_risk_rolls([19, 20], 0) == {19, 20}

    def test_widening_drops_below_one(self):
        """Values below 1 are discarded."""
        assert expand_risk_rolls([2], 5) == {1, 2}

    def test_is_risk_roll_time_sensitive(self, params):
        """Widening only applies with time-sensitive harms enabled."""
        assert is_risk_roll(PatientType.B, 18, params, waiting_time=2, time_sensitive=True)
        assert not is_risk_roll(PatientType.B, 18, params, waiting_time=2, time_sensitive=False)
        assert not is_risk_roll(PatientType.B, 17, params, waiting_time=2, time_sensitive=True)

    def test_default_trigger_sets(self, params):
        assert risk_rolls_for(PatientType.A, params) == {19, 20}
        assert risk_rolls_for(PatientType.B, params) == {20}
        assert risk_rolls_for(PatientType.C, params) == {18, 19, 20}

    def test_custom_trigger_set(self):
        params = GameParameters(risk_event_rolls={"A": [1], "B": [2], "C": [3]})
        assert is_risk_roll(PatientType.A, 1, params)
        assert not is_risk_roll(PatientType.A, 20, params)


class TestBoardHelpers:
    """Test utilisation and free positions."""

    def test_utilisation(self):
        rooms = [create_room(RoomTier.HIGH, 0), create_room(RoomTier.LOW, 1)]
        assert calculate_utilisation(rooms) == 0.0
        rooms[0].patient = create_patient(PatientType.A, 1)
        assert calculate_utilisation(rooms) == 0.5

    def test_utilisation_no_rooms(self):
        assert calculate_utilisation([]) == 0.0

    def test_available_positions(self):
        rooms = [create_room(RoomTier.HIGH, 0), create_room(RoomTier.LOW, 5)]
        free = available_positions(rooms)
        assert 0 not in free and 5 not in free
        assert len(free) == 14

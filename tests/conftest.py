"""Pytest fixtures for Emergency! tests."""

import numpy as np
import pytest

from emergency.core.arrivals import HourlyArrivals
from emergency.core.entities import PatientType, RoomTier
from emergency.core.parameters import GameParameters
from emergency.model.engine import TurnEngine


@pytest.fixture
def default_seed() -> int:
    """Default random seed for reproducible tests."""
    return 42


@pytest.fixture
def params() -> GameParameters:
    """Classroom default parameters."""
    return GameParameters()


@pytest.fixture
def rng(default_seed) -> np.random.Generator:
    return np.random.default_rng(default_seed)


@pytest.fixture
def make_arrivals():
    """Factory: make_arrivals(hour, A=0, B=0, C=0) -> HourlyArrivals."""

    def _make(hour: int, A: int = 0, B: int = 0, C: int = 0) -> HourlyArrivals:
        return HourlyArrivals(
            hour=hour, counts={PatientType.A: A, PatientType.B: B, PatientType.C: C}
        )

    return _make


@pytest.fixture
def make_engine(params, rng):
    """Factory: make_engine(tiers, **param_overrides) -> staffed TurnEngine.

    Rooms are placed at positions 0, 1, 2, ... in the order given and
    staffing is completed.
    """

    def _make(tiers=(RoomTier.HIGH, RoomTier.MEDIUM, RoomTier.LOW), **overrides) -> TurnEngine:
        engine_params = GameParameters(**overrides) if overrides else params
        engine = TurnEngine(engine_params, rng=rng)
        for position, tier in enumerate(tiers):
            assert engine.add_room(tier, position).is_applied
        assert engine.complete_staffing().is_applied
        return engine

    return _make


@pytest.fixture
def staffed_engine(make_engine) -> TurnEngine:
    """Engine with one room of each tier, staffing complete."""
    return make_engine()

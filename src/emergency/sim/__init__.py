"""Automated sessions driven by SimPy."""

from emergency.sim.driver import SimScenario, run_session
from emergency.sim.policy import greedy_assignments, staffing_layout

__all__ = ["SimScenario", "run_session", "greedy_assignments", "staffing_layout"]

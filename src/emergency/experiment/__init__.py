"""Experimentation layer: replication runner, CI analysis, plan comparison."""

from emergency.experiment.runner import multiple_replications
from emergency.experiment.analysis import (
    Interval,
    compare_staffing_plans,
    compute_ci,
    sensitivity_sweep,
)

__all__ = [
    "multiple_replications",
    "Interval",
    "compute_ci",
    "compare_staffing_plans",
    "sensitivity_sweep",
]

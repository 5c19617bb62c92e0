"""Confidence intervals and what-if comparisons for automated sessions.

Typical questions before a class: how much does the default staffing
plan earn on a simulated day, how much does that vary between days,
and would a different room mix do better on the same arrivals?
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from emergency.core.entities import RoomTier
from emergency.experiment.runner import multiple_replications
from emergency.sim.driver import SimScenario
from emergency.sim.policy import staffing_layout


@dataclass(frozen=True)
class Interval:
    """Student-t confidence interval for the mean of a metric.

    Attributes:
        mean: Sample mean.
        std: Sample standard deviation (0 for fewer than two values).
        half_width: Distance from the mean to either bound.
        n: Number of replications.
        confidence: Confidence level, e.g. 0.95.
    """

    mean: float
    std: float
    half_width: float
    n: int
    confidence: float = 0.95

    @property
    def lower(self) -> float:
        return self.mean - self.half_width

    @property
    def upper(self) -> float:
        return self.mean + self.half_width

    def overlaps(self, other: "Interval") -> bool:
        return self.lower <= other.upper and other.lower <= self.upper

    def to_dict(self) -> Dict[str, float]:
        return {
            "mean": self.mean,
            "std": self.std,
            "ci_lower": self.lower,
            "ci_upper": self.upper,
            "n_reps": self.n,
        }


def compute_ci(values: Sequence[float], confidence: float = 0.95) -> Interval:
    """Confidence interval for the mean of replication values.

    One value gives a zero-width interval; no values give an empty one
    with ``n == 0``.
    """
    arr = np.asarray(values, dtype=float)
    n = int(arr.size)
    if n == 0:
        return Interval(0.0, 0.0, 0.0, 0, confidence)
    mean = float(arr.mean())
    if n == 1:
        return Interval(mean, 0.0, 0.0, 1, confidence)

    t_crit = stats.t.ppf((1 + confidence) / 2, df=n - 1)
    return Interval(
        mean=mean,
        std=float(arr.std(ddof=1)),
        half_width=float(t_crit * stats.sem(arr)),
        n=n,
        confidence=confidence,
    )


def _empty_row() -> Dict[str, float]:
    return {"mean": np.nan, "std": np.nan, "ci_lower": np.nan, "ci_upper": np.nan, "n_reps": 0}


@dataclass
class SweepResult:
    """Result of a sensitivity sweep.

    Attributes:
        parameter: Scenario parameter that was varied.
        values: Values tried, in order.
        metric: Metric measured.
        results: One row per value: value, mean, std, ci_lower, ci_upper, n_reps.
    """
    parameter: str
    values: List[Any]
    metric: str
    results: pd.DataFrame

    def to_dataframe(self) -> pd.DataFrame:
        return self.results


def set_scenario_param(scenario: SimScenario, param_path: str, value: Any) -> SimScenario:
    """Copy a scenario with one parameter changed.

    Args:
        scenario: Base scenario (not modified).
        param_path: A SimScenario attribute (e.g. ``'stall_probability'``)
            or ``'staffing_plan.<tier>'`` (e.g. ``'staffing_plan.high'``).
        value: New value.

    Raises:
        ValueError: If the path does not name a known parameter.
    """
    new_scenario = scenario.clone_with_seed(scenario.random_seed)
    parts = param_path.split(".")

    if len(parts) == 2 and parts[0] == "staffing_plan":
        try:
            tier = RoomTier(parts[1])
        except ValueError:
            raise ValueError(f"Unknown room tier in {param_path!r}")
        new_scenario.staffing_plan[tier] = int(value)
    elif len(parts) == 1 and hasattr(new_scenario, param_path) and not param_path.startswith("rng"):
        setattr(new_scenario, param_path, copy.deepcopy(value))
    else:
        raise ValueError(f"Unknown scenario parameter: {param_path!r}")

    # Re-validate and recreate RNG streams
    new_scenario.__post_init__()
    return new_scenario


def sensitivity_sweep(
    base_scenario: SimScenario,
    param_path: str,
    values: List[Any],
    metric: str,
    n_reps: int = 10,
    confidence: float = 0.95,
) -> SweepResult:
    """Vary one parameter across values, measuring impact on metric.

    Example:
        >>> result = sensitivity_sweep(
        ...     scenario,
        ...     'staffing_plan.high',
        ...     values=[1, 2, 3, 4],
        ...     metric='mean_profit',
        ...     n_reps=10
        ... )
        >>> print(result.to_dataframe())
    """
    rows = []
    for value in values:
        test_scenario = set_scenario_param(base_scenario, param_path, value)
        reps = multiple_replications(test_scenario, n_reps=n_reps, metric_names=[metric])
        metric_values = reps.get(metric, [])
        row = compute_ci(metric_values, confidence).to_dict() if metric_values else _empty_row()
        rows.append({"value": value, **row})

    return SweepResult(
        parameter=param_path,
        values=list(values),
        metric=metric,
        results=pd.DataFrame(rows),
    )


def compare_staffing_plans(
    base_scenario: SimScenario,
    plans: Dict[str, Dict[RoomTier, int]],
    metric: str = "mean_profit",
    n_reps: int = 10,
    confidence: float = 0.95,
) -> pd.DataFrame:
    """Rank staffing plans by a metric over repeated automated sessions.

    Every plan is run with the same seeds, so each replication sees the
    same arrivals and dice streams and only the rooms differ.

    Args:
        base_scenario: Scenario supplying everything except the plan.
        plans: Plan name -> rooms per tier.
        metric: Replication metric to rank by (higher is better).
        n_reps: Replications per plan.
        confidence: Confidence level for the intervals.

    Returns:
        One row per plan, best first: rank, plan, rooms, staffing_cost,
        mean, std, ci_lower, ci_upper, n_reps and ``overlaps_best``
        (False when the plan is clearly worse than the top one).

    Raises:
        ValueError: If no plans are given.
    """
    if not plans:
        raise ValueError("At least one staffing plan is required")

    params = base_scenario.params
    rows = []
    intervals = {}
    for name, plan in plans.items():
        layout = staffing_layout(plan, params)
        scenario = set_scenario_param(base_scenario, "staffing_plan", dict(plan))
        reps = multiple_replications(scenario, n_reps=n_reps, metric_names=[metric])
        interval = compute_ci(reps.get(metric, []), confidence)
        intervals[name] = interval
        rows.append({
            "plan": name,
            "rooms": len(layout),
            "staffing_cost": sum(params.room_costs[tier] for tier, _ in layout),
            **interval.to_dict(),
        })

    df = pd.DataFrame(rows).sort_values("mean", ascending=False, kind="stable")
    best = intervals[df["plan"].iloc[0]]
    df["overlaps_best"] = [intervals[name].overlaps(best) for name in df["plan"]]
    df.insert(0, "rank", range(1, len(df) + 1))
    return df.reset_index(drop=True)

"""Tests for replications and statistical analysis."""

import pytest

from emergency.core.entities import RoomTier
from emergency.experiment.analysis import (
    Interval,
    SweepResult,
    compare_staffing_plans,
    compute_ci,
    sensitivity_sweep,
    set_scenario_param,
)
from emergency.experiment.runner import DEFAULT_METRICS, multiple_replications
from emergency.sim.driver import SimScenario
from emergency.sim.policy import DEFAULT_STAFFING_PLAN


@pytest.fixture
def quick_scenario():
    return SimScenario(
        n_players=1,
        think_time_mean=0.0,
        dice_reveal_seconds=0.5,
        review_seconds=0.5,
        random_seed=11,
    )


class TestComputeCI:
    """Test confidence interval calculation."""

    def test_known_values(self):
        ci = compute_ci([1, 2, 3, 4, 5])
        assert ci.mean == pytest.approx(3.0)
        assert ci.std == pytest.approx(1.5811, rel=1e-3)
        # t(0.975, 4) = 2.776, se = 0.7071
        assert ci.half_width == pytest.approx(1.963, rel=1e-3)
        assert ci.lower < 3.0 < ci.upper
        assert ci.n == 5

    def test_single_value(self):
        ci = compute_ci([7.0])
        assert ci.mean == 7.0
        assert ci.half_width == 0.0
        assert ci.lower == ci.upper == 7.0

    def test_empty(self):
        assert compute_ci([]).n == 0

    def test_wider_at_higher_confidence(self):
        values = [10, 12, 9, 14, 11]
        assert compute_ci(values, 0.99).half_width > compute_ci(values, 0.90).half_width

    def test_overlaps(self):
        low = Interval(mean=100.0, std=1.0, half_width=5.0, n=4)
        near = Interval(mean=108.0, std=1.0, half_width=5.0, n=4)
        far = Interval(mean=200.0, std=1.0, half_width=5.0, n=4)
        assert low.overlaps(near) and near.overlaps(low)
        assert not low.overlaps(far)

    def test_row(self):
        row = compute_ci([2.0, 4.0]).to_dict()
        assert set(row) == {"mean", "std", "ci_lower", "ci_upper", "n_reps"}
        assert row["n_reps"] == 2

class TestScenarioParams:
    """Test copying scenarios with one parameter changed."""

    def test_staffing_plan_path(self, quick_scenario):
        changed = set_scenario_param(quick_scenario, "staffing_plan.high", 5)
        assert changed.staffing_plan[RoomTier.HIGH] == 5
        assert quick_scenario.staffing_plan[RoomTier.HIGH] == 3

    def test_attribute(self, quick_scenario):
        changed = set_scenario_param(quick_scenario, "stall_probability", 0.25)
        assert changed.stall_probability == 0.25
        assert quick_scenario.stall_probability == 0.0

    def test_revalidates(self, quick_scenario):
        with pytest.raises(ValueError):
            set_scenario_param(quick_scenario, "stall_probability", 4.0)

    @pytest.mark.parametrize("path", ["bogus", "staffing_plan.ultra", "rng_dice", "params.max_waiting_room"])
    def test_unknown_paths(self, quick_scenario, path):
        with pytest.raises(ValueError):
            set_scenario_param(quick_scenario, path, 1)


class TestReplications:
    """Test running several automated sessions."""

    def test_default_metrics(self, quick_scenario):
        calls = []
        results = multiple_replications(
            quick_scenario, n_reps=2, progress_callback=lambda i, n: calls.append((i, n))
        )
        assert set(results) == set(DEFAULT_METRICS)
        assert all(len(v) == 2 for v in results.values())
        assert results["completed"] == [1.0, 1.0]
        assert calls == [(1, 2), (2, 2)]

    def test_extra_metrics(self, quick_scenario):
        results = multiple_replications(
            quick_scenario, n_reps=1, metric_names=["best_profit", "worst_profit", "unknown"]
        )
        assert results["best_profit"] == results["worst_profit"]
        assert results["unknown"] == []

    def test_sensitivity_sweep(self, quick_scenario):
        result = sensitivity_sweep(
            quick_scenario, "staffing_plan.low", values=[1, 3], metric="mean_profit", n_reps=1
        )
        assert isinstance(result, SweepResult)
        df = result.to_dataframe()
        assert list(df["value"]) == [1, 3]
        assert list(df["n_reps"]) == [1, 1]
        assert result.parameter == "staffing_plan.low"


class TestCompareStaffingPlans:
    """Test ranking staffing plans on the same simulated days."""

    def test_ranked_best_first(self, quick_scenario, params):
        df = compare_staffing_plans(
            quick_scenario,
            {"one low room": {RoomTier.LOW: 1}, "default": DEFAULT_STAFFING_PLAN},
            n_reps=1,
        )
        assert list(df["rank"]) == [1, 2]
        assert set(df["plan"]) == {"one low room", "default"}
        assert list(df["mean"]) == sorted(df["mean"], reverse=True)
        assert list(df["n_reps"]) == [1, 1]
        assert bool(df["overlaps_best"].iloc[0])

        lean = df.set_index("plan").loc["one low room"]
        assert lean["rooms"] == 1
        assert lean["staffing_cost"] == params.room_costs[RoomTier.LOW]

    def test_base_scenario_unchanged(self, quick_scenario):
        compare_staffing_plans(quick_scenario, {"lean": {RoomTier.MEDIUM: 1}}, n_reps=1)
        assert quick_scenario.staffing_plan == DEFAULT_STAFFING_PLAN

    def test_needs_a_plan(self, quick_scenario):
        with pytest.raises(ValueError):
            compare_staffing_plans(quick_scenario, {})

"""Batch runners for automated sessions."""

from typing import Callable, Dict, List, Optional

from emergency.sim.driver import SimScenario, run_session

DEFAULT_METRICS = [
    "completed",
    "sim_time",
    "mean_profit",
    "mean_utilisation",
    "total_arrivals",
    "n_rescues",
    "stalls",
]


def _metrics(run_results: Dict) -> Dict[str, float]:
    leaderboard = run_results["leaderboard"]
    return {
        "completed": float(run_results["completed"]),
        "sim_time": float(run_results["sim_time"]),
        "mean_profit": run_results["mean_profit"],
        "mean_utilisation": run_results["mean_utilisation"],
        "total_arrivals": float(run_results["total_arrivals"]),
        "n_rescues": float(len(run_results["rescued"])),
        "stalls": float(run_results["stalls"]),
        "best_profit": float(leaderboard["total_profit"].max()),
        "worst_profit": float(leaderboard["total_profit"].min()),
        "mean_cardiac_arrests": float(leaderboard["cardiac_arrests"].mean()),
        "mean_queue_length": float(leaderboard["avg_queue_length"].mean()),
    }


def multiple_replications(
    scenario: SimScenario,
    n_reps: int = 10,
    metric_names: Optional[List[str]] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> Dict[str, List[float]]:
    """Run multiple automated sessions and collect specified metrics.

    Each replication uses a different random seed (base_seed + rep_number)
    to ensure independent samples.

    Args:
        scenario: Base session configuration.
        n_reps: Number of replications to run.
        metric_names: Metrics to collect (DEFAULT_METRICS if None).
        progress_callback: Optional callback(current_rep, total_reps) for
            progress reporting.

    Returns:
        Dictionary mapping metric names to lists of values across replications.
    """
    if metric_names is None:
        metric_names = list(DEFAULT_METRICS)

    results: Dict[str, List[float]] = {name: [] for name in metric_names}

    for rep in range(n_reps):
        rep_scenario = scenario.clone_with_seed(scenario.random_seed + rep)
        run_metrics = _metrics(run_session(rep_scenario))

        for name in metric_names:
            if name in run_metrics:
                results[name].append(run_metrics[name])

        if progress_callback is not None:
            progress_callback(rep + 1, n_reps)

    return results

"""End-of-session results and leaderboard.

Turns player documents into per-player results and a profit-ranked
leaderboard DataFrame, plus an hourly series frame for charting.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List

import pandas as pd

from emergency.core.entities import HOURS_OF_DAY, PatientType
from emergency.model.state import PlayerGameState


def calculate_profit(revenue: int, cost: int) -> int:
    return revenue - cost


def calculate_average_utilisation(hourly_utilisation: List[float]) -> float:
    """Mean of the hourly occupied/total room fractions (0-1)."""
    if not hourly_utilisation:
        return 0.0
    return sum(hourly_utilisation) / len(hourly_utilisation)


def calculate_average_queue_length(hourly_queue_length: List[int]) -> float:
    if not hourly_queue_length:
        return 0.0
    return sum(hourly_queue_length) / len(hourly_queue_length)


def calculate_mismatch_percentage(mismatch_treatments: int, total_treatments: int) -> float:
    """Share of discharges treated outside the primary tier, in percent."""
    if total_treatments == 0:
        return 0.0
    return mismatch_treatments / total_treatments * 100


def format_currency(value: float, symbol: str = "$", decimals: int = 0) -> str:
    """Format a value as currency string.

    Args:
        value: The monetary value.
        symbol: Currency symbol (default $).
        decimals: Decimal places (default 0 for whole numbers).

    Returns:
        Formatted currency string (e.g., "$1,234" or "-$500").
    """
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{decimals}f}"


def format_percentage(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}%"


@dataclass
class PlayerResult:
    """One row of the final leaderboard.

    ``avg_utilisation`` is a percentage (0-100); the underlying hourly
    series is stored as fractions.
    """

    player_id: str
    player_name: str
    total_profit: int
    total_revenue: int
    total_cost: int
    avg_utilisation: float
    avg_queue_length: float
    max_queue_length: int
    cardiac_arrests: int
    mismatch_count: int
    mismatch_percentage: float
    max_waiting_time: Dict[str, int] = field(default_factory=dict)
    patients_treated: Dict[str, int] = field(default_factory=dict)

    def to_row(self) -> Dict[str, Any]:
        """Flat dict with per-type columns, e.g. ``treated_A``."""
        row = asdict(self)
        max_wait = row.pop("max_waiting_time")
        treated = row.pop("patients_treated")
        for t in PatientType:
            row[f"treated_{t.value}"] = treated.get(t.value, 0)
        for t in PatientType:
            row[f"max_wait_{t.value}"] = max_wait.get(t.value, 0)
        return row


def player_result(player: Dict[str, Any]) -> PlayerResult:
    """Build a result from a player document."""
    state = PlayerGameState.from_dict(player.get("game_state") or {})
    stats = state.stats
    return PlayerResult(
        player_id=player["id"],
        player_name=player.get("name", ""),
        total_profit=calculate_profit(state.total_revenue, state.total_cost),
        total_revenue=state.total_revenue,
        total_cost=state.total_cost,
        avg_utilisation=calculate_average_utilisation(stats.hourly_utilisation) * 100,
        avg_queue_length=calculate_average_queue_length(stats.hourly_queue_length),
        max_queue_length=max(stats.hourly_queue_length, default=0),
        cardiac_arrests=stats.cardiac_arrests,
        mismatch_count=stats.mismatch_treatments,
        mismatch_percentage=calculate_mismatch_percentage(
            stats.mismatch_treatments, stats.total_treatments
        ),
        max_waiting_time={t.value: n for t, n in stats.max_waiting_time.items()},
        patients_treated={t.value: n for t, n in stats.patients_treated.items()},
    )


def session_results(players: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    """Leaderboard of all players, highest profit first.

    Returns:
        DataFrame with one row per player and a 1-based ``rank`` column.
    """
    rows = [player_result(p).to_row() for p in players]
    if not rows:
        columns = [f for f in PlayerResult.__dataclass_fields__
                   if f not in ("max_waiting_time", "patients_treated")]
        columns += [f"treated_{t.value}" for t in PatientType]
        columns += [f"max_wait_{t.value}" for t in PatientType]
        return pd.DataFrame(columns=["rank"] + columns)

    df = pd.DataFrame(rows)
    df = df.sort_values("total_profit", ascending=False, kind="stable").reset_index(drop=True)
    df.insert(0, "rank", range(1, len(df) + 1))
    return df


def hourly_frame(state: PlayerGameState) -> pd.DataFrame:
    """Per-hour series for one player (utilisation, queue, demand, capacity).

    Rows are aligned by position; a player who has played fewer
    treatment steps than arrival steps gets NaN in the shorter columns.
    """
    stats = state.stats
    columns: Dict[str, pd.Series] = {
        "utilisation": pd.Series(stats.hourly_utilisation, dtype=float),
        "queue_length": pd.Series(stats.hourly_queue_length, dtype=float),
    }
    for t in PatientType:
        columns[f"demand_{t.value}"] = pd.Series(stats.hourly_demand[t], dtype=float)
        columns[f"capacity_{t.value}"] = pd.Series(stats.hourly_available_capacity[t], dtype=float)

    df = pd.DataFrame(columns)
    df.insert(0, "hour", range(1, len(df) + 1))
    df.insert(1, "time", [HOURS_OF_DAY[(h - 1) % len(HOURS_OF_DAY)] for h in df["hour"]])
    return df

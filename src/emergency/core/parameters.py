"""Game parameter configuration.

A single ``GameParameters`` instance is shared by every player in a
session. All money values are integers in the smallest currency unit
so that a 24-hour session accumulates without drift.

Parameters can be loaded from:
1. Dataclass defaults (classroom baseline)
2. JSON/YAML files (instructor presets)

Example usage:
    from emergency.core.parameters import load_parameters

    params = load_parameters(Path("config/busy_day.yaml"))
    schedule = generate_arrivals(params, rng)
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from emergency.core.entities import HOURS_PER_DAY, PatientType, RoomTier


# Share of daily arrivals landing in each game hour (hour 1 = 6 AM)
DEFAULT_HOURLY_WEIGHTS: List[float] = [
    0.0097, 0.0172, 0.0419, 0.0604, 0.0706, 0.0718,
    0.0693, 0.0657, 0.0630, 0.0598, 0.0599, 0.0599,
    0.0588, 0.0559, 0.0509, 0.0415, 0.0339, 0.0276,
    0.0213, 0.0166, 0.0130, 0.0111, 0.0100, 0.0097,
]


def _per_type(a, b, c) -> Dict[PatientType, Any]:
    return {PatientType.A: a, PatientType.B: b, PatientType.C: c}


def _as_int(value: Any, name: str) -> int:
    """Coerce an integral number to int, rejecting fractional money."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{name} must be a whole number, got {value}")
        value = int(value)
    if not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


def _type_map(raw: Dict[Any, Any], name: str) -> Dict[PatientType, Any]:
    mapped = {PatientType(k): v for k, v in raw.items()}
    missing = set(PatientType) - set(mapped)
    if missing:
        raise ValueError(f"{name} missing patient types: {sorted(t.value for t in missing)}")
    return mapped


def _tier_map(raw: Dict[Any, Any], name: str) -> Dict[RoomTier, Any]:
    mapped = {RoomTier(k): v for k, v in raw.items()}
    missing = set(RoomTier) - set(mapped)
    if missing:
        raise ValueError(f"{name} missing room tiers: {sorted(t.value for t in missing)}")
    return mapped


def validate_hourly_weights(weights: List[float]) -> bool:
    """Check a weight curve has 24 entries summing to roughly 1.

    A 5% tolerance allows hand-entered curves with rounded values.
    """
    if len(weights) != HOURS_PER_DAY:
        return False
    return abs(sum(weights) - 1.0) < 0.05


@dataclass
class GameParameters:
    """Configuration for a game session.

    Attributes:
        daily_arrivals: Expected arrivals per day by patient type.
        revenue_per_patient: Revenue on discharge by patient type.
        waiting_cost_per_hour: Cost per hour spent waiting by patient type.
        risk_event_rolls: d20 values that trigger a risk event by type.
        risk_event_cost: Cost of a risk event (or turn-away) by type.
        time_sensitive_waiting_harms: Widen risk rolls by hours waited.
        max_waiting_room: Waiting room capacity; overflow is turned away.
        max_staffing_budget: Ceiling on total room cost during staffing.
        room_costs: One-off staffing cost per room tier.
        treatment_times: Hours of treatment by patient type.
        hourly_weights: 24-entry share of daily arrivals per hour.
        hourly_weights_by_type: Optional per-type weight curves.
        currency_symbol: Display only.
    """

    daily_arrivals: Dict[PatientType, int] = field(
        default_factory=lambda: _per_type(21, 38, 41))
    revenue_per_patient: Dict[PatientType, int] = field(
        default_factory=lambda: _per_type(2000, 1200, 500))
    waiting_cost_per_hour: Dict[PatientType, int] = field(
        default_factory=lambda: _per_type(250, 100, 25))
    risk_event_rolls: Dict[PatientType, Tuple[int, ...]] = field(
        default_factory=lambda: _per_type((19, 20), (20,), (18, 19, 20)))
    risk_event_cost: Dict[PatientType, int] = field(
        default_factory=lambda: _per_type(10000, 300, 200))
    time_sensitive_waiting_harms: bool = False
    max_waiting_room: int = 15
    max_staffing_budget: int = 42000
    room_costs: Dict[RoomTier, int] = field(default_factory=lambda: {
        RoomTier.HIGH: 3900,
        RoomTier.MEDIUM: 3000,
        RoomTier.LOW: 1600,
    })
    treatment_times: Dict[PatientType, int] = field(
        default_factory=lambda: _per_type(4, 3, 2))
    hourly_weights: List[float] = field(
        default_factory=lambda: list(DEFAULT_HOURLY_WEIGHTS))
    hourly_weights_by_type: Optional[Dict[PatientType, List[float]]] = None
    currency_symbol: str = "$"

    def __post_init__(self) -> None:
        """Normalise keys to enums and validate values."""
        self.daily_arrivals = {
            t: _as_int(v, f"daily_arrivals[{t.value}]")
            for t, v in _type_map(self.daily_arrivals, "daily_arrivals").items()
        }
        self.revenue_per_patient = {
            t: _as_int(v, f"revenue_per_patient[{t.value}]")
            for t, v in _type_map(self.revenue_per_patient, "revenue_per_patient").items()
        }
        self.waiting_cost_per_hour = {
            t: _as_int(v, f"waiting_cost_per_hour[{t.value}]")
            for t, v in _type_map(self.waiting_cost_per_hour, "waiting_cost_per_hour").items()
        }
        self.risk_event_cost = {
            t: _as_int(v, f"risk_event_cost[{t.value}]")
            for t, v in _type_map(self.risk_event_cost, "risk_event_cost").items()
        }
        self.room_costs = {
            tier: _as_int(v, f"room_costs[{tier.value}]")
            for tier, v in _tier_map(self.room_costs, "room_costs").items()
        }

        rolls = {}
        for t, values in _type_map(self.risk_event_rolls, "risk_event_rolls").items():
            values = tuple(sorted({int(v) for v in values}))
            if any(v < 1 or v > 20 for v in values):
                raise ValueError(f"risk_event_rolls[{t.value}] must be d20 values (1-20)")
            rolls[t] = values
        self.risk_event_rolls = rolls

        times = {}
        for t, v in _type_map(self.treatment_times, "treatment_times").items():
            v = _as_int(v, f"treatment_times[{t.value}]")
            if v < 1:
                raise ValueError(f"treatment_times[{t.value}] must be at least 1 hour")
            times[t] = v
        self.treatment_times = times

        self.max_waiting_room = _as_int(self.max_waiting_room, "max_waiting_room")
        self.max_staffing_budget = _as_int(self.max_staffing_budget, "max_staffing_budget")

        if len(self.hourly_weights) != HOURS_PER_DAY:
            raise ValueError(f"hourly_weights must have {HOURS_PER_DAY} values")
        if any(w < 0 for w in self.hourly_weights):
            raise ValueError("hourly_weights must be non-negative")
        self.hourly_weights = [float(w) for w in self.hourly_weights]

        if self.hourly_weights_by_type is not None:
            by_type = _type_map(self.hourly_weights_by_type, "hourly_weights_by_type")
            for t, curve in by_type.items():
                if len(curve) != HOURS_PER_DAY or any(w < 0 for w in curve):
                    raise ValueError(
                        f"hourly_weights_by_type[{t.value}] must have "
                        f"{HOURS_PER_DAY} non-negative values"
                    )
            self.hourly_weights_by_type = {
                t: [float(w) for w in curve] for t, curve in by_type.items()
            }

    @property
    def total_daily_arrivals(self) -> int:
        return sum(self.daily_arrivals.values())

    def to_dict(self) -> Dict[str, Any]:
        """Plain JSON-compatible representation (string keys)."""
        return {
            "daily_arrivals": {t.value: v for t, v in self.daily_arrivals.items()},
            "revenue_per_patient": {t.value: v for t, v in self.revenue_per_patient.items()},
            "waiting_cost_per_hour": {t.value: v for t, v in self.waiting_cost_per_hour.items()},
            "risk_event_rolls": {t.value: list(v) for t, v in self.risk_event_rolls.items()},
            "risk_event_cost": {t.value: v for t, v in self.risk_event_cost.items()},
            "time_sensitive_waiting_harms": self.time_sensitive_waiting_harms,
            "max_waiting_room": self.max_waiting_room,
            "max_staffing_budget": self.max_staffing_budget,
            "room_costs": {tier.value: v for tier, v in self.room_costs.items()},
            "treatment_times": {t.value: v for t, v in self.treatment_times.items()},
            "hourly_weights": list(self.hourly_weights),
            "hourly_weights_by_type": (
                {t.value: list(c) for t, c in self.hourly_weights_by_type.items()}
                if self.hourly_weights_by_type is not None else None
            ),
            "currency_symbol": self.currency_symbol,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameParameters":
        """Build parameters from a mapping, defaulting omitted keys.

        Raises:
            ValueError: If the mapping contains unknown keys.
        """
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown parameter keys: {sorted(unknown)}")
        return cls(**dict(data))


def load_parameters(config_path: Path) -> GameParameters:
    """Load game parameters from a JSON or YAML file.

    Args:
        config_path: Path to configuration file (.yaml, .yml, or .json)

    Returns:
        GameParameters instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        if config_path.suffix in (".yaml", ".yml"):
            try:
                import yaml
                data = yaml.safe_load(f)
            except ImportError:
                raise ImportError(
                    "PyYAML required for YAML config files. "
                    "Install with: pip install pyyaml"
                )
        elif config_path.suffix == ".json":
            data = json.load(f)
        else:
            raise ValueError(
                f"Unsupported config format: {config_path.suffix}. "
                "Use .yaml, .yml, or .json"
            )

    return GameParameters.from_dict(data or {})


def save_parameters(params: GameParameters, config_path: Path) -> None:
    """Save game parameters to a JSON or YAML file.

    Args:
        params: Parameters to save
        config_path: Path to save to (.yaml, .yml, or .json)
    """
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    data = params.to_dict()

    with open(config_path, "w") as f:
        if config_path.suffix in (".yaml", ".yml"):
            try:
                import yaml
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            except ImportError:
                raise ImportError(
                    "PyYAML required for YAML config files. "
                    "Install with: pip install pyyaml"
                )
        elif config_path.suffix == ".json":
            json.dump(data, f, indent=2)
        else:
            raise ValueError(
                f"Unsupported config format: {config_path.suffix}. "
                "Use .yaml, .yml, or .json"
            )

"""Hourly arrival schedules: stochastic generation and pregenerated sets."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from emergency.core.entities import HOURS_PER_DAY, PatientType
from emergency.core.parameters import GameParameters


@dataclass(frozen=True)
class HourlyArrivals:
    """Arrival counts by patient type for one game hour.

    Attributes:
        hour: Game hour (1-24).
        counts: Number of arrivals of each patient type.
    """

    hour: int
    counts: Dict[PatientType, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        counts = {t: int(self.counts.get(t, self.counts.get(t.value, 0))) for t in PatientType}
        if any(v < 0 for v in counts.values()):
            raise ValueError("Arrival counts must be non-negative")
        # frozen dataclass: bypass __setattr__ to store the normalised mapping
        object.__setattr__(self, "counts", counts)

    def __getitem__(self, patient_type: PatientType) -> int:
        return self.counts[PatientType(patient_type)]

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def to_dict(self) -> Dict[str, int]:
        record = {"hour": self.hour}
        record.update({t.value: n for t, n in self.counts.items()})
        return record

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "HourlyArrivals":
        return cls(hour=int(record["hour"]), counts={t: record.get(t.value, 0) for t in PatientType})


@dataclass
class ArrivalSchedule:
    """A full day of hourly arrivals.

    Generated and pregenerated schedules have the same shape; the turn
    engine only ever calls ``for_hour``.

    Attributes:
        hours: 24 HourlyArrivals, hour 1 first.
        pregenerated: True when supplied externally rather than sampled.
    """

    hours: List[HourlyArrivals]
    pregenerated: bool = False

    def __post_init__(self) -> None:
        if len(self.hours) != HOURS_PER_DAY:
            raise ValueError(f"Schedule must have {HOURS_PER_DAY} hours, got {len(self.hours)}")
        expected = list(range(1, HOURS_PER_DAY + 1))
        if [h.hour for h in self.hours] != expected:
            raise ValueError("Schedule hours must run 1..24 in order")

    def for_hour(self, hour: int) -> Optional[HourlyArrivals]:
        """Arrivals for a game hour, or None outside 1..24."""
        if 1 <= hour <= HOURS_PER_DAY:
            return self.hours[hour - 1]
        return None

    def totals(self) -> Dict[str, int]:
        """Per-type and overall totals across the day."""
        totals = {t.value: sum(h[t] for h in self.hours) for t in PatientType}
        totals["total"] = sum(totals.values())
        return totals

    def to_records(self) -> List[Dict[str, int]]:
        return [h.to_dict() for h in self.hours]

    @classmethod
    def from_records(
        cls, records: Iterable[Dict[str, Any]], pregenerated: bool = True
    ) -> "ArrivalSchedule":
        """Build a schedule from ``{"hour", "A", "B", "C"}`` records."""
        hours = sorted((HourlyArrivals.from_dict(r) for r in records), key=lambda h: h.hour)
        return cls(hours=hours, pregenerated=pregenerated)


def generate_arrivals(params: GameParameters, rng: np.random.Generator) -> ArrivalSchedule:
    """Sample a day of arrivals.

    For each hour the total count is Poisson with mean
    ``total_daily * hourly_weights[hour]`` and is split across types by a
    multinomial draw using each type's share of daily volume. When
    per-type weight curves are configured each type is drawn from its
    own Poisson instead.

    Args:
        params: Game parameters (daily volumes and weight curves).
        rng: NumPy random generator.

    Returns:
        ArrivalSchedule with 24 hours (not pregenerated).
    """
    types = list(PatientType)
    total_daily = params.total_daily_arrivals
    hours = []

    if total_daily == 0:
        return ArrivalSchedule(
            hours=[HourlyArrivals(hour=h) for h in range(1, HOURS_PER_DAY + 1)]
        )

    proportions = np.array([params.daily_arrivals[t] for t in types], dtype=float) / total_daily

    for hour in range(1, HOURS_PER_DAY + 1):
        if params.hourly_weights_by_type is not None:
            counts = {
                t: int(rng.poisson(params.daily_arrivals[t] * params.hourly_weights_by_type[t][hour - 1]))
                for t in types
            }
        else:
            hourly_mean = total_daily * params.hourly_weights[hour - 1]
            n = int(rng.poisson(hourly_mean))
            split = rng.multinomial(n, proportions)
            counts = {t: int(c) for t, c in zip(types, split)}
        hours.append(HourlyArrivals(hour=hour, counts=counts))

    return ArrivalSchedule(hours=hours)


# (A, B, C) for hours 1-24
EXAMPLE_PREGENERATED = [
    (0, 1, 1), (1, 0, 2), (0, 1, 2), (0, 2, 4), (2, 1, 2), (1, 1, 3),
    (1, 3, 2), (2, 1, 4), (1, 2, 4), (3, 4, 3), (1, 2, 3), (0, 1, 1),
    (1, 2, 2), (0, 2, 2), (2, 3, 2), (0, 3, 1), (1, 1, 0), (2, 2, 1),
    (1, 2, 1), (0, 1, 0), (1, 1, 0), (0, 1, 1), (1, 0, 0), (0, 1, 0),
]


def pregenerated_schedule(rows: Optional[List[tuple]] = None) -> ArrivalSchedule:
    """Fixed schedule for classroom sessions that must be comparable.

    Args:
        rows: 24 (A, B, C) tuples. Defaults to the bundled example.
    """
    rows = EXAMPLE_PREGENERATED if rows is None else rows
    records = [
        {"hour": i + 1, "A": a, "B": b, "C": c}
        for i, (a, b, c) in enumerate(rows)
    ]
    return ArrivalSchedule.from_records(records, pregenerated=True)

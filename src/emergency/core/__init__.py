"""Core foundation layer: entities, parameters, rules, arrivals."""

from emergency.core.parameters import GameParameters, load_parameters, save_parameters
from emergency.core.arrivals import (
    ArrivalSchedule,
    HourlyArrivals,
    generate_arrivals,
    pregenerated_schedule,
)

__all__ = [
    "GameParameters",
    "load_parameters",
    "save_parameters",
    "ArrivalSchedule",
    "HourlyArrivals",
    "generate_arrivals",
    "pregenerated_schedule",
]

from dataclasses import dataclass, field
from typing import Any, List, Optional

from medroute.core.diagnostics import Diagnostics
from medroute.models import (
    AssignmentThresholds,
    OptimizationScore,
    TimeWindowConfig,
    Trip,
    Vehicle,
)
from .geocoding import StaticGeocoder
from .scoring import calculate_optimization_score


@dataclass
class OptimizationContext:
    """Collaborators and tuning shared by every step of one optimization run."""

    geocoder: Any = field(default_factory=StaticGeocoder)
    thresholds: AssignmentThresholds = field(default_factory=AssignmentThresholds)
    time_windows: TimeWindowConfig = field(default_factory=TimeWindowConfig)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    async def score(
        self, trip: Trip, vehicle: Vehicle, existing_trips: Optional[List[Trip]] = None
    ) -> OptimizationScore:
        if existing_trips is None:
            existing_trips = vehicle.trips
        return await calculate_optimization_score(trip, vehicle, existing_trips, self.geocoder)

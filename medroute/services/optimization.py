import logging
from typing import List, Optional

from medroute.core.diagnostics import Diagnostics
from medroute.models import (
    AssignmentResult,
    AssignmentThresholds,
    OptimizationResult,
    ServiceStatus,
    SmartOptimizeOptions,
    TimeWindowConfig,
    Trip,
    Vehicle,
)
from .assignment import find_best_vehicle_assignment
from .batch_optimizer import optimize_multiple_trips
from .context import OptimizationContext
from .geocoding import create_geocoder
from .provider_optimization import get_optimization_service_status, smart_optimize
from .return_trips import generate_return_trips
from .routing_service import OsrmRouter
from .solver_service import VroomSolver

logger = logging.getLogger(__name__)


class TripOptimizationService:
    """
    Entry point for trip dispatch.

    Owns the geocoder and provider clients for its lifetime; every call runs
    on its own copy of the vehicle schedules, so one service can serve
    consecutive requests.
    """

    def __init__(
        self,
        geocoder=None,
        router: Optional[OsrmRouter] = None,
        solver: Optional[VroomSolver] = None,
        thresholds: Optional[AssignmentThresholds] = None,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self.geocoder = geocoder or create_geocoder()
        self.router = router
        self.solver = solver
        self.thresholds = thresholds or AssignmentThresholds()
        self.diagnostics = diagnostics

    def _context(self, time_windows: Optional[TimeWindowConfig] = None, record: bool = False) -> OptimizationContext:
        return OptimizationContext(
            geocoder=self.geocoder,
            thresholds=self.thresholds,
            time_windows=time_windows or TimeWindowConfig(),
            diagnostics=self.diagnostics or Diagnostics(record=record),
        )

    async def optimize_single_trip(self, trip: Trip, vehicles: List[Vehicle]) -> AssignmentResult:
        return await find_best_vehicle_assignment(trip, vehicles, self._context())

    async def optimize_batch(self, trips: List[Trip], vehicles: List[Vehicle]) -> OptimizationResult:
        return await optimize_multiple_trips(trips, vehicles, self._context(record=True))

    def generate_return_trips(self, trips: List[Trip]) -> List[Trip]:
        return generate_return_trips(trips, self.diagnostics)

    async def smart_optimize(
        self,
        trips: List[Trip],
        vehicles: List[Vehicle],
        options: Optional[SmartOptimizeOptions] = None,
    ) -> OptimizationResult:
        options = options or SmartOptimizeOptions()
        ctx = self._context(options.time_window_config, record=True)
        ctx.thresholds = options.thresholds
        return await smart_optimize(trips, vehicles, options, self.router, self.solver, ctx)

    async def get_service_status(self) -> ServiceStatus:
        return await get_optimization_service_status(self.router, self.solver)

    async def close(self):
        """Close the provider clients."""
        for client in (self.router, self.solver, self.geocoder):
            if client is not None and hasattr(client, "close"):
                await client.close()


async def optimize_single_trip(trip: Trip, vehicles: List[Vehicle]) -> AssignmentResult:
    return await TripOptimizationService().optimize_single_trip(trip, vehicles)


async def optimize_batch(trips: List[Trip], vehicles: List[Vehicle]) -> OptimizationResult:
    return await TripOptimizationService().optimize_batch(trips, vehicles)

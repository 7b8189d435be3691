"""
Provider-aware optimization tiers.

1. Solver with router matrices (VROOM over OSRM distances)
2. Router-only greedy assignment on real distances
3. Local fallback solver on Haversine distances

Provider unavailability is expected: each failure degrades to the next tier.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

import httpx

from medroute.core.config import settings
from medroute.core.diagnostics import Diagnostics
from medroute.models import (
    AssignmentStatus,
    OptimizationMode,
    OptimizationResult,
    OptimizationScore,
    RecommendedMethod,
    ScoreDetails,
    ServiceStatus,
    SmartOptimizeOptions,
    Trip,
    TripAssignment,
    Vehicle,
    VehicleStatus,
)
from .batch_optimizer import VehicleSchedules, sort_trips_for_assignment, summarize_results
from .conflicts import detect_conflicts
from .context import OptimizationContext
from .fallback_solver import fallback_vrp_solver
from .return_trips import process_trips_with_returns
from .routing_data import build_routing_data
from .routing_service import OsrmRouter
from .scoring import calculate_fuel_cost, get_priority_score, get_vehicle_type_score
from .solver_service import VroomSolver, build_vroom_problem, convert_vroom_solution

logger = logging.getLogger(__name__)

ROUTER_ONLY_ALGORITHM = "Router-enhanced greedy"


class ProviderUnavailableError(Exception):
    """An external provider could not produce a usable answer."""


# Failures of a provider tier that hand over to the next tier
PROVIDER_ERRORS = (ProviderUnavailableError, httpx.HTTPError, ValueError, LookupError, TypeError, AttributeError)


async def _probe(name: str, check: Callable[[], Awaitable[bool]], timeout: float) -> bool:
    try:
        return await asyncio.wait_for(check(), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{name} availability probe timed out after {timeout}s")
        return False
    except Exception as e:
        logger.warning(f"{name} availability probe failed: {e!r}")
        return False


async def get_optimization_service_status(
    router: Optional[OsrmRouter] = None,
    solver: Optional[VroomSolver] = None,
    timeout: Optional[float] = None,
) -> ServiceStatus:
    timeout = timeout or settings.PROVIDER_PROBE_TIMEOUT

    async def unavailable() -> bool:
        return False

    router_available, solver_available = await asyncio.gather(
        _probe("Router", router.is_available, timeout) if router else unavailable(),
        _probe("Solver", solver.is_available, timeout) if solver else unavailable(),
    )

    if router_available and solver_available:
        method = RecommendedMethod.SOLVER_WITH_ROUTER
    elif router_available:
        method = RecommendedMethod.ROUTER_ONLY
    else:
        method = RecommendedMethod.LOCAL_FALLBACK

    return ServiceStatus(
        router_available=router_available,
        solver_available=solver_available,
        recommended_method=method,
    )


async def optimize_with_providers_and_solver(
    trips: List[Trip],
    vehicles: List[Vehicle],
    router: OsrmRouter,
    solver: VroomSolver,
    options: Optional[SmartOptimizeOptions] = None,
    ctx: Optional[OptimizationContext] = None,
) -> OptimizationResult:
    options = options or SmartOptimizeOptions()
    ctx = ctx or OptimizationContext()
    candidates = [v for v in vehicles if v.is_assignable]

    routing = await build_routing_data(trips, candidates, ctx.geocoder, router)
    problem = build_vroom_problem(
        trips, candidates, routing, options.time_window_config, options.max_route_time
    )
    response = await solver.solve(problem)
    if not response["success"]:
        raise ProviderUnavailableError(f"Solver failed: {response.get('error')}")

    result = convert_vroom_solution(response["solution"], trips, candidates)
    result.server_used = response["server_used"]
    result.fallback = routing.fallback
    if routing.fallback:
        result.algorithm = f"{result.algorithm} (estimated distances)"
    return result


async def optimize_with_router_only(
    trips: List[Trip],
    vehicles: List[Vehicle],
    router: OsrmRouter,
    ctx: Optional[OptimizationContext] = None,
) -> OptimizationResult:
    """Greedy best-score assignment ranked on router distances and durations."""
    ctx = ctx or OptimizationContext()
    candidates = [v for v in vehicles if v.status in (VehicleStatus.AVAILABLE, VehicleStatus.BUSY)]
    routing = await build_routing_data(trips, candidates, ctx.geocoder, router)
    schedules = VehicleSchedules(candidates)
    results: List[TripAssignment] = []

    for trip in sort_trips_for_assignment(trips):
        pickup, destination = routing.pickup_index(trip), routing.destination_index(trip)
        best = None
        for vehicle in candidates:
            start = routing.vehicle_index(vehicle)
            distance_km = routing.distance_km(start, pickup) + routing.distance_km(pickup, destination)
            duration_min = routing.duration_min(start, pickup) + routing.duration_min(pickup, destination)
            score = (
                get_vehicle_type_score(trip.vehicle_type_required, vehicle.type) * 0.4
                + max(0, 100 - distance_km * 2) * 0.3
                + max(0, 100 - duration_min) * 0.2
                + get_priority_score(trip.priority) * 0.1
            )
            if score > ctx.thresholds.router_greedy_min and (best is None or score > best[0]):
                best = (score, vehicle, distance_km, duration_min)

        if best is None:
            results.append(
                TripAssignment(
                    trip=trip,
                    status=AssignmentStatus.UNASSIGNED,
                    fallback=routing.fallback,
                    reason=f"No vehicle above score {ctx.thresholds.router_greedy_min}",
                )
            )
            continue

        score, vehicle, distance_km, duration_min = best
        conflicts = detect_conflicts(trip, schedules.trips_for(vehicle.id))
        schedules.assign(vehicle.id, trip)
        results.append(
            TripAssignment(
                trip=trip,
                status=AssignmentStatus.ASSIGNED,
                vehicle_id=vehicle.id,
                vehicle_name=vehicle.name,
                optimization=OptimizationScore(
                    score=round(score),
                    details=ScoreDetails(
                        total_distance=round(distance_km, 1),
                        total_time=round(duration_min),
                        fuel_cost=calculate_fuel_cost(distance_km),
                        conflicts=conflicts,
                    ),
                ),
                fallback=routing.fallback,
                low_score=score < ctx.thresholds.low_score,
            )
        )
        if conflicts:
            ctx.diagnostics.info(
                "conflict_detected",
                f"Trip {trip.id} placed on {vehicle.name} with {len(conflicts)} nearby trip(s)",
                trip_id=trip.id,
                vehicle_id=vehicle.id,
            )

    return OptimizationResult(
        algorithm=ROUTER_ONLY_ALGORITHM,
        results=results,
        summary=summarize_results(results),
        vehicle_assignments=schedules.as_ids(),
        unassigned=[{"id": r.trip.id, "code": 1, "description": r.reason} for r in results if not r.is_assigned],
        fallback=routing.fallback,
        server_used=routing.server_used,
    )


async def smart_optimize(
    trips: List[Trip],
    vehicles: List[Vehicle],
    options: Optional[SmartOptimizeOptions] = None,
    router: Optional[OsrmRouter] = None,
    solver: Optional[VroomSolver] = None,
    ctx: Optional[OptimizationContext] = None,
) -> OptimizationResult:
    """Run the best tier the providers allow, degrading instead of failing."""
    options = options or SmartOptimizeOptions()
    ctx = ctx or OptimizationContext(
        thresholds=options.thresholds,
        time_windows=options.time_window_config,
        diagnostics=Diagnostics(record=True),
    )
    diagnostics = ctx.diagnostics

    if options.generate_returns:
        trips = process_trips_with_returns(trips, diagnostics)

    if options.mode == OptimizationMode.LOCAL:
        status = ServiceStatus()
    else:
        status = await get_optimization_service_status(router, solver)
    logger.info(
        f"Providers: router={status.router_available} solver={status.solver_available}, mode={options.mode.value}"
    )

    use_solver = router is not None and solver is not None and (
        options.mode == OptimizationMode.SOLVER
        or (options.mode == OptimizationMode.AUTO and status.recommended_method == RecommendedMethod.SOLVER_WITH_ROUTER)
    )
    use_router = router is not None and options.mode != OptimizationMode.LOCAL and (
        options.mode in (OptimizationMode.SOLVER, OptimizationMode.ROUTER) or status.router_available
    )

    result: Optional[OptimizationResult] = None
    if use_solver:
        diagnostics.info("fallback_tier_chosen", "Using solver with router matrices", tier="solver")
        try:
            result = await optimize_with_providers_and_solver(trips, vehicles, router, solver, options, ctx)
        except PROVIDER_ERRORS as e:
            diagnostics.warning("provider_unavailable", f"Solver tier failed: {e!r}", tier="solver")

    if result is None and use_router:
        diagnostics.info("fallback_tier_chosen", "Using router-only greedy assignment", tier="router")
        try:
            result = await optimize_with_router_only(trips, vehicles, router, ctx)
        except PROVIDER_ERRORS as e:
            diagnostics.warning("provider_unavailable", f"Router tier failed: {e!r}", tier="router")

    if result is None:
        diagnostics.info("fallback_tier_chosen", "Using local fallback solver", tier="local")
        result = await fallback_vrp_solver(trips, vehicles, ctx=ctx)

    result.service_status = status
    result.diagnostics = list(diagnostics.events)
    return result

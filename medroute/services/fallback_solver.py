"""
Local VRP fallback used when no solver is reachable.

Trips are placed greedily (priority, appointments before returns, time) on
the best compatible vehicle whose schedule has no interval conflict. Each
vehicle route is then put in time-window order, and routes holding more than
two trips get a 2-opt pass that keeps that order.
"""
import logging
from typing import Any, Dict, List, Optional

from medroute.core.config import settings
from medroute.core.time_utils import wrap_minutes
from medroute.models import (
    AssignmentStatus,
    AssignmentThresholds,
    OptimizationResult,
    OptimizationScore,
    OptimizationSummary,
    ScoreDetails,
    TimeWindowConfig,
    Trip,
    TripAssignment,
    Vehicle,
)
from medroute.models.trip_models import enum_value, priority_rank
from .conflicts import check_time_conflicts, get_time_bounds
from .context import OptimizationContext
from .routing_data import RoutingData, build_routing_data
from .solver_service import REQUIRED_SKILLS, VEHICLE_SKILLS, delivery_step_id, pickup_step_id

logger = logging.getLogger(__name__)

ALGORITHM_NAME = "Fallback VRP (greedy + 2-opt)"

# required type -> vehicle type -> compatibility
TYPE_COMPATIBILITY: Dict[str, Dict[str, int]] = {
    "Ambulance": {"Ambulance": 100, "VSL": 30, "Taxi": 10},
    "VSL": {"Ambulance": 80, "VSL": 100, "Taxi": 50},
    "Taxi": {"Ambulance": 90, "VSL": 80, "Taxi": 100},
}
DEFAULT_COMPATIBILITY = 50
MIN_COMPATIBILITY = 50
MAX_TWO_OPT_ROUNDS = 50


class VehicleRoute:
    def __init__(self, vehicle: Vehicle):
        self.vehicle = vehicle
        self.trips: List[Trip] = list(vehicle.trips)


def get_type_compatibility(required_type: Any, vehicle_type: Any) -> int:
    return TYPE_COMPATIBILITY.get(enum_value(required_type), {}).get(
        enum_value(vehicle_type), DEFAULT_COMPATIBILITY
    )


def has_required_skills(trip: Trip, vehicle: Vehicle) -> bool:
    vehicle_skills = VEHICLE_SKILLS.get(enum_value(vehicle.type), [])
    required = REQUIRED_SKILLS.get(enum_value(trip.vehicle_type_required), [])
    return any(skill in vehicle_skills for skill in required)


def sort_trips_for_fallback(trips: List[Trip]) -> List[Trip]:
    return sorted(trips, key=lambda t: (-priority_rank(t.priority), t.is_return_trip, t.time_minutes))


def route_distance_km(trips: List[Trip], start_index: int, routing: RoutingData) -> float:
    distance = 0.0
    position = start_index
    for trip in trips:
        pickup, destination = routing.pickup_index(trip), routing.destination_index(trip)
        distance += routing.distance_km(position, pickup) + routing.distance_km(pickup, destination)
        position = destination
    return distance


def route_duration_min(trips: List[Trip], start_index: int, routing: RoutingData) -> float:
    duration = 0.0
    position = start_index
    for trip in trips:
        pickup, destination = routing.pickup_index(trip), routing.destination_index(trip)
        duration += routing.duration_min(position, pickup) + routing.duration_min(pickup, destination)
        position = destination
    return duration


def calculate_route_metrics(
    trip: Trip, route: VehicleRoute, routing: RoutingData, config: Optional[TimeWindowConfig] = None
) -> Dict[str, Any]:
    """Extra distance/time of appending ``trip`` to the end of ``route``."""
    position = (
        routing.destination_index(route.trips[-1]) if route.trips else routing.vehicle_index(route.vehicle)
    )
    pickup, destination = routing.pickup_index(trip), routing.destination_index(trip)
    ride_min = routing.duration_min(pickup, destination)
    start, _ = get_time_bounds(trip, config)
    return {
        "additional_distance": routing.distance_km(position, pickup) + routing.distance_km(pickup, destination),
        "additional_duration": routing.duration_min(position, pickup) + ride_min,
        "estimated_arrival": wrap_minutes(round(start + ride_min)),
    }


def calculate_trip_assignment_score(compatibility: int, trip_count: int, additional_distance: float) -> float:
    utilization = max(0, 100 - trip_count * 15)
    efficiency = max(0, 100 - additional_distance * 2)
    return compatibility * 0.5 + utilization * 0.3 + efficiency * 0.2


def find_best_vehicle_for_trip(
    trip: Trip,
    routes: List[VehicleRoute],
    routing: RoutingData,
    config: Optional[TimeWindowConfig] = None,
    thresholds: Optional[AssignmentThresholds] = None,
) -> Optional[Dict[str, Any]]:
    config = config or TimeWindowConfig()
    thresholds = thresholds or AssignmentThresholds()
    best: Optional[Dict[str, Any]] = None
    best_score = -1.0

    for route in routes:
        compatibility = get_type_compatibility(trip.vehicle_type_required, route.vehicle.type)
        if compatibility < MIN_COMPATIBILITY or not has_required_skills(trip, route.vehicle):
            continue

        conflict = check_time_conflicts(trip, route.trips, config)
        if conflict["has_conflict"]:
            logger.debug(f"Trip {trip.id} overlaps on {route.vehicle.name}: {conflict['conflicts']}")
            if config.allow_conflict_penalty:
                adjusted = compatibility - config.conflict_penalty_score
                if adjusted > best_score and adjusted > config.min_assignment_score:
                    best_score = adjusted
                    best = {
                        "route": route,
                        "score": adjusted,
                        "conflict_penalty": True,
                        **calculate_route_metrics(trip, route, routing, config),
                    }
            continue

        metrics = calculate_route_metrics(trip, route, routing, config)
        score = calculate_trip_assignment_score(compatibility, len(route.trips), metrics["additional_distance"])
        if score > best_score:
            best_score = score
            best = {"route": route, "score": score, "conflict_penalty": False, **metrics}

    if best and best_score > thresholds.fallback_min:
        return best
    return None


def is_time_ordered(trips: List[Trip], config: Optional[TimeWindowConfig] = None) -> bool:
    """True when no trip is visited before a trip whose window opens earlier."""
    starts = [get_time_bounds(trip, config)[0] for trip in trips]
    return all(a <= b for a, b in zip(starts, starts[1:]))


def sort_route_by_time(trips: List[Trip], config: Optional[TimeWindowConfig] = None) -> List[Trip]:
    return sorted(trips, key=lambda t: get_time_bounds(t, config)[0])


def apply_two_opt(
    trips: List[Trip], start_index: int, routing: RoutingData, config: Optional[TimeWindowConfig] = None
) -> List[Trip]:
    """Reverse sub-sequences of the visiting order while that shortens the route.

    Only reversals that keep the trips in time-window order are accepted.
    """
    if len(trips) <= 2:
        return list(trips)

    best = list(trips)
    best_distance = route_distance_km(best, start_index, routing)
    for _ in range(MAX_TWO_OPT_ROUNDS):
        improved = False
        for i in range(1, len(best) - 1):
            for j in range(i + 1, len(best)):
                candidate = best[:i] + best[i : j + 1][::-1] + best[j + 1 :]
                if not is_time_ordered(candidate, config):
                    continue
                distance = route_distance_km(candidate, start_index, routing)
                if distance < best_distance - 1e-9:
                    best, best_distance = candidate, distance
                    improved = True
        if not improved:
            break
    return best


def build_route_output(route: VehicleRoute, routing: RoutingData, config: TimeWindowConfig) -> Dict[str, Any]:
    """Route in the same shape as a VROOM solution route."""
    start_index = routing.vehicle_index(route.vehicle)
    steps: List[Dict[str, Any]] = [{"type": "start", "location_index": start_index}]
    for trip in route.trips:
        pickup, destination = routing.pickup_index(trip), routing.destination_index(trip)
        start, _ = get_time_bounds(trip, config)
        steps.append(
            {"type": "pickup", "id": pickup_step_id(trip), "trip_id": trip.id, "location_index": pickup, "arrival": start * 60}
        )
        steps.append(
            {
                "type": "delivery",
                "id": delivery_step_id(trip),
                "trip_id": trip.id,
                "location_index": destination,
                "arrival": round(start * 60 + routing.durations[pickup][destination]),
            }
        )
    steps.append({"type": "end", "location_index": start_index})
    distance_km = route_distance_km(route.trips, start_index, routing)
    return {
        "vehicle": route.vehicle.id,
        "steps": steps,
        "distance": round(distance_km * 1000),
        "duration": round(route_duration_min(route.trips, start_index, routing) * 60),
        "cost": round(distance_km * settings.FUEL_COST_PER_KM, 2),
    }


async def fallback_vrp_solver(
    trips: List[Trip],
    vehicles: List[Vehicle],
    routing: Optional[RoutingData] = None,
    ctx: Optional[OptimizationContext] = None,
) -> OptimizationResult:
    ctx = ctx or OptimizationContext()
    config = ctx.time_windows
    candidates = [v.model_copy(deep=True) for v in vehicles if v.is_assignable]
    if routing is None:
        routing = await build_routing_data(trips, candidates, ctx.geocoder)

    routes = [VehicleRoute(vehicle) for vehicle in candidates]
    results: List[TripAssignment] = []

    for trip in sort_trips_for_fallback(trips):
        best = find_best_vehicle_for_trip(trip, routes, routing, config, ctx.thresholds)
        if best is None:
            results.append(
                TripAssignment(
                    trip=trip,
                    status=AssignmentStatus.UNASSIGNED,
                    fallback=True,
                    reason="No compatible vehicle without time conflict",
                )
            )
            ctx.diagnostics.warning("trip_unassigned", f"Trip {trip.id} unassigned by local solver", trip_id=trip.id)
            continue

        route: VehicleRoute = best["route"]
        route.trips.append(trip)
        score = round(best["score"])
        results.append(
            TripAssignment(
                trip=trip,
                status=AssignmentStatus.ASSIGNED,
                vehicle_id=route.vehicle.id,
                vehicle_name=route.vehicle.name,
                optimization=OptimizationScore(
                    score=score,
                    details=ScoreDetails(
                        total_distance=round(best["additional_distance"], 1),
                        total_time=round(best["additional_duration"]),
                        estimated_arrival=best["estimated_arrival"],
                        fuel_cost=round(best["additional_distance"] * settings.FUEL_COST_PER_KM, 2),
                    ),
                ),
                fallback=True,
                forced=best["conflict_penalty"],
                low_score=score < ctx.thresholds.low_score,
            )
        )
        ctx.diagnostics.info(
            "assignment_made",
            f"Trip {trip.id} assigned to {route.vehicle.name} by local solver (score {score})",
            trip_id=trip.id,
            vehicle_id=route.vehicle.id,
        )

    for route in routes:
        route.trips = apply_two_opt(
            sort_route_by_time(route.trips, config), routing.vehicle_index(route.vehicle), routing, config
        )

    used_routes = [build_route_output(route, routing, config) for route in routes if route.trips]
    assigned = [r for r in results if r.is_assigned]
    total_distance = sum(r["distance"] for r in used_routes) / 1000
    total = len(results)

    logger.info(f"Local solver assigned {len(assigned)}/{total} trips on {len(used_routes)} routes")

    return OptimizationResult(
        algorithm=ALGORITHM_NAME,
        results=results,
        summary=OptimizationSummary(
            total_trips=total,
            assigned_trips=len(assigned),
            unassigned_trips=total - len(assigned),
            assignment_rate=round(len(assigned) / total * 100) if total else 0,
            total_distance=round(total_distance, 1),
            total_time=round(sum(r["duration"] for r in used_routes) / 60),
            average_optimization_score=(
                round(sum(r.optimization.score for r in assigned) / len(assigned)) if assigned else 0
            ),
            estimated_fuel_cost=round(total_distance * settings.FUEL_COST_PER_KM, 2),
        ),
        vehicle_assignments={route.vehicle.id: [t.id for t in route.trips] for route in routes},
        routes=used_routes,
        unassigned=[
            {"id": r.trip.id, "code": 1, "description": r.reason} for r in results if not r.is_assigned
        ],
        fallback=True,
        diagnostics=list(ctx.diagnostics.events),
    )

"""
VROOM solver client and the translation to and from its JSON format.

Each trip becomes a shipment: a pickup step with id ``trip_id * 10 + 1`` and a
delivery step with id ``trip_id * 10 + 2``. Vehicle skills encode type
compatibility (VROOM requires a vehicle to hold every skill of a job).
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from medroute.core.config import settings
from medroute.core.time_utils import time_to_minutes, wrap_minutes
from medroute.models import (
    AssignmentStatus,
    OptimizationResult,
    OptimizationScore,
    OptimizationSummary,
    ScoreDetails,
    TimeWindowConfig,
    Trip,
    TripAssignment,
    Vehicle,
)
from medroute.models.trip_models import enum_value
from .routing_data import RoutingData

logger = logging.getLogger(__name__)

MAX_SHIPMENTS = 100
MAX_VEHICLES = 20
UNREACHABLE = 999999
DAY_SECONDS = 24 * 3600

VEHICLE_SKILLS = {"Ambulance": [1, 2, 3], "VSL": [2, 3], "Taxi": [3]}
REQUIRED_SKILLS = {"Ambulance": [1], "VSL": [2], "Taxi": [3]}
VEHICLE_CAPACITY = {"Ambulance": 2, "VSL": 3, "Taxi": 4}
VEHICLE_SHIFT_SECONDS = (6 * 3600, 21 * 3600)

JOB_PRIORITY = {"urgent": 100, "high": 80, "normal": 60, "low": 40}
RETURN_PRIORITY = 50
SERVICE_SECONDS = {"urgent": 300, "high": 240, "normal": 180, "low": 120}
DEFAULT_RETURN_WINDOW = (8 * 3600, 20 * 3600)

ALGORITHM_NAME = "VROOM"


def pickup_step_id(trip: Trip) -> int:
    return trip.id * 10 + 1


def delivery_step_id(trip: Trip) -> int:
    return trip.id * 10 + 2


def ensure_matrix_size(matrix: List[List[float]], size: int) -> List[List[int]]:
    """Integer square matrix of ``size``, missing cells marked unreachable."""
    result = []
    for i in range(size):
        row = matrix[i] if i < len(matrix) else []
        result.append(
            [
                0 if i == j else (int(round(row[j])) if j < len(row) and row[j] is not None else UNREACHABLE)
                for j in range(size)
            ]
        )
    return result


def shipment_time_windows(trip: Trip, config: TimeWindowConfig) -> Tuple[List[int], Optional[List[int]]]:
    """(pickup window, delivery window) in seconds since midnight."""
    if trip.is_return_trip:
        if trip.earliest_pickup_time:
            earliest = time_to_minutes(trip.earliest_pickup_time) * 60
            latest = min(DAY_SECONDS, earliest + (trip.max_wait_minutes or 240) * 60)
            return [earliest, latest], None
        return list(DEFAULT_RETURN_WINDOW), None

    appointment = trip.time_minutes
    work_start = config.working_hours[0] * 60
    lead = max(120, config.appointment_buffer_before * 2)
    pickup_start = max(work_start, appointment - lead)
    pickup_end = max(pickup_start, appointment - config.appointment_buffer_before)
    delivery = [
        max(0, appointment - config.appointment_buffer_before) * 60,
        min(DAY_SECONDS, (appointment + config.appointment_buffer_after) * 60),
    ]
    return [pickup_start * 60, pickup_end * 60], delivery


def build_vroom_problem(
    trips: List[Trip],
    vehicles: List[Vehicle],
    routing: RoutingData,
    config: Optional[TimeWindowConfig] = None,
    max_route_time: Optional[int] = None,
) -> Dict[str, Any]:
    config = config or TimeWindowConfig()
    candidates = [v for v in vehicles if v.is_assignable]

    if not candidates:
        raise ValueError("No vehicle available for the solver")
    if not trips:
        raise ValueError("No trips to optimize")
    if len(trips) > MAX_SHIPMENTS:
        raise ValueError(f"Too many trips for the solver ({len(trips)} > {MAX_SHIPMENTS})")
    if len(candidates) > MAX_VEHICLES:
        raise ValueError(f"Too many vehicles for the solver ({len(candidates)} > {MAX_VEHICLES})")

    time_window = [0, max_route_time] if max_route_time else list(VEHICLE_SHIFT_SECONDS)
    vroom_vehicles = [
        {
            "id": vehicle.id,
            "start_index": routing.vehicle_index(vehicle),
            "end_index": routing.vehicle_index(vehicle),
            "capacity": [VEHICLE_CAPACITY.get(enum_value(vehicle.type), 1)],
            "skills": VEHICLE_SKILLS.get(enum_value(vehicle.type), []),
            "time_window": time_window,
            "description": f"{vehicle.name} ({enum_value(vehicle.type)})",
        }
        for vehicle in candidates
    ]

    shipments = []
    for trip in trips:
        pickup_window, delivery_window = shipment_time_windows(trip, config)
        service = SERVICE_SECONDS.get(enum_value(trip.priority), 180)
        pickup = {
            "id": pickup_step_id(trip),
            "location_index": routing.pickup_index(trip),
            "service": service,
            "time_windows": [pickup_window],
        }
        delivery = {
            "id": delivery_step_id(trip),
            "location_index": routing.destination_index(trip),
            "service": service,
        }
        if delivery_window:
            delivery["time_windows"] = [delivery_window]
        shipments.append(
            {
                "amount": [1],
                "skills": REQUIRED_SKILLS.get(enum_value(trip.vehicle_type_required), []),
                "priority": RETURN_PRIORITY if trip.is_return_trip else JOB_PRIORITY.get(enum_value(trip.priority), 60),
                "pickup": pickup,
                "delivery": delivery,
            }
        )

    size = len(routing.locations)
    return {
        "vehicles": vroom_vehicles,
        "shipments": shipments,
        "matrices": {
            "driving": {
                "durations": ensure_matrix_size(routing.durations, size),
                "distances": ensure_matrix_size(routing.distances, size),
            }
        },
    }


def calculate_vroom_score(route: Dict[str, Any]) -> int:
    return round(100 - min(20, route.get("distance", 0) / 10000))


def _trip_id_from_step(step: Dict[str, Any]) -> Optional[int]:
    step_id = step.get("id", step.get("job"))
    if step_id is None:
        return None
    return int(step_id) // 10


def convert_vroom_solution(
    solution: Dict[str, Any],
    trips: List[Trip],
    vehicles: List[Vehicle],
) -> OptimizationResult:
    trips_by_id = {t.id: t for t in trips}
    vehicles_by_id = {v.id: v for v in vehicles}
    results: List[TripAssignment] = []
    assigned_ids = set()
    vehicle_assignments: Dict[int, List[int]] = {}

    for route in solution.get("routes", []):
        vehicle = vehicles_by_id.get(route.get("vehicle"))
        if vehicle is None:
            continue
        score = calculate_vroom_score(route)
        deliveries = {
            _trip_id_from_step(step): step.get("arrival", 0)
            for step in route.get("steps", [])
            if step.get("type") == "delivery"
        }
        for step in route.get("steps", []):
            if step.get("type") not in ("pickup", "job"):
                continue
            trip = trips_by_id.get(_trip_id_from_step(step))
            if trip is None or trip.id in assigned_ids:
                continue
            assigned_ids.add(trip.id)
            vehicle_assignments.setdefault(vehicle.id, []).append(trip.id)
            arrival = deliveries.get(trip.id, step.get("arrival", 0))
            results.append(
                TripAssignment(
                    trip=trip,
                    status=AssignmentStatus.ASSIGNED,
                    vehicle_id=vehicle.id,
                    vehicle_name=vehicle.name,
                    optimization=OptimizationScore(
                        score=score,
                        details=ScoreDetails(
                            total_distance=round(route.get("distance", 0) / 1000, 1),
                            total_time=round(route.get("duration", 0) / 60),
                            estimated_arrival=wrap_minutes(arrival // 60),
                        ),
                    ),
                )
            )

    unassigned = []
    for entry in solution.get("unassigned", []):
        trip_id = _trip_id_from_step(entry)
        if trip_id in trips_by_id and trip_id not in assigned_ids and trip_id not in {u["id"] for u in unassigned}:
            unassigned.append({"id": trip_id, "code": entry.get("code", 1), "description": entry.get("description")})

    # Trips the solver did not mention are reported unassigned as well
    reported = {u["id"] for u in unassigned}
    for trip in trips:
        if trip.id not in assigned_ids and trip.id not in reported:
            unassigned.append({"id": trip.id, "code": 1, "description": "Not returned by solver"})

    for entry in unassigned:
        results.append(
            TripAssignment(
                trip=trips_by_id[entry["id"]],
                status=AssignmentStatus.UNASSIGNED,
                reason=entry.get("description") or f"Solver could not assign (code {entry['code']})",
            )
        )

    summary = solution.get("summary", {})
    total_distance = summary.get("distance", 0) / 1000
    assigned = len(assigned_ids)
    scores = [r.optimization.score for r in results if r.optimization]
    return OptimizationResult(
        algorithm=ALGORITHM_NAME,
        results=results,
        summary=OptimizationSummary(
            total_trips=len(trips),
            assigned_trips=assigned,
            unassigned_trips=len(trips) - assigned,
            assignment_rate=round(assigned / len(trips) * 100) if trips else 0,
            total_distance=round(total_distance, 1),
            total_time=round(summary.get("duration", 0) / 60),
            average_optimization_score=round(sum(scores) / len(scores)) if scores else 0,
            estimated_fuel_cost=round(total_distance * settings.FUEL_COST_PER_KM, 2),
            total_cost=summary.get("cost"),
            computing_times=summary.get("computing_times"),
        ),
        vehicle_assignments=vehicle_assignments,
        routes=solution.get("routes", []),
        unassigned=unassigned,
    )


# Two locations, one vehicle, one shipment
PROBE_PROBLEM: Dict[str, Any] = {
    "vehicles": [{"id": 1, "start_index": 0, "end_index": 0, "capacity": [1]}],
    "shipments": [
        {
            "amount": [1],
            "pickup": {"id": 11, "location_index": 0},
            "delivery": {"id": 12, "location_index": 1},
        }
    ],
    "matrices": {
        "driving": {
            "durations": [[0, 900], [900, 0]],
            "distances": [[0, 16000], [16000, 0]],
        }
    },
}


class VroomSolver:
    """Client for VROOM HTTP servers, local instance first then public fallbacks."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        fallback_urls: Optional[List[str]] = None,
        timeout: Optional[float] = None,
        fallback_timeout: Optional[float] = None,
        attempts: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base_url = base_url or settings.VROOM_BASE_URL
        fallback_urls = settings.VROOM_FALLBACK_URLS if fallback_urls is None else fallback_urls
        self.endpoints: List[Tuple[str, float]] = [
            (base_url.rstrip("/"), timeout or settings.VROOM_TIMEOUT)
        ] + [
            (url.rstrip("/"), fallback_timeout or settings.VROOM_FALLBACK_TIMEOUT)
            for url in fallback_urls
        ]
        self.attempts = attempts or settings.PROVIDER_ATTEMPTS
        self.client = httpx.AsyncClient(transport=transport)

    async def solve(self, problem: Dict[str, Any]) -> Dict[str, Any]:
        errors = []
        for base_url, timeout in self.endpoints:
            for attempt in range(1, self.attempts + 1):
                try:
                    response = await self.client.post(base_url, json=problem, timeout=timeout)
                    if not response.is_success:
                        errors.append(f"{base_url}: HTTP {response.status_code}")
                        logger.warning(f"VROOM {base_url} returned HTTP {response.status_code} (attempt {attempt})")
                        continue
                    solution = response.json()
                    if not isinstance(solution, dict) or "routes" not in solution or solution.get("code", 0) != 0:
                        errors.append(f"{base_url}: malformed solution")
                        logger.warning(f"VROOM {base_url} returned a malformed solution")
                        continue
                    logger.info(f"VROOM solution from {base_url}: {len(solution['routes'])} routes")
                    return {"success": True, "solution": solution, "server_used": base_url}
                except (httpx.HTTPError, ValueError) as e:
                    errors.append(f"{base_url}: {e}")
                    logger.warning(f"VROOM {base_url} unreachable (attempt {attempt}): {e}")
        return {"success": False, "error": "; ".join(errors)}

    async def is_available(self) -> bool:
        result = await self.solve(PROBE_PROBLEM)
        return result["success"]

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

"""
Vehicle/trip compatibility scoring.

``calculate_optimization_score`` combines four sub-scores into a 0-100 value:

    vehicle type * 0.30 + time slot * 0.25 + distance * 0.25 + priority * 0.20

Distances are straight-line (Haversine) kilometres between geocoded points,
travel times a time-of-day weighted estimate.
"""
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from medroute.core.config import settings
from medroute.core.time_utils import time_to_minutes, wrap_minutes
from medroute.models import OptimizationScore, ScoreDetails, Trip, Vehicle
from medroute.models.trip_models import enum_value
from .conflicts import detect_conflicts, POINT_CONFLICT_MINUTES
from .geocoding import DEFAULT_LOCALITY

logger = logging.getLogger(__name__)

WEIGHTS = {"vehicle_type": 0.30, "time_slot": 0.25, "distance": 0.25, "priority": 0.20}

# required type -> serving vehicle type -> score
VEHICLE_TYPE_SCORES: Dict[str, Dict[str, int]] = {
    "Ambulance": {"VSL": 60, "Taxi": 20},
    "VSL": {"Ambulance": 90, "Taxi": 70},
    "Taxi": {"Ambulance": 85, "VSL": 80},
}
DEFAULT_TYPE_SCORE = 30

PRIORITY_SCORES = {"urgent": 100, "high": 85, "normal": 60, "low": 40}
DEFAULT_PRIORITY_SCORE = 60

# (max km, score), checked in order
DISTANCE_STEPS: List[Tuple[float, int]] = [(10, 100), (20, 80), (40, 60), (60, 40)]
FAR_DISTANCE_SCORE = 20

TIME_SLOT_SCORES = {0: 100, 1: 60, 2: 30}
CROWDED_SLOT_SCORE = 10

BASE_SPEEDS_KMH = {"urban": 25, "highway": 80, "mixed": 40}
TRAFFIC_MULTIPLIERS = {"morning": 1.3, "afternoon": 1.0, "evening": 1.4, "night": 0.8}


def get_vehicle_type_score(required_type: Any, vehicle_type: Any) -> int:
    required, serving = enum_value(required_type), enum_value(vehicle_type)
    if required == serving:
        return 100
    return VEHICLE_TYPE_SCORES.get(required, {}).get(serving, DEFAULT_TYPE_SCORE)


def get_priority_score(priority: Any) -> int:
    return PRIORITY_SCORES.get(enum_value(priority), DEFAULT_PRIORITY_SCORE)


def calculate_distance_score(distance_km: float) -> int:
    for limit, score in DISTANCE_STEPS:
        if distance_km <= limit:
            return score
    return FAR_DISTANCE_SCORE


def calculate_time_slot_score(trip: Trip, existing_trips: List[Trip]) -> int:
    trip_minutes = trip.time_minutes
    near = sum(
        1
        for existing in existing_trips
        if abs(trip_minutes - existing.time_minutes) < POINT_CONFLICT_MINUTES
    )
    return TIME_SLOT_SCORES.get(near, CROWDED_SLOT_SCORE)


def haversine_km(point1: Tuple[float, float], point2: Tuple[float, float]) -> float:
    """Great-circle distance in km between two (lat, lng) points."""
    R = 6371  # Earth's radius in km

    lat1, lon1, lat2, lon2 = map(math.radians, [point1[0], point1[1], point2[0], point2[1]])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return R * c


def get_time_of_day(hour: int) -> str:
    if 7 <= hour < 9:
        return "morning"
    if 9 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 20:
        return "evening"
    return "night"


def estimate_travel_time(distance_km: float, time_of_day: str = "afternoon", road_type: str = "mixed") -> int:
    """Travel time in minutes for ``distance_km`` at the given time of day."""
    speed = BASE_SPEEDS_KMH.get(road_type, BASE_SPEEDS_KMH["mixed"])
    speed *= TRAFFIC_MULTIPLIERS.get(time_of_day, 1.0)
    return round(distance_km / speed * 60)


def calculate_fuel_cost(distance_km: float) -> float:
    return round(distance_km * settings.FUEL_COST_PER_KM, 2)


async def trip_points(trip: Trip, geocoder) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    """(lat, lng) of pickup and destination, geocoding only what is missing."""
    if trip.pickup_coordinates:
        pickup = (trip.pickup_coordinates[1], trip.pickup_coordinates[0])
    else:
        pickup = await geocoder.geocode(trip.pickup)
    if trip.destination_coordinates:
        destination = (trip.destination_coordinates[1], trip.destination_coordinates[0])
    else:
        destination = await geocoder.geocode(trip.destination)
    return pickup, destination


async def vehicle_point(vehicle: Vehicle, geocoder) -> Tuple[float, float]:
    if vehicle.coordinates:
        return (vehicle.coordinates[1], vehicle.coordinates[0])
    return await geocoder.geocode(vehicle.current_location or DEFAULT_LOCALITY)


async def calculate_optimization_score(
    trip: Trip,
    vehicle: Vehicle,
    existing_trips: Optional[List[Trip]] = None,
    geocoder=None,
) -> OptimizationScore:
    """
    Score how well ``vehicle`` serves ``trip`` given the trips it already holds.

    Never raises: a failure yields a zero score carrying the error, so callers
    can still rank the candidate last.
    """
    existing_trips = existing_trips or []
    if geocoder is None:
        from .geocoding import StaticGeocoder

        geocoder = StaticGeocoder()

    try:
        vehicle_location = await vehicle_point(vehicle, geocoder)
        pickup, destination = await trip_points(trip, geocoder)

        distance_to_pickup = haversine_km(vehicle_location, pickup)
        trip_distance = haversine_km(pickup, destination)
        total_distance = distance_to_pickup + trip_distance

        start_minutes = trip.time_minutes
        time_of_day = get_time_of_day(start_minutes // 60)
        time_to_pickup = estimate_travel_time(distance_to_pickup, time_of_day)
        trip_duration = estimate_travel_time(trip_distance, time_of_day)
        total_time = time_to_pickup + trip_duration

        vehicle_type_score = get_vehicle_type_score(trip.vehicle_type_required, vehicle.type)
        time_slot_score = calculate_time_slot_score(trip, existing_trips)
        distance_score = calculate_distance_score(total_distance)
        priority_score = get_priority_score(trip.priority)

        score = round(
            vehicle_type_score * WEIGHTS["vehicle_type"]
            + time_slot_score * WEIGHTS["time_slot"]
            + distance_score * WEIGHTS["distance"]
            + priority_score * WEIGHTS["priority"]
        )

        details = ScoreDetails(
            vehicle_type_score=vehicle_type_score,
            time_slot_score=time_slot_score,
            distance_score=distance_score,
            priority_score=priority_score,
            distance_to_pickup=round(distance_to_pickup, 1),
            trip_distance=round(trip_distance, 1),
            total_distance=round(total_distance, 1),
            time_to_pickup=time_to_pickup,
            trip_duration=trip_duration,
            total_time=total_time,
            estimated_arrival=wrap_minutes(start_minutes + total_time),
            fuel_cost=calculate_fuel_cost(total_distance),
            conflicts=detect_conflicts(trip, existing_trips),
        )
        return OptimizationScore(score=max(0, min(100, score)), details=details)

    except Exception as e:
        logger.error(f"Scoring failed for trip {trip.id} on vehicle {vehicle.id}: {e}")
        return OptimizationScore(score=0, details=ScoreDetails(error=str(e)))

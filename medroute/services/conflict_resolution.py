"""
Resolution strategies for trips that could not be placed without conflict.

Each generator probes one family of remedies and returns ranked options,
best first. Nothing here mutates vehicle schedules: the batch optimizer
applies the chosen option.
"""
import logging
from functools import cmp_to_key
from typing import Any, Dict, List, Optional

from medroute.models import (
    ResolutionStrategy,
    StrategyType,
    Trip,
    TripPriority,
    Vehicle,
    VehicleStatus,
)
from medroute.models.trip_models import enum_value
from .context import OptimizationContext
from .geocoding import find_locality

logger = logging.getLogger(__name__)

# Half-hour grid 07:00 .. 18:30
TIME_ADJUSTMENT_SLOTS = [f"{hour:02d}:{minute:02d}" for hour in range(7, 19) for minute in (0, 30)]
RESCHEDULE_SLOTS = ["07:00", "08:00", "09:00", "10:00", "11:00", "14:00", "15:00", "16:00", "17:00"]

SCORE_TIE_MARGIN = 10
MAX_TIME_OPTIONS = 3
MAX_VEHICLE_OPTIONS = 4
MAX_RESCHEDULE_OPTIONS = 3
MAX_OPTIMIZATION_OPTIONS = 2
MAX_NEARBY_TRIPS = 3
COMBINE_WINDOW_MINUTES = 60
COMBINED_ESTIMATED_TIME = 90
COMBINED_COST_SAVINGS = 15
RELAY_ESTIMATED_TIME = 60

STRATEGY_DESCRIPTIONS = {
    StrategyType.TIME_ADJUSTMENT: "Adjust the pickup time",
    StrategyType.VEHICLE_CHANGE: "Use a different vehicle",
    StrategyType.RESCHEDULE_EXISTING: "Reschedule existing trips",
    StrategyType.TRIP_OPTIMIZATION: "Reorganize trips",
}


def time_shift_impact(shift_minutes: int) -> str:
    shift = abs(shift_minutes)
    if shift <= 30:
        return "minimal"
    if shift <= 60:
        return "low"
    if shift <= 120:
        return "medium"
    return "high"


def _other_trips(vehicle: Vehicle, trip: Trip) -> List[Trip]:
    return [t for t in vehicle.trips if t.id != trip.id]


def _compare_time_options(a: Dict[str, Any], b: Dict[str, Any]) -> int:
    difference = b["optimization_score"] - a["optimization_score"]
    if abs(difference) < SCORE_TIE_MARGIN:
        return abs(a["time_shift"]) - abs(b["time_shift"])
    return difference


async def find_time_adjustments(
    trip: Trip, vehicles: List[Vehicle], ctx: OptimizationContext
) -> List[Dict[str, Any]]:
    options = []
    for slot in TIME_ADJUSTMENT_SLOTS:
        if slot == trip.appointment_time:
            continue
        shifted = trip.rescheduled_copy(slot)
        shift = shifted.time_minutes - trip.time_minutes
        for vehicle in vehicles:
            if vehicle.status not in (VehicleStatus.AVAILABLE, VehicleStatus.BUSY):
                continue
            result = await ctx.score(shifted, vehicle, _other_trips(vehicle, trip))
            if result.score > 0 and not result.details.conflicts:
                options.append(
                    {
                        "new_time": slot,
                        "vehicle_id": vehicle.id,
                        "vehicle_name": vehicle.name,
                        "optimization_score": result.score,
                        "time_shift": shift,
                        "estimated_arrival": result.details.estimated_arrival,
                        "impact": time_shift_impact(shift),
                    }
                )
    options.sort(key=cmp_to_key(_compare_time_options))
    return options[:MAX_TIME_OPTIONS]


async def find_alternative_vehicles(
    trip: Trip, vehicles: List[Vehicle], ctx: OptimizationContext
) -> List[Dict[str, Any]]:
    options = []
    for vehicle in vehicles:
        if not vehicle.is_assignable:
            continue
        result = await ctx.score(trip, vehicle, _other_trips(vehicle, trip))
        if result.score > ctx.thresholds.vehicle_change_min:
            conflicts = len(result.details.conflicts)
            options.append(
                {
                    "vehicle_id": vehicle.id,
                    "vehicle_name": vehicle.name,
                    "vehicle_type": enum_value(vehicle.type),
                    "current_status": enum_value(vehicle.status),
                    "optimization_score": result.score,
                    "conflicts": conflicts,
                    "estimated_cost": result.details.fuel_cost,
                    "requires_rescheduling": conflicts > 0,
                }
            )
    options.sort(key=lambda option: (option["conflicts"], -option["optimization_score"]))
    return options[:MAX_VEHICLE_OPTIONS]


async def find_rescheduling_options(
    trip: Trip, vehicles: List[Vehicle], ctx: OptimizationContext
) -> List[Dict[str, Any]]:
    minimum = ctx.thresholds.reschedule_min
    options = []
    for vehicle in vehicles:
        if not vehicle.is_assignable:
            continue
        scheduled = _other_trips(vehicle, trip)
        for existing in scheduled:
            if existing.is_urgent:
                continue
            remaining = [t for t in scheduled if t.id != existing.id]
            for slot in RESCHEDULE_SLOTS:
                if slot == existing.appointment_time:
                    continue
                moved = existing.rescheduled_copy(slot)
                moved_score = await ctx.score(moved, vehicle, remaining)
                if moved_score.score <= minimum or moved_score.details.conflicts:
                    continue
                new_score = await ctx.score(trip, vehicle, remaining + [moved])
                if new_score.score <= minimum or new_score.details.conflicts:
                    continue
                options.append(
                    {
                        "vehicle_id": vehicle.id,
                        "vehicle_name": vehicle.name,
                        "trip_to_reschedule": {
                            "trip_id": existing.id,
                            "patient": existing.patient,
                            "old_time": existing.appointment_time,
                            "new_time": slot,
                        },
                        "rescheduled_trip_score": moved_score.score,
                        "new_trip_score": new_score.score,
                        "impact": "low",
                    }
                )
    options.sort(key=lambda option: -option["new_trip_score"])
    return options[:MAX_RESCHEDULE_OPTIONS]


def find_nearby_trips(trip: Trip, all_trips: List[Trip]) -> List[Trip]:
    """Trips picked up in the same locality, approximated by the address text."""
    locality = find_locality(trip.pickup)
    if not locality:
        return []
    nearby = [
        other
        for other in all_trips
        if other.id != trip.id
        and other.status != "completed"
        and find_locality(other.pickup) == locality
    ]
    return nearby[:MAX_NEARBY_TRIPS]


def can_combine_trips(trip1: Trip, trip2: Trip) -> bool:
    return (
        abs(trip1.time_minutes - trip2.time_minutes) <= COMBINE_WINDOW_MINUTES
        and trip1.vehicle_type_required == trip2.vehicle_type_required
        and not trip1.is_urgent
        and not trip2.is_urgent
    )


def evaluate_combined_trip(trip: Trip, other: Trip, vehicles: List[Vehicle]) -> Optional[Dict[str, Any]]:
    candidates = [
        v for v in vehicles if v.is_assignable and v.type == trip.vehicle_type_required
    ]
    if not candidates:
        return None
    # Prefer the vehicle already carrying the other trip
    holding = [v for v in candidates if any(t.id == other.id for t in v.trips)]
    vehicle = (holding or candidates)[0]
    return {
        "type": "combine_trips",
        "trip_ids": [trip.id, other.id],
        "vehicle_id": vehicle.id,
        "vehicle_name": vehicle.name,
        "estimated_time": COMBINED_ESTIMATED_TIME,
        "cost_savings": COMBINED_COST_SAVINGS,
        "combined_route": f"{trip.pickup} → {other.pickup} → {trip.destination} → {other.destination}",
    }


def find_trip_optimizations(
    trip: Trip, vehicles: List[Vehicle], all_trips: List[Trip]
) -> List[Dict[str, Any]]:
    options = []
    for other in find_nearby_trips(trip, all_trips):
        if can_combine_trips(trip, other):
            combined = evaluate_combined_trip(trip, other, vehicles)
            if combined:
                options.append(combined)

    if trip.priority in (TripPriority.URGENT, TripPriority.HIGH):
        available = [v for v in vehicles if v.status == VehicleStatus.AVAILABLE]
        if len(available) >= 2:
            primary, support = available[0], available[1]
            options.append(
                {
                    "type": "multi_vehicle",
                    "vehicle_id": primary.id,
                    "vehicle_name": primary.name,
                    "support_vehicle_id": support.id,
                    "support_vehicle_name": support.name,
                    "strategy": "relay_transport",
                    "estimated_time": RELAY_ESTIMATED_TIME,
                }
            )
    return options[:MAX_OPTIMIZATION_OPTIONS]


async def resolve_conflicts(
    trip: Trip,
    vehicles: List[Vehicle],
    all_trips: List[Trip],
    ctx: Optional[OptimizationContext] = None,
) -> List[ResolutionStrategy]:
    """Ranked resolution strategies for ``trip``; families without options are left out."""
    ctx = ctx or OptimizationContext()

    generated = [
        (StrategyType.TIME_ADJUSTMENT, await find_time_adjustments(trip, vehicles, ctx)),
        (StrategyType.VEHICLE_CHANGE, await find_alternative_vehicles(trip, vehicles, ctx)),
        (StrategyType.RESCHEDULE_EXISTING, await find_rescheduling_options(trip, vehicles, ctx)),
        (StrategyType.TRIP_OPTIMIZATION, find_trip_optimizations(trip, vehicles, all_trips)),
    ]
    strategies = [
        ResolutionStrategy(type=kind, description=STRATEGY_DESCRIPTIONS[kind], options=options)
        for kind, options in generated
        if options
    ]
    logger.info(f"Trip {trip.id}: {len(strategies)} resolution strategies found")
    return strategies

"""
Single-trip assignment.

Every non-maintenance vehicle is scored, the base score is adjusted for type
match, priority and vehicle status, and the best candidate is returned. The
acceptance floor is deliberately low: an imperfect assignment is preferred to
an unassigned medical transport, so a candidate is force-assigned rather than
rejected whenever one exists.
"""
import logging
from functools import cmp_to_key
from typing import Dict, List, Optional, Tuple

from medroute.models import (
    AssignmentResult,
    AssignmentThresholds,
    CompatibilityDetails,
    OptimizationScore,
    Trip,
    Vehicle,
    VehicleEvaluation,
    VehicleStatus,
)
from medroute.models.trip_models import enum_value
from .context import OptimizationContext

logger = logging.getLogger(__name__)

EXACT_MATCH_BONUS = 10
BUSY_FACTOR = 0.8
BUSY_STATUS_PENALTY = 20
AVAILABILITY_BONUS = 10
TIE_BREAK_MARGIN = 5
MAX_ALTERNATIVES = 4

# required type -> serving vehicle type -> multiplier
CROSS_TYPE_FACTORS: Dict[str, Dict[str, float]] = {
    "Ambulance": {"VSL": 0.8, "Taxi": 0.4},
    "VSL": {"Ambulance": 0.9, "Taxi": 0.7},
    "Taxi": {"Ambulance": 0.6, "VSL": 0.8},
}
DEFAULT_CROSS_TYPE_FACTOR = 0.3

PRIORITY_BOOSTS = {"urgent": 15, "high": 8}


def enhance_score(
    base_score: int,
    trip: Trip,
    vehicle: Vehicle,
    thresholds: Optional[AssignmentThresholds] = None,
) -> Tuple[int, CompatibilityDetails]:
    thresholds = thresholds or AssignmentThresholds()
    required, serving = enum_value(trip.vehicle_type_required), enum_value(vehicle.type)
    exact_match = required == serving

    score = float(base_score)
    if exact_match:
        factor = 1.0
        score += EXACT_MATCH_BONUS
    else:
        factor = CROSS_TYPE_FACTORS.get(required, {}).get(serving, DEFAULT_CROSS_TYPE_FACTOR)
        score = max(score * factor, thresholds.cross_type_floor)

    boost = PRIORITY_BOOSTS.get(enum_value(trip.priority), 0)
    score += boost

    is_busy = vehicle.status == VehicleStatus.BUSY
    is_available = vehicle.status == VehicleStatus.AVAILABLE
    if is_busy:
        score = max(score * BUSY_FACTOR, thresholds.busy_floor)
    elif is_available:
        score = max(score, thresholds.available_floor)

    details = CompatibilityDetails(
        exact_type_match=exact_match,
        type_compatibility=factor,
        priority_boost=boost,
        status_penalty=BUSY_STATUS_PENALTY if is_busy else 0,
        availability_bonus=AVAILABILITY_BONUS if is_available else 0,
    )
    return round(score), details


async def evaluate_vehicle(trip: Trip, vehicle: Vehicle, ctx: OptimizationContext) -> VehicleEvaluation:
    base = await ctx.score(trip, vehicle)
    enhanced, compatibility = enhance_score(base.score, trip, vehicle, ctx.thresholds)
    return VehicleEvaluation(
        vehicle=vehicle,
        optimization=OptimizationScore(score=enhanced, original_score=base.score, details=base.details),
        is_available=vehicle.status == VehicleStatus.AVAILABLE,
        is_busy=vehicle.status == VehicleStatus.BUSY,
        compatibility_details=compatibility,
    )


def _compare_evaluations(a: VehicleEvaluation, b: VehicleEvaluation) -> int:
    difference = a.optimization.score - b.optimization.score
    if abs(difference) < TIE_BREAK_MARGIN and a.is_available != b.is_available:
        return -1 if a.is_available else 1
    return -difference


def rank_evaluations(evaluations: List[VehicleEvaluation]) -> List[VehicleEvaluation]:
    """Best first; within a 5-point margin an available vehicle beats a busy one."""
    return sorted(evaluations, key=cmp_to_key(_compare_evaluations))


async def find_best_vehicle_assignment(
    trip: Trip,
    vehicles: List[Vehicle],
    ctx: Optional[OptimizationContext] = None,
) -> AssignmentResult:
    ctx = ctx or OptimizationContext()
    thresholds = ctx.thresholds

    candidates = [v for v in vehicles if v.is_assignable]
    if not candidates:
        logger.warning(f"No vehicle available for trip {trip.id}: all in maintenance")
        return AssignmentResult(
            success=False,
            message="No vehicle available (all in maintenance)",
        )

    evaluations = [await evaluate_vehicle(trip, vehicle, ctx) for vehicle in candidates]
    ranked = rank_evaluations(evaluations)
    best = ranked[0]
    alternatives = ranked[1 : 1 + MAX_ALTERNATIVES]
    score = best.optimization.score

    if score > thresholds.acceptance_floor:
        return AssignmentResult(
            success=True,
            recommended=best,
            alternatives=alternatives,
            message=f"Vehicle {best.vehicle.name} recommended (score {score}/100)",
            low_score=score < thresholds.low_score,
            force_assigned=score < thresholds.force_flag,
        )

    logger.warning(f"Forcing trip {trip.id} onto {best.vehicle.name} with score {score}")
    return AssignmentResult(
        success=True,
        recommended=best,
        alternatives=alternatives,
        message=f"Vehicle {best.vehicle.name} force-assigned (score {score}/100)",
        low_score=True,
        force_assigned=True,
        forced=True,
        warning="Low-confidence assignment, operator review recommended",
    )

"""
Two-pass batch assignment.

Pass 1 places each trip, in priority then time order, on the best vehicle
only when that placement is conflict free. Pass 2 runs the conflict resolver
on every deferred trip and applies its strategies in rank order until one
succeeds. Every input trip ends up in the results exactly once.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from medroute.core.config import settings
from medroute.models import (
    AssignmentResult,
    AssignmentStatus,
    ConflictResolutionStats,
    OptimizationResult,
    OptimizationSummary,
    ResolutionOutcome,
    ResolutionStrategy,
    StrategyType,
    Trip,
    TripAssignment,
    Vehicle,
)
from medroute.models.trip_models import priority_rank
from .assignment import find_best_vehicle_assignment
from .conflict_resolution import resolve_conflicts
from .context import OptimizationContext

logger = logging.getLogger(__name__)

ALGORITHM_NAME = "Greedy two-pass with conflict resolution"


class VehicleSchedules:
    """Working copy of each vehicle's trip list, owned by a single run."""

    def __init__(self, vehicles: List[Vehicle]):
        self._trips: Dict[int, List[Trip]] = {v.id: list(v.trips) for v in vehicles}

    def trips_for(self, vehicle_id: int) -> List[Trip]:
        return self._trips.setdefault(vehicle_id, [])

    def assign(self, vehicle_id: int, trip: Trip) -> None:
        self.trips_for(vehicle_id).append(trip)

    def find(self, vehicle_id: int, trip_id: int) -> Optional[Trip]:
        for trip in self.trips_for(vehicle_id):
            if trip.id == trip_id:
                return trip
        return None

    def annotate(self, vehicles: List[Vehicle]) -> List[Vehicle]:
        """Vehicle snapshots carrying a copy of their current schedule."""
        return [v.with_trips(list(self.trips_for(v.id))) for v in vehicles]

    def as_ids(self) -> Dict[int, List[int]]:
        return {vehicle_id: [t.id for t in trips] for vehicle_id, trips in self._trips.items()}


def sort_trips_for_assignment(trips: List[Trip]) -> List[Trip]:
    """Priority (urgent first), then time of day ascending."""
    return sorted(trips, key=lambda t: (-priority_rank(t.priority), t.time_minutes))


# ============= STRATEGY APPLICATION =============

def _vehicle(vehicles: List[Vehicle], vehicle_id: Optional[int]) -> Optional[Vehicle]:
    return next((v for v in vehicles if v.id == vehicle_id), None)


async def _apply_time_adjustment(
    trip: Trip, option: Dict[str, Any], vehicle: Vehicle, schedules: VehicleSchedules, ctx: OptimizationContext
) -> ResolutionOutcome:
    new_time = option["new_time"]
    shifted = trip.rescheduled_copy(new_time)
    result = await ctx.score(shifted, vehicle, schedules.trips_for(vehicle.id))
    if result.score <= ctx.thresholds.time_adjustment_min or result.details.conflicts:
        return ResolutionOutcome(
            success=False,
            reason=f"Time adjustment to {new_time} not viable (score {result.score})",
        )
    old_time = trip.appointment_time
    trip.reschedule(new_time)
    schedules.assign(vehicle.id, trip)
    return ResolutionOutcome(
        success=True,
        vehicle_id=vehicle.id,
        optimization=result,
        details={"old_time": old_time, "new_time": new_time, "time_shift": option.get("time_shift")},
    )


async def _apply_vehicle_change(
    trip: Trip, option: Dict[str, Any], vehicle: Vehicle, schedules: VehicleSchedules, ctx: OptimizationContext
) -> ResolutionOutcome:
    result = await ctx.score(trip, vehicle, schedules.trips_for(vehicle.id))
    if result.score <= ctx.thresholds.vehicle_change_min:
        return ResolutionOutcome(
            success=False,
            reason=f"Vehicle {vehicle.name} no longer suitable (score {result.score})",
        )
    schedules.assign(vehicle.id, trip)
    return ResolutionOutcome(
        success=True,
        vehicle_id=vehicle.id,
        optimization=result,
        details={"vehicle_name": vehicle.name, "conflicts": len(result.details.conflicts)},
    )


async def _apply_rescheduling(
    trip: Trip, option: Dict[str, Any], vehicle: Vehicle, schedules: VehicleSchedules, ctx: OptimizationContext
) -> ResolutionOutcome:
    target = option["trip_to_reschedule"]
    existing = schedules.find(vehicle.id, target["trip_id"])
    if existing is None:
        return ResolutionOutcome(
            success=False,
            reason=f"Trip {target['trip_id']} is no longer on {vehicle.name}",
        )
    remaining = [t for t in schedules.trips_for(vehicle.id) if t.id != existing.id]
    moved = existing.rescheduled_copy(target["new_time"])
    result = await ctx.score(trip, vehicle, remaining + [moved])
    if result.score <= ctx.thresholds.reschedule_min or result.details.conflicts:
        return ResolutionOutcome(
            success=False,
            reason=f"Rescheduling trip {existing.id} does not free a slot (score {result.score})",
        )
    existing.reschedule(target["new_time"])
    schedules.assign(vehicle.id, trip)
    return ResolutionOutcome(
        success=True,
        vehicle_id=vehicle.id,
        optimization=result,
        details={"rescheduled_trip": dict(target)},
    )


async def _apply_trip_optimization(
    trip: Trip, option: Dict[str, Any], vehicle: Vehicle, schedules: VehicleSchedules, ctx: OptimizationContext
) -> ResolutionOutcome:
    result = await ctx.score(trip, vehicle, schedules.trips_for(vehicle.id))
    if result.score <= ctx.thresholds.combine_min:
        return ResolutionOutcome(
            success=False,
            reason=f"{option.get('type', 'trip_optimization')} on {vehicle.name} not viable (score {result.score})",
        )
    schedules.assign(vehicle.id, trip)
    details = {key: value for key, value in option.items() if key not in ("vehicle_id",)}
    return ResolutionOutcome(success=True, vehicle_id=vehicle.id, optimization=result, details=details)


STRATEGY_APPLIERS = {
    StrategyType.TIME_ADJUSTMENT: _apply_time_adjustment,
    StrategyType.VEHICLE_CHANGE: _apply_vehicle_change,
    StrategyType.RESCHEDULE_EXISTING: _apply_rescheduling,
    StrategyType.TRIP_OPTIMIZATION: _apply_trip_optimization,
}


async def apply_resolution_strategy(
    trip: Trip,
    strategy_type: StrategyType,
    option: Dict[str, Any],
    schedules: VehicleSchedules,
    vehicles: List[Vehicle],
    ctx: Optional[OptimizationContext] = None,
) -> ResolutionOutcome:
    """Apply one resolution option, mutating ``schedules`` only on success."""
    ctx = ctx or OptimizationContext()
    vehicle = _vehicle(vehicles, option.get("vehicle_id"))
    if vehicle is None or not vehicle.is_assignable:
        return ResolutionOutcome(success=False, reason="Target vehicle not available")
    applier = STRATEGY_APPLIERS.get(strategy_type)
    if applier is None:
        return ResolutionOutcome(success=False, reason=f"Unsupported strategy {strategy_type}")
    return await applier(trip, option, vehicle, schedules, ctx)


async def _resolve_deferred_trip(
    trip: Trip,
    first_attempt: AssignmentResult,
    schedules: VehicleSchedules,
    vehicles: List[Vehicle],
    all_trips: List[Trip],
    ctx: OptimizationContext,
) -> TripAssignment:
    strategies: List[ResolutionStrategy] = await resolve_conflicts(
        trip, schedules.annotate(vehicles), all_trips, ctx
    )
    if not strategies:
        reason = first_attempt.message if not first_attempt.success else "No resolution strategy available"
        return TripAssignment(trip=trip, status=AssignmentStatus.UNASSIGNED, pass_number=2, reason=reason)

    failures: List[str] = []
    for strategy in strategies:
        outcome = await apply_resolution_strategy(trip, strategy.type, strategy.options[0], schedules, vehicles, ctx)
        if outcome.success:
            vehicle = _vehicle(vehicles, outcome.vehicle_id)
            ctx.diagnostics.info(
                "resolution_applied",
                f"Trip {trip.id} assigned to {vehicle.name} via {strategy.type.value}",
                trip_id=trip.id,
                vehicle_id=vehicle.id,
                strategy=strategy.type.value,
            )
            return TripAssignment(
                trip=trip,
                status=AssignmentStatus.ASSIGNED,
                vehicle_id=vehicle.id,
                vehicle_name=vehicle.name,
                optimization=outcome.optimization,
                pass_number=2,
                low_score=outcome.optimization.score < ctx.thresholds.low_score,
                resolution_applied=strategy.type,
                resolution_details=outcome.details,
                resolution_strategies=strategies,
            )
        failures.append(f"{strategy.description}: {outcome.reason}")

    return TripAssignment(
        trip=trip,
        status=AssignmentStatus.UNASSIGNED,
        pass_number=2,
        reason="Resolution failed: " + "; ".join(failures),
        available_strategies=[s.description for s in strategies],
        resolution_strategies=strategies,
    )


def summarize_results(results: List[TripAssignment]) -> OptimizationSummary:
    assigned = [r for r in results if r.is_assigned]
    scored = [r.optimization for r in assigned if r.optimization]
    total_distance = sum(o.details.total_distance for o in scored)
    total = len(results)
    return OptimizationSummary(
        total_trips=total,
        assigned_trips=len(assigned),
        unassigned_trips=total - len(assigned),
        assignment_rate=round(len(assigned) / total * 100) if total else 0,
        total_distance=round(total_distance, 1),
        total_time=round(sum(o.details.total_time for o in scored)),
        average_optimization_score=round(sum(o.score for o in scored) / len(scored)) if scored else 0,
        estimated_fuel_cost=round(total_distance * settings.FUEL_COST_PER_KM, 2),
    )


async def optimize_multiple_trips(
    trips: List[Trip],
    vehicles: List[Vehicle],
    ctx: Optional[OptimizationContext] = None,
) -> OptimizationResult:
    ctx = ctx or OptimizationContext()
    diagnostics = ctx.diagnostics

    # The run owns its copies; time shifts never touch the caller's objects
    run_trips = [t.model_copy(deep=True) for t in trips]
    run_vehicles = [v.model_copy(deep=True) for v in vehicles]
    schedules = VehicleSchedules(run_vehicles)

    logger.info(f"Optimizing {len(run_trips)} trips across {len(run_vehicles)} vehicles")

    results: List[TripAssignment] = []
    deferred: List[Tuple[Trip, AssignmentResult]] = []

    for trip in sort_trips_for_assignment(run_trips):
        assignment = await find_best_vehicle_assignment(trip, schedules.annotate(run_vehicles), ctx)
        best = assignment.recommended
        if assignment.success and best and not best.optimization.details.conflicts:
            schedules.assign(best.vehicle.id, trip)
            results.append(
                TripAssignment(
                    trip=trip,
                    status=AssignmentStatus.ASSIGNED,
                    vehicle_id=best.vehicle.id,
                    vehicle_name=best.vehicle.name,
                    optimization=best.optimization,
                    pass_number=1,
                    forced=assignment.forced,
                    low_score=assignment.low_score,
                )
            )
            diagnostics.info(
                "assignment_made",
                f"Trip {trip.id} assigned to {best.vehicle.name} (score {best.optimization.score})",
                trip_id=trip.id,
                vehicle_id=best.vehicle.id,
            )
            continue

        deferred.append((trip, assignment))
        if best and best.optimization.details.conflicts:
            diagnostics.info(
                "conflict_detected",
                f"Trip {trip.id} conflicts with {len(best.optimization.details.conflicts)} trip(s) on {best.vehicle.name}",
                trip_id=trip.id,
                vehicle_id=best.vehicle.id,
            )
        else:
            diagnostics.info("trip_deferred", f"Trip {trip.id} deferred: {assignment.message}", trip_id=trip.id)

    resolved = 0
    for trip, first_attempt in deferred:
        outcome = await _resolve_deferred_trip(trip, first_attempt, schedules, run_vehicles, run_trips, ctx)
        if outcome.is_assigned:
            resolved += 1
        else:
            diagnostics.warning("trip_unassigned", f"Trip {trip.id} unassigned: {outcome.reason}", trip_id=trip.id)
        results.append(outcome)

    summary = summarize_results(results)
    logger.info(
        f"Batch done: {summary.assigned_trips}/{summary.total_trips} assigned, "
        f"{resolved}/{len(deferred)} conflicts resolved"
    )

    return OptimizationResult(
        success=True,
        algorithm=ALGORITHM_NAME,
        results=results,
        summary=summary,
        conflict_resolution=ConflictResolutionStats(
            total_conflicts=len(deferred),
            resolved_conflicts=resolved,
            unresolved_conflicts=len(deferred) - resolved,
            resolution_rate=round(resolved / len(deferred) * 100) if deferred else 100,
        ),
        vehicle_assignments=schedules.as_ids(),
        diagnostics=list(diagnostics.events),
    )

"""
Two conflict models are kept side by side.

``detect_conflicts`` is the quick point-in-time heuristic used while scoring:
two trips whose times are less than 30 minutes apart conflict.

``check_time_conflicts`` is the authoritative gate used by the local batch
solver: each trip occupies an interval, and intervals must stay apart by a
buffer that depends on whether the trips are appointments or returns.
"""
from typing import Any, Dict, List, Optional, Tuple

from medroute.core.time_utils import time_to_minutes
from medroute.models import Conflict, ConflictSeverity, TimeWindowConfig, Trip

POINT_CONFLICT_MINUTES = 30
HIGH_SEVERITY_MINUTES = 15

DEFAULT_APPOINTMENT_DURATION = 60
PICKUP_ONLY_WINDOW = 90


# ============= POINT MODEL =============

def detect_conflicts(trip: Trip, existing_trips: List[Trip]) -> List[Conflict]:
    conflicts = []
    trip_minutes = trip.time_minutes
    for existing in existing_trips:
        difference = abs(trip_minutes - existing.time_minutes)
        if difference < POINT_CONFLICT_MINUTES:
            conflicts.append(
                Conflict(
                    conflicting_trip=existing,
                    time_difference_minutes=difference,
                    severity=(
                        ConflictSeverity.HIGH
                        if difference < HIGH_SEVERITY_MINUTES
                        else ConflictSeverity.MEDIUM
                    ),
                )
            )
    return conflicts


# ============= INTERVAL MODEL =============

def get_time_bounds(trip: Trip, config: Optional[TimeWindowConfig] = None) -> Tuple[int, int]:
    """Interval (minutes since midnight) a trip keeps its vehicle busy."""
    config = config or TimeWindowConfig()
    work_start, work_end = (h * 60 for h in config.working_hours)

    if trip.is_return_trip and trip.earliest_pickup_time:
        start = time_to_minutes(trip.earliest_pickup_time)
        end = start + config.return_trip_duration
    elif not trip.is_return_trip:
        appointment = trip.time_minutes
        start = appointment - config.appointment_buffer_before
        end = appointment + (trip.duration or DEFAULT_APPOINTMENT_DURATION) + config.appointment_buffer_after
    else:
        start = trip.time_minutes
        end = start + PICKUP_ONLY_WINDOW

    return max(work_start, start), min(work_end, end)


def get_buffer(trip1: Trip, trip2: Trip, config: Optional[TimeWindowConfig] = None) -> int:
    config = config or TimeWindowConfig()
    if trip1.is_return_trip and trip2.is_return_trip:
        return config.buffer_between_returns
    if not trip1.is_return_trip and not trip2.is_return_trip:
        return config.buffer_between_appointments
    return config.buffer_mixed


def check_time_overlap(trip1: Trip, trip2: Trip, config: Optional[TimeWindowConfig] = None) -> bool:
    start1, end1 = get_time_bounds(trip1, config)
    start2, end2 = get_time_bounds(trip2, config)
    buffer = get_buffer(trip1, trip2, config)
    # Symmetric in (trip1, trip2)
    return start1 < end2 + buffer and start2 < end1 + buffer


def check_time_conflicts(
    trip: Trip, existing_trips: List[Trip], config: Optional[TimeWindowConfig] = None
) -> Dict[str, Any]:
    conflicts = []
    start, end = get_time_bounds(trip, config)
    for existing in existing_trips:
        if check_time_overlap(trip, existing, config):
            other_start, other_end = get_time_bounds(existing, config)
            conflicts.append(
                {
                    "trip_id": existing.id,
                    "overlap_minutes": max(0, min(end, other_end) - max(start, other_start)),
                    "buffer": get_buffer(trip, existing, config),
                }
            )
    return {"has_conflict": bool(conflicts), "conflicts": conflicts}

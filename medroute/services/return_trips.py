"""
Return-trip generation.

An appointment trip with a positive duration, or an explicit return time,
implies a trip back from the facility once the patient is released.
"""
import logging
from typing import List, Optional

from medroute.core.diagnostics import Diagnostics
from medroute.core.time_utils import minutes_to_time, time_to_minutes
from medroute.models import Trip, VehicleType
from medroute.models.trip_models import DEFAULT_MAX_WAIT_MINUTES

logger = logging.getLogger(__name__)

EXIT_BUFFER_MINUTES = 15
RETURN_TRIP_DURATION = 30
DEFAULT_WAIT_THRESHOLD = 60
NO_RETURN_TIMES = {"00:00", "0:00"}


def calculate_exit_time(trip: Trip) -> str:
    if trip.return_time:
        return trip.return_time
    return minutes_to_time(trip.time_minutes + (trip.duration or 0))


def needs_return_trip(trip: Trip) -> bool:
    if trip.is_return_trip:
        return False
    has_duration = (trip.duration or 0) > 0
    has_return_time = bool(trip.return_time) and trip.return_time not in NO_RETURN_TIMES
    return has_duration or has_return_time


def generate_return_trip(trip: Trip, new_id: int) -> Trip:
    exit_time = calculate_exit_time(trip)
    earliest_pickup = minutes_to_time(time_to_minutes(exit_time) + EXIT_BUFFER_MINUTES)

    return Trip(
        id=new_id,
        patient=trip.patient,
        pickup=trip.destination,
        destination=trip.pickup,
        pickup_coordinates=trip.destination_coordinates,
        destination_coordinates=trip.pickup_coordinates,
        appointment_time=exit_time,
        duration=RETURN_TRIP_DURATION,
        return_time=None,
        vehicle_type_required=trip.vehicle_type_required or VehicleType.VSL,
        priority=trip.priority,
        notes=f"Retour de {trip.destination}",
        is_return_trip=True,
        original_trip_id=trip.id,
        exit_time=exit_time,
        earliest_pickup_time=earliest_pickup,
        max_wait_minutes=DEFAULT_MAX_WAIT_MINUTES,
    )


def generate_return_trips(
    trips: List[Trip], diagnostics: Optional[Diagnostics] = None
) -> List[Trip]:
    """Generate the return trips implied by ``trips``, numbered above the highest id."""
    next_id = max([t.id for t in trips] + [0])
    # Trips whose return was already generated are not expanded again
    already_returned = {t.original_trip_id for t in trips if t.is_return_trip}

    generated: List[Trip] = []
    for trip in trips:
        if not needs_return_trip(trip) or trip.id in already_returned:
            continue
        try:
            next_id += 1
            return_trip = generate_return_trip(trip, next_id)
        except ValueError as e:
            next_id -= 1
            logger.warning(f"Skipping return trip for trip {trip.id}: {e}")
            continue
        generated.append(return_trip)
        if diagnostics:
            diagnostics.info(
                "return_trip_generated",
                f"Return trip {return_trip.id} generated for trip {trip.id} at {return_trip.earliest_pickup_time}",
                trip_id=trip.id,
                return_trip_id=return_trip.id,
            )

    logger.info(f"Generated {len(generated)} return trips from {len(trips)} trips")
    return generated


def process_trips_with_returns(
    trips: List[Trip], diagnostics: Optional[Diagnostics] = None
) -> List[Trip]:
    return list(trips) + generate_return_trips(trips, diagnostics)


# ============= WAITING TIME =============

def calculate_waiting_time(return_trip: Trip, actual_pickup_time: str) -> int:
    exit_time = return_trip.exit_time or return_trip.appointment_time
    return max(0, time_to_minutes(actual_pickup_time) - time_to_minutes(exit_time))


def is_wait_time_excessive(return_trip: Trip, actual_pickup_time: str) -> bool:
    limit = return_trip.max_wait_minutes or DEFAULT_WAIT_THRESHOLD
    return calculate_waiting_time(return_trip, actual_pickup_time) > limit


def format_waiting_time(minutes: int) -> str:
    if minutes <= 0:
        return "Aucune attente"
    if minutes < 60:
        return f"{minutes} min d'attente"
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"{hours}h d'attente"
    return f"{hours}h{rest:02d} d'attente"

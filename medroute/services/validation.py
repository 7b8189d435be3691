from typing import List

from medroute.models import Trip, ValidationResult, Vehicle, VehicleStatus


class ValidationService:
    def validate_request(self, trips: List[Trip], vehicles: List[Vehicle]) -> ValidationResult:
        errors = []
        warnings = []

        # Check for empty data
        if not trips:
            errors.append("No trips provided")
        if not vehicles:
            errors.append("No vehicles provided")

        if errors:
            return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

        trip_ids = set()
        for trip in trips:
            if trip.id in trip_ids:
                errors.append(f"Duplicate trip ID: {trip.id}")
            trip_ids.add(trip.id)
            warnings.extend(self._validate_trip(trip))

        vehicle_ids = set()
        for vehicle in vehicles:
            if vehicle.id in vehicle_ids:
                errors.append(f"Duplicate vehicle ID: {vehicle.id}")
            vehicle_ids.add(vehicle.id)

        for trip in trips:
            if trip.is_return_trip and trip.original_trip_id is not None and trip.original_trip_id not in trip_ids:
                warnings.append(
                    f"Trip {trip.id}: original trip {trip.original_trip_id} is not part of the request"
                )

        assignable = [v for v in vehicles if v.status != VehicleStatus.MAINTENANCE]
        if not assignable:
            warnings.append("All vehicles are in maintenance, no trip can be assigned")
        else:
            available_types = {v.type for v in assignable}
            missing = sorted({t.vehicle_type_required.value for t in trips} - {t.value for t in available_types})
            for vehicle_type in missing:
                warnings.append(f"No {vehicle_type} vehicle available, trips will use a compatible type")

        return ValidationResult(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def _validate_trip(self, trip: Trip) -> List[str]:
        warnings = []

        if trip.is_return_trip and trip.original_trip_id is None:
            warnings.append(f"Trip {trip.id}: return trip without original trip")
        if trip.is_return_trip and not trip.earliest_pickup_time:
            warnings.append(f"Trip {trip.id}: return trip without earliest pickup time")
        if not trip.pickup_coordinates or not trip.destination_coordinates:
            warnings.append(f"Trip {trip.id}: missing coordinates, addresses will be geocoded")
        if trip.pickup.strip().lower() == trip.destination.strip().lower():
            warnings.append(f"Trip {trip.id}: pickup and destination are identical")

        return warnings

from medroute.services.validation import ValidationService

COORDS = {"pickup_coordinates": (6.1286, 43.1205), "destination_coordinates": (5.9282, 43.1242)}


class TestValidationService:
    def setup_method(self) -> None:
        self.service = ValidationService()

    def test_valid_request(self, make_trip, make_vehicle) -> None:
        result = self.service.validate_request([make_trip(1, **COORDS)], [make_vehicle(1)])

        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_empty_request(self) -> None:
        result = self.service.validate_request([], [])

        assert result.is_valid is False
        assert result.errors == ["No trips provided", "No vehicles provided"]

    def test_duplicate_ids(self, make_trip, make_vehicle) -> None:
        result = self.service.validate_request(
            [make_trip(1, **COORDS), make_trip(1, **COORDS)],
            [make_vehicle(1), make_vehicle(1)],
        )

        assert result.is_valid is False
        assert "Duplicate trip ID: 1" in result.errors
        assert "Duplicate vehicle ID: 1" in result.errors

    def test_trip_warnings(self, make_trip, make_vehicle) -> None:
        trips = [
            make_trip(1, destination="hyères "),
            make_trip(2, is_return_trip=True, **COORDS),
        ]

        result = self.service.validate_request(trips, [make_vehicle(1)])

        assert result.is_valid is True
        assert result.warnings == [
            "Trip 1: missing coordinates, addresses will be geocoded",
            "Trip 1: pickup and destination are identical",
            "Trip 2: return trip without original trip",
            "Trip 2: return trip without earliest pickup time",
        ]

    def test_original_trip_outside_request(self, make_trip, make_vehicle) -> None:
        ret = make_trip(2, is_return_trip=True, original_trip_id=7, earliest_pickup_time="10:00", **COORDS)

        result = self.service.validate_request([ret], [make_vehicle(1)])

        assert result.warnings == ["Trip 2: original trip 7 is not part of the request"]

    def test_fleet_warnings(self, make_trip, make_vehicle) -> None:
        trips = [make_trip(1, vehicle_type_required="Ambulance", **COORDS)]

        in_maintenance = self.service.validate_request(trips, [make_vehicle(1, status="maintenance")])
        assert in_maintenance.warnings == ["All vehicles are in maintenance, no trip can be assigned"]

        missing_type = self.service.validate_request(trips, [make_vehicle(1)])
        assert missing_type.warnings == ["No Ambulance vehicle available, trips will use a compatible type"]

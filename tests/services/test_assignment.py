import asyncio

from medroute.models import AssignmentThresholds
from medroute.services.assignment import (
    enhance_score,
    evaluate_vehicle,
    find_best_vehicle_assignment,
    rank_evaluations,
)
from medroute.services.context import OptimizationContext


class TestEnhanceScore:
    def test_exact_match_bonus(self, make_trip, make_vehicle) -> None:
        score, details = enhance_score(80, make_trip(1), make_vehicle(1))

        assert score == 90
        assert details.exact_type_match is True
        assert details.type_compatibility == 1.0
        assert details.availability_bonus == 10

    def test_cross_type_factor_and_floor(self, make_trip, make_vehicle) -> None:
        trip = make_trip(1, vehicle_type_required="Ambulance")

        score, details = enhance_score(80, trip, make_vehicle(1, type="VSL"))
        assert score == 64
        assert details.exact_type_match is False

        score, _ = enhance_score(30, trip, make_vehicle(1, type="Taxi"))
        assert score == 20

    def test_priority_boost(self, make_trip, make_vehicle) -> None:
        vehicle = make_vehicle(1)

        assert enhance_score(50, make_trip(1, priority="urgent"), vehicle)[0] == 75
        assert enhance_score(50, make_trip(1, priority="high"), vehicle)[0] == 68
        assert enhance_score(50, make_trip(1, priority="low"), vehicle)[0] == 60

    def test_busy_vehicle_penalty_and_floor(self, make_trip, make_vehicle) -> None:
        busy = make_vehicle(1, status="busy")

        score, details = enhance_score(70, make_trip(1), busy)
        assert score == 64
        assert details.status_penalty == 20

        assert enhance_score(0, make_trip(1), busy)[0] == 25

    def test_available_floor(self, make_trip, make_vehicle) -> None:
        assert enhance_score(0, make_trip(1), make_vehicle(1))[0] == 15

    def test_custom_floors(self, make_trip, make_vehicle) -> None:
        thresholds = AssignmentThresholds(available_floor=40)
        assert enhance_score(0, make_trip(1), make_vehicle(1), thresholds)[0] == 40


class TestFindBestVehicle:
    def test_exact_match_is_recommended(self, make_trip, make_vehicle) -> None:
        vehicles = [make_vehicle(1, type="Taxi"), make_vehicle(2, type="VSL")]

        result = asyncio.run(find_best_vehicle_assignment(make_trip(1), vehicles))

        assert result.success is True
        assert result.recommended.vehicle.id == 2
        assert result.recommended.optimization.score == 97
        assert result.recommended.optimization.original_score == 87
        assert [a.vehicle.id for a in result.alternatives] == [1]
        assert result.low_score is False
        assert result.forced is False

    def test_available_vehicle_wins_close_call(self, make_trip, make_vehicle) -> None:
        vehicles = [
            make_vehicle(1, type="VSL", status="busy"),
            make_vehicle(2, type="Ambulance"),
        ]

        result = asyncio.run(find_best_vehicle_assignment(make_trip(1), vehicles))

        assert result.recommended.vehicle.id == 2
        assert result.recommended.optimization.score == 76
        assert result.alternatives[0].optimization.score == 78

    def test_maintenance_vehicles_are_skipped(self, make_trip, make_vehicle) -> None:
        vehicles = [make_vehicle(1, status="maintenance"), make_vehicle(2, type="Taxi")]

        result = asyncio.run(find_best_vehicle_assignment(make_trip(1), vehicles))

        assert result.recommended.vehicle.id == 2
        assert result.alternatives == []

    def test_all_in_maintenance_fails(self, make_trip, make_vehicle) -> None:
        result = asyncio.run(
            find_best_vehicle_assignment(make_trip(1), [make_vehicle(1, status="maintenance")])
        )

        assert result.success is False
        assert result.recommended is None
        assert "maintenance" in result.message

    def test_empty_fleet_fails(self, make_trip) -> None:
        result = asyncio.run(find_best_vehicle_assignment(make_trip(1), []))
        assert result.success is False

    def test_poor_match_is_flagged(self, make_trip, make_vehicle) -> None:
        trip = make_trip(1, vehicle_type_required="Ambulance")

        result = asyncio.run(find_best_vehicle_assignment(trip, [make_vehicle(1, type="Taxi")]))

        assert result.success is True
        assert result.recommended.optimization.score == 25
        assert result.low_score is True
        assert result.force_assigned is True
        assert result.forced is False

    def test_forced_assignment_below_acceptance_floor(self, make_trip, make_vehicle) -> None:
        ctx = OptimizationContext(thresholds=AssignmentThresholds(acceptance_floor=200))

        result = asyncio.run(find_best_vehicle_assignment(make_trip(1), [make_vehicle(1)], ctx))

        assert result.success is True
        assert result.forced is True
        assert result.warning
        assert result.recommended.vehicle.id == 1

    def test_alternatives_are_capped(self, make_trip, make_vehicle) -> None:
        vehicles = [make_vehicle(i) for i in range(1, 8)]

        result = asyncio.run(find_best_vehicle_assignment(make_trip(1), vehicles))

        assert len(result.alternatives) == 4


class TestRanking:
    def test_rank_is_descending_outside_margin(self, make_trip, make_vehicle) -> None:
        async def evaluations():
            ctx = OptimizationContext()
            trip = make_trip(1)
            return [
                await evaluate_vehicle(trip, make_vehicle(1, type="Taxi"), ctx),
                await evaluate_vehicle(trip, make_vehicle(2, type="VSL"), ctx),
                await evaluate_vehicle(trip, make_vehicle(3, type="Ambulance"), ctx),
            ]

        ranked = rank_evaluations(asyncio.run(evaluations()))

        assert [e.vehicle.id for e in ranked] == [2, 3, 1]

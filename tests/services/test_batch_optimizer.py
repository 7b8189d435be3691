import asyncio

from medroute.core.diagnostics import Diagnostics
from medroute.models import AssignmentStatus, StrategyType
from medroute.services.batch_optimizer import (
    VehicleSchedules,
    apply_resolution_strategy,
    optimize_multiple_trips,
    sort_trips_for_assignment,
)
from medroute.services.context import OptimizationContext


def recording_context() -> OptimizationContext:
    return OptimizationContext(diagnostics=Diagnostics(record=True))


class TestSorting:
    def test_priority_then_time(self, make_trip) -> None:
        trips = [
            make_trip(1, appointment_time="08:00", priority="low"),
            make_trip(2, appointment_time="10:00", priority="urgent"),
            make_trip(3, appointment_time="07:30", priority="normal"),
            make_trip(4, appointment_time="09:00", priority="urgent"),
        ]

        assert [t.id for t in sort_trips_for_assignment(trips)] == [4, 2, 3, 1]


class TestOptimizeMultipleTrips:
    def test_spread_out_trips_are_assigned_in_first_pass(self, make_trip, make_vehicle) -> None:
        trips = [make_trip(1, appointment_time="09:00"), make_trip(2, appointment_time="14:00")]

        result = asyncio.run(optimize_multiple_trips(trips, [make_vehicle(1)]))

        assert result.success is True
        assert [r.pass_number for r in result.results] == [1, 1]
        assert all(r.status == AssignmentStatus.ASSIGNED for r in result.results)
        assert result.vehicle_assignments == {1: [1, 2]}
        assert result.summary.assignment_rate == 100
        assert result.conflict_resolution.total_conflicts == 0

    def test_conflict_resolved_by_time_adjustment(self, make_trip, make_vehicle) -> None:
        trips = [make_trip(1), make_trip(2)]
        ctx = recording_context()

        result = asyncio.run(optimize_multiple_trips(trips, [make_vehicle(1)], ctx))

        first, second = result.results
        assert first.trip.id == 1 and first.pass_number == 1
        assert second.trip.id == 2 and second.pass_number == 2
        assert second.status == AssignmentStatus.ASSIGNED
        assert second.resolution_applied == StrategyType.TIME_ADJUSTMENT
        assert second.trip.appointment_time == "08:30"
        assert second.resolution_details["old_time"] == "09:00"
        assert second.resolution_details["time_shift"] == -30
        assert second.resolution_strategies

        stats = result.conflict_resolution
        assert (stats.total_conflicts, stats.resolved_conflicts, stats.resolution_rate) == (1, 1, 100)
        assert result.summary.assigned_trips == 2
        assert [e.event for e in result.diagnostics] == [
            "assignment_made",
            "conflict_detected",
            "resolution_applied",
        ]

    def test_inputs_are_not_mutated(self, make_trip, make_vehicle) -> None:
        trips = [make_trip(1), make_trip(2)]
        vehicles = [make_vehicle(1)]

        asyncio.run(optimize_multiple_trips(trips, vehicles))

        assert [t.appointment_time for t in trips] == ["09:00", "09:00"]
        assert vehicles[0].trips == []

    def test_every_trip_appears_once(self, make_trip, make_vehicle) -> None:
        trips = [make_trip(i, appointment_time="09:00") for i in range(1, 6)]
        vehicles = [make_vehicle(1), make_vehicle(2, type="Ambulance")]

        result = asyncio.run(optimize_multiple_trips(trips, vehicles))

        assert sorted(r.trip.id for r in result.results) == [1, 2, 3, 4, 5]
        assert result.summary.total_trips == 5
        assigned = [r for r in result.results if r.is_assigned]
        assert sum(len(ids) for ids in result.vehicle_assignments.values()) == len(assigned)

    def test_all_vehicles_in_maintenance(self, make_trip, make_vehicle) -> None:
        ctx = recording_context()

        result = asyncio.run(
            optimize_multiple_trips([make_trip(1)], [make_vehicle(1, status="maintenance")], ctx)
        )

        (outcome,) = result.results
        assert outcome.status == AssignmentStatus.UNASSIGNED
        assert outcome.pass_number == 2
        assert "maintenance" in outcome.reason
        assert result.summary.unassigned_trips == 1
        assert result.conflict_resolution.unresolved_conflicts == 1
        assert [e.event for e in result.diagnostics] == ["trip_deferred", "trip_unassigned"]
        assert result.diagnostics[-1].level == "warning"

    def test_empty_batch(self, make_vehicle) -> None:
        result = asyncio.run(optimize_multiple_trips([], [make_vehicle(1)]))

        assert result.results == []
        assert result.summary.total_trips == 0
        assert result.summary.assignment_rate == 0
        assert result.conflict_resolution.resolution_rate == 100

    def test_existing_schedule_is_respected(self, make_trip, make_vehicle) -> None:
        busy = make_vehicle(1, trips=[make_trip(10, appointment_time="09:00").model_dump()])
        free = make_vehicle(2)

        result = asyncio.run(optimize_multiple_trips([make_trip(1)], [busy, free]))

        (outcome,) = result.results
        assert outcome.pass_number == 1
        assert outcome.vehicle_id == 2
        assert result.vehicle_assignments == {1: [10], 2: [1]}


class TestApplyResolutionStrategy:
    def test_unknown_vehicle(self, make_trip, make_vehicle) -> None:
        vehicles = [make_vehicle(1)]
        schedules = VehicleSchedules(vehicles)

        outcome = asyncio.run(
            apply_resolution_strategy(
                make_trip(1), StrategyType.VEHICLE_CHANGE, {"vehicle_id": 99}, schedules, vehicles
            )
        )

        assert outcome.success is False
        assert outcome.reason == "Target vehicle not available"

    def test_failed_time_adjustment_leaves_schedule_untouched(self, make_trip, make_vehicle) -> None:
        vehicles = [make_vehicle(1, trips=[make_trip(10).model_dump()])]
        schedules = VehicleSchedules(vehicles)
        trip = make_trip(1)

        outcome = asyncio.run(
            apply_resolution_strategy(
                trip,
                StrategyType.TIME_ADJUSTMENT,
                {"vehicle_id": 1, "new_time": "09:10"},
                schedules,
                vehicles,
            )
        )

        assert outcome.success is False
        assert trip.appointment_time == "09:00"
        assert schedules.as_ids() == {1: [10]}

    def test_vehicle_change(self, make_trip, make_vehicle) -> None:
        vehicles = [make_vehicle(1), make_vehicle(2)]
        schedules = VehicleSchedules(vehicles)

        outcome = asyncio.run(
            apply_resolution_strategy(
                make_trip(1), StrategyType.VEHICLE_CHANGE, {"vehicle_id": 2}, schedules, vehicles
            )
        )

        assert outcome.success is True
        assert outcome.vehicle_id == 2
        assert schedules.as_ids() == {1: [], 2: [1]}

    def test_rescheduling_moves_existing_trip(self, make_trip, make_vehicle) -> None:
        vehicles = [make_vehicle(1, trips=[make_trip(10).model_dump()])]
        schedules = VehicleSchedules(vehicles)
        option = {
            "vehicle_id": 1,
            "trip_to_reschedule": {"trip_id": 10, "patient": "Patient 10", "old_time": "09:00", "new_time": "14:00"},
        }

        outcome = asyncio.run(
            apply_resolution_strategy(make_trip(1), StrategyType.RESCHEDULE_EXISTING, option, schedules, vehicles)
        )

        assert outcome.success is True
        assert schedules.find(1, 10).appointment_time == "14:00"
        assert schedules.as_ids() == {1: [10, 1]}

    def test_rescheduling_missing_trip(self, make_trip, make_vehicle) -> None:
        vehicles = [make_vehicle(1)]
        option = {"vehicle_id": 1, "trip_to_reschedule": {"trip_id": 42, "new_time": "14:00"}}

        outcome = asyncio.run(
            apply_resolution_strategy(
                make_trip(1), StrategyType.RESCHEDULE_EXISTING, option, VehicleSchedules(vehicles), vehicles
            )
        )

        assert outcome.success is False
        assert "42" in outcome.reason

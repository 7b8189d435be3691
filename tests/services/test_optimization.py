import asyncio

from medroute.core.diagnostics import Diagnostics
from medroute.models import AssignmentThresholds
from medroute.services.geocoding import StaticGeocoder
from medroute.services.optimization import TripOptimizationService


def offline_service(offline_router, offline_solver, **kwargs) -> TripOptimizationService:
    return TripOptimizationService(
        geocoder=StaticGeocoder(), router=offline_router, solver=offline_solver, **kwargs
    )


class TestTripOptimizationService:
    def test_single_trip(self, make_trip, make_vehicle, offline_router, offline_solver) -> None:
        service = offline_service(offline_router, offline_solver)

        result = asyncio.run(service.optimize_single_trip(make_trip(1), [make_vehicle(1)]))

        assert result.success is True
        assert result.recommended.vehicle.id == 1

    def test_thresholds_are_applied(self, make_trip, make_vehicle, offline_router, offline_solver) -> None:
        service = offline_service(
            offline_router, offline_solver, thresholds=AssignmentThresholds(acceptance_floor=200)
        )

        result = asyncio.run(service.optimize_single_trip(make_trip(1), [make_vehicle(1)]))

        assert result.forced is True

    def test_batch_records_diagnostics(self, make_trip, make_vehicle, offline_router, offline_solver) -> None:
        service = offline_service(offline_router, offline_solver)

        result = asyncio.run(service.optimize_batch([make_trip(1)], [make_vehicle(1)]))

        assert [e.event for e in result.diagnostics] == ["assignment_made"]

    def test_consecutive_batches_start_from_clean_schedules(
        self, make_trip, make_vehicle, offline_router, offline_solver
    ) -> None:
        service = offline_service(offline_router, offline_solver)
        vehicles = [make_vehicle(1)]

        first = asyncio.run(service.optimize_batch([make_trip(1)], vehicles))
        second = asyncio.run(service.optimize_batch([make_trip(2)], vehicles))

        assert first.vehicle_assignments == {1: [1]}
        assert second.vehicle_assignments == {1: [2]}

    def test_shared_diagnostics_sink(self, make_trip, offline_router, offline_solver) -> None:
        received = []
        service = offline_service(
            offline_router, offline_solver, diagnostics=Diagnostics(callbacks=[received.append])
        )

        returns = service.generate_return_trips([make_trip(1, duration=30)])

        assert [t.id for t in returns] == [2]
        assert [e.event for e in received] == ["return_trip_generated"]

    def test_smart_optimize_and_status(self, make_trip, make_vehicle, offline_router, offline_solver) -> None:
        service = offline_service(offline_router, offline_solver)

        result = asyncio.run(service.smart_optimize([make_trip(1)], [make_vehicle(1)]))
        status = asyncio.run(service.get_service_status())

        assert result.fallback is True
        assert status.recommended_method == "local_fallback"

from collections.abc import Generator
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from medroute.api.deps import get_optimization_service
from medroute.main import app
from medroute.models import Trip, Vehicle
from medroute.services.geocoding import StaticGeocoder
from medroute.services.optimization import TripOptimizationService
from medroute.services.routing_service import OsrmRouter
from medroute.services.solver_service import VroomSolver
from tests.utils import offline_transport


@pytest.fixture
def make_trip() -> Callable[..., Trip]:
    def _make(id: int = 1, **overrides: Any) -> Trip:
        data = {
            "id": id,
            "patient": f"Patient {id}",
            "pickup": "Hyères",
            "destination": "Toulon",
            "appointment_time": "09:00",
            "vehicle_type_required": "VSL",
            "priority": "normal",
            "duration": 0,
        }
        data.update(overrides)
        return Trip.model_validate(data)

    return _make


@pytest.fixture
def make_vehicle() -> Callable[..., Vehicle]:
    def _make(id: int = 1, **overrides: Any) -> Vehicle:
        data = {
            "id": id,
            "name": f"Vehicle {id}",
            "type": "VSL",
            "status": "available",
        }
        data.update(overrides)
        return Vehicle.model_validate(data)

    return _make


@pytest.fixture
def offline_router() -> OsrmRouter:
    return OsrmRouter(base_url="http://osrm.local", fallback_urls=[], transport=offline_transport())


@pytest.fixture
def offline_solver() -> VroomSolver:
    return VroomSolver(base_url="http://vroom.local", fallback_urls=[], transport=offline_transport())


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    def offline_service() -> TripOptimizationService:
        return TripOptimizationService(
            geocoder=StaticGeocoder(),
            router=OsrmRouter(base_url="http://osrm.local", fallback_urls=[], transport=offline_transport()),
            solver=VroomSolver(base_url="http://vroom.local", fallback_urls=[], transport=offline_transport()),
        )

    app.dependency_overrides[get_optimization_service] = offline_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends

from medroute.services.geocoding import create_geocoder
from medroute.services.optimization import TripOptimizationService
from medroute.services.routing_service import OsrmRouter
from medroute.services.solver_service import VroomSolver


async def get_router() -> AsyncGenerator[OsrmRouter, None]:
    router = OsrmRouter()
    try:
        yield router
    finally:
        await router.close()


async def get_solver() -> AsyncGenerator[VroomSolver, None]:
    solver = VroomSolver()
    try:
        yield solver
    finally:
        await solver.close()


async def get_geocoder() -> AsyncGenerator:
    geocoder = create_geocoder()
    try:
        yield geocoder
    finally:
        await geocoder.close()


RouterDep = Annotated[OsrmRouter, Depends(get_router)]
SolverDep = Annotated[VroomSolver, Depends(get_solver)]
GeocoderDep = Annotated[object, Depends(get_geocoder)]


def get_optimization_service(
    router: RouterDep, solver: SolverDep, geocoder: GeocoderDep
) -> TripOptimizationService:
    """Service wired to the request-scoped provider clients, closed by their own dependencies."""
    return TripOptimizationService(geocoder=geocoder, router=router, solver=solver)


OptimizationServiceDep = Annotated[TripOptimizationService, Depends(get_optimization_service)]

from typing import Any

from fastapi import APIRouter, HTTPException

from medroute.api.deps import OptimizationServiceDep
from medroute.models import (
    AssignmentResult,
    BatchOptimizationRequest,
    OptimizationResult,
    ReturnTripsRequest,
    ReturnTripsResponse,
    ServiceStatus,
    SingleTripRequest,
    SmartOptimizationRequest,
    ValidationResult,
)
from medroute.services.validation import ValidationService

router = APIRouter(prefix="/optimization", tags=["optimization"])


def _ensure_valid(request: BatchOptimizationRequest) -> None:
    validation_result = ValidationService().validate_request(request.trips, request.vehicles)
    if not validation_result.is_valid:
        raise HTTPException(
            status_code=400,
            detail={"errors": validation_result.errors, "warnings": validation_result.warnings},
        )


@router.post("/validate", response_model=ValidationResult)
def validate_optimization_data(request: BatchOptimizationRequest) -> Any:
    """
    Validate trips and vehicles before optimization.
    """
    return ValidationService().validate_request(request.trips, request.vehicles)


@router.post("/single", response_model=AssignmentResult)
async def optimize_single_trip(
    service: OptimizationServiceDep, request: SingleTripRequest
) -> Any:
    """
    Recommend the best vehicle for one trip.
    """
    return await service.optimize_single_trip(request.trip, request.vehicles)


@router.post("/batch", response_model=OptimizationResult)
async def optimize_batch(
    service: OptimizationServiceDep, request: BatchOptimizationRequest
) -> Any:
    """
    Assign a list of trips with conflict detection and resolution.
    """
    _ensure_valid(request)
    return await service.optimize_batch(request.trips, request.vehicles)


@router.post("/smart", response_model=OptimizationResult)
async def smart_optimize(
    service: OptimizationServiceDep, request: SmartOptimizationRequest
) -> Any:
    """
    Optimize with the best available provider tier.
    """
    _ensure_valid(request)
    return await service.smart_optimize(request.trips, request.vehicles, request.options)


@router.post("/returns", response_model=ReturnTripsResponse)
def generate_return_trips(
    service: OptimizationServiceDep, request: ReturnTripsRequest
) -> Any:
    """
    Generate the return trips implied by appointment trips.
    """
    return_trips = service.generate_return_trips(request.trips)
    return ReturnTripsResponse(
        trips=list(request.trips) + return_trips,
        return_trips=return_trips,
        count=len(return_trips),
    )


@router.get("/status", response_model=ServiceStatus)
async def get_service_status(service: OptimizationServiceDep) -> Any:
    """
    Availability of the routing and solver providers.
    """
    return await service.get_service_status()

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from medroute.core.diagnostics import DiagnosticEvent
from .trip_models import Trip
from .vehicle_models import Vehicle


# ============= ENUMS =============
class ConflictSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


class StrategyType(str, Enum):
    TIME_ADJUSTMENT = "time_adjustment"
    VEHICLE_CHANGE = "vehicle_change"
    RESCHEDULE_EXISTING = "reschedule_existing"
    TRIP_OPTIMIZATION = "trip_optimization"


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"


class OptimizationMode(str, Enum):
    AUTO = "auto"
    SOLVER = "solver"
    ROUTER = "router"
    LOCAL = "local"


class RecommendedMethod(str, Enum):
    SOLVER_WITH_ROUTER = "solver_with_router"
    ROUTER_ONLY = "router_only"
    LOCAL_FALLBACK = "local_fallback"


# ============= CONFIGURATION SCHEMAS =============
class AssignmentThresholds(SQLModel):
    """Score floors used across the assignment pipeline."""

    acceptance_floor: int = Field(default=5, description="Minimum enhanced score accepted without forcing")
    available_floor: int = 15
    cross_type_floor: int = 20
    busy_floor: int = 25
    low_score: int = 50
    force_flag: int = 30
    vehicle_change_min: int = 30
    reschedule_min: int = 60
    time_adjustment_min: int = 60
    combine_min: int = 40
    router_greedy_min: int = 30
    fallback_min: int = 15


class TimeWindowConfig(SQLModel):
    """Buffers (minutes) for the interval conflict model and the solver windows."""

    appointment_buffer_before: int = Field(default=30, ge=0)
    appointment_buffer_after: int = Field(default=30, ge=0)
    return_trip_duration: int = Field(default=60, ge=0)
    buffer_between_appointments: int = Field(default=20, ge=0)
    buffer_between_returns: int = Field(default=10, ge=0)
    buffer_mixed: int = Field(default=15, ge=0)
    allow_conflict_penalty: bool = False
    conflict_penalty_score: int = 50
    min_assignment_score: int = 15
    working_hours: Tuple[int, int] = (6, 22)

    @field_validator("working_hours")
    @classmethod
    def validate_working_hours(cls, v: Tuple[int, int]) -> Tuple[int, int]:
        start, end = v
        if not 0 <= start < end <= 24:
            raise ValueError("Plage horaire de travail invalide")
        return v


# ============= SCORING =============
class Conflict(SQLModel):
    type: str = "time_overlap"
    conflicting_trip: Trip
    time_difference_minutes: int
    severity: ConflictSeverity


class ScoreDetails(SQLModel):
    vehicle_type_score: int = 0
    time_slot_score: int = 0
    distance_score: int = 0
    priority_score: int = 0
    distance_to_pickup: float = 0.0
    trip_distance: float = 0.0
    total_distance: float = 0.0
    time_to_pickup: int = 0
    trip_duration: int = 0
    total_time: int = 0
    estimated_arrival: Optional[str] = None
    fuel_cost: float = 0.0
    conflicts: List[Conflict] = Field(default_factory=list)
    error: Optional[str] = None


class OptimizationScore(SQLModel):
    score: int
    original_score: Optional[int] = None
    details: ScoreDetails = Field(default_factory=ScoreDetails)


class CompatibilityDetails(SQLModel):
    exact_type_match: bool
    type_compatibility: float
    priority_boost: int = 0
    status_penalty: int = 0
    availability_bonus: int = 0


class VehicleEvaluation(SQLModel):
    vehicle: Vehicle
    optimization: OptimizationScore
    is_available: bool
    is_busy: bool
    compatibility_details: Optional[CompatibilityDetails] = None


class AssignmentResult(SQLModel):
    success: bool
    message: str
    recommended: Optional[VehicleEvaluation] = None
    alternatives: List[VehicleEvaluation] = Field(default_factory=list)
    low_score: bool = False
    force_assigned: bool = False
    forced: bool = False
    warning: Optional[str] = None


# ============= CONFLICT RESOLUTION =============
class ResolutionStrategy(SQLModel):
    type: StrategyType
    description: str
    options: List[Dict[str, Any]] = Field(default_factory=list)


class ResolutionOutcome(SQLModel):
    success: bool
    reason: Optional[str] = None
    vehicle_id: Optional[int] = None
    optimization: Optional[OptimizationScore] = None
    details: Dict[str, Any] = Field(default_factory=dict)


# ============= RESULTS =============
class TripAssignment(SQLModel):
    trip: Trip
    status: AssignmentStatus
    vehicle_id: Optional[int] = None
    vehicle_name: Optional[str] = None
    optimization: Optional[OptimizationScore] = None
    pass_number: int = 1
    forced: bool = False
    low_score: bool = False
    fallback: bool = False
    resolution_applied: Optional[StrategyType] = None
    resolution_details: Optional[Dict[str, Any]] = None
    resolution_strategies: List[ResolutionStrategy] = Field(default_factory=list)
    available_strategies: List[str] = Field(default_factory=list)
    reason: Optional[str] = None

    @property
    def is_assigned(self) -> bool:
        return self.status == AssignmentStatus.ASSIGNED


class OptimizationSummary(SQLModel):
    total_trips: int = 0
    assigned_trips: int = 0
    unassigned_trips: int = 0
    assignment_rate: int = 0
    total_distance: float = 0.0
    total_time: int = 0
    average_optimization_score: int = 0
    estimated_fuel_cost: float = 0.0
    total_cost: Optional[float] = None
    computing_times: Optional[Dict[str, Any]] = None


class ConflictResolutionStats(SQLModel):
    total_conflicts: int = 0
    resolved_conflicts: int = 0
    unresolved_conflicts: int = 0
    resolution_rate: int = 0


class ServiceStatus(SQLModel):
    router_available: bool = False
    solver_available: bool = False
    recommended_method: RecommendedMethod = RecommendedMethod.LOCAL_FALLBACK
    checked_at: datetime = Field(default_factory=datetime.now)


class OptimizationResult(SQLModel):
    """Common result shape for every optimization path."""

    success: bool = True
    algorithm: str
    results: List[TripAssignment] = Field(default_factory=list)
    summary: OptimizationSummary = Field(default_factory=OptimizationSummary)
    conflict_resolution: Optional[ConflictResolutionStats] = None
    vehicle_assignments: Dict[int, List[int]] = Field(default_factory=dict)
    routes: Optional[List[Dict[str, Any]]] = None
    unassigned: Optional[List[Dict[str, Any]]] = None
    fallback: bool = False
    server_used: Optional[str] = None
    service_status: Optional[ServiceStatus] = None
    diagnostics: List[DiagnosticEvent] = Field(default_factory=list)


class ValidationResult(SQLModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


# ============= REQUESTS =============
class SmartOptimizeOptions(SQLModel):
    mode: OptimizationMode = OptimizationMode.AUTO
    generate_returns: bool = False
    max_route_time: Optional[int] = Field(
        default=None,
        gt=0,
        description="Durée maximale d'une tournée en secondes",
    )
    time_window_config: TimeWindowConfig = Field(default_factory=TimeWindowConfig)
    thresholds: AssignmentThresholds = Field(default_factory=AssignmentThresholds)


class SingleTripRequest(SQLModel):
    trip: Trip
    vehicles: List[Vehicle]


class BatchOptimizationRequest(SQLModel):
    trips: List[Trip]
    vehicles: List[Vehicle]


class SmartOptimizationRequest(BatchOptimizationRequest):
    options: SmartOptimizeOptions = Field(default_factory=SmartOptimizeOptions)


class ReturnTripsRequest(SQLModel):
    trips: List[Trip]


class ReturnTripsResponse(SQLModel):
    trips: List[Trip]
    return_trips: List[Trip]
    count: int

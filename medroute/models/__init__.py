"""Model shortcuts for the FastAPI app."""

from .trip_models import (  # noqa: F401
    Coordinates,
    Trip,
    TripBase,
    TripPriority,
    TripsPublic,
    VehicleType,
)
from .vehicle_models import Vehicle, VehicleBase, VehicleStatus  # noqa: F401
from .optimization_models import (  # noqa: F401
    AssignmentResult,
    AssignmentStatus,
    AssignmentThresholds,
    BatchOptimizationRequest,
    CompatibilityDetails,
    Conflict,
    ConflictResolutionStats,
    ConflictSeverity,
    OptimizationMode,
    OptimizationResult,
    OptimizationScore,
    OptimizationSummary,
    RecommendedMethod,
    ResolutionOutcome,
    ResolutionStrategy,
    ReturnTripsRequest,
    ReturnTripsResponse,
    ScoreDetails,
    ServiceStatus,
    SingleTripRequest,
    SmartOptimizationRequest,
    SmartOptimizeOptions,
    StrategyType,
    TimeWindowConfig,
    TripAssignment,
    ValidationResult,
    VehicleEvaluation,
)

from typing import List, Optional
from enum import Enum

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from .trip_models import Coordinates, Trip, VehicleType


class VehicleStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    MAINTENANCE = "maintenance"


class VehicleBase(SQLModel):
    name: str = Field(max_length=255)
    type: VehicleType
    status: VehicleStatus = VehicleStatus.AVAILABLE
    current_location: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Adresse actuelle du véhicule (Hyères par défaut)",
    )
    coordinates: Optional[Coordinates] = None

    @field_validator("coordinates")
    @classmethod
    def validate_coordinates(cls, v: Optional[Coordinates]) -> Optional[Coordinates]:
        if v is None:
            return v
        lng, lat = v
        if not -180 <= lng <= 180 or not -90 <= lat <= 90:
            raise ValueError("Coordonnées invalides (longitude, latitude)")
        return v


class Vehicle(VehicleBase):
    id: int
    # Insertion order during an optimization pass, not time order
    trips: List[Trip] = Field(default_factory=list)

    @property
    def is_assignable(self) -> bool:
        return self.status != VehicleStatus.MAINTENANCE

    def with_trips(self, trips: List[Trip]) -> "Vehicle":
        """Snapshot of this vehicle carrying ``trips`` as its schedule."""
        return self.model_copy(update={"trips": trips})

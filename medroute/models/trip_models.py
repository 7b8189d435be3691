from typing import Any, Dict, List, Optional, Tuple
from enum import Enum

from pydantic import field_validator, model_validator
from sqlmodel import Field, SQLModel

from medroute.core.time_utils import (
    minutes_to_time,
    normalize_time,
    time_to_minutes,
)

# (lng, lat), the order routing providers expect
Coordinates = Tuple[float, float]


# ============= ENUMS =============
class VehicleType(str, Enum):
    AMBULANCE = "Ambulance"
    VSL = "VSL"
    TAXI = "Taxi"


class TripPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


PRIORITY_ORDER: Dict[str, int] = {"urgent": 4, "high": 3, "normal": 2, "low": 1}

DEFAULT_MAX_WAIT_MINUTES = 240


# ============= TRIP MODELS =============
class TripBase(SQLModel):
    patient: str = Field(max_length=255)
    pickup: str = Field(max_length=500, description="Adresse de prise en charge")
    destination: str = Field(max_length=500, description="Adresse de destination")
    pickup_coordinates: Optional[Coordinates] = None
    destination_coordinates: Optional[Coordinates] = None

    appointment_time: str = Field(description="Heure de rendez-vous (HH:MM)")
    duration: int = Field(
        default=0,
        ge=0,
        description="Durée du rendez-vous en minutes, 0 = pas de retour",
    )
    return_time: Optional[str] = None

    vehicle_type_required: VehicleType = VehicleType.VSL
    priority: TripPriority = TripPriority.NORMAL
    status: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    # Return trips only
    is_return_trip: bool = False
    original_trip_id: Optional[int] = None
    exit_time: Optional[str] = None
    earliest_pickup_time: Optional[str] = None
    max_wait_minutes: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def coalesce_time_fields(cls, data: Any) -> Any:
        """Accept the legacy ``pickup_time`` / ``time`` fields as the appointment time."""
        if isinstance(data, dict) and not data.get("appointment_time"):
            data = dict(data)
            for legacy in ("pickup_time", "pickupTime", "time"):
                if data.get(legacy):
                    data["appointment_time"] = data[legacy]
                    break
        return data

    @field_validator("appointment_time")
    @classmethod
    def validate_appointment_time(cls, v: str) -> str:
        return normalize_time(v)

    @field_validator("return_time", "exit_time", "earliest_pickup_time")
    @classmethod
    def validate_optional_time(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        return normalize_time(v)

    @field_validator("pickup_coordinates", "destination_coordinates")
    @classmethod
    def validate_coordinates(cls, v: Optional[Coordinates]) -> Optional[Coordinates]:
        if v is None:
            return v
        lng, lat = v
        if not -180 <= lng <= 180 or not -90 <= lat <= 90:
            raise ValueError("Coordonnées invalides (longitude, latitude)")
        return v


class Trip(TripBase):
    id: int

    @property
    def time_minutes(self) -> int:
        return time_to_minutes(self.appointment_time)

    @property
    def is_urgent(self) -> bool:
        return self.priority == TripPriority.URGENT

    def _shifted_fields(self, new_time: str) -> Dict[str, Any]:
        delta = time_to_minutes(new_time) - self.time_minutes
        update: Dict[str, Any] = {"appointment_time": new_time}
        if self.is_return_trip:
            for name in ("exit_time", "earliest_pickup_time"):
                value = getattr(self, name)
                if value:
                    update[name] = minutes_to_time(time_to_minutes(value) + delta)
        return update

    def rescheduled_copy(self, new_time: str) -> "Trip":
        """Return a copy moved to ``new_time``; return-trip windows move with it."""
        return self.model_copy(update=self._shifted_fields(new_time))

    def reschedule(self, new_time: str) -> None:
        """Move this trip to ``new_time`` in place."""
        for name, value in self._shifted_fields(new_time).items():
            setattr(self, name, value)


class TripsPublic(SQLModel):
    data: List[Trip]
    count: int


def enum_value(value: Any) -> Any:
    """Plain value of an enum member, or the value itself."""
    return getattr(value, "value", value)


def priority_rank(priority: Any) -> int:
    return PRIORITY_ORDER.get(enum_value(priority), 2)

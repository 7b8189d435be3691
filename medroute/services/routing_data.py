import logging
from typing import Dict, List, Optional, Tuple

from medroute.core.config import settings
from medroute.models import Trip, Vehicle
from .scoring import haversine_km, trip_points, vehicle_point

logger = logging.getLogger(__name__)


class RoutingData:
    """Unique locations of a problem and the matrices between them."""

    def __init__(
        self,
        locations: List[Tuple[float, float]],
        index: Dict[str, int],
        distances: List[List[float]],
        durations: List[List[float]],
        fallback: bool = True,
        server_used: Optional[str] = None,
    ):
        self.locations = locations  # (lat, lng)
        self.index = index
        self.distances = distances  # meters
        self.durations = durations  # seconds
        self.fallback = fallback
        self.server_used = server_used

    def pickup_index(self, trip: Trip) -> int:
        return self.index[f"trip:{trip.id}:pickup"]

    def destination_index(self, trip: Trip) -> int:
        return self.index[f"trip:{trip.id}:destination"]

    def vehicle_index(self, vehicle: Vehicle) -> int:
        return self.index[f"vehicle:{vehicle.id}"]

    def distance_km(self, origin: int, target: int) -> float:
        return self.distances[origin][target] / 1000

    def duration_min(self, origin: int, target: int) -> float:
        return self.durations[origin][target] / 60


def haversine_matrix(locations: List[Tuple[float, float]]) -> Tuple[List[List[float]], List[List[float]]]:
    n = len(locations)
    distances = [[0.0] * n for _ in range(n)]
    durations = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(n):
            if i != j:
                km = haversine_km(locations[i], locations[j])
                distances[i][j] = km * 1000
                durations[i][j] = km / settings.FALLBACK_SPEED_KMH * 3600
    return distances, durations


async def build_routing_data(
    trips: List[Trip],
    vehicles: List[Vehicle],
    geocoder,
    router=None,
) -> RoutingData:
    """Geocode every vehicle start, pickup and destination and build the matrices."""
    locations: List[Tuple[float, float]] = []
    positions: Dict[Tuple[float, float], int] = {}
    index: Dict[str, int] = {}

    def register(key: str, point: Tuple[float, float]) -> None:
        rounded = (round(point[0], 6), round(point[1], 6))
        if rounded not in positions:
            positions[rounded] = len(locations)
            locations.append(rounded)
        index[key] = positions[rounded]

    for vehicle in vehicles:
        register(f"vehicle:{vehicle.id}", await vehicle_point(vehicle, geocoder))
    scheduled = [t for vehicle in vehicles for t in vehicle.trips]
    for trip in list(trips) + scheduled:
        if f"trip:{trip.id}:pickup" in index:
            continue
        pickup, destination = await trip_points(trip, geocoder)
        register(f"trip:{trip.id}:pickup", pickup)
        register(f"trip:{trip.id}:destination", destination)

    if router is not None and len(locations) > 1:
        matrix = await router.get_matrix([(lng, lat) for lat, lng in locations])
        return RoutingData(
            locations,
            index,
            matrix["distances"],
            matrix["durations"],
            fallback=not matrix.get("success", False),
            server_used=matrix.get("server_used"),
        )

    distances, durations = haversine_matrix(locations)
    logger.info(f"Built local distance matrix for {len(locations)} locations")
    return RoutingData(locations, index, distances, durations, fallback=True)

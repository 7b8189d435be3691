import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import polyline as pl

from medroute.core.config import settings
from medroute.models import Coordinates
from .scoring import haversine_km

logger = logging.getLogger(__name__)

# Hyères -> Toulon, (lng, lat)
PROBE_COORDINATES: List[Coordinates] = [(6.1286, 43.1205), (5.9282, 43.1242)]


def has_route(data: Dict[str, Any]) -> bool:
    routes = data.get("routes")
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
        return False
    return all(isinstance(routes[0].get(key), (int, float)) for key in ("distance", "duration"))


def has_square_table(data: Dict[str, Any], size: int) -> bool:
    """True when both annotation matrices are ``size`` x ``size``."""
    for key in ("distances", "durations"):
        matrix = data.get(key)
        if not isinstance(matrix, list) or len(matrix) != size:
            return False
        for row in matrix:
            if not isinstance(row, list) or len(row) != size:
                return False
            # Unreachable pairs come back as null
            if any(cell is not None and not isinstance(cell, (int, float)) for cell in row):
                return False
    return True


class OsrmRouter:
    """
    Client for the OSRM HTTP API.

    Endpoints are tried in order: the local instance first, then the public
    fallbacks, each with its own timeout. When none answers, distances and
    durations degrade to a Haversine estimate at a fixed speed.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        fallback_urls: Optional[List[str]] = None,
        timeout: Optional[float] = None,
        fallback_timeout: Optional[float] = None,
        attempts: Optional[int] = None,
        profile: str = "driving",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base_url = base_url or settings.OSRM_BASE_URL
        fallback_urls = settings.OSRM_FALLBACK_URLS if fallback_urls is None else fallback_urls
        self.endpoints: List[Tuple[str, float]] = [
            (base_url.rstrip("/"), timeout or settings.OSRM_TIMEOUT)
        ] + [
            (url.rstrip("/"), fallback_timeout or settings.OSRM_FALLBACK_TIMEOUT)
            for url in fallback_urls
        ]
        self.attempts = attempts or settings.PROVIDER_ATTEMPTS
        self.profile = profile
        self.speed_kmh = settings.FALLBACK_SPEED_KMH
        self.client = httpx.AsyncClient(transport=transport)

    async def _request(
        self,
        service: str,
        coordinates: List[Coordinates],
        params: Dict[str, Any],
        is_valid: Callable[[Dict[str, Any]], bool],
    ) -> Optional[Tuple[Dict[str, Any], str]]:
        path = ";".join(f"{lng},{lat}" for lng, lat in coordinates)
        for base_url, timeout in self.endpoints:
            for attempt in range(1, self.attempts + 1):
                try:
                    response = await self.client.get(
                        f"{base_url}/{service}/v1/{self.profile}/{path}",
                        params=params,
                        timeout=timeout,
                    )
                    if not response.is_success:
                        logger.warning(f"OSRM {base_url} returned HTTP {response.status_code} (attempt {attempt})")
                        continue
                    data = response.json()
                    if not isinstance(data, dict):
                        logger.warning(f"OSRM {base_url} returned a malformed {service} answer")
                        continue
                    if data.get("code") != "Ok":
                        logger.warning(f"OSRM {base_url} answered code {data.get('code')}")
                        continue
                    if not is_valid(data):
                        logger.warning(f"OSRM {base_url} returned a malformed {service} answer")
                        continue
                    return data, base_url
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning(f"OSRM {base_url} unreachable (attempt {attempt}): {e}")
        return None

    async def get_route(
        self,
        coordinates: List[Coordinates],
        overview: str = "full",
        steps: bool = False,
    ) -> Dict[str, Any]:
        """Route through ``coordinates`` (lng, lat) in order."""
        if len(coordinates) < 2:
            raise ValueError("A route needs at least two coordinates")

        answer = await self._request(
            "route",
            coordinates,
            {"overview": overview, "geometries": "polyline", "steps": str(steps).lower()},
            has_route,
        )
        if answer is None:
            return self._get_fallback_route(coordinates)

        data, base_url = answer
        route = data["routes"][0]
        geometry = route.get("geometry")
        if not isinstance(geometry, str):
            geometry = ""
        return {
            "distance_km": round(route["distance"] / 1000, 1),
            "duration_min": round(route["duration"] / 60),
            "geometry": geometry,
            "path": self.decode_polyline(geometry),
            "legs": route.get("legs") or [],
            "success": True,
            "server_used": base_url,
        }

    def _get_fallback_route(self, coordinates: List[Coordinates]) -> Dict[str, Any]:
        """Fallback route calculation using haversine distance."""
        points = [(lat, lng) for lng, lat in coordinates]
        distance = sum(haversine_km(a, b) for a, b in zip(points, points[1:]))
        return {
            "distance_km": round(distance, 1),
            "duration_min": round(distance / self.speed_kmh * 60),
            "geometry": pl.encode(points),
            "path": points,
            "legs": [],
            "success": False,
            "fallback": True,
        }

    async def get_matrix(self, coordinates: List[Coordinates]) -> Dict[str, Any]:
        """Distances (meters) and durations (seconds) between all ``coordinates``."""
        if len(coordinates) < 2:
            return self._get_fallback_matrix(coordinates)

        size = len(coordinates)
        answer = await self._request(
            "table",
            coordinates,
            {"annotations": "duration,distance"},
            lambda data: has_square_table(data, size),
        )
        if answer is None:
            return self._get_fallback_matrix(coordinates)

        data, base_url = answer
        durations = data["durations"]
        distances = data["distances"]
        estimate = self._get_fallback_matrix(coordinates)
        return {
            "distances": [
                [distances[i][j] if distances[i][j] is not None else estimate["distances"][i][j] for j in range(size)]
                for i in range(size)
            ],
            "durations": [
                [durations[i][j] if durations[i][j] is not None else estimate["durations"][i][j] for j in range(size)]
                for i in range(size)
            ],
            "success": True,
            "server_used": base_url,
        }

    def _get_fallback_matrix(self, coordinates: List[Coordinates]) -> Dict[str, Any]:
        """Fallback matrix calculation using haversine distance."""
        n = len(coordinates)
        distances = [[0.0] * n for _ in range(n)]
        durations = [[0.0] * n for _ in range(n)]

        for i in range(n):
            for j in range(n):
                if i != j:
                    dist = haversine_km(
                        (coordinates[i][1], coordinates[i][0]),
                        (coordinates[j][1], coordinates[j][0]),
                    )
                    distances[i][j] = dist * 1000
                    durations[i][j] = dist / self.speed_kmh * 3600

        return {
            "distances": distances,
            "durations": durations,
            "success": False,
            "fallback": True,
        }

    async def is_available(self) -> bool:
        route = await self.get_route(PROBE_COORDINATES, overview="false")
        return bool(route.get("success"))

    def decode_polyline(self, encoded_polyline: str) -> List[Tuple[float, float]]:
        """Decode a polyline string into latitude/longitude coordinates."""
        if not encoded_polyline:
            return []
        try:
            return pl.decode(encoded_polyline)
        except (ValueError, IndexError):
            logger.warning("Could not decode route geometry")
            return []

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

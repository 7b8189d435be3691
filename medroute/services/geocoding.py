import logging
from typing import Dict, Optional, Tuple

import httpx

from medroute.core.config import settings

logger = logging.getLogger(__name__)

# (lat, lng)
DEFAULT_LOCATION: Tuple[float, float] = (43.1205, 6.1286)  # Hyères
DEFAULT_LOCALITY = "hyères"

LOCALITIES: Dict[str, Tuple[float, float]] = {
    # Var
    "hyères": (43.1205, 6.1286),
    "toulon": (43.1242, 5.9282),
    "la seyne-sur-mer": (43.1042, 5.8785),
    "la seyne": (43.1042, 5.8785),
    "six-fours": (43.0939, 5.8372),
    "ollioules": (43.1395, 5.8475),
    "sanary": (43.1196, 5.7998),
    "bandol": (43.1356, 5.7531),
    "le pradet": (43.0817, 6.0269),
    "carqueiranne": (43.0947, 6.0783),
    # Vaucluse
    "carpentras": (44.0550, 5.0481),
    "avignon": (43.9493, 4.8055),
    "monteux": (44.0333, 5.0067),
    "pernes": (44.0061, 5.0572),
    "l'isle-sur-la-sorgue": (43.9186, 5.0506),
    "vedène": (44.0, 4.9),
    "sarrians": (44.0833, 4.9667),
    "aubignan": (44.0833, 5.0333),
    "saint-didier": (44.0167, 5.1),
    "mazan": (44.0667, 5.1167),
    "mormoiron": (44.0667, 5.1833),
    "entraigues": (44.0, 4.9167),
    "sorgues": (44.0167, 4.8667),
    "le thor": (43.9333, 5.0),
    "châteauneuf-du-pape": (44.0556, 4.8306),
}

# Facilities without a locality in the address resolve to the Avignon hospital area
FACILITY_KEYWORDS: Dict[str, Tuple[float, float]] = {
    "centre hospitalier": (43.9493, 4.8055),
    "polyclinique": (43.9493, 4.8055),
    "hôpital": (43.9493, 4.8055),
    "clinique": (43.9493, 4.8055),
    "ehpad": (43.9493, 4.8055),
    "chu": (43.9493, 4.8055),
}


def find_locality(address: Optional[str]) -> Optional[str]:
    """Name of the first known locality contained in ``address``."""
    text = (address or "").lower()
    # Longest names first so "la seyne-sur-mer" wins over "la seyne"
    for name in sorted(LOCALITIES, key=len, reverse=True):
        if name in text:
            return name
    return None


class StaticGeocoder:
    """Gazetteer lookup by case-insensitive substring, Hyères when nothing matches."""

    async def geocode(self, address: Optional[str]) -> Tuple[float, float]:
        return self.lookup(address)

    def lookup(self, address: Optional[str]) -> Tuple[float, float]:
        locality = find_locality(address)
        if locality:
            return LOCALITIES[locality]
        text = (address or "").lower()
        for keyword, location in FACILITY_KEYWORDS.items():
            if keyword in text:
                return location
        return DEFAULT_LOCATION

    async def close(self):
        pass


class NominatimGeocoder:
    """Nominatim-compatible HTTP geocoder degrading to the gazetteer."""

    def __init__(self, base_url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": f"{settings.PROJECT_NAME}/1.0"},
        )
        self.fallback = StaticGeocoder()
        self._cache: Dict[str, Tuple[float, float]] = {}

    async def geocode(self, address: Optional[str]) -> Tuple[float, float]:
        if not address:
            return DEFAULT_LOCATION
        if address in self._cache:
            return self._cache[address]
        try:
            response = await self.client.get(
                f"{self.base_url}/search",
                params={"q": address, "format": "json", "limit": 1},
            )
            if response.status_code == 200:
                results = response.json()
                if results:
                    location = (float(results[0]["lat"]), float(results[0]["lon"]))
                    self._cache[address] = location
                    return location
            logger.warning(f"Geocoder returned no result for '{address}', using gazetteer")
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as e:
            logger.warning(f"Geocoding failed for '{address}': {e}")
        return self.fallback.lookup(address)

    async def close(self):
        await self.client.aclose()


def create_geocoder():
    if settings.GEOCODER_URL:
        return NominatimGeocoder(settings.GEOCODER_URL, timeout=settings.GEOCODER_TIMEOUT)
    return StaticGeocoder()

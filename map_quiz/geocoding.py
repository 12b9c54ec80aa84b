"""
Place name resolution.

NominatimResolver queries an OpenStreetMap Nominatim server over HTTP with
httpx.AsyncClient; StaticResolver serves features from memory.
"""
import asyncio
import logging
import time
from typing import Dict, List, Optional, Protocol, Tuple

import httpx

from .errors import PlaceNotFoundError, UnsupportedGeometryError
from .models import GeographicFeature

logger = logging.getLogger(__name__)

DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org"
DEFAULT_USER_AGENT = "map-click-quiz/1.0"
# Results fetched per lookup; the first with a supported geometry is used
RESOLVE_CANDIDATES = 5

# Region name -> ((south, west), (north, east))
REGIONS: Dict[str, Tuple[Tuple[float, float], Tuple[float, float]]] = {
    'World': ((-90, -180), (90, 180)),
    'North America': ((15, -170), (72, -50)),
    'South America': ((-56, -81), (13, -34)),
    'Europe': ((35, -25), (71, 40)),
    'Africa': ((-35, -20), (37, 55)),
    'Asia': ((5, 60), (55, 150)),
    'Oceania': ((-50, 110), (10, 180)),
}


class GeometryResolver(Protocol):
    async def resolve(self, place_name: str) -> GeographicFeature:
        """Return the feature for a place name or raise PlaceNotFoundError."""
        ...


class NominatimResolver:
    """Resolves place names with the Nominatim search API (GeoJSON output)."""

    def __init__(
        self,
        base_url: str = DEFAULT_NOMINATIM_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 10.0,
        polygon: bool = True,
        min_interval: float = 1.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Args:
            base_url: Nominatim server root
            user_agent: Identifying User-Agent, required by the public server's usage policy
            timeout: Per-request timeout in seconds
            polygon: Ask for full outlines (polygon_geojson=1) instead of centre points
            min_interval: Minimum seconds between requests (public server allows one per second)
            client: Pre-built client, mainly for tests
        """
        self.base_url = base_url.rstrip("/")
        self.polygon = polygon
        self.min_interval = min_interval
        self._last_request = 0.0
        self._throttle_lock = asyncio.Lock()
        self.client = client or httpx.AsyncClient(
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            timeout=timeout
        )

    async def resolve(self, place_name: str) -> GeographicFeature:
        """
        Resolve a single place name to its first supported feature.

        Raises:
            PlaceNotFoundError: No results, an HTTP/network failure, or only unsupported geometry
        """
        features = await self.search(place_name, limit=RESOLVE_CANDIDATES)
        if not features:
            raise PlaceNotFoundError(place_name)
        return features[0]

    async def search(
        self,
        query: str,
        limit: int = 10,
        viewbox: Optional[Tuple[Tuple[float, float], Tuple[float, float]]] = None
    ) -> List[GeographicFeature]:
        """
        Search Nominatim and return every usable feature in result order.

        Args:
            query: Free-text search
            limit: Maximum number of results requested
            viewbox: ((south, west), (north, east)) box; results are bounded to it

        Raises:
            PlaceNotFoundError: On HTTP or network failure or an unreadable response
        """
        params = {"format": "geojson", "q": query, "limit": str(limit)}
        if self.polygon:
            params["polygon_geojson"] = "1"
        if viewbox:
            (south, west), (north, east) = viewbox
            params["viewbox"] = f"{west},{north},{east},{south}"
            params["bounded"] = "1"

        await self._throttle()
        try:
            response = await self.client.get(f"{self.base_url}/search", params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Nominatim returned HTTP {e.response.status_code} for {query!r}")
            raise PlaceNotFoundError(query, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Nominatim request failed for {query!r}: {e}")
            raise PlaceNotFoundError(query, f"request failed: {e}") from e
        except ValueError as e:
            logger.error(f"Nominatim returned invalid JSON for {query!r}: {e}")
            raise PlaceNotFoundError(query, "invalid response") from e

        features = []
        for raw in (data.get("features") or []) if isinstance(data, dict) else []:
            try:
                features.append(GeographicFeature.from_geojson(raw))
            except UnsupportedGeometryError as e:
                logger.info(f"Skipping result for {query!r}: {e}")
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed result for {query!r}: {e}")

        logger.debug(f"Nominatim search {query!r} returned {len(features)} usable features")
        return features

    async def _throttle(self) -> None:
        """Wait for this request's slot; callers are released one at a time."""
        async with self._throttle_lock:
            wait = self._last_request + self.min_interval - time.monotonic()
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = time.monotonic()

    async def aclose(self) -> None:
        await self.client.aclose()


class StaticResolver:
    """Resolves place names from an in-memory mapping (case-insensitive)."""

    def __init__(self, places: Optional[Dict[str, GeographicFeature]] = None):
        self._places: Dict[str, GeographicFeature] = {}
        for name, feature in (places or {}).items():
            self.add(name, feature)

    def add(self, place_name: str, feature: GeographicFeature) -> None:
        self._places[place_name.strip().casefold()] = feature

    async def resolve(self, place_name: str) -> GeographicFeature:
        feature = self._places.get(place_name.strip().casefold())
        if feature is None:
            raise PlaceNotFoundError(place_name)
        return feature

    async def search(self, query: str, limit: int = 10, viewbox=None) -> List[GeographicFeature]:
        return list(self._places.values())[:limit]

    async def aclose(self) -> None:
        pass

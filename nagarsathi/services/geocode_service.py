"""
Nominatim (OpenStreetMap) geocoding proxy.

The browser cannot call Nominatim directly with an identifying
User-Agent, so the API forwards lookups on its behalf.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from nagarsathi.core import config

logger = logging.getLogger(__name__)


class GeocodeError(Exception):
    """Upstream geocoder failure."""


class GeocodeService:
    def __init__(
        self,
        base_url: str = config.NOMINATIM_URL,
        user_agent: str = config.GEOCODER_USER_AGENT,
        timeout_seconds: float = config.HTTP_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"Accept-Language": "en", "User-Agent": user_agent}
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout, headers=self.headers)

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get(self, path: str, params: Dict[str, Any]):
        await self.start()
        try:
            async with self._session.get(f"{self.base_url}{path}", params=params) as resp:
                if resp.status != 200:
                    raise GeocodeError(f"Nominatim API error: {resp.status}")
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GeocodeError(f"Nominatim request failed: {e!r}") from e

    async def search(self, query: str) -> Optional[Dict[str, Any]]:
        """Forward geocode: first match for an address, or None."""
        results = await self._get("/search", {"format": "json", "q": query, "limit": 1})
        if not results:
            return None
        first = results[0]
        return {
            "lat": first.get("lat"),
            "lon": first.get("lon"),
            "display_name": first.get("display_name"),
        }

    async def reverse(self, lat: str, lon: str) -> Dict[str, Any]:
        """Reverse geocode a coordinate pair into an address."""
        data = await self._get(
            "/reverse",
            {"format": "json", "lat": lat, "lon": lon, "addressdetails": 1},
        )
        return {
            "display_name": data.get("display_name"),
            "address": data.get("address"),
            "lat": data.get("lat"),
            "lon": data.get("lon"),
        }

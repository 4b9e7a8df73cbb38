"""
Geocoding Routes
Base path: /api/geocode
Proxy for the OpenStreetMap Nominatim API to avoid CORS issues
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from nagarsathi.services.geocode_service import GeocodeError, GeocodeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/geocode", tags=["Geocode"])


def get_geocoder(request: Request) -> GeocodeService:
    return request.app.state.geocoder


@router.get("/search")
async def forward_geocode(
    q: Optional[str] = Query(None, description="Free-text address"),
    geocoder: GeocodeService = Depends(get_geocoder),
):
    """Convert an address to coordinates (first match only)."""
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Address query is required")

    try:
        result = await geocoder.search(q.strip())
    except GeocodeError as e:
        logger.error(f"Forward geocoding error: {e}")
        raise HTTPException(status_code=500, detail="Failed to find coordinates for address")

    return {"success": True, "data": result}


@router.get("/reverse")
async def reverse_geocode(
    lat: Optional[str] = Query(None),
    lon: Optional[str] = Query(None),
    geocoder: GeocodeService = Depends(get_geocoder),
):
    """Convert coordinates to an address."""
    if not lat or not lon:
        raise HTTPException(status_code=400, detail="Latitude and longitude are required")

    try:
        result = await geocoder.reverse(lat, lon)
    except GeocodeError as e:
        logger.error(f"Reverse geocoding error: {e}")
        raise HTTPException(status_code=500, detail="Failed to get address from coordinates")

    return {"success": True, "data": result}

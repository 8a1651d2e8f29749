from __future__ import annotations

import json
import math
import random
from typing import Any

import httpx

from .config import CatchmentConfig
from .schemas import Location, TravelTimePolygon
from .upstream import UpstreamAPIError, request_json

AVERAGE_SPEEDS_KMH = {
    "driving": 45,
    "walking": 5,
    "bicycling": 15,
    "transit": 25,
}
DEFAULT_SPEED_KMH = 30

# (min, max) radius multiplier per vertex; road-bound modes are less circular.
RADIUS_JITTER = {
    "driving": (0.6, 1.4),
    "walking": (0.8, 1.2),
    "bicycling": (0.7, 1.3),
    "transit": (0.4, 1.6),
}

ISOCHRONE_VERTICES = 64
KM_PER_DEGREE_EQUATOR = 111.32


class RoutingError(RuntimeError):
    pass


def average_speed(travel_mode: str) -> float:
    return AVERAGE_SPEEDS_KMH.get(travel_mode, DEFAULT_SPEED_KMH)


def accessibility_score(travel_mode: str, minutes: float) -> int:
    return min(100, math.floor(minutes * 2 * average_speed(travel_mode) / 30))


def approximate_isochrone(
    location: Location,
    minutes: float,
    travel_mode: str,
    rng: random.Random | None = None,
) -> TravelTimePolygon:
    """Jittered circle reachable at the mode's average speed."""
    rng = rng or random.Random()
    radius_km = minutes * average_speed(travel_mode) / 60
    radius_deg = radius_km / KM_PER_DEGREE_EQUATOR
    low, high = RADIUS_JITTER.get(travel_mode, (1.0, 1.0))

    ring: list[list[float]] = []
    for i in range(ISOCHRONE_VERTICES):
        angle = (i / ISOCHRONE_VERTICES) * 2 * math.pi
        effective = radius_deg * rng.uniform(low, high)
        ring.append([location.lng + effective * math.cos(angle), location.lat + effective * math.sin(angle)])
    ring.append(list(ring[0]))
    return TravelTimePolygon(break_value=minutes, rings=[ring])


def _first_service_area_rings(payload: dict[str, Any]) -> list[Any] | None:
    features = (payload.get("saPolygons") or {}).get("features")
    if not isinstance(features, list) or not features:
        return None
    geometry = features[0].get("geometry") if isinstance(features[0], dict) else None
    rings = geometry.get("rings") if isinstance(geometry, dict) else None
    if isinstance(rings, list) and rings:
        return rings
    return None


async def fetch_travel_time_polygon(
    client: httpx.AsyncClient,
    location: Location,
    travel_mode: str,
    minutes: float,
    config: CatchmentConfig,
    rng: random.Random | None = None,
) -> TravelTimePolygon:
    """Ask the service-area engine for one break, or approximate it locally."""
    if not config.service_area_url:
        return approximate_isochrone(location, minutes, travel_mode, rng)

    facilities = {
        "features": [{"geometry": {"x": location.lng, "y": location.lat}}],
        "spatialReference": {"wkid": 4326},
    }
    try:
        payload = await request_json(
            client,
            config.service_area_url,
            data={
                "facilities": json.dumps(facilities),
                "defaultBreaks": minutes,
                "travelMode": travel_mode,
                "travelDirection": "esriNATravelDirectionFromFacility",
                "outputPolygons": "esriNAOutputPolygonSimplified",
                "outSR": 4326,
                "f": "json",
            },
            stage="service_area",
            config=config,
        )
    except UpstreamAPIError as exc:
        raise RoutingError(f"Service area request failed for {minutes:g} min: {exc}") from exc

    rings = _first_service_area_rings(payload)
    if rings is None:
        raise RoutingError(f"Service area response had no polygon for {minutes:g} min.")
    try:
        return TravelTimePolygon(break_value=minutes, rings=rings)
    except ValueError as exc:
        raise RoutingError(f"Service area polygon for {minutes:g} min is malformed.") from exc

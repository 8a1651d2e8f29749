"""Tests for travel-time polygons (service-area engine and local approximation)."""
from __future__ import annotations

import asyncio
import math
import random
from urllib.parse import parse_qs

import httpx
import pytest

from backend.catchment.config import CatchmentConfig
from backend.catchment.routing_service import (
    RoutingError,
    accessibility_score,
    approximate_isochrone,
    average_speed,
    fetch_travel_time_polygon,
)
from backend.catchment.schemas import Location

BRUSSELS = Location(lat=50.8503, lng=4.3517)
SERVICE_AREA_URL = "https://route.example.test/arcgis/rest/services/World/ServiceAreas/solveServiceArea"

_SA_RING = [[4.30, 50.84], [4.40, 50.84], [4.40, 50.90], [4.30, 50.90], [4.30, 50.84]]


def _fetch(handler, minutes: float = 10, **config_overrides):
    config = CatchmentConfig(service_area_url=SERVICE_AREA_URL, retries=0, **config_overrides)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_travel_time_polygon(client, BRUSSELS, "driving", minutes, config, random.Random(1))

    return asyncio.run(_run())


def test_average_speeds_per_mode():
    assert average_speed("driving") == 45
    assert average_speed("walking") == 5
    assert average_speed("bicycling") == 15
    assert average_speed("transit") == 25
    assert average_speed("hovercraft") == 30


def test_accessibility_score():
    assert accessibility_score("driving", 10) == 30
    assert accessibility_score("walking", 60) == 20
    assert accessibility_score("driving", 60) == 100


def test_approximate_isochrone_is_closed_ring_around_location():
    polygon = approximate_isochrone(BRUSSELS, 15, "walking", random.Random(9))
    ring = polygon.rings[0]

    assert polygon.break_value == 15
    assert len(ring) == 65
    assert ring[0] == ring[-1]
    radius_deg = (15 * 5 / 60) / 111.32
    for lng, lat in ring:
        distance = math.hypot(lng - BRUSSELS.lng, lat - BRUSSELS.lat)
        assert 0.8 * radius_deg - 1e-9 <= distance <= 1.2 * radius_deg + 1e-9


def test_service_area_polygon_is_used_when_configured():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(
            200,
            json={"saPolygons": {"features": [{"attributes": {"ToBreak": 10}, "geometry": {"rings": [_SA_RING]}}]}},
        )

    polygon = _fetch(handler)
    assert polygon.rings == [_SA_RING]
    assert seen["form"]["defaultBreaks"] == ["10"]
    assert seen["form"]["travelMode"] == ["driving"]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"saPolygons": {"features": []}}),
        httpx.Response(200, json={"error": {"code": 498, "message": "Invalid token"}}),
        httpx.Response(500, text="boom"),
    ],
)
def test_service_area_failures_raise_routing_error(response):
    with pytest.raises(RoutingError):
        _fetch(lambda request: response)

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Mapping

import httpx

from .config import CatchmentConfig
from .fallback import synthetic_attributes
from .geometry import BoundingBox, compute_bounding_box
from .upstream import UpstreamAPIError, request_json

logger = logging.getLogger(__name__)

MOCK_SECTOR_MIN = 5
MOCK_SECTOR_MAX = 12
MOCK_POPULATION_RANGE = (2000, 10000)
MOCK_SIZE_RATIO = 0.6
MOCK_GRID_STEP = 0.4
# Used when the catchment has no usable extent.
MOCK_MIN_EXTENT_DEGREES = 0.01


class DataUnavailableError(RuntimeError):
    pass


def build_sector_query(catchment_polygon: Mapping[str, Any], config: CatchmentConfig) -> dict[str, Any]:
    geometry = {
        "rings": catchment_polygon.get("rings") or catchment_polygon.get("coordinates"),
        "spatialReference": {"wkid": 4326},
    }
    return {
        "geometry": json.dumps(geometry),
        "geometryType": "esriGeometryPolygon",
        "spatialRel": "esriSpatialRelIntersects",
        "inSR": 4326,
        "outSR": 4326,
        "outFields": "*",
        "returnGeometry": "true",
        "resultRecordCount": config.max_sectors,
        "f": "json",
    }


async def query_sector_layer(
    client: httpx.AsyncClient,
    catchment_polygon: Mapping[str, Any],
    config: CatchmentConfig,
) -> list[dict[str, Any]]:
    if not config.sector_layer_url:
        raise DataUnavailableError("No sector layer URL is configured.")

    url = config.sector_layer_url.rstrip("/")
    if not url.endswith("/query"):
        url = f"{url}/query"

    payload = await request_json(
        client,
        url,
        data=build_sector_query(catchment_polygon, config),
        stage="sector_layer",
        config=config,
    )
    features = payload.get("features")
    if not isinstance(features, list):
        raise DataUnavailableError("Sector layer response has no feature list.")
    if not features:
        raise DataUnavailableError("Sector layer returned no intersecting sectors.")
    if payload.get("exceededTransferLimit"):
        logger.warning("Sector layer truncated results at %d features", len(features))
    return features


def _mock_extent(catchment_polygon: Mapping[str, Any] | None) -> BoundingBox:
    try:
        box = compute_bounding_box(catchment_polygon)
    except (TypeError, ValueError, IndexError):
        box = None
    if box is None:
        half = MOCK_MIN_EXTENT_DEGREES / 2
        return BoundingBox(-half, -half, half, half)

    cx, cy = box.center
    half_w = max(box.width, MOCK_MIN_EXTENT_DEGREES) / 2
    half_h = max(box.height, MOCK_MIN_EXTENT_DEGREES) / 2
    return BoundingBox(cx - half_w, cy - half_h, cx + half_w, cy + half_h)


def synthesize_mock_sectors(
    catchment_polygon: Mapping[str, Any] | None,
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """Build 5-12 plausible sectors on a 3x3 grid around the catchment centre.

    Each sector spans 60% of the catchment extent, so most of them only
    partly overlap it. Values are estimates and are random unless a seeded
    ``rng`` is supplied.
    """
    rng = rng or random.Random()
    extent = _mock_extent(catchment_polygon)
    cx, cy = extent.center
    half_w = extent.width * MOCK_SIZE_RATIO / 2
    half_h = extent.height * MOCK_SIZE_RATIO / 2

    features: list[dict[str, Any]] = []
    count = rng.randint(MOCK_SECTOR_MIN, MOCK_SECTOR_MAX)
    for index in range(count):
        cell = index % 9
        col, row = cell % 3 - 1, cell // 3 - 1
        # Sectors past the ninth reuse a cell, shifted by up to half a step.
        shift = 0.0 if index < 9 else rng.uniform(-0.5, 0.5) * MOCK_GRID_STEP
        sx = cx + (col * MOCK_GRID_STEP + shift) * extent.width
        sy = cy + (row * MOCK_GRID_STEP + shift) * extent.height

        population = rng.randint(*MOCK_POPULATION_RANGE)
        attributes: dict[str, Any] = {
            "id": f"mock-{index + 1}",
            "name": f"Estimated sector {index + 1}",
            "nisCode": f"MOCK{index + 1:03d}",
        }
        attributes.update(synthetic_attributes(population))
        features.append(
            {
                "attributes": attributes,
                "geometry": {
                    "rings": [
                        [
                            [sx - half_w, sy - half_h],
                            [sx + half_w, sy - half_h],
                            [sx + half_w, sy + half_h],
                            [sx - half_w, sy + half_h],
                            [sx - half_w, sy - half_h],
                        ]
                    ]
                },
            }
        )

    return {"features": features, "source": "mock"}


async def fetch_intersecting_sectors(
    client: httpx.AsyncClient,
    catchment_polygon: Mapping[str, Any],
    config: CatchmentConfig,
    rng: random.Random | None = None,
) -> tuple[dict[str, Any], list[dict[str, str]]]:
    """Return intersecting sectors plus any errors recovered along the way.

    The payload's ``source`` is ``"layer"`` or ``"mock"``. Layer failures,
    timeouts and empty results fall back to mock sectors; when mocks are
    disabled, DataUnavailableError is raised instead.
    """
    try:
        features = await asyncio.wait_for(
            query_sector_layer(client, catchment_polygon, config),
            timeout=config.fetch_deadline,
        )
        return {"features": features, "source": "layer"}, []
    except asyncio.TimeoutError:
        message = f"Sector layer timed out after {config.fetch_deadline:g}s."
    except (UpstreamAPIError, DataUnavailableError) as exc:
        message = str(exc)

    errors = [{"stage": "sector_layer", "message": message}]
    if not config.mock_sectors_enabled:
        raise DataUnavailableError(message)

    logger.warning("Sector data unavailable, using mock sectors: %s", message)
    return synthesize_mock_sectors(catchment_polygon, rng), errors

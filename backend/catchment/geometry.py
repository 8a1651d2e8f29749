"""Planar geometry helpers for catchment/sector overlap.

Polygons are ArcGIS-style mappings: ``{"rings": [[[lng, lat], ...], ...]}``.
GeoJSON ``coordinates`` is accepted as an alias for ``rings``. Only the outer
ring is ever used; holes are ignored.

Overlap is approximated from bounding boxes rather than clipped exactly. A
polygon may carry an ``overlapFactor`` annotation, which scales the area
reported by :func:`planar_area_km2`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

KM_PER_DEGREE = 111.0

Ring = Sequence[Sequence[float]]


@dataclass(frozen=True)
class BoundingBox:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> tuple[float, float]:
        return ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)


def polygon_rings(polygon: Mapping[str, Any] | None) -> list[Ring]:
    if not polygon:
        return []
    rings = polygon.get("rings")
    if rings is None:
        rings = polygon.get("coordinates")
    if not isinstance(rings, (list, tuple)):
        return []
    return list(rings)


def outer_ring(polygon: Mapping[str, Any] | None) -> Ring:
    rings = polygon_rings(polygon)
    if not rings or not rings[0]:
        return []
    return rings[0]


def compute_bounding_box(polygon: Mapping[str, Any] | None) -> BoundingBox | None:
    ring = outer_ring(polygon)
    if not ring:
        return None

    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for point in ring:
        x, y = float(point[0]), float(point[1])
        min_x = min(min_x, x)
        min_y = min(min_y, y)
        max_x = max(max_x, x)
        max_y = max(max_y, y)
    return BoundingBox(min_x=min_x, min_y=min_y, max_x=max_x, max_y=max_y)


def bounding_boxes_intersect(a: BoundingBox | None, b: BoundingBox | None) -> bool:
    """Axis-aligned overlap test; touching edges count as intersecting."""
    if a is None or b is None:
        return False
    return not (
        a.max_x < b.min_x
        or a.min_x > b.max_x
        or a.max_y < b.min_y
        or a.min_y > b.max_y
    )


def estimate_overlap_factor(sector_box: BoundingBox | None, catchment_box: BoundingBox | None) -> float:
    """Share of the sector box covered by the catchment box, in [0, 1]."""
    if sector_box is None or catchment_box is None:
        return 0.0

    min_x = max(sector_box.min_x, catchment_box.min_x)
    min_y = max(sector_box.min_y, catchment_box.min_y)
    max_x = min(sector_box.max_x, catchment_box.max_x)
    max_y = min(sector_box.max_y, catchment_box.max_y)
    if min_x >= max_x or min_y >= max_y:
        return 0.0

    sector_area = sector_box.area
    if sector_area <= 0:
        return 0.0

    factor = ((max_x - min_x) * (max_y - min_y)) / sector_area
    return min(1.0, max(0.0, factor))


def planar_area_km2(polygon: Mapping[str, Any] | None) -> float:
    """Shoelace area of the outer ring, converted with a fixed km-per-degree.

    Returns 0 for missing rings or rings with fewer than 3 points.
    """
    ring = outer_ring(polygon)
    n = len(ring)
    if n < 3:
        return 0.0

    twice_area = 0.0
    for i in range(n):
        x1, y1 = float(ring[i][0]), float(ring[i][1])
        x2, y2 = float(ring[(i + 1) % n][0]), float(ring[(i + 1) % n][1])
        twice_area += x1 * y2 - x2 * y1

    area = abs(twice_area) / 2 * KM_PER_DEGREE**2
    overlap_factor = polygon.get("overlapFactor") if polygon else None
    if overlap_factor is not None:
        area *= float(overlap_factor)
    return max(0.0, area)


def coverage_percentage(intersection_area_km2: float | None, total_area_km2: float | None) -> float:
    if not total_area_km2 or not math.isfinite(total_area_km2) or total_area_km2 <= 0:
        return 0.0
    if not intersection_area_km2 or not math.isfinite(intersection_area_km2):
        return 0.0
    return min(100.0, max(0.0, (intersection_area_km2 / total_area_km2) * 100))

"""Sector-by-sector demographic aggregation for one catchment polygon.

Each sector is weighted by the share of its area covered by the catchment.
The covered share is a bounding-box proxy: the sector keeps its own ring and
only its reported area is scaled by the box overlap ratio.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any, Iterable, Mapping

from .geometry import (
    BoundingBox,
    bounding_boxes_intersect,
    compute_bounding_box,
    coverage_percentage,
    estimate_overlap_factor,
    planar_area_km2,
)
from .schemas import SECTOR_NUMERIC_FIELDS, Sector, SectorContribution

logger = logging.getLogger(__name__)

# Below this coverage a sector is scaled; at or above it, added unscaled.
FULL_COVERAGE_THRESHOLD = 99.9

ACCUMULATOR_FIELDS = {
    "male": "total_male",
    "female": "total_female",
    "age_t0014": "total_age0014",
    "age_t1529": "total_age1529",
    "age_t3044": "total_age3044",
    "age_t4559": "total_age4559",
    "age_t60pl": "total_age60pl",
    "pp_prm": "total_pp_prm",
    "pp_mio": "total_pp_mio",
    "pp_euro": "total_pp_euro",
    "pp_ci": "total_pp_ci",
    "hh_t": "total_hh_t",
    "hh_size": "total_hh_size",
    "p_t": "total_p_t",
}


class SectorProcessingError(RuntimeError):
    def __init__(self, sector_id: str | None, message: str):
        super().__init__(f"[sector {sector_id or '?'}] {message}")
        self.sector_id = sector_id
        self.message = message


@dataclass(frozen=True)
class CatchmentAccumulator:
    number: float
    total_male: float = 0.0
    total_female: float = 0.0
    total_age0014: float = 0.0
    total_age1529: float = 0.0
    total_age3044: float = 0.0
    total_age4559: float = 0.0
    total_age60pl: float = 0.0
    total_pp_prm: float = 0.0
    total_pp_mio: float = 0.0
    total_pp_euro: float = 0.0
    total_pp_ci: float = 0.0
    total_hh_t: float = 0.0
    total_hh_size: float = 0.0
    total_p_t: float = 0.0

    def plus(self, contribution: Mapping[str, float]) -> "CatchmentAccumulator":
        changes = {
            ACCUMULATOR_FIELDS[attr]: getattr(self, ACCUMULATOR_FIELDS[attr]) + value
            for attr, value in contribution.items()
        }
        return replace(self, **changes)

    def merge(self, other: "CatchmentAccumulator") -> "CatchmentAccumulator":
        """Combine two partial accumulators for the same break."""
        changes = {
            f.name: getattr(self, f.name) + getattr(other, f.name)
            for f in fields(self)
            if f.name != "number"
        }
        return replace(self, **changes)


@dataclass
class AggregationResult:
    accumulator: CatchmentAccumulator
    sector_count: int = 0
    contributed_count: int = 0
    skipped_count: int = 0
    diagnostics: list[SectorContribution] = field(default_factory=list)


def measure_sector(sector: Sector, catchment_box: BoundingBox | None) -> tuple[float, float] | None:
    """Return ``(overlap_factor, coverage_percentage)`` or None when boxes miss."""
    try:
        sector_box = compute_bounding_box(sector.geometry)
        if not bounding_boxes_intersect(sector_box, catchment_box):
            return None
        overlap_factor = estimate_overlap_factor(sector_box, catchment_box)
        intersection = {**(sector.geometry or {}), "overlapFactor": overlap_factor}
        sector_area = planar_area_km2(sector.geometry)
        intersection_area = planar_area_km2(intersection)
    except (TypeError, ValueError, IndexError) as exc:
        raise SectorProcessingError(sector.id, f"Invalid geometry: {exc}") from exc
    return overlap_factor, coverage_percentage(intersection_area, sector_area)


def sector_contribution(sector: Sector, coverage_pct: float) -> dict[str, float]:
    if coverage_pct >= FULL_COVERAGE_THRESHOLD:
        return {attr: getattr(sector, attr) for attr in SECTOR_NUMERIC_FIELDS}
    coverage = coverage_pct / 100
    return {attr: getattr(sector, attr) * coverage for attr in SECTOR_NUMERIC_FIELDS}


def aggregate_sectors(
    break_value: float,
    features: Iterable[Any],
    catchment_polygon: Mapping[str, Any],
    *,
    collect_diagnostics: bool = False,
) -> AggregationResult:
    """Fold every candidate sector into a fresh accumulator for one break.

    Sectors whose boxes miss the catchment contribute nothing. A malformed
    sector is logged and skipped; it never aborts the break.
    """
    catchment_box = compute_bounding_box(catchment_polygon)
    result = AggregationResult(accumulator=CatchmentAccumulator(number=break_value))

    for feature in features:
        result.sector_count += 1
        sector: Sector | None = None
        try:
            sector = Sector.from_feature(feature)
            measured = measure_sector(sector, catchment_box)
        except (SectorProcessingError, ValueError) as exc:
            result.skipped_count += 1
            sector_id = sector.id if sector else None
            logger.warning("Skipping sector %s for %s min catchment: %s", sector_id, break_value, exc)
            if collect_diagnostics:
                result.diagnostics.append(
                    SectorContribution(sector_id=sector_id, status="skipped", error=str(exc))
                )
            continue

        if measured is None:
            if collect_diagnostics:
                result.diagnostics.append(
                    SectorContribution(
                        sector_id=sector.id,
                        name=sector.name,
                        nis_code=sector.nis_code,
                        status="no-overlap",
                    )
                )
            continue

        overlap_factor, coverage_pct = measured
        contribution = sector_contribution(sector, coverage_pct)
        result.accumulator = result.accumulator.plus(contribution)
        result.contributed_count += 1

        if collect_diagnostics:
            result.diagnostics.append(
                SectorContribution(
                    sector_id=sector.id,
                    name=sector.name,
                    nis_code=sector.nis_code,
                    status="contributed",
                    overlap_factor=overlap_factor,
                    coverage_percentage=coverage_pct,
                    full_coverage=coverage_pct >= FULL_COVERAGE_THRESHOLD,
                    contribution=contribution,
                )
            )

    return result

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timezone

import httpx

from .aggregation import aggregate_sectors
from .config import CatchmentConfig
from .fallback import estimate_default_demographics
from .routing_service import (
    RoutingError,
    accessibility_score,
    average_speed,
    fetch_travel_time_polygon,
)
from .schemas import (
    CalculationInfo,
    CatchmentMetadata,
    CatchmentRequest,
    CatchmentResponse,
    CatchmentResult,
)
from .sector_service import DataUnavailableError, fetch_intersecting_sectors
from .summary import finalize_catchment, format_break

logger = logging.getLogger(__name__)

CALCULATION_METHOD = "drive_time_analysis"


def _metadata(request: CatchmentRequest, minutes: float, **counts: int) -> CatchmentMetadata:
    return CatchmentMetadata(
        calculated_at=datetime.now(timezone.utc),
        average_speed=average_speed(request.travel_mode),
        accessibility=accessibility_score(request.travel_mode, minutes),
        **counts,
    )


def _base_result(request: CatchmentRequest, minutes: float) -> dict:
    return {
        "name": f"{format_break(minutes)} minutes",
        "drive_time": minutes,
        "travel_mode": request.travel_mode,
    }


async def calculate_catchment_break(
    client: httpx.AsyncClient,
    request: CatchmentRequest,
    minutes: float,
    config: CatchmentConfig,
    rng: random.Random,
) -> CatchmentResult:
    """Route, fetch sectors, aggregate and summarise one travel-time break."""
    if request.estimate_only:
        return CatchmentResult(
            **_base_result(request, minutes),
            calculation_method="fallback-estimation",
            demographics=estimate_default_demographics(minutes, rng, config),
            metadata=_metadata(request, minutes),
        )

    try:
        polygon = await fetch_travel_time_polygon(
            client, request.location, request.travel_mode, minutes, config, rng
        )
    except RoutingError as exc:
        logger.error("Routing failed for %s min break: %s", format_break(minutes), exc)
        return CatchmentResult(
            **_base_result(request, minutes),
            metadata=_metadata(request, minutes),
            error=str(exc),
        )

    geometry = polygon.as_geometry()
    if not request.show_demographics:
        return CatchmentResult(
            **_base_result(request, minutes),
            geometry=geometry,
            metadata=_metadata(request, minutes),
        )

    try:
        sector_payload, _errors = await fetch_intersecting_sectors(client, geometry, config, rng)
    except DataUnavailableError as exc:
        logger.warning("No sector data for %s min break, estimating: %s", format_break(minutes), exc)
        return CatchmentResult(
            **_base_result(request, minutes),
            calculation_method="fallback-estimation",
            demographics=estimate_default_demographics(minutes, rng, config),
            geometry=geometry,
            metadata=_metadata(request, minutes),
        )

    aggregation = aggregate_sectors(
        minutes,
        sector_payload["features"],
        geometry,
        collect_diagnostics=request.include_diagnostics,
    )
    record = finalize_catchment(aggregation.accumulator, config)
    method = "mock" if sector_payload.get("source") == "mock" else "layer-based-intersection"
    logger.info(
        "Catchment %s: method=%s sectors=%d skipped=%d population=%d",
        record.name,
        method,
        aggregation.sector_count,
        aggregation.skipped_count,
        record.total_population,
    )

    return CatchmentResult(
        **_base_result(request, minutes),
        calculation_method=method,
        demographics=record,
        geometry=geometry,
        metadata=_metadata(
            request,
            minutes,
            sector_count=aggregation.sector_count,
            skipped_sectors=aggregation.skipped_count,
        ),
        diagnostics=aggregation.diagnostics if request.include_diagnostics else None,
    )


async def calculate_catchments(
    request: CatchmentRequest,
    config: CatchmentConfig,
    *,
    rng: random.Random | None = None,
    client: httpx.AsyncClient | None = None,
) -> CatchmentResponse:
    """Compute every requested break concurrently.

    Each break gets its own random stream and accumulator; a failure in one
    break is reported on that break's result and never affects the others.
    """
    rng = rng or random.Random()
    break_rngs = [random.Random(rng.getrandbits(64)) for _ in request.drive_times]

    async def run_all(http_client: httpx.AsyncClient) -> list:
        return await asyncio.gather(
            *(
                calculate_catchment_break(http_client, request, minutes, config, break_rng)
                for minutes, break_rng in zip(request.drive_times, break_rngs)
            ),
            return_exceptions=True,
        )

    if client is None:
        async with httpx.AsyncClient(follow_redirects=True) as owned_client:
            outcomes = await run_all(owned_client)
    else:
        outcomes = await run_all(client)

    results: list[CatchmentResult] = []
    for minutes, outcome in zip(request.drive_times, outcomes):
        if isinstance(outcome, CatchmentResult):
            results.append(outcome)
            continue
        logger.error("Catchment %s min failed", format_break(minutes), exc_info=outcome)
        results.append(
            CatchmentResult(
                **_base_result(request, minutes),
                metadata=_metadata(request, minutes),
                error=f"Catchment calculation failed: {outcome}",
            )
        )

    return CatchmentResponse(
        catchment_results=results,
        search_params=request,
        calculation_info=CalculationInfo(
            method=CALCULATION_METHOD,
            timestamp=datetime.now(timezone.utc),
            total_areas=len(results),
            failed_areas=sum(1 for result in results if result.error),
        ),
    )

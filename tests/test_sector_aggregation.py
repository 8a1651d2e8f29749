"""Tests for per-sector coverage weighting and accumulation."""
from __future__ import annotations

import pytest

from backend.catchment.aggregation import (
    FULL_COVERAGE_THRESHOLD,
    CatchmentAccumulator,
    aggregate_sectors,
    sector_contribution,
)
from backend.catchment.schemas import Sector
from backend.catchment.summary import finalize_catchment

CATCHMENT = {
    "rings": [[[4.30, 50.84], [4.40, 50.84], [4.40, 50.90], [4.30, 50.90], [4.30, 50.84]]]
}


def _square(min_x: float, min_y: float, max_x: float, max_y: float) -> dict:
    return {
        "rings": [[[min_x, min_y], [max_x, min_y], [max_x, max_y], [min_x, max_y], [min_x, min_y]]]
    }


def _feature(attributes: dict, geometry: dict) -> dict:
    return {"attributes": attributes, "geometry": geometry}


def test_full_coverage_adds_raw_values():
    feature = _feature(
        {"id": "21004A00-", "male": 100, "female": 120, "pp_mio": 2.5, "hh_t": 90},
        _square(4.32, 50.85, 4.35, 50.88),
    )
    result = aggregate_sectors(10, [feature], CATCHMENT)

    acc = result.accumulator
    assert acc.total_male == 100
    assert acc.total_female == 120
    assert acc.total_pp_mio == 2.5
    assert acc.total_hh_t == 90
    assert acc.total_p_t == 0
    assert result.contributed_count == 1


def test_partial_coverage_scales_linearly():
    contribution = sector_contribution(Sector(male=200, hh_t=80), 50.0)
    assert contribution["male"] == pytest.approx(100.0)
    assert contribution["hh_t"] == pytest.approx(40.0)
    assert contribution["female"] == 0.0


def test_half_overlapping_sector_contributes_half():
    # Sector box straddles the catchment's eastern edge at 4.40.
    feature = _feature({"male": 200, "female": 100}, _square(4.38, 50.85, 4.42, 50.87))
    result = aggregate_sectors(10, [feature], CATCHMENT, collect_diagnostics=True)

    assert result.accumulator.total_male == pytest.approx(100.0)
    assert result.accumulator.total_female == pytest.approx(50.0)
    diag = result.diagnostics[0]
    assert diag.status == "contributed"
    assert diag.coverage_percentage == pytest.approx(50.0)
    assert diag.full_coverage is False


def test_threshold_boundary_switches_between_scaled_and_raw():
    sector = Sector(male=1000, female=1000, pp_mio=10)
    below = sector_contribution(sector, 99.8999)
    at = sector_contribution(sector, FULL_COVERAGE_THRESHOLD)
    above = sector_contribution(sector, 99.95)

    assert below["male"] == pytest.approx(998.999)
    assert below["male"] != 1000
    assert at["male"] == 1000
    assert at["pp_mio"] == 10
    assert above["male"] == 1000
    assert FULL_COVERAGE_THRESHOLD == 99.9


def test_no_overlap_sector_contributes_nothing():
    feature = _feature({"male": 500, "female": 500, "pp_mio": 3}, _square(5.0, 51.0, 5.1, 51.1))
    result = aggregate_sectors(15, [feature], CATCHMENT, collect_diagnostics=True)

    assert result.accumulator == CatchmentAccumulator(number=15)
    assert result.contributed_count == 0
    assert result.skipped_count == 0
    assert result.diagnostics[0].status == "no-overlap"


def test_missing_attributes_default_to_zero():
    feature = _feature({"male": 10, "female": None, "pp_mio": ""}, _square(4.32, 50.85, 4.35, 50.88))
    result = aggregate_sectors(5, [feature], CATCHMENT)
    assert result.accumulator.total_male == 10
    assert result.accumulator.total_female == 0
    assert result.accumulator.total_pp_mio == 0


def test_bad_sectors_are_skipped_without_aborting():
    good = _feature({"male": 40, "female": 60}, _square(4.32, 50.85, 4.35, 50.88))
    features = [
        _feature({"id": 1, "male": 10}, {"rings": [[["a", "b"], [1, 2], [3, 4]]]}),
        _feature({"id": 2, "male": "lots"}, _square(4.32, 50.85, 4.35, 50.88)),
        "not-a-feature",
        good,
    ]
    result = aggregate_sectors(10, features, CATCHMENT, collect_diagnostics=True)

    assert result.sector_count == 4
    assert result.skipped_count == 3
    assert result.contributed_count == 1
    assert result.accumulator.total_male == 40
    assert result.accumulator.total_female == 60
    statuses = [diag.status for diag in result.diagnostics]
    assert statuses == ["skipped", "skipped", "skipped", "contributed"]
    assert result.diagnostics[0].sector_id == "1"


@pytest.mark.parametrize("bad_value", ["NaN", "Infinity", "-inf", float("nan"), float("inf")])
def test_non_finite_sector_values_are_skipped(bad_value):
    good = _feature({"id": "good", "male": 40, "female": 60, "hh_t": 30}, _square(4.32, 50.85, 4.35, 50.88))
    bad = _feature({"id": "bad", "male": bad_value, "female": 10}, _square(4.32, 50.85, 4.35, 50.88))
    result = aggregate_sectors(10, [bad, good], CATCHMENT, collect_diagnostics=True)

    assert result.skipped_count == 1
    assert result.contributed_count == 1
    assert result.accumulator.total_male == 40
    assert result.accumulator.total_female == 60
    assert [diag.status for diag in result.diagnostics] == ["skipped", "contributed"]

    record = finalize_catchment(result.accumulator)
    assert record.total_population == 100
    assert record.pourcent_man == 40
    assert record.total_households == 30


def test_sector_fields_read_case_insensitively():
    sector = Sector.from_feature(
        {"attributes": {"OBJECTID": 7, "MALE": 12, "NISCODE": "21004", "PP_MIO": 1.5}, "geometry": None}
    )
    assert sector.id == "7"
    assert sector.male == 12
    assert sector.pp_mio == 1.5
    assert sector.nis_code == "21004"


def test_geojson_feature_properties_are_read():
    sector = Sector.from_feature(
        {"type": "Feature", "properties": {"female": 8}, "geometry": _square(0, 0, 1, 1)}
    )
    assert sector.female == 8
    assert sector.geometry["rings"][0][0] == [0, 0]


def test_order_of_sectors_does_not_change_totals():
    features = [
        _feature({"male": 100, "female": 90}, _square(4.32, 50.85, 4.35, 50.88)),
        _feature({"male": 300, "female": 310}, _square(4.38, 50.85, 4.42, 50.87)),
        _feature({"male": 50, "female": 40}, _square(4.29, 50.89, 4.31, 50.91)),
    ]
    forward = aggregate_sectors(10, features, CATCHMENT).accumulator
    backward = aggregate_sectors(10, list(reversed(features)), CATCHMENT).accumulator
    assert forward.total_male == pytest.approx(backward.total_male)
    assert forward.total_female == pytest.approx(backward.total_female)


def test_partial_accumulators_merge():
    first = CatchmentAccumulator(number=10).plus({"male": 5, "hh_t": 2})
    second = CatchmentAccumulator(number=10).plus({"male": 7, "pp_mio": 1.5})
    merged = first.merge(second)
    assert merged.number == 10
    assert merged.total_male == 12
    assert merged.total_hh_t == 2
    assert merged.total_pp_mio == 1.5

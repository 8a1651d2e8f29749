"""Tests for the data-free demographic estimate."""
from __future__ import annotations

import random

import pytest

from backend.catchment.fallback import estimate_default_demographics, synthetic_attributes


def test_estimate_uses_fixed_ratios():
    record = estimate_default_demographics(10, random.Random(42))

    assert record.name == "10 minutes"
    assert 350_000 <= record.total_population <= 365_000
    assert record.pourcent_women == 51
    assert record.pourcent_man == 49
    assert record.pourcent_age0014 == 17
    assert record.pourcent_age1529 == 18
    assert record.pourcent_age3044 == 20
    assert record.pourcent_age4559 == 21
    assert record.pourcent_age60pl == 24
    assert record.households_member == "2,3"
    assert record.purchase_power_person == "20.635"


def test_estimate_households_follow_population():
    record = estimate_default_demographics(5, random.Random(7))
    assert abs(record.total_households - record.total_population / 2.3) <= 1


def test_seeded_estimates_are_reproducible():
    first = estimate_default_demographics(15, random.Random(2024))
    second = estimate_default_demographics(15, random.Random(2024))
    assert first == second


def test_population_grows_with_break():
    rng = random.Random(1)
    short = estimate_default_demographics(5, rng)
    long = estimate_default_demographics(20, rng)
    assert long.total_population > short.total_population


def test_synthetic_attributes_split():
    attributes = synthetic_attributes(1000)
    assert attributes["male"] == pytest.approx(490)
    assert attributes["female"] == pytest.approx(510)
    assert attributes["p_t"] == 1000
    assert attributes["pp_mio"] == pytest.approx(20.635)
    assert round(attributes["hh_t"], 2) == 434.78

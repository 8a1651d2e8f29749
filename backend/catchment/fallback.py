"""Data-free demographic estimates used when no sector data can be had.

Results are display placeholders, not analytic output; they are random by
design. Pass a seeded ``random.Random`` for reproducible values.
"""

from __future__ import annotations

import math
import random

from .aggregation import CatchmentAccumulator
from .config import CatchmentConfig
from .schemas import CatchmentRecord
from .summary import finalize_catchment

MALE_SHARE = 0.49
FEMALE_SHARE = 0.51
AGE_BAND_SHARES = {
    "age_t0014": 0.17,
    "age_t1529": 0.18,
    "age_t3044": 0.20,
    "age_t4559": 0.21,
    "age_t60pl": 0.24,
}
PERSONS_PER_HOUSEHOLD = 2.3
PURCHASING_POWER_PER_PERSON = 20635

POPULATION_PER_MINUTE = 35000
POPULATION_JITTER = 15000


def synthetic_attributes(population: float) -> dict[str, float]:
    """Split a population into sector attributes using fixed national ratios."""
    households = population / PERSONS_PER_HOUSEHOLD
    purchasing_power = population * PURCHASING_POWER_PER_PERSON
    attributes = {
        "p_t": population,
        "male": population * MALE_SHARE,
        "female": population * FEMALE_SHARE,
        "hh_t": households,
        "hh_size": PERSONS_PER_HOUSEHOLD,
        "pp_euro": purchasing_power,
        "pp_mio": purchasing_power / 1_000_000,
        "pp_prm": PURCHASING_POWER_PER_PERSON,
        "pp_ci": 100.0,
    }
    for band, share in AGE_BAND_SHARES.items():
        attributes[band] = population * share
    return attributes


def estimate_default_demographics(
    break_value: float,
    rng: random.Random | None = None,
    config: CatchmentConfig | None = None,
) -> CatchmentRecord:
    rng = rng or random.Random()
    population = math.floor(break_value * POPULATION_PER_MINUTE + rng.uniform(0, POPULATION_JITTER))
    accumulator = CatchmentAccumulator(number=break_value).plus(synthetic_attributes(population))
    return finalize_catchment(accumulator, config)

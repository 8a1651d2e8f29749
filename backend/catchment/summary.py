"""Fold a finished accumulator into the published catchment record."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from .aggregation import CatchmentAccumulator
from .config import CatchmentConfig
from .schemas import CatchmentRecord


def round_half_away(value: float, ndigits: int = 0) -> float:
    """Round half away from zero (not Python's banker's rounding)."""
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def format_grouped(
    value: float,
    decimals: int = 0,
    *,
    thousands_separator: str = ".",
    decimal_separator: str = ",",
) -> str:
    text = f"{abs(value):,.{decimals}f}"
    text = text.replace(",", "\x00").replace(".", decimal_separator).replace("\x00", thousands_separator)
    return f"-{text}" if value < 0 else text


def format_break(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _percent(part: float, total_population: int) -> int | None:
    if total_population <= 0:
        return None
    return int(round_half_away((part / total_population) * 100))


def finalize_catchment(
    accumulator: CatchmentAccumulator,
    config: CatchmentConfig | None = None,
) -> CatchmentRecord:
    """Convert accumulated absolute counts into percentages and display values.

    Population is the rounded sum of the gender totals, not ``total_p_t``.
    Zero-population catchments get ``None`` for every ratio instead of NaN.
    """
    config = config or CatchmentConfig()

    def grouped(value: float, decimals: int = 0) -> str:
        return format_grouped(
            value,
            decimals,
            thousands_separator=config.thousands_separator,
            decimal_separator=config.decimal_separator,
        )

    acc = accumulator
    total_population = int(round_half_away(acc.total_male + acc.total_female))

    households_member: str | None = None
    if acc.total_hh_t > 0:
        households_member = grouped(round_half_away(total_population / acc.total_hh_t, 1), 1)

    purchase_power_person: str | None = None
    if total_population > 0:
        purchase_power_person = grouped(
            round_half_away((acc.total_pp_mio * 1_000_000) / total_population)
        )

    return CatchmentRecord(
        name=f"{format_break(acc.number)} minutes",
        total_population=total_population,
        pourcent_women=_percent(acc.total_female, total_population),
        pourcent_man=_percent(acc.total_male, total_population),
        pourcent_age0014=_percent(acc.total_age0014, total_population),
        pourcent_age1529=_percent(acc.total_age1529, total_population),
        pourcent_age3044=_percent(acc.total_age3044, total_population),
        pourcent_age4559=_percent(acc.total_age4559, total_population),
        pourcent_age60pl=_percent(acc.total_age60pl, total_population),
        total_households=int(round_half_away(acc.total_hh_t)),
        households_member=households_member,
        total_mio=grouped(round_half_away(acc.total_pp_mio)),
        purchase_power_person=purchase_power_person,
    )

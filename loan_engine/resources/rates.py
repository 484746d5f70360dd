"""Published nominal rate grid, in annual percent.

Rows at 5, 10, 15, 20, 25 and 30 years are the published anchors; the years in
between are the linear interpolation of the neighbouring anchors rounded
half-up to two decimals.
"""

from decimal import Decimal

from loan_engine.schemas.simulation import RateTier

# Most to least favourable. The last rule must accept any ratio.
TIER_RULES: tuple[tuple[RateTier, Decimal], ...] = (
    (RateTier.EXCELLENT, Decimal("0.25")),
    (RateTier.GOOD, Decimal("0.15")),
    (RateTier.STANDARD, Decimal("0")),
)

TIER_LABELS: dict[RateTier, str] = {
    RateTier.EXCELLENT: "Excellent profile",
    RateTier.GOOD: "Good profile",
    RateTier.STANDARD: "Standard profile",
}

_COLUMNS = (RateTier.EXCELLENT, RateTier.GOOD, RateTier.STANDARD)

_ROWS: dict[int, tuple[str, str, str]] = {
    5: ("2.25", "2.36", "2.43"),
    6: ("2.33", "2.43", "2.52"),
    7: ("2.40", "2.50", "2.60"),
    8: ("2.48", "2.58", "2.69"),
    9: ("2.55", "2.65", "2.77"),
    10: ("2.63", "2.72", "2.86"),
    11: ("2.68", "2.77", "2.90"),
    12: ("2.72", "2.82", "2.93"),
    13: ("2.77", "2.86", "2.97"),
    14: ("2.81", "2.91", "3.00"),
    15: ("2.86", "2.96", "3.04"),
    16: ("2.87", "2.97", "3.06"),
    17: ("2.89", "2.99", "3.08"),
    18: ("2.90", "3.00", "3.10"),
    19: ("2.92", "3.02", "3.12"),
    20: ("2.93", "3.03", "3.14"),
    21: ("2.95", "3.05", "3.16"),
    22: ("2.96", "3.07", "3.17"),
    23: ("2.98", "3.08", "3.19"),
    24: ("2.99", "3.10", "3.20"),
    25: ("3.01", "3.12", "3.22"),
    26: ("3.05", "3.16", "3.26"),
    27: ("3.09", "3.21", "3.30"),
    28: ("3.14", "3.25", "3.34"),
    29: ("3.18", "3.30", "3.38"),
    30: ("3.22", "3.34", "3.42"),
}

RATE_GRID: dict[int, dict[RateTier, Decimal]] = {
    years: {tier: Decimal(rate) for tier, rate in zip(_COLUMNS, row)}
    for years, row in _ROWS.items()
}

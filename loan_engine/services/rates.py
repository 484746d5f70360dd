from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping

from loan_engine.core.exceptions import InvalidInputError, RateTableConfigError
from loan_engine.core.settings import Settings, get_settings
from loan_engine.resources import rates as rate_resources
from loan_engine.schemas.simulation import RateTier

MIN_DURATION_YEARS = 5
MAX_DURATION_YEARS = 30


@dataclass(frozen=True)
class TierRule:
    tier: RateTier
    min_contribution_ratio: Decimal


@dataclass(frozen=True)
class RateQuote:
    tier: RateTier
    rate_percent: Decimal
    duration_bracket: int


class RateTable:
    """Immutable (duration bracket x tier) -> nominal annual rate matrix.

    Validated on construction: a missing cell is a configuration error, never a
    runtime fallback.
    """

    def __init__(
        self,
        rates: Mapping[int, Mapping[RateTier, Decimal]],
        tier_rules: Iterable[TierRule],
        *,
        min_duration_years: int = MIN_DURATION_YEARS,
        max_duration_years: int = MAX_DURATION_YEARS,
    ) -> None:
        self.tier_rules: tuple[TierRule, ...] = tuple(tier_rules)
        self.min_duration_years = min_duration_years
        self.max_duration_years = max_duration_years
        self._rates = MappingProxyType(
            {int(years): MappingProxyType(dict(row)) for years, row in sorted(rates.items())}
        )
        self._validate()

    def _validate(self) -> None:
        if not self.tier_rules:
            raise RateTableConfigError("Rate table has no tier rules")
        thresholds = [rule.min_contribution_ratio for rule in self.tier_rules]
        if any(later >= earlier for earlier, later in zip(thresholds, thresholds[1:])):
            raise RateTableConfigError(
                "Tier thresholds must strictly decrease from most to least favourable",
                details={"thresholds": [str(value) for value in thresholds]},
            )
        if thresholds[-1] != 0:
            raise RateTableConfigError(
                "The least favourable tier must accept a zero contribution ratio",
                details={"tier": self.tier_rules[-1].tier.value},
            )
        brackets = self.brackets
        if self.min_duration_years not in brackets or self.max_duration_years not in brackets:
            raise RateTableConfigError(
                "Rate table must cover the supported duration bounds",
                details={
                    "min_duration_years": self.min_duration_years,
                    "max_duration_years": self.max_duration_years,
                    "brackets": list(brackets),
                },
            )
        tiers = [rule.tier for rule in self.tier_rules]
        for years, row in self._rates.items():
            missing = [tier.value for tier in tiers if tier not in row]
            if missing:
                raise RateTableConfigError(
                    "Rate table cell missing",
                    details={"duration_years": years, "missing_tiers": missing},
                )
            negative = [tier.value for tier in tiers if row[tier] < 0]
            if negative:
                raise RateTableConfigError(
                    "Rate table contains a negative rate",
                    details={"duration_years": years, "tiers": negative},
                )

    @property
    def brackets(self) -> tuple[int, ...]:
        return tuple(self._rates.keys())

    def nearest_bracket(self, duration_years: int) -> int:
        # Ties go to the shorter bracket.
        return min(self.brackets, key=lambda bracket: (abs(bracket - duration_years), bracket))

    def rate(self, duration_bracket: int, tier: RateTier) -> Decimal:
        try:
            return self._rates[duration_bracket][tier]
        except KeyError as exc:
            raise RateTableConfigError(
                "Rate table cell missing",
                details={"duration_years": duration_bracket, "tier": tier.value},
            ) from exc

    def grid(self) -> list[tuple[int, dict[RateTier, Decimal]]]:
        return [(years, dict(row)) for years, row in self._rates.items()]


def rate_table_from_settings(config: Settings | None = None) -> RateTable:
    """Published grid, bounded by the same duration settings the calculator uses."""
    config = config or get_settings()
    return RateTable(
        rate_resources.RATE_GRID,
        [TierRule(tier=tier, min_contribution_ratio=threshold) for tier, threshold in rate_resources.TIER_RULES],
        min_duration_years=config.min_duration_years,
        max_duration_years=config.max_duration_years,
    )


DEFAULT_RATE_TABLE = rate_table_from_settings()


def contribution_ratio(down_payment: Decimal, total_project_cost: Decimal) -> Decimal:
    if total_project_cost <= 0:
        return Decimal("0")
    return Decimal(down_payment) / Decimal(total_project_cost)


def validate_duration(duration_years, table: RateTable = DEFAULT_RATE_TABLE) -> int:
    if isinstance(duration_years, bool) or not isinstance(duration_years, int):
        raise InvalidInputError(
            "Loan duration must be a whole number of years",
            details={"field": "duration_years", "duration_years": str(duration_years)},
        )
    if duration_years < table.min_duration_years or duration_years > table.max_duration_years:
        raise InvalidInputError(
            f"Loan duration must be between {table.min_duration_years} and {table.max_duration_years} years",
            details={
                "field": "duration_years",
                "duration_years": duration_years,
                "min_duration_years": table.min_duration_years,
                "max_duration_years": table.max_duration_years,
            },
        )
    return duration_years


def select_tier(ratio: Decimal, table: RateTable = DEFAULT_RATE_TABLE) -> RateTier:
    ratio = Decimal(ratio)
    if ratio < 0:
        raise InvalidInputError(
            "Contribution ratio cannot be negative",
            details={"field": "contribution_ratio", "contribution_ratio": str(ratio)},
        )
    for rule in table.tier_rules:
        if ratio >= rule.min_contribution_ratio:
            return rule.tier
    # Unreachable: _validate() guarantees a zero threshold on the last rule.
    raise RateTableConfigError("No tier matched", details={"contribution_ratio": str(ratio)})


def resolve_rate(
    duration_years: int,
    ratio: Decimal,
    table: RateTable = DEFAULT_RATE_TABLE,
) -> RateQuote:
    duration_years = validate_duration(duration_years, table)
    tier = select_tier(ratio, table)
    bracket = table.nearest_bracket(duration_years)
    return RateQuote(tier=tier, rate_percent=table.rate(bracket, tier), duration_bracket=bracket)

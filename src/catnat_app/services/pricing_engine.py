"""Premium calculation from store floor area and coverage type."""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from catnat_app.core.clock import as_date
from catnat_app.core.errors import NoActiveConfigError
from catnat_app.models.policy import CoverageType
from catnat_app.models.pricing import (
    BulkPricingResult,
    PricingBreakdown,
    PricingConfig,
    PricingError,
    PricingResult,
)
from catnat_app.models.store import Store

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
DEFAULT_VALUATION_MULTIPLIER = Decimal("1000")


def to_cents(value: Decimal) -> Decimal:
    """Round a monetary amount half-up to cent precision."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class PricingEngine:
    """Looks up the rate table and prices stores."""

    def __init__(
        self,
        configs: Iterable[PricingConfig],
        valuation_multiplier: Decimal = DEFAULT_VALUATION_MULTIPLIER,
    ):
        self._configs = list(configs)
        self._valuation_multiplier = valuation_multiplier

    def get_active_config(
        self,
        coverage_type: CoverageType,
        as_of: date | datetime | None = None,
    ) -> PricingConfig | None:
        """Return the first config in table order covering as_of, if any."""
        day = as_date(as_of)
        for config in self._configs:
            if config.coverage_type == coverage_type and config.covers(day):
                return config
        return None

    def has_pricing_config(
        self,
        coverage_type: CoverageType,
        as_of: date | datetime | None = None,
    ) -> bool:
        return self.get_active_config(coverage_type, as_of) is not None

    def calculate(
        self,
        store: Store,
        coverage_type: CoverageType,
        as_of: date | datetime | None = None,
    ) -> PricingResult:
        """Price one store. Raises NoActiveConfigError when no rate applies."""
        day = as_date(as_of)
        config = self.get_active_config(coverage_type, day)
        if config is None:
            raise NoActiveConfigError(CoverageType(coverage_type).value, day.isoformat())

        square_meters = store.square_meters
        base_premium = square_meters * config.rate_per_square_meter
        premium = max(base_premium, config.minimum_premium)
        insured_sum = min(square_meters * self._valuation_multiplier, config.maximum_insured_sum)

        rounded_premium = to_cents(premium)
        rounded_base = to_cents(base_premium)
        return PricingResult(
            premium=rounded_premium,
            insured_sum=to_cents(insured_sum),
            breakdown=PricingBreakdown(
                square_meters=square_meters,
                rate_applied=config.rate_per_square_meter,
                base_premium=rounded_base,
                adjustments=rounded_premium - rounded_base,
            ),
        )

    def calculate_bulk(
        self,
        stores: Iterable[Store],
        coverage_type: CoverageType,
        as_of: date | datetime | None = None,
    ) -> BulkPricingResult:
        """Price many stores, collecting one error per failing store."""
        bulk = BulkPricingResult()
        for store in stores:
            try:
                bulk.results[store.store_code] = self.calculate(store, coverage_type, as_of)
            except Exception as error:  # pylint: disable=broad-except
                # Bulk boundary: every failure is recorded, none is raised.
                bulk.errors.append(
                    PricingError(
                        store_code=store.store_code,
                        coverage_type=coverage_type,
                        message=str(error) or type(error).__name__,
                    )
                )
        if bulk.errors:
            logger.warning(
                "Bulk pricing for %s: %d priced, %d failed",
                coverage_type,
                len(bulk.results),
                len(bulk.errors),
            )
        return bulk

    def get_configs(self) -> list[PricingConfig]:
        return list(self._configs)

    def set_config(self, config: PricingConfig) -> None:
        """Replace the row with the same coverage type and start date, or append."""
        for index, existing in enumerate(self._configs):
            if (
                existing.coverage_type == config.coverage_type
                and existing.effective_from == config.effective_from
            ):
                self._configs[index] = config
                return
        self._configs.append(config)

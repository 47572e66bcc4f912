"""Pricing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from catnat_app.models.policy import CoverageType


@dataclass(frozen=True)
class PricingConfig:
    """Rate-table row valid for a date window."""

    coverage_type: CoverageType
    rate_per_square_meter: Decimal
    minimum_premium: Decimal
    maximum_insured_sum: Decimal
    effective_from: date
    effective_to: date | None = None

    def covers(self, as_of: date) -> bool:
        """Return True when as_of falls inside the effective window."""
        if self.effective_from > as_of:
            return False
        return self.effective_to is None or self.effective_to >= as_of


@dataclass(frozen=True)
class PricingBreakdown:
    square_meters: Decimal
    rate_applied: Decimal
    base_premium: Decimal
    adjustments: Decimal


@dataclass(frozen=True)
class PricingResult:
    premium: Decimal
    insured_sum: Decimal
    breakdown: PricingBreakdown


@dataclass(frozen=True)
class PricingError:
    """Failure recorded for one store during bulk pricing."""

    store_code: str
    coverage_type: CoverageType
    message: str


@dataclass
class BulkPricingResult:
    results: dict[str, PricingResult] = field(default_factory=dict)
    errors: list[PricingError] = field(default_factory=list)

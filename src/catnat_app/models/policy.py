"""Policy and certificate domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from catnat_app.core.clock import utc_now


class CoverageType(str, Enum):
    """Insurance protection category."""

    catnat = "catnat"
    property = "property"
    combined = "combined"


class PolicyStatus(str, Enum):
    """Policy status."""

    active = "active"
    expired = "expired"
    cancelled = "cancelled"
    pending = "pending"


@dataclass(frozen=True)
class Policy:
    """Insurance policy covering one store for a time window."""

    policy_id: str
    store_code: str
    coverage_type: CoverageType
    insured_sum: Decimal
    premium: Decimal
    effective_from: datetime
    effective_to: datetime
    status: PolicyStatus = PolicyStatus.active
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class Certificate:
    """Coverage certificate, immutable once issued."""

    cert_id: str
    policy_id: str
    issue_date: datetime
    document_url: str
    valid_from: datetime
    valid_to: datetime
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class PortfolioSummary:
    total_policies: int
    active_policies: int
    total_premium: Decimal
    total_insured_sum: Decimal
    by_status: dict[str, int]

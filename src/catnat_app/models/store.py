"""Store domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from catnat_app.core.clock import utc_now


class StoreStatus(str, Enum):
    """Store coverage lifecycle status."""

    pending = "pending"
    active = "active"
    suspended = "suspended"
    inactive = "inactive"


@dataclass(frozen=True)
class StoreData:
    """Input model for creating or updating a store."""

    store_code: str
    business_name: str
    address: str
    square_meters: Decimal


@dataclass(frozen=True)
class Store:
    """Insured point of sale. Changes produce a new instance."""

    store_code: str
    business_name: str
    address: str
    square_meters: Decimal
    status: StoreStatus = StoreStatus.pending
    activation_date: datetime | None = None
    closure_date: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def differs_from(self, data: StoreData) -> bool:
        """Return True when imported attributes differ from this store."""
        return (
            self.business_name != data.business_name
            or self.address != data.address
            or self.square_meters != data.square_meters
        )


@dataclass(frozen=True)
class LifecycleEvent:
    """Status change emitted by a successful transition."""

    store_code: str
    previous_status: StoreStatus
    new_status: StoreStatus
    reason: str | None
    effective_date: datetime


@dataclass(frozen=True)
class LifecycleResult:
    """Outcome of a lifecycle transition request."""

    success: bool
    store: Store
    event: LifecycleEvent | None = None
    error: str | None = None


@dataclass
class BulkUpdateResult:
    """Stores touched by one roster reconciliation."""

    created: list[Store] = field(default_factory=list)
    updated: list[Store] = field(default_factory=list)
    deactivated: list[Store] = field(default_factory=list)

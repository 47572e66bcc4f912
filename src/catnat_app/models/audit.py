"""Audit log models."""

from __future__ import annotations

from dataclasses import dataclass, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class AuditAction(str, Enum):
    """Actions recorded in the audit log."""

    store_created = "store_created"
    store_updated = "store_updated"
    store_activated = "store_activated"
    store_suspended = "store_suspended"
    store_deactivated = "store_deactivated"
    policy_created = "policy_created"
    policy_renewed = "policy_renewed"
    policy_cancelled = "policy_cancelled"
    policy_expired = "policy_expired"
    premium_calculated = "premium_calculated"
    certificate_generated = "certificate_generated"


@dataclass(frozen=True)
class AuditEntry:
    """One append-only audit record."""

    id: int
    action: AuditAction
    entity_type: str
    entity_id: str
    previous_state: dict[str, Any] | None
    new_state: dict[str, Any] | None
    performed_by: str
    timestamp: datetime
    metadata: dict[str, Any] | None = None


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def snapshot(entity: Any) -> dict[str, Any]:
    """Build a JSON-ready snapshot of a dataclass entity for audit logs."""
    if not is_dataclass(entity):
        raise TypeError(f"Cannot snapshot {type(entity).__name__}")
    return {item.name: _plain(getattr(entity, item.name)) for item in fields(entity)}

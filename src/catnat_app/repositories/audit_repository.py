"""Audit log repository."""

from __future__ import annotations

import itertools
import threading
from datetime import timedelta
from typing import Any

from catnat_app.core.clock import utc_now
from catnat_app.models.audit import AuditAction, AuditEntry


class AuditRepository:
    """Append-only audit log keyed by a monotonic id."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def add_log(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        previous_state: dict[str, Any] | None,
        new_state: dict[str, Any] | None,
        performed_by: str = "system",
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Append an audit record and return it."""
        with self._lock:
            entry = AuditEntry(
                id=next(self._ids),
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_state=previous_state,
                new_state=new_state,
                performed_by=performed_by,
                timestamp=utc_now(),
                metadata=metadata,
            )
            self._entries.append(entry)
            return entry

    def list_logs(
        self,
        action: AuditAction | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """List audit logs in insertion order with optional filters."""
        with self._lock:
            entries = list(self._entries)

        if action:
            entries = [entry for entry in entries if entry.action == action]
        if entity_type:
            entries = [entry for entry in entries if entry.entity_type == entity_type]
        if entity_id:
            entries = [entry for entry in entries if entry.entity_id == entity_id]
        if limit is not None:
            entries = entries[-limit:]
        return entries

    def cleanup_old_logs(self, retention_days: int) -> int:
        """Delete logs older than retention_days and return removed count."""
        cutoff = utc_now() - timedelta(days=retention_days)
        with self._lock:
            kept = [entry for entry in self._entries if entry.timestamp >= cutoff]
            removed = len(self._entries) - len(kept)
            self._entries = kept
        return removed

    def purge_logs(self, entity_type: str | None = None) -> None:
        """Delete all logs, or only those of one entity type."""
        with self._lock:
            if entity_type is None:
                self._entries = []
            else:
                self._entries = [
                    entry for entry in self._entries if entry.entity_type != entity_type
                ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

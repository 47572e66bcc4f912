"""Store lifecycle transitions and roster reconciliation."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Mapping

from catnat_app.core.clock import utc_now
from catnat_app.models.audit import AuditAction, AuditEntry, snapshot
from catnat_app.models.store import (
    BulkUpdateResult,
    LifecycleEvent,
    LifecycleResult,
    Store,
    StoreData,
    StoreStatus,
)
from catnat_app.repositories.audit_repository import AuditRepository

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
STORE_ENTITY = "store"

VALID_TRANSITIONS: dict[StoreStatus, frozenset[StoreStatus]] = {
    StoreStatus.pending: frozenset({StoreStatus.active, StoreStatus.inactive}),
    StoreStatus.active: frozenset({StoreStatus.suspended, StoreStatus.inactive}),
    StoreStatus.suspended: frozenset({StoreStatus.active, StoreStatus.inactive}),
    # Re-entry only through a fresh application.
    StoreStatus.inactive: frozenset({StoreStatus.pending}),
}

TRANSITION_ACTIONS = {
    StoreStatus.active: AuditAction.store_activated,
    StoreStatus.suspended: AuditAction.store_suspended,
    StoreStatus.inactive: AuditAction.store_deactivated,
    StoreStatus.pending: AuditAction.store_updated,
}

REASON_INITIAL_IMPORT = "Initial import"
REASON_REAPPEARED = "Present again in latest import"
REASON_ABSENT = "Absent from latest import"


class LifecycleManager:
    """Coordinates store status changes and writes their audit trail."""

    def __init__(self, audit_repo: AuditRepository):
        self._audit_repo = audit_repo
        self._session_id: str | None = None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def init_session(self, session_id: str) -> None:
        """Adopt a session, wiping store history left by a different one."""
        if self._session_id != session_id:
            self.clear_session_data()
            self._session_id = session_id

    def clear_session_data(self) -> None:
        self._audit_repo.purge_logs(STORE_ENTITY)
        self._session_id = None

    @staticmethod
    def is_valid_transition(current: StoreStatus, target: StoreStatus) -> bool:
        return target in VALID_TRANSITIONS.get(current, frozenset())

    @staticmethod
    def get_allowed_transitions(current: StoreStatus) -> list[StoreStatus]:
        return sorted(VALID_TRANSITIONS.get(current, frozenset()), key=lambda s: s.value)

    def _transition(
        self,
        store: Store,
        target: StoreStatus,
        reason: str | None,
        performed_by: str,
    ) -> LifecycleResult:
        if store.status == target:
            return LifecycleResult(
                success=False,
                store=store,
                error=f"Store {store.store_code} is already {target.value}",
            )
        if not self.is_valid_transition(store.status, target):
            logger.warning(
                "Rejected transition %s -> %s for store %s",
                store.status.value,
                target.value,
                store.store_code,
            )
            return LifecycleResult(
                success=False,
                store=store,
                error=(
                    f"Cannot move store {store.store_code} "
                    f"from {store.status.value} to {target.value}"
                ),
            )

        now = utc_now()
        changes: dict = {"status": target, "updated_at": now}
        if target == StoreStatus.active:
            changes["activation_date"] = store.activation_date or now
            changes["closure_date"] = None
        elif target == StoreStatus.inactive:
            changes["closure_date"] = now
        updated = replace(store, **changes)

        self._log(
            TRANSITION_ACTIONS[target],
            store,
            updated,
            performed_by,
            {"reason": reason} if reason else None,
        )
        return LifecycleResult(
            success=True,
            store=updated,
            event=LifecycleEvent(
                store_code=store.store_code,
                previous_status=store.status,
                new_status=target,
                reason=reason,
                effective_date=now,
            ),
        )

    def activate(
        self,
        store: Store,
        reason: str | None = None,
        performed_by: str = SYSTEM_ACTOR,
    ) -> LifecycleResult:
        """Move a store to active, keeping the first activation date.

        An inactive store cannot jump straight to active, so it is first
        reopened as a fresh application (inactive -> pending) and then
        activated. Both steps are audited; the returned event spans the
        whole change.
        """
        if store.status != StoreStatus.inactive:
            return self._transition(store, StoreStatus.active, reason, performed_by)

        reopened = self.reapply(store, reason, performed_by)
        if not reopened.success:
            return reopened
        activation = self._transition(reopened.store, StoreStatus.active, reason, performed_by)
        if not activation.success or activation.event is None:
            return activation
        return replace(
            activation,
            event=replace(activation.event, previous_status=store.status),
        )

    def deactivate(
        self,
        store: Store,
        reason: str | None = None,
        performed_by: str = SYSTEM_ACTOR,
    ) -> LifecycleResult:
        """Move a store to inactive and stamp its closure date."""
        return self._transition(store, StoreStatus.inactive, reason, performed_by)

    def suspend(
        self,
        store: Store,
        reason: str | None = None,
        performed_by: str = SYSTEM_ACTOR,
    ) -> LifecycleResult:
        """Temporarily suspend an active store."""
        return self._transition(store, StoreStatus.suspended, reason, performed_by)

    def reapply(
        self,
        store: Store,
        reason: str | None = None,
        performed_by: str = SYSTEM_ACTOR,
    ) -> LifecycleResult:
        """Return an inactive store to pending as a fresh application."""
        return self._transition(store, StoreStatus.pending, reason, performed_by)

    def create_store(self, data: StoreData, performed_by: str = SYSTEM_ACTOR) -> Store:
        """Create a new pending store."""
        now = utc_now()
        store = Store(
            store_code=data.store_code,
            business_name=data.business_name,
            address=data.address,
            square_meters=data.square_meters,
            status=StoreStatus.pending,
            activation_date=None,
            closure_date=None,
            created_at=now,
            updated_at=now,
        )
        self._log(AuditAction.store_created, None, store, performed_by)
        return store

    def update_store(
        self,
        store: Store,
        data: StoreData,
        performed_by: str = SYSTEM_ACTOR,
    ) -> Store:
        """Apply imported attributes to an existing store."""
        updated = replace(
            store,
            business_name=data.business_name,
            address=data.address,
            square_meters=data.square_meters,
            updated_at=utc_now(),
        )
        self._log(AuditAction.store_updated, store, updated, performed_by)
        return updated

    def process_bulk_update(
        self,
        existing_stores: Mapping[str, Store],
        imported_rows: Iterable[StoreData],
        performed_by: str = SYSTEM_ACTOR,
    ) -> BulkUpdateResult:
        """Reconcile the stored roster against an imported full roster.

        Unknown codes are created and activated, changed stores are updated
        (and reactivated when they had been closed), and active stores missing
        from the import are deactivated. Pending and suspended stores missing
        from the import are left as they are.
        """
        rows = list(imported_rows)
        imported_codes = {row.store_code for row in rows}
        result = BulkUpdateResult()

        for row in rows:
            existing = existing_stores.get(row.store_code)
            if existing is None:
                store = self.create_store(row, performed_by)
                activation = self.activate(store, REASON_INITIAL_IMPORT, performed_by)
                if activation.success:
                    result.created.append(activation.store)
                continue

            if not existing.differs_from(row):
                continue

            store = self.update_store(existing, row, performed_by)
            if store.status == StoreStatus.inactive:
                reactivation = self.activate(store, REASON_REAPPEARED, performed_by)
                if reactivation.success:
                    store = reactivation.store
            result.updated.append(store)

        for code, store in existing_stores.items():
            if code in imported_codes or store.status != StoreStatus.active:
                continue
            deactivation = self.deactivate(store, REASON_ABSENT, performed_by)
            if deactivation.success:
                result.deactivated.append(deactivation.store)

        logger.info(
            "Roster reconciled: %d created, %d updated, %d deactivated",
            len(result.created),
            len(result.updated),
            len(result.deactivated),
        )
        return result

    def get_audit_log(self) -> list[AuditEntry]:
        return self._audit_repo.list_logs(entity_type=STORE_ENTITY)

    def get_store_audit_log(self, store_code: str) -> list[AuditEntry]:
        return self._audit_repo.list_logs(entity_type=STORE_ENTITY, entity_id=store_code)

    def _log(
        self,
        action: AuditAction,
        before: Store | None,
        after: Store,
        performed_by: str,
        metadata: dict | None = None,
    ) -> None:
        self._audit_repo.add_log(
            action,
            STORE_ENTITY,
            after.store_code,
            snapshot(before) if before is not None else None,
            snapshot(after),
            performed_by=performed_by,
            metadata=metadata,
        )

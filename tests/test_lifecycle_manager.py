"""Tests for store lifecycle transitions and roster reconciliation."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from catnat_app.models.audit import AuditAction
from catnat_app.models.store import Store, StoreData, StoreStatus
from catnat_app.repositories.audit_repository import AuditRepository
from catnat_app.services.lifecycle_manager import LifecycleManager


def build_manager() -> tuple[LifecycleManager, AuditRepository]:
    audit_repo = AuditRepository()
    return LifecycleManager(audit_repo), audit_repo


def data(code: str, square_meters: str = "100", name: str = "Bottega") -> StoreData:
    return StoreData(
        store_code=code,
        business_name=name,
        address="Via Roma 1",
        square_meters=Decimal(square_meters),
    )


def test_create_store_starts_pending_and_is_audited() -> None:
    manager, audit_repo = build_manager()

    store = manager.create_store(data("S1"), performed_by="alice")

    assert store.status == StoreStatus.pending
    assert store.activation_date is None
    entry = audit_repo.list_logs()[0]
    assert entry.action == AuditAction.store_created
    assert entry.previous_state is None
    assert entry.new_state["square_meters"] == "100"
    assert entry.performed_by == "alice"


def test_activation_keeps_first_activation_date() -> None:
    manager, _ = build_manager()
    store = manager.create_store(data("S1"))

    activated = manager.activate(store, "onboarded")
    assert activated.success
    assert activated.event.previous_status == StoreStatus.pending
    assert activated.store.activation_date is not None

    suspended = manager.suspend(activated.store, "unpaid")
    assert suspended.store.status == StoreStatus.suspended

    resumed = manager.activate(suspended.store)
    assert resumed.store.status == StoreStatus.active
    assert resumed.store.activation_date == activated.store.activation_date


def test_deactivate_then_activate_restores_active() -> None:
    manager, audit_repo = build_manager()
    store = manager.activate(manager.create_store(data("S1"))).store

    closed = manager.deactivate(store, "closed")
    assert closed.store.status == StoreStatus.inactive
    assert closed.store.closure_date is not None

    reopened = manager.activate(closed.store, "reopened")
    assert reopened.success
    assert reopened.store.status == StoreStatus.active
    assert reopened.store.closure_date is None
    assert reopened.event.previous_status == StoreStatus.inactive
    actions = [entry.action for entry in manager.get_store_audit_log("S1")]
    assert actions[-2:] == [AuditAction.store_updated, AuditAction.store_activated]
    assert audit_repo.list_logs()[-1].metadata == {"reason": "reopened"}


def test_invalid_transitions_fail_without_audit() -> None:
    manager, audit_repo = build_manager()
    store = manager.create_store(data("S1"))
    before = len(audit_repo)

    suspended = manager.suspend(store)
    assert suspended.success is False
    assert suspended.store is store
    assert "pending" in suspended.error

    active = manager.activate(store).store
    again = manager.activate(active)
    assert again.success is False
    assert "already active" in again.error
    assert len(audit_repo) == before + 1


def test_allowed_transitions() -> None:
    assert LifecycleManager.get_allowed_transitions(StoreStatus.inactive) == [StoreStatus.pending]
    assert LifecycleManager.get_allowed_transitions(StoreStatus.active) == [
        StoreStatus.inactive,
        StoreStatus.suspended,
    ]
    assert LifecycleManager.is_valid_transition(StoreStatus.pending, StoreStatus.active)
    assert not LifecycleManager.is_valid_transition(StoreStatus.inactive, StoreStatus.active)


def test_bulk_update_creates_updates_and_deactivates() -> None:
    manager, _ = build_manager()
    kept = manager.activate(manager.create_store(data("A"))).store
    missing = manager.activate(manager.create_store(data("B"))).store
    waiting = manager.create_store(data("C"))
    unchanged = manager.activate(manager.create_store(data("E"))).store
    existing = {store.store_code: store for store in (kept, missing, waiting, unchanged)}

    result = manager.process_bulk_update(
        existing,
        [data("A", "150"), data("D"), data("E")],
        performed_by="importer",
    )

    assert [store.store_code for store in result.created] == ["D"]
    assert result.created[0].status == StoreStatus.active
    assert [store.store_code for store in result.updated] == ["A"]
    assert result.updated[0].square_meters == Decimal("150")
    assert result.updated[0].status == StoreStatus.active
    assert [store.store_code for store in result.deactivated] == ["B"]
    assert result.deactivated[0].status == StoreStatus.inactive
    assert result.deactivated[0].closure_date is not None


def test_bulk_update_reactivates_changed_inactive_store() -> None:
    manager, _ = build_manager()
    active = manager.activate(manager.create_store(data("S1"))).store
    closed = manager.deactivate(active).store

    result = manager.process_bulk_update({"S1": closed}, [data("S1", "300")])

    assert result.updated[0].status == StoreStatus.active
    assert result.updated[0].square_meters == Decimal("300")
    assert result.deactivated == []


def test_bulk_update_leaves_inputs_untouched() -> None:
    manager, _ = build_manager()
    store = Store(
        store_code="S1",
        business_name="Bottega",
        address="Via Roma 1",
        square_meters=Decimal("100"),
        status=StoreStatus.active,
    )
    snapshot = replace(store)

    manager.process_bulk_update({"S1": store}, [])

    assert store == snapshot


def test_clear_session_data_drops_store_history_only() -> None:
    manager, audit_repo = build_manager()
    manager.init_session("one")
    manager.create_store(data("S1"))
    audit_repo.add_log(AuditAction.policy_created, "policy", "P1", None, {})

    manager.init_session("two")

    assert manager.session_id == "two"
    assert manager.get_audit_log() == []
    assert len(audit_repo) == 1

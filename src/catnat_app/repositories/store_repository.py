"""Store repository."""

from __future__ import annotations

from catnat_app.models.store import Store, StoreStatus
from catnat_app.repositories.memory_store import InMemoryTable


class StoreRepository:
    """Handles store persistence keyed by store code."""

    def __init__(self, table: InMemoryTable[str, Store] | None = None):
        self._table = table if table is not None else InMemoryTable()

    def save(self, store: Store) -> None:
        """Insert or replace a store."""
        self._table.put(store.store_code, store)

    def get(self, store_code: str) -> Store | None:
        return self._table.get(store_code)

    def list_stores(self, status: StoreStatus | None = None) -> list[Store]:
        """List stores, optionally filtered by status."""
        stores = self._table.values()
        if status is None:
            return stores
        return [store for store in stores if store.status == status]

    def as_map(self) -> dict[str, Store]:
        """Return a snapshot map for reconciliation."""
        return dict(self._table.items())

    def purge_all(self) -> None:
        self._table.clear()

    def __len__(self) -> int:
        return len(self._table)

"""Thread-safe in-memory table used behind the repositories."""

from __future__ import annotations

import threading
from typing import Callable, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class InMemoryTable(Generic[K, V]):
    """Keyed map guarded by one re-entrant lock.

    Iteration helpers return copies so callers never observe a map that is
    being mutated by the import worker.
    """

    def __init__(self) -> None:
        self._rows: dict[K, V] = {}
        self._lock = threading.RLock()

    def get(self, key: K) -> V | None:
        with self._lock:
            return self._rows.get(key)

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._rows[key] = value

    def values(self) -> list[V]:
        with self._lock:
            return list(self._rows.values())

    def items(self) -> list[tuple[K, V]]:
        with self._lock:
            return list(self._rows.items())

    def find(self, predicate: Callable[[V], bool]) -> V | None:
        """Return the first value in insertion order matching predicate."""
        with self._lock:
            for value in self._rows.values():
                if predicate(value):
                    return value
        return None

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

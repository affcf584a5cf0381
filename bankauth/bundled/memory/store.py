"""Thread-safe namespaced in-memory data store."""

from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from threading import RLock
from typing import Any


class MemoryStore:
    """Thread-safe in-memory key-value store.

    This store provides:
    - Namespaces so one store can hold records and their indexes side by side
    - A re-entrant lock that callers can hold across several operations
    - Snapshot iteration, so callers may mutate while looping
    """

    def __init__(self):
        self._data: dict[str, dict[str, Any]] = defaultdict(dict)
        self._lock = RLock()

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        """Hold the store lock across several operations.

        Code inside the block must not await: the lock is a thread lock and
        the block is the unit of atomicity.
        """
        with self._lock:
            yield self

    def set(self, namespace: str, key: str, value: Any) -> None:
        with self._lock:
            self._data[namespace][key] = value

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        with self._lock:
            if namespace not in self._data:
                return default
            return self._data[namespace].get(key, default)

    def delete(self, namespace: str, key: str) -> bool:
        """Delete a key from the store.

        Returns:
            True if key was deleted, False if not found
        """
        with self._lock:
            if namespace not in self._data:
                return False
            return self._data[namespace].pop(key, None) is not None

    def exists(self, namespace: str, key: str) -> bool:
        with self._lock:
            return namespace in self._data and key in self._data[namespace]

    def items(self, namespace: str) -> list[tuple[str, Any]]:
        with self._lock:
            return list(self._data.get(namespace, {}).items())


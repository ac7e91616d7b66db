"""
Cache - Thread-safe key/value map queried by applications.

All reads copy out under the same lock that guards mutation, so callers
never see a half-applied update and snapshots are not live views.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Generic, Hashable, Iterator, List, Tuple, TypeVar


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class Cache(Generic[K, V]):
    """A dict guarded by a single lock."""

    def __init__(self):
        self._data: Dict[K, V] = {}
        self._lock = threading.Lock()

    def keys(self) -> List[K]:
        with self._lock:
            return list(self._data.keys())

    def values(self) -> List[V]:
        with self._lock:
            return list(self._data.values())

    def items(self) -> List[Tuple[K, V]]:
        with self._lock:
            return list(self._data.items())

    def __getitem__(self, key: K) -> V:
        with self._lock:
            return self._data[key]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._data[key] = value

    def pop(self, key: K) -> bool:
        """Remove a key if present. Returns whether it was present."""
        with self._lock:
            return self._data.pop(key, _MISSING) is not _MISSING

    def move(self, old_key: K, new_key: K) -> bool:
        """
        Re-key an entry in one step, overwriting any value at new_key.

        Returns False (and changes nothing) if old_key is absent.
        """
        with self._lock:
            if old_key not in self._data:
                return False
            value = self._data.pop(old_key)
            self._data[new_key] = value
            return True


_MISSING = object()


class KeyLocks:
    """
    Striped locks serializing read-modify-write operations per key.

    Different keys usually map to different stripes and proceed in parallel;
    the same key always maps to the same stripe.
    """

    def __init__(self, stripes: int = 64):
        self._locks = [threading.RLock() for _ in range(stripes)]

    def _index(self, key: Hashable) -> int:
        return hash(key) % len(self._locks)

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        """Hold the stripes of all given keys, acquired in stripe order."""
        indexes = sorted({self._index(key) for key in keys})
        acquired = []
        try:
            for i in indexes:
                self._locks[i].acquire()
                acquired.append(i)
            yield
        finally:
            for i in reversed(acquired):
                self._locks[i].release()

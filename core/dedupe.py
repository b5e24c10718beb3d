from __future__ import annotations

from collections import deque


class SeenCache:
    """
    Bounded set of already-alerted transaction keys.

    Eviction is oldest-inserted first, `evict_batch` keys at a time, once the
    size goes over `max_size`.
    """

    def __init__(self, max_size: int = 1000, evict_batch: int = 100):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = int(max_size)
        self.evict_batch = max(1, int(evict_batch))
        self._keys = set()
        self._order = deque()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def contains(self, key: str) -> bool:
        return key in self._keys

    def insert(self, key: str) -> None:
        if key in self._keys:
            return
        self._keys.add(key)
        self._order.append(key)
        if len(self._keys) > self.max_size:
            self.evict_some()

    def evict_some(self) -> None:
        n = min(self.evict_batch, len(self._order))
        for _ in range(n):
            old = self._order.popleft()
            self._keys.discard(old)

    def clear(self) -> None:
        self._keys.clear()
        self._order.clear()

from __future__ import annotations

from collections import deque
from collections.abc import Iterator


class IdIndex:
    """
    Bidirectional map between external string ids and dense integer indices.

    Indices are handed out densely starting at 0. A released index goes to a
    free list and is reused (oldest first) before the range grows, so the
    layout engine can keep its arrays compact.

    Not thread-safe on its own; the owning GraphStore serializes access.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, int] = {}
        self._by_index: dict[int, str] = {}
        self._free: deque[int] = deque()
        self._next = 0

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, key: object) -> bool:
        return key in self._by_id

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_id)

    @property
    def capacity(self) -> int:
        """Upper bound (exclusive) of all indices handed out so far."""
        return self._next

    def acquire(self, key: str) -> int:
        """Return the index for `key`, allocating one if needed."""
        idx = self._by_id.get(key)
        if idx is not None:
            return idx
        if self._free:
            idx = self._free.popleft()
        else:
            idx = self._next
            self._next += 1
        self._by_id[key] = idx
        self._by_index[idx] = key
        return idx

    def release(self, key: str) -> int | None:
        idx = self._by_id.pop(key, None)
        if idx is None:
            return None
        del self._by_index[idx]
        self._free.append(idx)
        return idx

    def index_of(self, key: str) -> int:
        return self._by_id[key]

    def get_index(self, key: str) -> int | None:
        return self._by_id.get(key)

    def id_of(self, idx: int) -> str:
        return self._by_index[idx]

    def get_id(self, idx: int) -> str | None:
        return self._by_index.get(idx)

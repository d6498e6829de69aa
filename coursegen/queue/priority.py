"""PriorityQueue: in-memory priority queue with FIFO tiebreaker.

Sort key is ``(priority, counter)``:
- Lower priority value drains first
- Counter preserves insertion order within the same priority
- At most one entry per id
"""

import bisect
import itertools
from collections.abc import Callable, Iterator
from typing import Generic, Protocol, TypeVar


class Prioritized(Protocol):
    id: str
    priority: int


T = TypeVar("T", bound=Prioritized)


class PriorityQueue(Generic[T]):
    """Stable priority queue keyed by item id."""

    def __init__(self) -> None:
        self._keys: list[tuple[int, int]] = []
        self._items: dict[tuple[int, int], T] = {}
        self._key_by_id: dict[str, tuple[int, int]] = {}
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._key_by_id

    def __iter__(self) -> Iterator[T]:
        """Iterate in drain order over a snapshot of the queue."""
        return iter([self._items[key] for key in self._keys])

    def push(self, item: T) -> int:
        """Insert an item after every entry with the same or lower priority value.

        Returns:
            1-indexed position of the item.

        Raises:
            ValueError: If an item with the same id is already queued
        """
        if item.id in self._key_by_id:
            raise ValueError(f"Item '{item.id}' is already queued")

        key = (int(item.priority), next(self._counter))
        index = bisect.bisect_right(self._keys, key)
        self._keys.insert(index, key)
        self._items[key] = item
        self._key_by_id[item.id] = key
        return index + 1

    def peek(self) -> T | None:
        """Return the highest priority item without removing it."""
        if not self._keys:
            return None
        return self._items[self._keys[0]]

    def pop(self) -> T | None:
        """Remove and return the highest priority item, or None if empty."""
        if not self._keys:
            return None
        key = self._keys.pop(0)
        item = self._items.pop(key)
        del self._key_by_id[item.id]
        return item

    def remove(self, item_id: str) -> T | None:
        """Remove an item by id. Returns None if it was not queued."""
        key = self._key_by_id.pop(item_id, None)
        if key is None:
            return None
        index = bisect.bisect_left(self._keys, key)
        del self._keys[index]
        return self._items.pop(key)

    def get(self, item_id: str) -> T | None:
        key = self._key_by_id.get(item_id)
        return self._items[key] if key is not None else None

    def position(self, item_id: str) -> int:
        """Get 1-indexed position of an item.

        Returns 0 if the item is not queued.
        """
        key = self._key_by_id.get(item_id)
        if key is None:
            return 0
        return bisect.bisect_left(self._keys, key) + 1

    def find_first(self, predicate: Callable[[T], bool]) -> T | None:
        """Return the first item in drain order matching ``predicate``."""
        for key in self._keys:
            item = self._items[key]
            if predicate(item):
                return item
        return None

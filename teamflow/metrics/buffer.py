"""Fixed-capacity ring buffer for metric events."""

from collections import deque
from typing import Deque, Generic, List, TypeVar

T = TypeVar("T")


class CircularBuffer(Generic[T]):
    """Bounded FIFO that overwrites its oldest entry once full.

    ``push`` is O(1) and never blocks or grows; ``dropped`` counts how many
    entries were overwritten before anyone read them.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._items: Deque[T] = deque(maxlen=capacity)
        self.dropped = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_full(self) -> bool:
        return len(self._items) == self._capacity

    def push(self, item: T) -> None:
        if self.is_full:
            self.dropped += 1
        self._items.append(item)

    def items(self) -> List[T]:
        """Current contents, oldest first."""
        return list(self._items)

    def drain(self) -> List[T]:
        """Return the contents oldest-first and empty the buffer."""
        drained = list(self._items)
        self._items.clear()
        return drained

    def clear(self) -> None:
        self._items.clear()

    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

"""Thread-safe FIFO used in pairs to circulate a fixed pool of buffers.

A producer pops an empty buffer from a *free* queue, fills it and pushes it
onto a *full* queue; the consumer does the reverse.  The queue itself never
rejects a push: memory is bounded by the number of buffers in circulation.
"""

from __future__ import annotations

import queue
import threading
from collections import deque
from typing import Generic, TypeVar

from loguru import logger

__all__ = ["BoundedHandoffQueue"]

T = TypeVar("T")


class BoundedHandoffQueue(Generic[T]):
    """Unbounded FIFO with blocking ``pop`` and ``peek``.

    Every operation takes the queue's own lock, so individual pushes and pops
    are atomic even though the pipeline only ever uses one producer and one
    consumer per queue.

    Args:
        name: Used in the debug line logged when a pop has to wait.
    """

    def __init__(self, name: str = "queue") -> None:
        self.name = name
        self._items: deque[T] = deque()
        self._cond = threading.Condition(threading.Lock())
        self._warned = False

    def push(self, item: T) -> None:
        """Append ``item`` and wake one waiting ``pop``."""
        with self._cond:
            self._items.append(item)
            self._cond.notify()

    def try_pop(self) -> T | None:
        """Remove and return the head, or ``None`` if the queue is empty."""
        with self._cond:
            if not self._items:
                return None
            return self._items.popleft()

    def pop(self, timeout: float | None = None) -> T:
        """Remove and return the head, waiting for one if necessary.

        Raises:
            queue.Empty: If ``timeout`` elapses before an item arrives.
        """
        with self._cond:
            self._wait_nonempty(timeout)
            return self._items.popleft()

    def peek(self, timeout: float | None = None) -> T:
        """Return the head without removing it, waiting if necessary.

        Only safe while nobody else pops from this queue.
        """
        with self._cond:
            self._wait_nonempty(timeout)
            return self._items[0]

    def size(self) -> int:
        with self._cond:
            return len(self._items)

    def __len__(self) -> int:
        return self.size()

    def _wait_nonempty(self, timeout: float | None) -> None:
        if self._items:
            return
        if not self._warned:
            logger.debug(f"Waiting for {self.name}")
            self._warned = True
        if not self._cond.wait_for(lambda: len(self._items) > 0, timeout=timeout):
            raise queue.Empty

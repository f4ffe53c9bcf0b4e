"""Background record reader feeding a queue of filled record slots."""

from __future__ import annotations

from typing import Generic, TypeVar

from loguru import logger

from prefetch_pipeline.data.handoff import BoundedHandoffQueue
from prefetch_pipeline.data.internal_thread import InternalThread
from prefetch_pipeline.data.sources import RecordSource

__all__ = ["RecordReader", "RecordSlot"]

R = TypeVar("R")


class RecordSlot(Generic[R]):
    """Reusable holder for one record.

    Slots circulate between the reader's ``free`` and ``full`` queues; the
    thread that popped a slot is its only owner until it pushes it back.
    """

    __slots__ = ("record",)

    def __init__(self) -> None:
        self.record: R | None = None

    def get(self) -> R:
        if self.record is None:
            raise RuntimeError("RecordSlot is empty")
        return self.record


class RecordReader(InternalThread, Generic[R]):
    """Pull records from ``source`` on a dedicated thread.

    ``prefetch_depth`` slots are preallocated into the free queue.  The thread
    pops a free slot, fills it with ``source.next()`` and pushes it onto the
    full queue; once every slot is full it blocks until the consumer returns
    one via ``free().push(slot)``.

    The thread is started at construction unless ``start=False``.
    """

    def __init__(
        self,
        source: RecordSource[R],
        prefetch_depth: int = 4,
        name: str = "reader",
        start: bool = True,
    ) -> None:
        super().__init__(name=name)
        if prefetch_depth <= 0:
            raise ValueError(f"prefetch_depth must be > 0, got {prefetch_depth}")
        self.source = source
        self.prefetch_depth = prefetch_depth
        self._full: BoundedHandoffQueue[RecordSlot[R]] = BoundedHandoffQueue(
            f"{name} data"
        )
        self._free: BoundedHandoffQueue[RecordSlot[R]] = BoundedHandoffQueue(
            f"{name} free slots"
        )
        for _ in range(prefetch_depth):
            self._free.push(RecordSlot())
        if start:
            self.start()

    def full(self) -> BoundedHandoffQueue[RecordSlot[R]]:
        return self._full

    def free(self) -> BoundedHandoffQueue[RecordSlot[R]]:
        return self._free

    def start(self) -> None:
        logger.debug(
            f"Starting {self._thread_name} (prefetch_depth={self.prefetch_depth}, "
            f"{len(self.source)} records)"
        )
        self.start_internal_thread()

    def stop(self) -> None:
        self.stop_internal_thread()

    def internal_thread_entry(self) -> None:
        while not self.must_stop():
            slot = self.wait_pop(self._free)
            slot.record = self.source.next()
            self._full.push(slot)

    def __enter__(self) -> RecordReader[R]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

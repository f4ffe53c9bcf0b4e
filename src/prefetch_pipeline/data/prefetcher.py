"""Double-buffered batch prefetching on a background thread.

A fixed pool of :class:`Batch` buffers circulates through two queues.  The
fill thread pops a free batch, fills it and pushes it onto the ready queue;
the consumer pops a ready batch, uses it and releases it back to the free
queue.  When the consumer falls behind, the fill thread blocks on the empty
free queue, so memory never grows beyond the pool.
"""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, replace

import torch
from loguru import logger

from prefetch_pipeline.data.batch import Batch
from prefetch_pipeline.data.handoff import BoundedHandoffQueue
from prefetch_pipeline.data.internal_thread import (
    POLL_INTERVAL,
    InternalThread,
    StopRequested,
)
from prefetch_pipeline.data.reader import RecordReader

__all__ = ["BatchPrefetcher", "PrefetchStats"]


@dataclass
class PrefetchStats:
    """Cumulative fill-thread timings in milliseconds.  Observability only."""

    batches: int = 0
    last_batch_ms: float = 0.0
    batch_ms: float = 0.0
    read_ms: float = 0.0
    transform_ms: float = 0.0


class BatchPrefetcher(InternalThread):
    """Base class for pipelines that fill batches on a background thread.

    Subclasses implement :meth:`data_layer_setup`, which inspects the first
    record without consuming it and returns the data and label shapes, and
    :meth:`load_batch`, which fills one batch and returns the seconds spent
    reading and transforming.

    Args:
        batch_size: Samples per batch.
        prefetch_count: Batch buffers in circulation (at least 2).
        dtype: Element type of every batch tensor.
        name: Thread name, also used in log lines.
    """

    def __init__(
        self,
        batch_size: int,
        prefetch_count: int = 3,
        dtype: torch.dtype = torch.float32,
        name: str = "prefetch",
    ) -> None:
        super().__init__(name=name)
        if batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {batch_size}")
        if prefetch_count < 2:
            raise ValueError(f"prefetch_count must be >= 2, got {prefetch_count}")
        self.batch_size = batch_size
        self.prefetch_count = prefetch_count
        self.dtype = dtype
        self._batches = [Batch(dtype) for _ in range(prefetch_count)]
        self._pool_ids = {id(b) for b in self._batches}
        self._prefetch_free: BoundedHandoffQueue[Batch] = BoundedHandoffQueue(
            f"{name} free batches"
        )
        self._prefetch_full: BoundedHandoffQueue[Batch] = BoundedHandoffQueue(
            f"{name} ready batches"
        )
        for batch in self._batches:
            self._prefetch_free.push(batch)
        # Batches currently held by the consumer; touched by the consumer only.
        self._outstanding: set[int] = set()
        self._stats = PrefetchStats()
        self._stats_lock = threading.Lock()
        self._data_shape: tuple[int, ...] | None = None
        self._label_shape: tuple[int, ...] | None = None

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------
    def data_layer_setup(self) -> tuple[Sequence[int], Sequence[int]]:
        raise NotImplementedError

    def load_batch(self, batch: Batch) -> tuple[float, float]:
        raise NotImplementedError

    def readers(self) -> list[RecordReader]:
        """Record readers feeding the fill thread, started and stopped with it."""
        return []

    # ------------------------------------------------------------------
    # Setup and thread lifecycle
    # ------------------------------------------------------------------
    @property
    def is_setup(self) -> bool:
        return self._data_shape is not None

    @property
    def data_shape(self) -> tuple[int, ...]:
        if self._data_shape is None:
            raise RuntimeError("Call setup() first")
        return self._data_shape

    @property
    def label_shape(self) -> tuple[int, ...]:
        if self._label_shape is None:
            raise RuntimeError("Call setup() first")
        return self._label_shape

    def setup(self) -> tuple[int, ...]:
        """Infer shapes, allocate every batch buffer and return the data shape.

        Must run before the fill thread starts; configuration errors raise
        here rather than per sample.
        """
        if self.is_started():
            raise RuntimeError("setup() must run before the prefetch thread starts")
        data_shape, label_shape = self.data_layer_setup()
        if data_shape[0] != self.batch_size or label_shape[0] != self.batch_size:
            raise ValueError(
                f"Inferred shapes {tuple(data_shape)} / {tuple(label_shape)} do not "
                f"match batch_size {self.batch_size}"
            )
        for batch in self._batches:
            batch.reshape(data_shape, label_shape)
        self._data_shape = tuple(data_shape)
        self._label_shape = tuple(label_shape)
        logger.info(
            f"output data size: {','.join(str(d) for d in self._data_shape)}; "
            f"label size: {','.join(str(d) for d in self._label_shape)}"
        )
        return self._data_shape

    def start(self) -> None:
        """Start the readers and the fill thread, running :meth:`setup` if needed.

        A prefetcher stopped with :meth:`stop` can be started again; it
        resumes from the records its readers already buffered.
        """
        for reader in self.readers():
            if not reader.is_started():
                reader.start()
        if not self.is_setup:
            self.setup()
        self.start_internal_thread()

    def stop(self) -> None:
        """Stop the fill thread, then its readers."""
        self.stop_internal_thread()
        self.stop_readers()

    def stop_readers(self) -> None:
        for reader in self.readers():
            reader.stop()

    def internal_thread_entry(self) -> None:
        self.run_loop()

    def run_loop(self) -> None:
        """Fill-thread body: fill free batches until a stop is requested.

        A batch is pushed onto the ready queue only once it is complete; a
        batch abandoned by a stop goes back to the free queue.
        """
        while not self.must_stop():
            batch = self.wait_pop(self._prefetch_free)
            start = time.perf_counter()
            try:
                read_s, trans_s = self.load_batch(batch)
            except StopRequested:
                self._prefetch_free.push(batch)
                raise
            elapsed = time.perf_counter() - start
            self._record_timing(elapsed, read_s, trans_s)
            self._prefetch_full.push(batch)

    def _record_timing(self, batch_s: float, read_s: float, trans_s: float) -> None:
        with self._stats_lock:
            self._stats.batches += 1
            self._stats.last_batch_ms = batch_s * 1000
            self._stats.batch_ms += batch_s * 1000
            self._stats.read_ms += read_s * 1000
            self._stats.transform_ms += trans_s * 1000
        logger.debug(f"Prefetch batch: {batch_s * 1000:.2f} ms.")
        logger.debug(f"     Read time: {read_s * 1000:.2f} ms.")
        logger.debug(f"Transform time: {trans_s * 1000:.2f} ms.")

    @property
    def stats(self) -> PrefetchStats:
        """Snapshot of the cumulative timing counters."""
        with self._stats_lock:
            return replace(self._stats)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------
    def next_ready_batch(self, timeout: float | None = None) -> Batch:
        """Pop the next filled batch, blocking until one is ready.

        Raises:
            RuntimeError: If the fill thread failed or is not running.
            queue.Empty: If ``timeout`` is given and elapses first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            self.raise_if_failed()
            try:
                batch = self._prefetch_full.pop(timeout=POLL_INTERVAL)
            except queue.Empty:
                self.raise_if_running_failed()
                if deadline is not None and time.monotonic() >= deadline:
                    raise
                continue
            self._outstanding.add(id(batch))
            return batch

    def release(self, batch: Batch) -> None:
        """Return a consumed batch to the free pool."""
        if id(batch) not in self._pool_ids:
            raise RuntimeError("Batch does not belong to this prefetcher")
        if id(batch) not in self._outstanding:
            raise RuntimeError("Batch was not handed out or was already released")
        self._outstanding.discard(id(batch))
        self._prefetch_free.push(batch)

    def __iter__(self) -> Iterator[Batch]:
        """Yield ready batches forever, releasing each one on advance."""
        batch: Batch | None = None
        try:
            while True:
                batch = self.next_ready_batch()
                yield batch
                self.release(batch)
                batch = None
        finally:
            if batch is not None:
                self.release(batch)

    @property
    def ready_count(self) -> int:
        return self._prefetch_full.size()

    @property
    def free_count(self) -> int:
        return self._prefetch_free.size()

    def __enter__(self) -> BatchPrefetcher:
        if not self.is_started():
            self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

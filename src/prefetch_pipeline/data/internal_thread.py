"""Owned background thread with cooperative shutdown.

Subclasses implement :meth:`InternalThread.internal_thread_entry`.  Blocking
waits go through :meth:`InternalThread.wait_pop`, which polls the stop flag
and the producing thread between short waits.  A stop request is observed
without interrupting an operation in progress, and a failed producer ends
the wait instead of leaving it blocked.
"""

from __future__ import annotations

import queue
import threading
from typing import TypeVar

from loguru import logger

from prefetch_pipeline.data.handoff import BoundedHandoffQueue

__all__ = ["POLL_INTERVAL", "InternalThread", "StopRequested"]

T = TypeVar("T")

# Seconds between stop-flag and producer checks while blocked on a queue.
POLL_INTERVAL = 0.05


class StopRequested(Exception):
    """Raised inside the internal thread to unwind once stop was requested."""


class InternalThread:
    """Base class for components that own exactly one worker thread.

    An exception escaping the thread body is recorded (not swallowed) and
    re-raised on the owning thread by :meth:`raise_if_failed`.
    """

    def __init__(self, name: str) -> None:
        self._thread_name = name
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._error: BaseException | None = None

    def internal_thread_entry(self) -> None:
        raise NotImplementedError

    def start_internal_thread(self) -> None:
        if self.is_started():
            raise RuntimeError(f"{self._thread_name} thread already started")
        self._stop_event.clear()
        self._error = None
        self._thread = threading.Thread(
            target=self._run, name=self._thread_name, daemon=True
        )
        self._thread.start()

    def stop_internal_thread(self, timeout: float | None = None) -> None:
        """Request a stop and wait for the thread to finish its current wait."""
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning(f"{self._thread_name} thread did not stop in time")
            return
        self._thread = None

    def is_started(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def must_stop(self) -> bool:
        return self._stop_event.is_set()

    @property
    def error(self) -> BaseException | None:
        return self._error

    def raise_if_failed(self) -> None:
        if self._error is not None:
            raise RuntimeError(
                f"{self._thread_name} thread failed: {self._error}"
            ) from self._error

    def wait_pop(
        self, q: BoundedHandoffQueue[T], producer: InternalThread | None = None
    ) -> T:
        """Pop from ``q``, blocking until an item arrives or stop is requested.

        When ``producer`` (the thread filling ``q``) has failed or is no
        longer running, the wait ends with a ``RuntimeError`` instead of
        blocking forever.
        """
        while True:
            if self.must_stop():
                raise StopRequested
            try:
                return q.pop(timeout=POLL_INTERVAL)
            except queue.Empty:
                if producer is not None:
                    producer.raise_if_running_failed()

    def wait_peek(
        self, q: BoundedHandoffQueue[T], producer: InternalThread | None = None
    ) -> T:
        """Like :meth:`wait_pop` but leaves the head of ``q`` in place.

        Called by the owner before the thread starts, so the stop flag is not
        consulted.
        """
        while True:
            try:
                return q.peek(timeout=POLL_INTERVAL)
            except queue.Empty:
                if producer is not None:
                    producer.raise_if_running_failed()

    def raise_if_running_failed(self) -> None:
        """Raise if the thread failed, or stopped without having failed."""
        self.raise_if_failed()
        if not self.is_started():
            raise RuntimeError(f"{self._thread_name} thread is not running")

    def _run(self) -> None:
        try:
            self.internal_thread_entry()
        except StopRequested:
            pass
        except Exception as e:
            logger.error(f"{self._thread_name} thread stopped on error: {e!r}")
            self._error = e
        logger.debug(f"{self._thread_name} thread exited")

"""
Single-threaded timer for delayed job retries.
"""

import heapq
import itertools
import threading
import time
from collections.abc import Callable
from typing import Any

from taskqueue.config.logging import get_logger

logger = get_logger(__name__)


class RetryScheduler:
    """
    Runs delayed callbacks on one thread, one at a time.

    Callbacks fire in the order their delays expire; callbacks due at the
    same instant fire in scheduling order.
    """

    def __init__(self, name: str = "retry-scheduler"):
        self.name = name
        self._heap: list[tuple[float, int, Callable[..., Any], tuple[Any, ...]]] = []
        self._sequence = itertools.count()
        self._cond = threading.Condition()
        self._thread: threading.Thread | None = None
        self._closed = False

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._heap)

    def start(self) -> None:
        """Start the timer thread."""
        if self._thread is not None:
            raise RuntimeError("Retry scheduler is already running")

        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Retry scheduler started")

    def schedule(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> None:
        """Run fn(*args) on the timer thread after delay_s seconds."""
        due = time.monotonic() + max(0.0, delay_s)
        with self._cond:
            if self._closed:
                raise RuntimeError("Retry scheduler is shut down")
            heapq.heappush(self._heap, (due, next(self._sequence), fn, args))
            self._cond.notify()

    def _run(self) -> None:
        while True:
            with self._cond:
                while True:
                    if self._closed:
                        return
                    if not self._heap:
                        self._cond.wait()
                        continue
                    remaining = self._heap[0][0] - time.monotonic()
                    if remaining <= 0:
                        _, _, fn, args = heapq.heappop(self._heap)
                        break
                    self._cond.wait(remaining)

            try:
                fn(*args)
            except Exception:
                logger.exception("Error in scheduled callback")

    def shutdown(self, wait: bool = True, timeout: float | None = None) -> int:
        """
        Stop the timer. Callbacks that have not fired yet are discarded.

        Returns:
            Number of discarded callbacks
        """
        with self._cond:
            self._closed = True
            dropped = len(self._heap)
            self._heap.clear()
            self._cond.notify_all()

        if wait and self._thread is not None:
            self._thread.join(timeout)

        if dropped:
            logger.warning("Retry scheduler stopped with pending retries", dropped=dropped)
        else:
            logger.info("Retry scheduler stopped")
        return dropped

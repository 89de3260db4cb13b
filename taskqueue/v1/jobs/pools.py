"""
Bounded worker pools with fail-fast admission.
"""

import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Any

from taskqueue.config.logging import get_logger
from taskqueue.v1.core.exceptions import QueueSaturatedError

logger = get_logger(__name__)


class WorkerPool:
    """
    Fixed set of worker threads fed by a FIFO of pending work items.

    Admission counts every accepted item that has not finished yet. An item
    is accepted while that count is below ``size + queue_capacity`` (an idle
    worker or a free queue slot); otherwise submit() raises
    QueueSaturatedError without blocking.
    """

    def __init__(self, name: str, size: int, queue_capacity: int):
        if size < 1:
            raise ValueError("Worker pool size must be at least 1")
        if queue_capacity < 0:
            raise ValueError("Worker pool queue capacity cannot be negative")

        self.name = name
        self.size = size
        self.queue_capacity = queue_capacity
        self._pending: deque[tuple[Callable[..., Any], tuple[Any, ...]]] = deque()
        self._cond = threading.Condition()
        self._in_flight = 0
        self._active = 0
        self._threads: list[threading.Thread] = []
        self._running = False
        self._closed = False

    @property
    def capacity(self) -> int:
        return self.size + self.queue_capacity

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the worker threads."""
        with self._cond:
            if self._running:
                raise RuntimeError(f"Worker pool {self.name} is already running")
            if self._closed:
                raise RuntimeError(f"Worker pool {self.name} is shut down")
            self._running = True

        for i in range(self.size):
            thread = threading.Thread(
                target=self._worker_loop, name=f"{self.name}-worker-{i + 1}", daemon=True
            )
            thread.start()
            self._threads.append(thread)

        logger.info(
            "Worker pool started",
            pool=self.name,
            workers=self.size,
            queue_capacity=self.queue_capacity,
        )

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        """Hand a work item to the pool or raise QueueSaturatedError."""
        with self._cond:
            if self._closed:
                raise RuntimeError(f"Worker pool {self.name} is shut down")
            if self._in_flight >= self.capacity:
                raise QueueSaturatedError(self.name, self.capacity)
            self._in_flight += 1
            self._pending.append((fn, args))
            self._cond.notify()

    def _worker_loop(self) -> None:
        while True:
            with self._cond:
                while not self._pending and not self._closed:
                    self._cond.wait()
                if not self._pending:
                    return
                fn, args = self._pending.popleft()
                self._active += 1

            try:
                fn(*args)
            except BaseException:
                # Worker outlives SystemExit and friends raised by a work item
                logger.exception("Error in worker loop", pool=self.name)
            finally:
                with self._cond:
                    self._active -= 1
                    self._in_flight -= 1
                    self._cond.notify_all()

    def shutdown(
        self, wait: bool = True, drain: bool = True, timeout: float | None = None
    ) -> int:
        """
        Stop accepting work and stop the workers.

        Args:
            wait: Join worker threads before returning
            drain: Run items still queued; otherwise discard them
            timeout: Max seconds to wait for all workers

        Returns:
            Number of queued items discarded
        """
        with self._cond:
            self._closed = True
            abandoned = 0
            if not drain:
                abandoned = len(self._pending)
                self._pending.clear()
                self._in_flight -= abandoned
            self._cond.notify_all()

        if wait:
            deadline = None if timeout is None else time.monotonic() + timeout
            for thread in self._threads:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                thread.join(remaining)

            alive = [t.name for t in self._threads if t.is_alive()]
            if alive:
                logger.warning(
                    "Worker pool stopped with active workers", pool=self.name, workers=alive
                )

        self._running = False
        logger.info("Worker pool stopped", pool=self.name, abandoned=abandoned)
        return abandoned

    def stats(self) -> dict[str, Any]:
        with self._cond:
            return {
                "name": self.name,
                "workers": self.size,
                "queue_capacity": self.queue_capacity,
                "active": self._active,
                "queued": len(self._pending),
                "in_flight": self._in_flight,
                "saturated": self._in_flight >= self.capacity,
            }

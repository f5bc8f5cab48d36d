"""Concurrency registry: per-worker busy state with FIFO hand-off."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class ConcurrencyEntry:
    since: float
    task_label: str


class ConcurrencyRegistry:
    """Tracks which workers are mid-invocation and who is waiting for them.

    This is the only mutual-exclusion primitive in the scheduler. It
    excludes invocations of the same worker, nothing else.

    ``mark_free`` never leaves a gap: when a waiter exists, ownership is
    handed straight to it and the worker stays busy, so a new caller can't
    slip in between the release and the waiter waking up.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._busy: dict[str, ConcurrencyEntry] = {}
        self._waiters: dict[str, deque[asyncio.Future]] = {}

    def is_busy(self, worker_id: str) -> bool:
        return worker_id in self._busy

    def is_queued(self, worker_id: str) -> bool:
        """Return True if someone is already waiting for this worker."""
        queue = self._waiters.get(worker_id)
        return bool(queue) and any(not f.done() for f in queue)

    def is_occupied(self, worker_id: str) -> bool:
        return self.is_busy(worker_id) or self.is_queued(worker_id)

    def mark_busy(self, worker_id: str, task_label: str) -> None:
        self._busy[worker_id] = ConcurrencyEntry(since=self._clock(), task_label=task_label)

    def mark_free(self, worker_id: str) -> None:
        """Release the worker, handing it to the next live waiter if any."""
        queue = self._waiters.get(worker_id)
        while queue:
            waiter = queue.popleft()
            if waiter.done():
                continue
            self._busy[worker_id] = ConcurrencyEntry(since=self._clock(), task_label="(handoff)")
            waiter.set_result(None)
            if not queue:
                del self._waiters[worker_id]
            logger.debug("Handed %s to next waiter", worker_id)
            return

        self._waiters.pop(worker_id, None)
        self._busy.pop(worker_id, None)

    async def wait_for_free(self, worker_id: str) -> None:
        """Wait until the worker is handed to this caller.

        Returns immediately if the worker is free. On return after waiting,
        the caller owns the worker (it is still marked busy) and must
        eventually call ``mark_free``.
        """
        if not self.is_busy(worker_id):
            return

        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        # Re-check right before enqueuing; mark_free may have run meanwhile.
        if not self.is_busy(worker_id):
            return
        self._waiters.setdefault(worker_id, deque()).append(waiter)

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Ownership arrived just as we were cancelled; pass it on.
                self.mark_free(worker_id)
            raise

    def status(self) -> dict[str, dict]:
        status: dict[str, dict] = {}
        for worker_id, entry in self._busy.items():
            status[worker_id] = {
                "busy": True,
                "since": entry.since,
                "task": entry.task_label,
                "queued": self.queued_count(worker_id),
            }
        return status

    def queued_count(self, worker_id: str) -> int:
        return sum(1 for f in self._waiters.get(worker_id, ()) if not f.done())

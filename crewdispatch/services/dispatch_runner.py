"""Bounded runner for fire-and-forget dispatches."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable

logger = logging.getLogger(__name__)


class DispatchRunner:
    """Runs submitted coroutines as tasks, at most ``max_concurrent`` at once.

    Submissions never block the caller. Tasks past the limit wait on the
    semaphore. Every task is tracked so ``drain`` and ``shutdown`` can
    account for it.
    """

    def __init__(self, max_concurrent: int = 8) -> None:
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Awaitable, name: str = "") -> asyncio.Task | None:
        """Schedule *coro*; returns None (and closes it) after shutdown."""
        if self._closed:
            logger.info("Runner shut down, dropping %s", name or "dispatch")
            if asyncio.iscoroutine(coro):
                coro.close()
            return None
        task = asyncio.ensure_future(self._run(coro, name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Awaitable, name: str) -> None:
        async with self._semaphore:
            try:
                await coro
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("Dispatch %s failed", name or "task", exc_info=True)

    async def drain(self) -> None:
        """Wait until every submitted task, including ones they submit, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Refuse new work and cancel whatever is still running."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Dispatch runner stopped (%d task(s) cancelled)", len(tasks))

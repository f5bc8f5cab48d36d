"""Named periodic jobs and debounced one-shot triggers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

JobCallback = Callable[[], Awaitable[None]]


@dataclass
class Job:
    name: str
    interval: float
    callback: JobCallback
    initial_delay: float | None = None
    task: asyncio.Task | None = None
    runs: int = 0


class TriggerScheduler:
    """Owns every timer of the process.

    A periodic job sleeps ``initial_delay`` (default: one interval) before
    its first run and ``interval`` between runs. Failures are logged and
    the job keeps its cadence. ``run_now`` runs a job inline, which is how
    tests drive producers without real timers.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._debounced: dict[str, asyncio.TimerHandle] = {}
        self._oneshots: set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def jobs(self) -> list[str]:
        return list(self._jobs)

    def add(
        self,
        name: str,
        interval: float,
        callback: JobCallback,
        initial_delay: float | None = None,
    ) -> None:
        if name in self._jobs:
            raise ValueError(f"Job '{name}' already registered")
        job = Job(name=name, interval=interval, callback=callback, initial_delay=initial_delay)
        self._jobs[name] = job
        if self._running:
            job.task = asyncio.ensure_future(self._loop(job))

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        for job in self._jobs.values():
            job.task = asyncio.ensure_future(self._loop(job))
        logger.info(
            "Scheduler started: %s",
            ", ".join(f"{j.name}({j.interval:g}s)" for j in self._jobs.values()) or "no jobs",
        )

    async def stop(self) -> None:
        self._running = False
        for handle in self._debounced.values():
            handle.cancel()
        self._debounced.clear()

        tasks = [job.task for job in self._jobs.values() if job.task is not None]
        tasks.extend(self._oneshots)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for job in self._jobs.values():
            job.task = None
        logger.info("Scheduler stopped")

    async def run_now(self, name: str) -> None:
        """Run a registered job once, right now."""
        job = self._jobs.get(name)
        if job is None:
            raise KeyError(name)
        await self._run_job(job)

    async def _run_job(self, job: Job) -> None:
        job.runs += 1
        try:
            await job.callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Job %s failed", job.name, exc_info=True)

    async def _loop(self, job: Job) -> None:
        delay = job.interval if job.initial_delay is None else job.initial_delay
        try:
            while True:
                await asyncio.sleep(delay)
                await self._run_job(job)
                delay = job.interval
        except asyncio.CancelledError:
            pass

    def debounce(self, name: str, delay: float, callback: JobCallback) -> None:
        """Run *callback* once *delay* seconds after the last call for *name*.

        Must be called from the event loop thread.
        """
        if not self._running:
            return
        previous = self._debounced.pop(name, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._debounced[name] = loop.call_later(delay, self._fire, name, callback)

    def _fire(self, name: str, callback: JobCallback) -> None:
        self._debounced.pop(name, None)
        task = asyncio.ensure_future(
            self._run_job(Job(name=name, interval=0, callback=callback))
        )
        self._oneshots.add(task)
        task.add_done_callback(self._oneshots.discard)

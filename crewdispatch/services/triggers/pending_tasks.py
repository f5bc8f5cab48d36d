"""Pending-task scan: wake idle workers that left actionable work behind."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date

from crewdispatch.config import SchedulerConfig
from crewdispatch.infra.memory.parser import actionable_items
from crewdispatch.models.worker import SYSTEM_ID
from crewdispatch.services.coordinator_service import InvocationCoordinator
from crewdispatch.services.scheduler import TriggerScheduler

logger = logging.getLogger(__name__)

PENDING_JOB = "pending-tasks"


class PendingTaskTrigger:
    def __init__(
        self,
        coordinator: InvocationCoordinator,
        config: SchedulerConfig | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._coordinator = coordinator
        self._config = config or coordinator.config.scheduler
        self._today = today
        self._last_run: dict[str, float] = {}

    def register(self, scheduler: TriggerScheduler) -> None:
        scheduler.add(PENDING_JOB, self._config.pending_task_interval, self.run)

    def _on_cooldown(self, worker_id: str, now: float) -> bool:
        last = self._last_run.get(worker_id)
        return last is not None and now - last < self._config.pending_task_cooldown

    async def run(self) -> None:
        coordinator = self._coordinator
        ledger = coordinator.ledger
        invoked = 0

        for worker in coordinator.workers():
            if worker.is_leader:
                continue
            if invoked >= self._config.pending_task_cycle_cap:
                break
            if coordinator.is_occupied(worker.id):
                continue
            now = ledger.now()
            if self._on_cooldown(worker.id, now):
                logger.debug("%s on pending-task cooldown, skipping", worker.id)
                continue

            document = await asyncio.to_thread(coordinator.memory.load_memory, worker.id)
            items = actionable_items(document, self._today())
            if not items:
                continue

            item = items[0]
            logger.info("%s has pending work in %s: %s", worker.id, item.channel_id, item.reason)
            chain = coordinator.chains.new_chain(worker.id)
            task = await coordinator.trigger(
                worker,
                f"[Pending] Continue unfinished work: {item.reason}",
                item.channel_id,
                chain=chain,
            )
            if task is None:
                continue

            ledger.record(
                chain_id=chain.chain_id,
                from_worker=SYSTEM_ID,
                to_worker=worker.id,
                channel_id=item.channel_id,
                reason=item.reason,
            )
            self._last_run[worker.id] = now
            invoked += 1

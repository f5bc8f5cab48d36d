"""Follow-up loop: nudge silent workers, escalate to the leader."""

from __future__ import annotations

import logging

from crewdispatch.config import SchedulerConfig
from crewdispatch.models.dispatch import DispatchRecord
from crewdispatch.services.coordinator_service import InvocationCoordinator
from crewdispatch.services.scheduler import TriggerScheduler

logger = logging.getLogger(__name__)

FOLLOW_UP_JOB = "follow-up"


class FollowUpTrigger:
    """Walks the unresolved ledger records every cycle.

    Between ``nudge_after`` and ``escalate_after`` a silent worker gets one
    report request per cycle, subject to the nudge cooldown and cap. Past
    ``escalate_after`` the leader is alerted once and the record is resolved
    so the alert never repeats. Time comes from the ledger's clock.
    """

    def __init__(
        self,
        coordinator: InvocationCoordinator,
        config: SchedulerConfig | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._config = config or coordinator.config.scheduler
        self._nudges: dict[str, int] = {}
        self._last_nudge: dict[str, float] = {}

    def register(self, scheduler: TriggerScheduler) -> None:
        scheduler.add(FOLLOW_UP_JOB, self._config.follow_up_interval, self.run)

    def nudge_count(self, record_id: str) -> int:
        return self._nudges.get(record_id, 0)

    def _on_cooldown(self, worker_id: str, now: float) -> bool:
        last = self._last_nudge.get(worker_id)
        return last is not None and now - last < self._config.nudge_cooldown

    async def run(self) -> None:
        coordinator = self._coordinator
        ledger = coordinator.ledger
        registry = coordinator.registry
        cfg = self._config

        unresolved = ledger.get_unresolved()
        live = {rec.id for rec in unresolved}
        self._nudges = {rid: n for rid, n in self._nudges.items() if rid in live}

        now = ledger.now()
        for record in unresolved:
            if record.resolved:
                continue
            worker = coordinator.get_worker(record.to_worker)
            if worker is None:
                continue
            if registry.is_busy(worker.id):
                continue
            age = record.age(now)
            if age < cfg.nudge_after:
                continue
            if registry.is_queued(worker.id):
                continue
            if age >= cfg.escalate_after:
                await self._escalate(record, worker.name, age)
                continue
            if self._on_cooldown(worker.id, now):
                continue

            count = self._nudges.get(record.id, 0)
            if count >= cfg.max_nudges:
                logger.info(
                    "Max nudges (%d) reached for %s, resolving record %s",
                    cfg.max_nudges, worker.id, record.id,
                )
                ledger.resolve_by_id(record.id)
                self._nudges.pop(record.id, None)
                continue

            if coordinator.is_occupied(worker.id):
                continue
            logger.info(
                "Nudging %s to report (%d min since dispatch, nudge %d/%d)",
                worker.id, age // 60, count + 1, cfg.max_nudges,
            )
            task = await coordinator.trigger(
                worker,
                f"[Report request] Please report the result of your previous task: {record.reason}",
                record.channel_id,
            )
            if task is None:
                continue
            self._nudges[record.id] = count + 1
            self._last_nudge[worker.id] = now
            break

    async def _escalate(self, record: DispatchRecord, worker_name: str, age: float) -> None:
        coordinator = self._coordinator
        leader = coordinator.leader
        channel_id = coordinator.config.work_channel_id or record.channel_id
        if leader is not None and not coordinator.is_occupied(leader.id):
            logger.info("Alerting leader: %s silent for %d min", record.to_worker, age // 60)
            await coordinator.trigger(
                leader,
                f"[Unreported] {worker_name} has not reported for {int(age // 60)} min. "
                f"Task: {record.reason}",
                channel_id,
            )
        coordinator.ledger.resolve_by_id(record.id)
        self._nudges.pop(record.id, None)
        logger.info("Resolved record %s after escalation", record.id)

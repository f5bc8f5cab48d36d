"""Leader heartbeat (classifier-gated) and immediate inbox trigger."""

from __future__ import annotations

import asyncio
import logging

from crewdispatch.config import SchedulerConfig
from crewdispatch.services.coordinator_service import InvocationCoordinator
from crewdispatch.services.scheduler import TriggerScheduler
from crewdispatch.services.triage import AdvisoryClassifier

logger = logging.getLogger(__name__)

HEARTBEAT_JOB = "heartbeat"
INBOX_JOB = "leader-inbox"


class HeartbeatTrigger:
    """Periodically asks the classifier whether the idle leader should wake up.

    Runs never overlap. The leader is only invoked on an ``INVOKE`` verdict;
    a classifier failure skips the cycle.
    """

    def __init__(
        self,
        coordinator: InvocationCoordinator,
        classifier: AdvisoryClassifier | None,
        config: SchedulerConfig | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._classifier = classifier
        self._config = config or coordinator.config.scheduler
        self._running = False

    def register(self, scheduler: TriggerScheduler) -> None:
        scheduler.add(HEARTBEAT_JOB, self._config.heartbeat_interval, self.run)

    async def run(self) -> None:
        if self._running:
            return
        self._running = True
        try:
            await self._beat()
        finally:
            self._running = False

    async def _beat(self) -> None:
        coordinator = self._coordinator
        leader = coordinator.leader
        if leader is None or coordinator.is_occupied(leader.id):
            return
        channel_id = coordinator.config.work_channel_id
        if not channel_id:
            logger.warning("No work channel configured, heartbeat can't invoke the leader")
            return

        memory = coordinator.memory
        inbox = await asyncio.to_thread(memory.read_inbox, leader.id)
        unresolved = coordinator.ledger.get_unresolved(
            older_than=self._config.heartbeat_unresolved_age
        )
        report = (await asyncio.to_thread(memory.load_issue_report)).summary_text()

        if not inbox and not unresolved and not report:
            return
        if self._classifier is None:
            logger.debug("No classifier configured, skipping heartbeat triage")
            return

        try:
            verdict = await self._classifier.classify(inbox, len(unresolved), report)
        except Exception:
            logger.warning("Heartbeat triage failed, skipping this cycle", exc_info=True)
            return

        if not verdict.invoke:
            logger.info("Heartbeat triage: no leader intervention needed")
            return

        if coordinator.is_occupied(leader.id):
            return
        logger.info("Heartbeat invoking leader: %s", verdict.reason)
        await coordinator.trigger(leader, f"[Heartbeat] {verdict.reason}", channel_id)


class InboxTrigger:
    """Invokes the leader as soon as its inbox changes, without triage.

    File events are debounced through the scheduler.
    """

    def __init__(
        self,
        coordinator: InvocationCoordinator,
        scheduler: TriggerScheduler,
        config: SchedulerConfig | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._scheduler = scheduler
        self._config = config or coordinator.config.scheduler

    def on_change(self) -> None:
        """Filesystem callback; runs on the event loop thread."""
        self._scheduler.debounce(INBOX_JOB, self._config.inbox_debounce, self.run)

    async def run(self) -> None:
        coordinator = self._coordinator
        leader = coordinator.leader
        if leader is None:
            return
        if coordinator.is_occupied(leader.id):
            logger.info("Leader busy or queued, skipping immediate invoke")
            return

        inbox = await asyncio.to_thread(coordinator.memory.read_inbox, leader.id)
        if not inbox:
            return
        channel_id = coordinator.config.work_channel_id
        if not channel_id:
            return

        logger.info("Leader inbox changed, invoking immediately")
        await coordinator.trigger(leader, "[Inbox] New inbox entries, check them now.", channel_id)

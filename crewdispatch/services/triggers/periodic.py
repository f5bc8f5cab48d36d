"""Fixed-interval triggers: daily digest and activity evaluation."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from crewdispatch.config import SchedulerConfig
from crewdispatch.models.memory import ActivityEntry
from crewdispatch.services.coordinator_service import InvocationCoordinator
from crewdispatch.services.scheduler import TriggerScheduler

logger = logging.getLogger(__name__)

DIGEST_JOB = "digest"
EVALUATION_JOB = "evaluation"

MAX_LOG_LINES = 200

DIGEST_PROMPT = (
    "[Daily digest] Summarize the last 24 hours for the humans: completed work, "
    "unresolved dispatches and issues found. Address the humans directly."
)


class DigestTrigger:
    """Asks the idle leader for a daily digest."""

    def __init__(self, coordinator: InvocationCoordinator, config: SchedulerConfig | None = None) -> None:
        self._coordinator = coordinator
        self._config = config or coordinator.config.scheduler

    def register(self, scheduler: TriggerScheduler) -> None:
        scheduler.add(
            DIGEST_JOB,
            self._config.digest_interval,
            self.run,
            initial_delay=self._config.digest_initial_delay,
        )

    async def run(self) -> None:
        coordinator = self._coordinator
        leader = coordinator.leader
        if leader is None or coordinator.is_occupied(leader.id):
            return
        channel_id = coordinator.config.work_channel_id
        if not channel_id:
            return
        await coordinator.trigger(leader, DIGEST_PROMPT, channel_id)


def format_activity(entries: list[ActivityEntry]) -> str:
    lines = [
        f"[{datetime.fromtimestamp(e.ts).strftime('%H:%M')}] {e.author}: {e.content}"
        for e in entries
    ]
    return "\n".join(lines[-MAX_LOG_LINES:])


class EvaluationTrigger:
    """Hands the drained activity log to the evaluator worker."""

    def __init__(self, coordinator: InvocationCoordinator, config: SchedulerConfig | None = None) -> None:
        self._coordinator = coordinator
        self._config = config or coordinator.config.scheduler

    def register(self, scheduler: TriggerScheduler) -> None:
        scheduler.add(
            EVALUATION_JOB,
            self._config.evaluation_interval,
            self.run,
            initial_delay=self._config.evaluation_initial_delay,
        )

    async def run(self) -> None:
        coordinator = self._coordinator
        evaluator = coordinator.get_worker(self._config.evaluator_id)
        if evaluator is None:
            return
        if coordinator.is_occupied(evaluator.id):
            logger.info("Evaluator %s busy or queued, skipping this cycle", evaluator.id)
            return
        channel_id = coordinator.config.work_channel_id
        if not channel_id:
            logger.warning("No work channel configured, skipping evaluation")
            return

        memory = coordinator.memory
        entries = await asyncio.to_thread(memory.drain_activity)
        if not entries:
            logger.info("No activity logged, skipping evaluation")
            return

        first = datetime.fromtimestamp(entries[0].ts).strftime("%H:%M")
        last = datetime.fromtimestamp(entries[-1].ts).strftime("%H:%M")
        content = (
            f"[Evaluation] Review each worker's activity between {first} and {last} "
            "and report to the humans.\n\n"
            f"--- Activity log ---\n{format_activity(entries)}\n--- End of log ---\n\n"
            "Criteria: volume, quality, collaboration, autonomy. "
            "Mark workers with no entries as inactive."
        )
        task = await coordinator.trigger(
            evaluator,
            content,
            channel_id,
            announce=f"[Evaluation] Starting review of {len(entries)} activity entries ({first}-{last}).",
        )
        if task is None:
            # Not consumed; put the entries back for the next cycle.
            for entry in entries:
                await asyncio.to_thread(memory.append_activity, entry)
            return
        logger.info("Evaluation triggered with %d log entries", len(entries))

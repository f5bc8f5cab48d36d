"""Invocation coordinator: admission, execution and reactive dispatch."""

from __future__ import annotations

import asyncio
import logging
import time

from crewdispatch.config import AppConfig
from crewdispatch.infra.engines.base import EngineError, ExecutionEngine
from crewdispatch.infra.gateway import MessagingGateway
from crewdispatch.infra.memory.store import MemoryStore
from crewdispatch.models.chain import ChainContext
from crewdispatch.models.conversation import (
    ConversationMessage,
    EngineResult,
    InvocationContext,
)
from crewdispatch.models.memory import ActivityEntry
from crewdispatch.models.worker import HUMAN_ID, Worker
from crewdispatch.services.chain_tracker import ChainTracker
from crewdispatch.services.concurrency import ConcurrencyRegistry
from crewdispatch.services.conversation import ConversationStore
from crewdispatch.services.dispatch_ledger import DispatchLedger
from crewdispatch.services.dispatch_runner import DispatchRunner
from crewdispatch.services.routing import find_mentioned_workers, route_message

logger = logging.getLogger(__name__)

TASK_LABEL_CHARS = 50


class InvocationCoordinator:
    """Runs worker invocations and follows the mentions in their output.

    The registry, chain tracker, ledger, conversation store and dispatch
    runner are explicit collaborators so each coordinator (and each test)
    gets its own state.
    """

    def __init__(
        self,
        config: AppConfig,
        engine: ExecutionEngine,
        gateway: MessagingGateway,
        memory: MemoryStore,
        registry: ConcurrencyRegistry | None = None,
        chains: ChainTracker | None = None,
        ledger: DispatchLedger | None = None,
        conversations: ConversationStore | None = None,
        runner: DispatchRunner | None = None,
    ) -> None:
        self._config = config
        self._engine = engine
        self._gateway = gateway
        self._memory = memory
        self._registry = registry if registry is not None else ConcurrencyRegistry()
        self._chains = chains if chains is not None else ChainTracker(config.chain)
        self._ledger = ledger if ledger is not None else DispatchLedger(config.ledger)
        self._conversations = conversations if conversations is not None else ConversationStore()
        self._runner = (
            runner if runner is not None
            else DispatchRunner(config.scheduler.max_concurrent_dispatches)
        )
        self._workers: dict[str, Worker] = dict(config.workers)

    # --- Collaborators ---

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def registry(self) -> ConcurrencyRegistry:
        return self._registry

    @property
    def chains(self) -> ChainTracker:
        return self._chains

    @property
    def ledger(self) -> DispatchLedger:
        return self._ledger

    @property
    def conversations(self) -> ConversationStore:
        return self._conversations

    @property
    def runner(self) -> DispatchRunner:
        return self._runner

    @property
    def memory(self) -> MemoryStore:
        return self._memory

    @property
    def gateway(self) -> MessagingGateway:
        return self._gateway

    # --- Workers ---

    def workers(self) -> list[Worker]:
        return list(self._workers.values())

    def get_worker(self, worker_id: str) -> Worker | None:
        return self._workers.get(worker_id)

    @property
    def leader(self) -> Worker | None:
        for worker in self._workers.values():
            if worker.is_leader:
                return worker
        return None

    def status_lines(self) -> list[str]:
        """One line per worker: engine and what it is doing right now."""
        status = self._registry.status()
        lines = []
        for worker in self._workers.values():
            entry = status.get(worker.id)
            if entry is None:
                state = "idle"
            else:
                state = f"working ({entry['task']})"
                if entry["queued"]:
                    state += f", {entry['queued']} queued"
            lines.append(f"- {worker.name} [{worker.engine.value}]: {state}")
        return lines

    def is_occupied(self, worker_id: str) -> bool:
        return self._registry.is_occupied(worker_id)

    # --- Entry points ---

    async def handle_message(
        self,
        channel_id: str,
        sender_name: str,
        content: str,
        user_id: str = "",
    ) -> list[Worker]:
        """Record an inbound human message and submit invocations for it.

        The leader's inbox receives every human message. Returns the workers
        the message was routed to.
        """
        content = content.strip()
        if not content:
            return []

        workers = [w for w in self.workers() if w.listens_on(channel_id)]
        targets = route_message(content, workers, is_human=True)
        message = ConversationMessage(
            sender_id=HUMAN_ID,
            sender_name=sender_name,
            content=content,
            mentions=tuple(w.id for w in targets),
            user_id=user_id,
        )
        self._conversations.add(channel_id, message)

        leader = self.leader
        if leader is not None:
            await asyncio.to_thread(self._memory.append_inbox, leader.id, sender_name, content)

        for target in targets:
            self.submit(target, message, channel_id, self._chains.new_chain(target.id))
        return targets

    async def trigger(
        self,
        worker: Worker,
        content: str,
        channel_id: str,
        announce: str | None = None,
        chain: ChainContext | None = None,
    ) -> asyncio.Task | None:
        """Start a fresh chain for *worker* from a system message.

        Used by the trigger producers. The message is added to the channel
        history and announced (best-effort) before the invocation is
        submitted; returns None, without announcing, when the worker is
        occupied.
        """
        if self.is_occupied(worker.id):
            logger.info("%s is occupied, dropping trigger: %s", worker.id, content[:80])
            return None
        message = ConversationMessage.system(content, worker.id)
        self._conversations.add(channel_id, message)
        await self._post(channel_id, announce or content)
        if self.is_occupied(worker.id):
            logger.info("%s became occupied, dropping trigger: %s", worker.id, content[:80])
            return None
        return self.submit(worker, message, channel_id, chain or self._chains.new_chain(worker.id))

    def submit(
        self,
        worker: Worker,
        trigger: ConversationMessage,
        channel_id: str,
        chain: ChainContext,
    ) -> asyncio.Task | None:
        """Hand an invocation to the dispatch runner without waiting for it."""
        return self._runner.submit(
            self.invoke(worker, trigger, channel_id, chain),
            name=f"invoke:{worker.id}",
        )

    async def invoke(
        self,
        worker: Worker,
        trigger: ConversationMessage,
        channel_id: str,
        chain: ChainContext | None = None,
    ) -> EngineResult | None:
        """Run one invocation of *worker*, then dispatch whoever it mentions.

        Returns the engine result, or None when the request was dropped at
        admission or the engine failed.
        """
        chain = chain or self._chains.new_chain(worker.id)

        if self._registry.is_queued(worker.id):
            logger.info(
                "%s already has a queued request, dropping: %s",
                worker.id, trigger.content[:80],
            )
            await self._note_dropped(worker, trigger)
            return None

        if self._registry.is_busy(worker.id):
            logger.info("%s is busy, waiting for its turn", worker.id)
            await self._registry.wait_for_free(worker.id)
        self._registry.mark_busy(worker.id, trigger.content[:TASK_LABEL_CHARS])
        logger.info(
            "Invoking %s (chain %s, %d/%d): %s",
            worker.id, chain.chain_id, chain.total_invocations, chain.max_budget,
            trigger.content[:80],
        )

        progress = asyncio.ensure_future(self._progress_loop(channel_id, worker))
        try:
            inbox = await asyncio.to_thread(self._memory.read_inbox, worker.id)
            context = InvocationContext(
                channel_id=channel_id,
                trigger=trigger,
                conversation=tuple(
                    self._conversations.recent(channel_id, self._config.conversation_window)
                ),
                inbox=inbox,
                chain_id=chain.chain_id,
            )
            try:
                result = await self._engine.execute(worker, context)
            except EngineError as e:
                logger.warning("%s failed: %s", worker.id, e)
                await self._post(channel_id, f"Error: {e}", worker)
                return None
            except Exception as e:
                logger.error("%s failed unexpectedly", worker.id, exc_info=True)
                await self._post(channel_id, f"Error: {e}", worker)
                return None

            await self._complete(worker, result, channel_id, chain)
            return result
        finally:
            progress.cancel()
            try:
                await asyncio.to_thread(self._memory.clear_inbox, worker.id)
            except OSError:
                logger.warning("Could not clear inbox of %s", worker.id, exc_info=True)
            self._registry.mark_free(worker.id)

    # --- Internals ---

    async def _complete(
        self,
        worker: Worker,
        result: EngineResult,
        channel_id: str,
        chain: ChainContext,
    ) -> None:
        output = result.output
        mentioned = [
            w for w in find_mentioned_workers(output, self.workers())
            if w.id != worker.id
        ]
        message = ConversationMessage(
            sender_id=worker.id,
            sender_name=worker.name,
            content=output,
            mentions=tuple(w.id for w in mentioned),
            user_id=worker.user_id,
        )

        await self._post(channel_id, output, worker)
        self._conversations.add(channel_id, message)
        await asyncio.to_thread(self._record_output, worker, channel_id, output)
        self._ledger.resolve(worker.id, [w.id for w in mentioned])

        for target in mentioned:
            await self._dispatch(worker, target, message, channel_id, chain)

    def _record_output(self, worker: Worker, channel_id: str, output: str) -> None:
        for other in self._workers.values():
            if other.id != worker.id:
                self._memory.append_inbox(other.id, worker.name, output)
        self._memory.append_activity(ActivityEntry(
            ts=time.time(),
            channel_id=channel_id,
            worker_id=worker.id,
            author=worker.name,
            content=output,
        ))

    async def _dispatch(
        self,
        source: Worker,
        target: Worker,
        message: ConversationMessage,
        channel_id: str,
        chain: ChainContext,
    ) -> None:
        """Chain-gated reactive dispatch from *source* to *target*."""
        if self._registry.is_queued(target.id):
            logger.info("Not dispatching %s -> %s: already queued", source.id, target.id)
            return
        if self._chains.detect_loop(chain, target.id):
            return
        if self._chains.budget_exhausted(chain):
            if self._chains.claim_budget_notice(chain.chain_id):
                await self._notify_budget(chain, channel_id)
            return

        self._ledger.record(
            chain_id=chain.chain_id,
            from_worker=source.id,
            to_worker=target.id,
            channel_id=channel_id,
            reason=message.content,
        )
        self.submit(target, message, channel_id, chain.advance(target.id))

    async def _notify_budget(self, chain: ChainContext, channel_id: str) -> None:
        leader = self.leader
        name = leader.name if leader else "leader"
        await self._post(
            channel_id,
            f"{name}: chain {chain.chain_id} stopped after "
            f"{chain.total_invocations} invocations (budget {chain.max_budget}).",
        )

    async def _note_dropped(self, worker: Worker, trigger: ConversationMessage) -> None:
        leader = self.leader
        if leader is None or worker.is_leader:
            return
        note = (
            f"{worker.name} already has a queued request; skipped: "
            f"{trigger.sender_name}: {trigger.content[:100]}"
        )
        try:
            await asyncio.to_thread(self._memory.append_inbox, leader.id, "System", note)
        except OSError:
            logger.warning("Could not note dropped request in %s inbox", leader.id, exc_info=True)

    async def _post(self, channel_id: str, content: str, worker: Worker | None = None) -> bool:
        try:
            return await self._gateway.post(channel_id, content, worker)
        except Exception:
            logger.warning("Posting to %s failed", channel_id, exc_info=True)
            return False

    async def _progress_loop(self, channel_id: str, worker: Worker) -> None:
        interval = self._config.scheduler.progress_refresh
        try:
            while True:
                try:
                    await self._gateway.show_progress(channel_id, worker)
                except Exception:
                    logger.debug("Progress indicator failed", exc_info=True)
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            pass

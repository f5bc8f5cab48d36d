"""AppContext: wires config, infrastructure and services together."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crewdispatch.config import AppConfig, load_config

if TYPE_CHECKING:
    from pathlib import Path

    from crewdispatch.infra.engines.base import ExecutionEngine
    from crewdispatch.infra.gateway import MessagingGateway
    from crewdispatch.infra.memory.store import MemoryStore
    from crewdispatch.infra.signal.client import SignalClient
    from crewdispatch.infra.watch import InboxWatcher
    from crewdispatch.services.coordinator_service import InvocationCoordinator
    from crewdispatch.services.scheduler import TriggerScheduler
    from crewdispatch.services.signal_service import SignalService
    from crewdispatch.services.triage import AdvisoryClassifier
    from crewdispatch.services.triggers.heartbeat import InboxTrigger

logger = logging.getLogger(__name__)


class AppContext:
    """Central wiring for all application dependencies.

    Lazily builds each component on first access, so every context owns a
    fresh registry, ledger and scheduler. ``start()`` registers the trigger
    producers and begins listening; ``close()`` tears everything down.
    """

    def __init__(self, config: AppConfig | None = None, config_path: Path | None = None) -> None:
        self.config = config or load_config(config_path)
        self._memory_store: MemoryStore | None = None
        self._signal_client: SignalClient | None = None
        self._gateway: MessagingGateway | None = None
        self._engine: ExecutionEngine | None = None
        self._classifier: AdvisoryClassifier | None = None
        self._classifier_built = False
        self._coordinator: InvocationCoordinator | None = None
        self._scheduler: TriggerScheduler | None = None
        self._inbox_trigger: InboxTrigger | None = None
        self._inbox_watcher: InboxWatcher | None = None
        self._signal_service: SignalService | None = None

    @property
    def memory_store(self) -> MemoryStore:
        if self._memory_store is None:
            from crewdispatch.infra.memory.store import MemoryStore

            self._memory_store = MemoryStore(self.config.resolved_workspace_root)
        return self._memory_store

    @property
    def signal_client(self) -> SignalClient:
        if self._signal_client is None:
            from crewdispatch.infra.signal.client import SignalClient

            self._signal_client = SignalClient(
                http_url=self.config.signal.http_url,
                account=self.config.signal.account,
            )
        return self._signal_client

    @property
    def gateway(self) -> MessagingGateway:
        if self._gateway is None:
            if self.config.signal.enabled:
                self._gateway = self.signal_client
            else:
                from crewdispatch.infra.gateway import LogGateway

                self._gateway = LogGateway()
        return self._gateway

    @property
    def engine(self) -> ExecutionEngine:
        if self._engine is None:
            from crewdispatch.infra.engines.cli_engine import CliEngine

            self._engine = CliEngine(
                memory=self.memory_store,
                workers=lambda: self.coordinator.workers(),
            )
        return self._engine

    @property
    def classifier(self) -> AdvisoryClassifier | None:
        """The heartbeat classifier, or None when no provider key is set."""
        if not self._classifier_built:
            self._classifier_built = True
            provider_config = self.config.providers.get(self.config.classifier.provider)
            if provider_config is None or not provider_config.api_key:
                logger.warning(
                    "No API key for classifier provider '%s', heartbeat triage disabled",
                    self.config.classifier.provider,
                )
                return None

            from crewdispatch.infra.providers.registry import get_provider
            from crewdispatch.services.triage import AdvisoryClassifier

            provider = get_provider(self.config.classifier.provider, self.config)
            self._classifier = AdvisoryClassifier(provider, self.config.classifier)
        return self._classifier

    @property
    def coordinator(self) -> InvocationCoordinator:
        if self._coordinator is None:
            from crewdispatch.services.coordinator_service import InvocationCoordinator

            self._coordinator = InvocationCoordinator(
                config=self.config,
                engine=self.engine,
                gateway=self.gateway,
                memory=self.memory_store,
            )
        return self._coordinator

    @property
    def scheduler(self) -> TriggerScheduler:
        if self._scheduler is None:
            from crewdispatch.services.scheduler import TriggerScheduler

            self._scheduler = TriggerScheduler()
        return self._scheduler

    @property
    def signal_service(self) -> SignalService:
        if self._signal_service is None:
            from crewdispatch.services.signal_service import SignalService

            self._signal_service = SignalService(
                coordinator=self.coordinator,
                client=self.signal_client,
                allowed_senders=self.config.human_ids,
            )
        return self._signal_service

    def register_triggers(self) -> None:
        """Register every trigger producer with the scheduler."""
        from crewdispatch.services.triggers.follow_up import FollowUpTrigger
        from crewdispatch.services.triggers.heartbeat import HeartbeatTrigger, InboxTrigger
        from crewdispatch.services.triggers.pending_tasks import PendingTaskTrigger
        from crewdispatch.services.triggers.periodic import DigestTrigger, EvaluationTrigger

        coordinator = self.coordinator
        scheduler = self.scheduler
        HeartbeatTrigger(coordinator, self.classifier).register(scheduler)
        FollowUpTrigger(coordinator).register(scheduler)
        PendingTaskTrigger(coordinator).register(scheduler)
        DigestTrigger(coordinator).register(scheduler)
        EvaluationTrigger(coordinator).register(scheduler)
        self._inbox_trigger = InboxTrigger(coordinator, scheduler)

    async def start(self) -> None:
        """Start timers, the leader inbox watch and (if enabled) Signal."""
        if not self.scheduler.jobs():
            self.register_triggers()
        self.scheduler.start()

        leader = self.coordinator.leader
        if leader is not None and self._inbox_trigger is not None:
            from crewdispatch.infra.watch import InboxWatcher

            self._inbox_watcher = InboxWatcher(self.memory_store.inbox_dir, f"{leader.id}.md")
            self._inbox_watcher.start(self._inbox_trigger.on_change)
        else:
            logger.warning("No leader configured; heartbeat and inbox triggers will idle")

        if self.config.signal.enabled:
            await self.signal_service.start()
        logger.info("AppContext started with %d worker(s)", len(self.config.workers))

    async def close(self) -> None:
        if self._inbox_watcher is not None:
            self._inbox_watcher.stop()
        if self._scheduler is not None:
            await self._scheduler.stop()
        if self._coordinator is not None:
            await self._coordinator.runner.shutdown()
        if self._signal_service is not None:
            await self._signal_service.stop()
        elif self._signal_client is not None:
            await self._signal_client.close()
        logger.info("AppContext closed")

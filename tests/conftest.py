"""Shared fixtures: a fake clock, a small crew and a wired coordinator."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from crewdispatch.config import AppConfig
from crewdispatch.infra.memory.store import MemoryStore
from crewdispatch.models.conversation import EngineResult
from crewdispatch.models.worker import Worker
from crewdispatch.services.concurrency import ConcurrencyRegistry
from crewdispatch.services.coordinator_service import InvocationCoordinator
from crewdispatch.services.dispatch_ledger import DispatchLedger
from crewdispatch.services.dispatch_runner import DispatchRunner


class FakeClock:
    """Manually advanced clock for the registry and ledger."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def workers():
    return {
        "lead": Worker(id="lead", name="Lead", is_leader=True),
        "be": Worker(id="be", name="Backend"),
        "fe": Worker(id="fe", name="Frontend"),
        "hr": Worker(id="hr", name="HR"),
    }


@pytest.fixture
def app_config(tmp_path, workers):
    return AppConfig(
        workspace_root=str(tmp_path),
        work_channel_id="work",
        workers=workers,
    )


@pytest.fixture
def memory_store(tmp_path):
    return MemoryStore(tmp_path)


@pytest.fixture
def engine():
    """Engine that answers "done" unless a test sets ``replies``."""
    mock = AsyncMock()
    mock.replies = {}

    async def _execute(worker, context):
        queue = mock.replies.get(worker.id)
        output = queue.pop(0) if queue else "done"
        return EngineResult(worker_id=worker.id, output=output)

    mock.execute.side_effect = _execute
    return mock


@pytest.fixture
def gateway():
    mock = AsyncMock()
    mock.post.return_value = True
    return mock


@pytest.fixture
def coordinator(app_config, engine, gateway, memory_store, clock):
    return InvocationCoordinator(
        config=app_config,
        engine=engine,
        gateway=gateway,
        memory=memory_store,
        registry=ConcurrencyRegistry(clock),
        ledger=DispatchLedger(app_config.ledger, clock),
        runner=DispatchRunner(app_config.scheduler.max_concurrent_dispatches),
    )

"""Execution engine that shells out to a worker's engine CLI."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from crewdispatch.infra.engines.base import EngineError
from crewdispatch.infra.engines.prompt import build_prompt
from crewdispatch.infra.engines.registry import get_backend
from crewdispatch.infra.memory.store import MemoryStore
from crewdispatch.infra.subprocess_mgr import SubprocessRunner
from crewdispatch.models.conversation import EngineResult, InvocationContext
from crewdispatch.models.engine import RunParams
from crewdispatch.models.worker import Worker

logger = logging.getLogger(__name__)


class CliEngine:
    """Builds the prompt, runs the worker's CLI and parses the answer."""

    def __init__(
        self,
        memory: MemoryStore,
        workers: Callable[[], list[Worker]],
        runner: SubprocessRunner | None = None,
    ) -> None:
        self._memory = memory
        self._workers = workers
        self._runner = runner or SubprocessRunner()

    async def execute(self, worker: Worker, context: InvocationContext) -> EngineResult:
        memory_text = await asyncio.to_thread(self._memory.read_memory, worker.id)
        prompt = build_prompt(
            worker,
            context,
            self._workers(),
            self._memory.workspace_root,
            memory=memory_text,
        )

        backend = get_backend(worker.engine)
        command = backend.run_command(RunParams(
            prompt=prompt,
            model=worker.model,
            max_budget=worker.max_budget,
            workspace_path=str(self._memory.workspace_root),
            env_vars={
                "CREWDISPATCH_WORKER_ID": worker.id,
                "CREWDISPATCH_CHANNEL_ID": context.channel_id,
            },
        ))

        try:
            output = await self._runner.run(command)
        except (OSError, TimeoutError) as e:
            raise EngineError(f"{worker.engine.value} run for {worker.id} failed: {e}") from e

        if not output.ok:
            raise EngineError(
                f"{worker.engine.value} exited with code {output.returncode} for {worker.id}"
            )

        text, cost = backend.parse_output(output.stdout)
        if not text:
            raise EngineError(f"{worker.engine.value} returned no output for {worker.id}")
        logger.info("%s finished (%d chars, $%.4f)", worker.id, len(text), cost)
        return EngineResult(worker_id=worker.id, output=text, cost=cost)

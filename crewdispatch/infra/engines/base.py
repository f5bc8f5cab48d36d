"""Execution engine protocols."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from crewdispatch.models.conversation import EngineResult, InvocationContext
from crewdispatch.models.engine import CommandSpec, RunParams
from crewdispatch.models.worker import Worker


class EngineError(Exception):
    """Raised when an engine run fails or its output can't be used."""


@runtime_checkable
class EngineBackend(Protocol):
    """Knows how to launch one engine CLI and read its output."""

    def run_command(self, params: RunParams) -> CommandSpec:
        """Generate the command for a single non-interactive run."""
        ...

    def parse_output(self, stdout: str) -> tuple[str, float]:
        """Extract ``(text, cost_usd)`` from the process output."""
        ...


@runtime_checkable
class ExecutionEngine(Protocol):
    """Runs one invocation of a worker to completion."""

    async def execute(self, worker: Worker, context: InvocationContext) -> EngineResult:
        """Return the final output; raise EngineError on failure."""
        ...

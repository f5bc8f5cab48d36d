"""Execution engine domain models."""

from __future__ import annotations

import shlex
from dataclasses import dataclass


@dataclass(frozen=True)
class CommandSpec:
    """A CLI invocation of an execution engine."""

    program: str
    args: tuple[str, ...] = ()
    env: dict[str, str] | None = None
    cwd: str | None = None

    @property
    def full_command(self) -> str:
        parts = [self.program, *self.args]
        return " ".join(shlex.quote(p) for p in parts)


@dataclass(frozen=True)
class RunParams:
    """Inputs for one engine run."""

    prompt: str
    model: str = ""
    max_budget: float = 0.0
    workspace_path: str = ""
    env_vars: dict[str, str] | None = None


@dataclass(frozen=True)
class ProcessOutput:
    returncode: int
    stdout: str
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

"""Gemini CLI backend."""

from __future__ import annotations

from crewdispatch.models.engine import CommandSpec, RunParams


class GeminiBackend:
    """Backend for the ``gemini`` CLI, which prints plain text."""

    def run_command(self, params: RunParams) -> CommandSpec:
        args: list[str] = ["-p", params.prompt]
        if params.model:
            args.extend(["--model", params.model])

        return CommandSpec(
            program="gemini",
            args=tuple(args),
            env=dict(params.env_vars) if params.env_vars else None,
            cwd=params.workspace_path or None,
        )

    def parse_output(self, stdout: str) -> tuple[str, float]:
        return stdout.strip(), 0.0

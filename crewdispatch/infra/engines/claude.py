"""Claude Code CLI backend."""

from __future__ import annotations

import json

from crewdispatch.infra.engines.base import EngineError
from crewdispatch.models.engine import CommandSpec, RunParams


class ClaudeBackend:
    """Backend for the ``claude`` CLI.

    Generates commands like:
        claude -p PROMPT --output-format stream-json --verbose --model MODEL ...
    """

    def run_command(self, params: RunParams) -> CommandSpec:
        args: list[str] = [
            "-p", params.prompt,
            "--output-format", "stream-json",
            "--verbose",
            "--dangerously-skip-permissions",
        ]
        if params.model:
            args.extend(["--model", params.model])
        if params.max_budget:
            args.extend(["--max-budget-usd", str(params.max_budget)])

        return CommandSpec(
            program="claude",
            args=tuple(args),
            env=dict(params.env_vars) if params.env_vars else None,
            cwd=params.workspace_path or None,
        )

    def parse_output(self, stdout: str) -> tuple[str, float]:
        """Read the final ``result`` event of the JSON stream."""
        result = None
        for line in stdout.splitlines():
            try:
                event = json.loads(line)
            except ValueError:
                continue
            if isinstance(event, dict) and event.get("type") == "result":
                result = event

        if result is None:
            raise EngineError("claude produced no result event")
        if result.get("is_error"):
            raise EngineError(f"claude reported an error: {result.get('result', '')[:200]}")
        return str(result.get("result", "")).strip(), float(result.get("total_cost_usd") or 0.0)

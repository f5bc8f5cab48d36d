"""Codex CLI backend."""

from __future__ import annotations

import json

from crewdispatch.models.engine import CommandSpec, RunParams


class CodexBackend:
    """Backend for ``codex exec --json``.

    Output is a stream of JSON events; the answer is the text of every
    completed ``agent_message`` item. Codex does not report cost.
    """

    def run_command(self, params: RunParams) -> CommandSpec:
        args: list[str] = ["exec"]
        if params.model:
            args.extend(["-c", f'model="{params.model}"'])
        args.extend(["--json", "--skip-git-repo-check", params.prompt])

        return CommandSpec(
            program="codex",
            args=tuple(args),
            env=dict(params.env_vars) if params.env_vars else None,
            cwd=params.workspace_path or None,
        )

    def parse_output(self, stdout: str) -> tuple[str, float]:
        messages = []
        for line in stdout.splitlines():
            try:
                event = json.loads(line)
            except ValueError:
                continue
            if not isinstance(event, dict) or event.get("type") != "item.completed":
                continue
            item = event.get("item") or {}
            if item.get("type") == "agent_message" and item.get("text"):
                messages.append(item["text"])
        return "\n".join(messages).strip(), 0.0

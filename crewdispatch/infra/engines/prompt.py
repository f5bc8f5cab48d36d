"""Prompt assembly for engine runs."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from crewdispatch.infra.memory.store import summarize_inbox
from crewdispatch.models.conversation import InvocationContext
from crewdispatch.models.worker import Worker
from crewdispatch.services.conversation import format_conversation

logger = logging.getLogger(__name__)


def _load_template(worker: Worker, workspace_root: Path) -> str:
    if not worker.prompt_path:
        return f"You are {worker.name}."
    path = workspace_root / worker.prompt_path
    try:
        return path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        logger.warning("Prompt file %s for %s not found, using default", path, worker.id)
        return f"You are {worker.name}."


def _directory(worker: Worker, workers: Iterable[Worker]) -> str:
    lines = []
    for other in workers:
        if other.id == worker.id:
            continue
        tag = f" [{other.engine.value}]" if other.engine.value != "claude" else ""
        mention = f" (tag with <@{other.user_id}>)" if other.user_id else ""
        lead = " (leader)" if other.is_leader else ""
        lines.append(f"- @{other.id} {other.name}{lead}{tag}{mention}")
    return "\n".join(lines) or "(no other workers)"


def build_prompt(
    worker: Worker,
    context: InvocationContext,
    workers: Iterable[Worker],
    workspace_root: Path,
    memory: str = "",
    now: datetime | None = None,
) -> str:
    """Assemble the full prompt for one invocation of *worker*."""
    now = now or datetime.now()
    sections = [
        _load_template(worker, workspace_root),
        "## Current Context\n"
        f"Channel: {context.channel_id}\n"
        f"Time: {now.strftime('%Y-%m-%d %H:%M')}\n"
        f"Chain: {context.chain_id or '-'}",
        "## Other Workers\n"
        "Mention a worker with @id to hand work over. Mention nobody when you are done.\n"
        + _directory(worker, workers),
        "## Short-term Memory\n"
        "Keep pending items under '## Pending' with #ch:<channel id> on each line.\n"
        f"{memory.strip() or '(empty)'}",
    ]

    inbox = summarize_inbox(context.inbox, worker.id)
    if inbox:
        sections.append(f"## Inbox\n{inbox}")

    if context.conversation:
        sections.append(f"## Conversation\n{format_conversation(list(context.conversation))}")

    trigger = context.trigger
    sections.append(f"## Message\n{trigger.sender_name}: {trigger.content}")
    return "\n\n".join(sections)

"""Mention detection and inbound message routing."""

from __future__ import annotations

import re
from collections.abc import Iterable

from crewdispatch.models.worker import Worker

_HANDLE = re.compile(r"(?<![\w<])@([A-Za-z0-9_-]+)")


def find_mentioned_workers(content: str, workers: Iterable[Worker]) -> list[Worker]:
    """Return workers mentioned in *content*, in configuration order.

    Recognises chat-native mentions (``<@user_id>``) and plain handles
    (``@worker_id``).
    """
    if not content:
        return []
    handles = {h.lower() for h in _HANDLE.findall(content)}
    mentioned = []
    for worker in workers:
        if worker.user_id and f"<@{worker.user_id}>" in content:
            mentioned.append(worker)
        elif worker.id.lower() in handles:
            mentioned.append(worker)
    return mentioned


def route_message(
    content: str,
    workers: Iterable[Worker],
    is_human: bool = True,
) -> list[Worker]:
    """Pick the workers that should handle an inbound message.

    A human message that mentions nobody goes to the leader.
    """
    workers = list(workers)
    targets = find_mentioned_workers(content, workers)
    if is_human and not targets:
        leader = next((w for w in workers if w.is_leader), None)
        if leader is not None:
            targets.append(leader)
    return targets

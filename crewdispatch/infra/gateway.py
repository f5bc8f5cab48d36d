"""Messaging gateway protocol and a logging fallback."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from crewdispatch.models.worker import Worker

logger = logging.getLogger(__name__)


@runtime_checkable
class MessagingGateway(Protocol):
    """Outbound chat transport. Failures are reported, never raised."""

    async def post(self, channel_id: str, content: str, worker: Worker | None = None) -> bool:
        """Post *content* to a channel, attributed to *worker* if given."""
        ...

    async def show_progress(self, channel_id: str, worker: Worker | None = None) -> None:
        """Show a short-lived "working" indicator in the channel."""
        ...


class LogGateway:
    """Gateway used when no chat transport is configured."""

    async def post(self, channel_id: str, content: str, worker: Worker | None = None) -> bool:
        sender = worker.name if worker else "system"
        logger.info("[%s] %s: %s", channel_id, sender, content[:500])
        return True

    async def show_progress(self, channel_id: str, worker: Worker | None = None) -> None:
        return None

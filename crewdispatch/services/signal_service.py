"""Signal service: feeds inbound Signal messages to the coordinator."""

from __future__ import annotations

import asyncio
import logging

from crewdispatch.infra.signal.client import SignalClient, SignalMessage
from crewdispatch.services.coordinator_service import InvocationCoordinator

logger = logging.getLogger(__name__)

RECONNECT_DELAY = 5.0
STATUS_COMMAND = "!status"
WORKERS_COMMAND = "!workers"


class SignalService:
    """Listens on the signal-cli event stream and routes human messages.

    When ``allowed_senders`` is non-empty, messages from anyone else are
    ignored.
    """

    def __init__(
        self,
        coordinator: InvocationCoordinator,
        client: SignalClient,
        allowed_senders: list[str] | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._client = client
        self._allowed_senders = set(allowed_senders or [])
        self._listen_task: asyncio.Task | None = None

    @property
    def is_listening(self) -> bool:
        return self._listen_task is not None and not self._listen_task.done()

    def is_allowed_sender(self, sender: str) -> bool:
        return not self._allowed_senders or sender in self._allowed_senders

    async def start(self) -> None:
        if self._listen_task is not None:
            return
        self._listen_task = asyncio.ensure_future(self._listen_loop())
        logger.info("Signal service started")

    async def stop(self) -> None:
        if self._listen_task:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None
        await self._client.close()
        logger.info("Signal service stopped")

    async def handle(self, message: SignalMessage) -> None:
        if not self.is_allowed_sender(message.sender):
            logger.info("Ignoring message from unknown sender %s", message.sender)
            return
        if await self._handle_admin_command(message):
            return
        targets = await self._coordinator.handle_message(
            channel_id=message.channel_id,
            sender_name=message.sender_name or message.sender,
            content=message.text,
            user_id=message.sender,
        )
        logger.debug("Routed message to %s", ", ".join(w.id for w in targets) or "nobody")

    async def _handle_admin_command(self, message: SignalMessage) -> bool:
        """Answer ``!status`` and ``!workers`` directly; True when handled."""
        command = message.text.strip()
        coordinator = self._coordinator
        if command == STATUS_COMMAND:
            reply = "\n".join(coordinator.status_lines()) or "No workers configured."
        elif command == WORKERS_COMMAND:
            reply = "\n".join(
                f"- {w.name} [{w.engine.value}/{w.model}]" + (" (leader)" if w.is_leader else "")
                for w in coordinator.workers()
            ) or "No workers configured."
        else:
            return False
        await coordinator.gateway.post(message.channel_id, reply)
        return True

    async def _listen_loop(self) -> None:
        while True:
            try:
                async for message in self._client.receive_events():
                    await self.handle(message)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in Signal listen loop, reconnecting in %.0fs...", RECONNECT_DELAY)
            await asyncio.sleep(RECONNECT_DELAY)

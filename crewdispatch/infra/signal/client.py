"""JSON-RPC + SSE client for signal-cli."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

import httpx

from crewdispatch.models.worker import Worker

logger = logging.getLogger(__name__)

MAX_CHUNK = 2000


@dataclass
class SignalMessage:
    """An inbound Signal message."""

    sender: str
    text: str
    timestamp: int = 0
    group_id: str = ""
    sender_name: str = ""

    @property
    def channel_id(self) -> str:
        """Group id for group messages, the sender for direct messages."""
        return self.group_id or self.sender


def split_chunks(text: str, max_chunk: int = MAX_CHUNK) -> list[str]:
    """Split *text* on line breaks into pieces of at most *max_chunk* chars."""
    chunks = []
    while text:
        if len(text) <= max_chunk:
            chunks.append(text)
            break
        break_at = text.rfind("\n", 0, max_chunk)
        if break_at <= 0:
            break_at = max_chunk
        chunks.append(text[:break_at])
        text = text[break_at:].lstrip("\n")
    return chunks


def parse_envelope(data: dict) -> SignalMessage | None:
    """Turn a signal-cli receive payload into a message, if it carries text."""
    envelope = data.get("envelope") or data.get("params", {}).get("envelope") or {}
    data_msg = envelope.get("dataMessage")
    if not data_msg:
        return None
    text = data_msg.get("message") or ""
    if not text:
        return None
    return SignalMessage(
        sender=envelope.get("sourceNumber") or envelope.get("source", ""),
        text=text,
        timestamp=data_msg.get("timestamp", 0),
        group_id=(data_msg.get("groupInfo") or {}).get("groupId", ""),
        sender_name=envelope.get("sourceName", ""),
    )


class SignalClient:
    """Client for the signal-cli HTTP API.

    Messages are sent with the JSON-RPC ``send`` method and received from
    the ``/api/v1/events`` server-sent event stream. All workers speak
    through the one account, so posts are prefixed with the worker's name.
    """

    def __init__(
        self,
        http_url: str = "http://127.0.0.1:8080",
        account: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._http_url = http_url.rstrip("/")
        self._account = account
        self._client = client or httpx.AsyncClient(base_url=self._http_url, timeout=30.0)
        self._rpc_id = 0

    async def close(self) -> None:
        await self._client.aclose()

    def _target(self, channel_id: str) -> dict:
        # Phone numbers start with "+"; anything else is a group id.
        if channel_id.startswith("+"):
            return {"recipient": [channel_id]}
        return {"groupId": channel_id}

    async def _rpc(self, method: str, params: dict) -> bool:
        self._rpc_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "id": self._rpc_id,
            "params": {"account": self._account, **params},
        }
        try:
            response = await self._client.post("/api/v1/rpc", json=payload)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Signal %s failed: %s", method, e)
            return False
        if "error" in result:
            logger.warning("Signal %s failed: %s", method, result["error"])
            return False
        return True

    async def post(self, channel_id: str, content: str, worker: Worker | None = None) -> bool:
        if worker is not None:
            content = f"[{worker.name}] {content}"
        chunks = split_chunks(content)
        for i, chunk in enumerate(chunks):
            prefix = f"[{i + 1}/{len(chunks)}] " if len(chunks) > 1 else ""
            ok = await self._rpc("send", {**self._target(channel_id), "message": prefix + chunk})
            if not ok:
                return False
        return True

    async def show_progress(self, channel_id: str, worker: Worker | None = None) -> None:
        await self._rpc("sendTyping", self._target(channel_id))

    async def receive_events(self) -> AsyncIterator[SignalMessage]:
        """Yield inbound text messages from the SSE stream until it closes."""
        async with self._client.stream("GET", "/api/v1/events", timeout=None) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                try:
                    data = json.loads(line[5:].strip())
                except json.JSONDecodeError:
                    logger.debug("Non-JSON event: %s", line[:200])
                    continue
                if not isinstance(data, dict):
                    continue
                message = parse_envelope(data)
                if message is None:
                    continue
                if message.sender == self._account:
                    continue
                logger.info("Received message from %s: %s", message.sender, message.text[:100])
                yield message

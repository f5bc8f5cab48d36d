"""In-memory per-channel conversation history."""

from __future__ import annotations

from collections import OrderedDict, deque

from crewdispatch.models.conversation import ConversationMessage
from crewdispatch.models.worker import HUMAN_ID

MAX_MESSAGES_PER_CHANNEL = 100
MAX_CHANNELS = 100


class ConversationStore:
    """Keeps the last messages of each channel, evicting least-recently-used channels."""

    def __init__(
        self,
        max_messages: int = MAX_MESSAGES_PER_CHANNEL,
        max_channels: int = MAX_CHANNELS,
    ) -> None:
        self._max_messages = max_messages
        self._max_channels = max_channels
        self._channels: OrderedDict[str, deque[ConversationMessage]] = OrderedDict()

    def add(self, channel_id: str, message: ConversationMessage) -> None:
        history = self._channels.pop(channel_id, None)
        if history is None:
            history = deque(maxlen=self._max_messages)
        history.append(message)
        self._channels[channel_id] = history

        while len(self._channels) > self._max_channels:
            self._channels.popitem(last=False)

    def recent(self, channel_id: str, window: int) -> list[ConversationMessage]:
        history = self._channels.get(channel_id)
        if not history or window <= 0:
            return []
        return list(history)[-window:]

    def channels(self) -> list[str]:
        return list(self._channels)


def format_conversation(messages: list[ConversationMessage]) -> str:
    lines = []
    for msg in messages:
        sender = "Human" if msg.sender_id == HUMAN_ID else msg.sender_name
        lines.append(f"[{msg.timestamp.strftime('%H:%M:%S')}] {sender}: {msg.content}")
    return "\n".join(lines)

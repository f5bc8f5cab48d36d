"""Conversation and invocation domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from crewdispatch.models.worker import HUMAN_ID, SYSTEM_ID


class TriggerKind(str, Enum):
    HUMAN_MESSAGE = "human_message"
    WORKER_MENTION = "worker_mention"
    SYSTEM = "system"


@dataclass(frozen=True)
class ConversationMessage:
    """A single message in a channel's shared history."""

    sender_id: str
    sender_name: str
    content: str
    mentions: tuple[str, ...] = ()
    user_id: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def system(cls, content: str, target: str) -> ConversationMessage:
        """Build a system-originated trigger addressed to *target*."""
        return cls(
            sender_id=SYSTEM_ID,
            sender_name="System",
            content=content,
            mentions=(target,),
        )

    @property
    def is_human(self) -> bool:
        return self.sender_id == HUMAN_ID

    @property
    def trigger_kind(self) -> TriggerKind:
        if self.sender_id == HUMAN_ID:
            return TriggerKind.HUMAN_MESSAGE
        if self.sender_id == SYSTEM_ID:
            return TriggerKind.SYSTEM
        return TriggerKind.WORKER_MENTION


@dataclass(frozen=True)
class InvocationContext:
    """Everything the execution engine needs for one invocation."""

    channel_id: str
    trigger: ConversationMessage
    conversation: tuple[ConversationMessage, ...] = ()
    inbox: str = ""
    chain_id: str = ""


@dataclass(frozen=True)
class EngineResult:
    """Final output of one engine run."""

    worker_id: str
    output: str
    cost: float = 0.0

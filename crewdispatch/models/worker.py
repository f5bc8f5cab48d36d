"""Worker domain model."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

SYSTEM_ID = "system"
HUMAN_ID = "human"


class EngineType(str, Enum):
    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"


@dataclass(frozen=True)
class Worker:
    """An addressable AI participant loaded from configuration.

    Workers are fixed for the lifetime of a run. ``user_id`` is the
    worker's chat-native identity, used for ``<@user_id>`` mentions.
    """

    id: str
    name: str
    engine: EngineType = EngineType.CLAUDE
    model: str = "sonnet"
    max_budget: float = 10.0
    prompt_path: str = ""
    is_leader: bool = False
    channels: tuple[str, ...] = ()
    user_id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Worker must have an id")
        if self.id in (SYSTEM_ID, HUMAN_ID):
            raise ValueError(f"Worker id '{self.id}' is reserved")

    def listens_on(self, channel_id: str) -> bool:
        """An empty channel list means every channel."""
        return not self.channels or channel_id in self.channels

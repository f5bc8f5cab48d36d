"""Engine backend factory/registry."""

from __future__ import annotations

from crewdispatch.infra.engines.base import EngineBackend
from crewdispatch.infra.engines.claude import ClaudeBackend
from crewdispatch.infra.engines.codex import CodexBackend
from crewdispatch.infra.engines.gemini import GeminiBackend
from crewdispatch.models.worker import EngineType

_BACKENDS: dict[EngineType, type] = {
    EngineType.CLAUDE: ClaudeBackend,
    EngineType.CODEX: CodexBackend,
    EngineType.GEMINI: GeminiBackend,
}


def get_backend(engine_type: EngineType | str) -> EngineBackend:
    """Get an engine backend instance by type."""
    if isinstance(engine_type, str):
        engine_type = EngineType(engine_type)

    cls = _BACKENDS.get(engine_type)
    if cls is None:
        raise ValueError(f"Unknown engine type: {engine_type}")
    return cls()

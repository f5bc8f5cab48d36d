"""Advisory classifier deciding whether the leader should wake up."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from crewdispatch.config import ClassifierConfig
from crewdispatch.infra.providers.base import LLMProvider
from crewdispatch.models.provider import LLMConfig, LLMMessage

logger = logging.getLogger(__name__)

DEFAULT_REASON = "check the inbox"

TRIAGE_RULES = """\
- New human messages -> INVOKE
- Worker reports or delegation requests -> INVOKE
- Dispatches unresolved for 5+ minutes -> INVOKE
- High severity issues -> INVOKE (include the issue in the reason)
- Only medium/low severity issues -> NO (left for periodic review)
- Empty inbox, nothing unresolved, no high severity issues -> NO"""


@dataclass(frozen=True)
class TriageVerdict:
    invoke: bool
    reason: str = ""

    @classmethod
    def parse(cls, text: str) -> TriageVerdict:
        """Parse ``NO`` or ``INVOKE: <reason>``; anything else means no."""
        line = text.strip().splitlines()[0].strip() if text.strip() else ""
        if line.upper().startswith("INVOKE"):
            reason = line[len("INVOKE"):].lstrip(":").strip()
            return cls(invoke=True, reason=reason or DEFAULT_REASON)
        if not line.upper().startswith("NO"):
            logger.warning("Unrecognised triage answer: %s", line[:100])
        return cls(invoke=False)


def build_triage_prompt(inbox: str, unresolved_count: int, report: str) -> str:
    unresolved = (
        f"{unresolved_count} worker(s) have not reported back yet."
        if unresolved_count > 0 else "(none)"
    )
    return (
        "You are a triage assistant. Decide if the leader coordinator needs to be woken up.\n\n"
        f"## Leader Inbox\n{inbox or '(empty)'}\n\n"
        f"## Unresolved Dispatches\n{unresolved}\n\n"
        f"## Issue Report\n{report or '(none)'}\n\n"
        f"## Rules\n{TRIAGE_RULES}\n\n"
        "Output ONE line:\nINVOKE: <one-line reason>\nor\nNO"
    )


class AdvisoryClassifier:
    """Asks a small LLM whether the heartbeat should invoke the leader."""

    def __init__(self, provider: LLMProvider, config: ClassifierConfig | None = None) -> None:
        self._provider = provider
        self._config = config or ClassifierConfig()

    async def classify(self, inbox: str, unresolved_count: int, report: str) -> TriageVerdict:
        prompt = build_triage_prompt(inbox, unresolved_count, report)
        response = await self._provider.complete(
            [LLMMessage(role="user", content=prompt)],
            LLMConfig(model=self._config.model, max_tokens=self._config.max_tokens, temperature=0.0),
        )
        return TriageVerdict.parse(response.content)

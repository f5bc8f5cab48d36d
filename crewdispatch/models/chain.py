"""Dispatch chain domain model."""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field

DEFAULT_MAX_BUDGET = 20
DEFAULT_PATH_WINDOW = 6


def _new_chain_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class ChainContext:
    """Lineage of dispatches stemming from one root trigger.

    ``recent_path`` is a bounded ring buffer: only the trailing window of
    invoked workers is kept. Contexts are never mutated; ``advance`` returns
    the context for the next hop.
    """

    chain_id: str = field(default_factory=_new_chain_id)
    total_invocations: int = 0
    max_budget: int = DEFAULT_MAX_BUDGET
    recent_path: deque[str] = field(
        default_factory=lambda: deque(maxlen=DEFAULT_PATH_WINDOW)
    )

    @classmethod
    def start(
        cls,
        origin: str | None = None,
        max_budget: int = DEFAULT_MAX_BUDGET,
        window: int = DEFAULT_PATH_WINDOW,
    ) -> ChainContext:
        """Create a fresh chain, optionally seeded with the first worker."""
        path: deque[str] = deque(maxlen=window)
        if origin:
            path.append(origin)
        return cls(max_budget=max_budget, recent_path=path)

    @property
    def window(self) -> int:
        return self.recent_path.maxlen or DEFAULT_PATH_WINDOW

    @property
    def budget_exhausted(self) -> bool:
        return self.total_invocations >= self.max_budget

    def advance(self, next_worker: str) -> ChainContext:
        """Return the context for a dispatch to *next_worker*."""
        path = deque(self.recent_path, maxlen=self.window)
        path.append(next_worker)
        return ChainContext(
            chain_id=self.chain_id,
            total_invocations=self.total_invocations + 1,
            max_budget=self.max_budget,
            recent_path=path,
        )

    def trail(self, next_worker: str) -> list[str]:
        return [*self.recent_path, next_worker]

"""Chain budget and mention-loop detection."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Sequence

from crewdispatch.config import ChainConfig
from crewdispatch.models.chain import ChainContext

logger = logging.getLogger(__name__)

# Chain ids that already received a budget notice; bounded like the path.
_NOTICE_MEMORY = 500


def detect_cycle(
    trail: Sequence[str],
    min_trail: int = 6,
    period_two_repeats: int = 3,
    default_repeats: int = 2,
) -> bool:
    """Return True if the tail of *trail* repeats a cycle.

    Period 2 needs more repeats than longer periods so that an ordinary
    short back-and-forth between two workers is not flagged.

    >>> detect_cycle(list("ABABAB"))
    True
    >>> detect_cycle(list("ABCAB"))
    False
    """
    n = len(trail)
    if n < min_trail:
        return False

    for period in range(2, n // 2 + 1):
        repeats = period_two_repeats if period == 2 else default_repeats
        needed = period * repeats
        if n < needed:
            continue
        tail = trail[n - needed:]
        cycle = tail[:period]
        if all(tail[i] == cycle[i % period] for i in range(period, needed)):
            return True
    return False


class ChainTracker:
    """Creates chains and decides whether a chain may dispatch further."""

    def __init__(self, config: ChainConfig | None = None) -> None:
        self._config = config or ChainConfig()
        self._noticed: deque[str] = deque(maxlen=_NOTICE_MEMORY)

    @property
    def config(self) -> ChainConfig:
        return self._config

    def new_chain(self, origin: str | None = None) -> ChainContext:
        return ChainContext.start(
            origin=origin,
            max_budget=self._config.max_budget,
            window=self._config.path_window,
        )

    def detect_loop(self, chain: ChainContext, next_worker: str) -> bool:
        looping = detect_cycle(
            chain.trail(next_worker),
            min_trail=self._config.min_trail,
            period_two_repeats=self._config.period_two_repeats,
            default_repeats=self._config.default_repeats,
        )
        if looping:
            logger.info(
                "Loop detected in chain %s: %s -> %s",
                chain.chain_id, " -> ".join(chain.recent_path), next_worker,
            )
        return looping

    def budget_exhausted(self, chain: ChainContext) -> bool:
        if chain.budget_exhausted:
            logger.info(
                "Chain %s reached its budget (%d/%d invocations)",
                chain.chain_id, chain.total_invocations, chain.max_budget,
            )
            return True
        return False

    def claim_budget_notice(self, chain_id: str) -> bool:
        """Return True the first time a chain asks to announce its budget stop."""
        if chain_id in self._noticed:
            return False
        self._noticed.append(chain_id)
        return True

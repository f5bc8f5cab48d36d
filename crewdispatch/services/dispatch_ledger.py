"""Dispatch ledger: who dispatched whom, and whether they reported back."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable, Iterable

from crewdispatch.config import LedgerConfig
from crewdispatch.models.dispatch import DispatchRecord
from crewdispatch.models.worker import SYSTEM_ID

logger = logging.getLogger(__name__)


class DispatchLedger:
    """In-memory record of dispatched work awaiting a response.

    Records live in a ring buffer capped at ``max_records``. Resolved
    records older than the soft expiry and any record older than the hard
    expiry are evicted on every write.
    """

    def __init__(
        self,
        config: LedgerConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or LedgerConfig()
        self._clock = clock
        self._records: deque[DispatchRecord] = deque(maxlen=self._config.max_records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(list(self._records))

    def now(self) -> float:
        """Current time on the ledger's clock."""
        return self._clock()

    def record(
        self,
        chain_id: str,
        from_worker: str,
        to_worker: str,
        channel_id: str,
        reason: str,
    ) -> DispatchRecord:
        rec = DispatchRecord(
            chain_id=chain_id,
            from_worker=from_worker,
            to_worker=to_worker,
            channel_id=channel_id,
            reason=reason[: self._config.reason_limit],
            dispatched_at=self._clock(),
        )
        self.cleanup()
        self._records.append(rec)
        logger.debug("Recorded dispatch %s -> %s (chain %s)", from_worker, to_worker, chain_id)
        return rec

    def resolve(self, to_worker: str, mentioned_ids: Iterable[str]) -> int:
        """Resolve records addressed to *to_worker* that it answered.

        A record counts as answered when the response mentions the original
        dispatcher, or when the dispatcher was the system (which can't be
        mentioned back). Returns the number of records resolved.
        """
        mentioned = set(mentioned_ids)
        now = self._clock()
        count = 0
        for rec in self._records:
            if rec.to_worker != to_worker or rec.resolved:
                continue
            if rec.from_worker in mentioned or rec.from_worker == SYSTEM_ID:
                rec.mark_resolved(now)
                count += 1
        if count:
            logger.info("Resolved %d dispatch(es) to %s", count, to_worker)
        return count

    def resolve_by_id(self, record_id: str) -> bool:
        rec = self.get(record_id)
        if rec is None:
            return False
        return rec.mark_resolved(self._clock())

    def get(self, record_id: str) -> DispatchRecord | None:
        for rec in self._records:
            if rec.id == record_id:
                return rec
        return None

    def get_unresolved(self, older_than: float | None = None) -> list[DispatchRecord]:
        """Unresolved records, optionally only those at least *older_than* seconds old."""
        self.cleanup()
        now = self._clock()
        return [
            rec for rec in self._records
            if not rec.resolved and (older_than is None or rec.age(now) >= older_than)
        ]

    def cleanup(self) -> int:
        """Evict expired records. Returns the number removed."""
        now = self._clock()
        soft = self._config.soft_expiry
        hard = self._config.hard_expiry
        kept = [
            rec for rec in self._records
            if rec.age(now) <= hard and not (rec.resolved and rec.age(now) > soft)
        ]
        removed = len(self._records) - len(kept)
        if removed:
            self._records = deque(kept, maxlen=self._config.max_records)
            logger.debug("Evicted %d expired dispatch record(s)", removed)
        return removed

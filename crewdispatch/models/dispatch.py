"""Dispatch ledger record model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

REASON_LIMIT = 200


@dataclass
class DispatchRecord:
    """One unit of dispatched-but-not-yet-confirmed work.

    ``resolved`` only ever moves from False to True, and ``resolved_at`` is
    set on that transition and nowhere else.
    """

    chain_id: str
    from_worker: str
    to_worker: str
    channel_id: str
    reason: str
    dispatched_at: float
    resolved: bool = False
    resolved_at: float | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        self.reason = self.reason[:REASON_LIMIT]

    def mark_resolved(self, now: float) -> bool:
        """Resolve the record. Returns False if it was already resolved."""
        if self.resolved:
            return False
        self.resolved = True
        self.resolved_at = now
        return True

    def age(self, now: float) -> float:
        return now - self.dispatched_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chain_id": self.chain_id,
            "from_worker": self.from_worker,
            "to_worker": self.to_worker,
            "channel_id": self.channel_id,
            "reason": self.reason,
            "dispatched_at": self.dispatched_at,
            "resolved": self.resolved,
            "resolved_at": self.resolved_at,
        }

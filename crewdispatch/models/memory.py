"""Worker memory and external report models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PendingState(str, Enum):
    READY = "ready"
    BLOCKED = "blocked"
    WAITING = "waiting"
    SCHEDULED = "scheduled"


@dataclass(frozen=True)
class PendingItem:
    """A line from a worker's pending section."""

    text: str
    channel_id: str = ""
    state: PendingState = PendingState.READY
    scheduled_for: str = ""

    @property
    def reason(self) -> str:
        return self.text


@dataclass(frozen=True)
class MemorySection:
    title: str
    lines: tuple[str, ...] = ()


@dataclass(frozen=True)
class MemoryDocument:
    """Parsed short-term memory: section title -> ordered entries."""

    sections: tuple[MemorySection, ...] = ()
    pending: tuple[PendingItem, ...] = ()

    def section(self, title: str) -> MemorySection | None:
        wanted = title.strip().lower()
        for section in self.sections:
            if section.title.strip().lower() == wanted:
                return section
        return None


class IssueSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class ReportedIssue:
    """An externally reported issue (e.g. from a code scanner)."""

    repo: str
    file: str
    type: str
    severity: IssueSeverity
    description: str
    suggestion: str = ""

    @classmethod
    def from_doc(cls, doc: dict) -> ReportedIssue:
        return cls(
            repo=doc["repo"],
            file=doc["file"],
            type=doc.get("type", ""),
            severity=IssueSeverity(doc["severity"]),
            description=doc["description"],
            suggestion=doc.get("suggestion", ""),
        )


@dataclass(frozen=True)
class IssueReport:
    issues: tuple[ReportedIssue, ...] = ()
    last_scan_at: str = ""

    def by_severity(self, severity: IssueSeverity) -> list[ReportedIssue]:
        return [i for i in self.issues if i.severity == severity]

    def summary_text(self) -> str:
        """Render a triage summary, empty when there is nothing to report."""
        if not self.issues:
            return ""
        high = self.by_severity(IssueSeverity.HIGH)
        medium = self.by_severity(IssueSeverity.MEDIUM)
        low = self.by_severity(IssueSeverity.LOW)
        lines = [f"{len(self.issues)} issue(s) (high: {len(high)}, medium: {len(medium)}, low: {len(low)})"]
        for label, group in (("high", high), ("medium", medium)):
            if group:
                lines.append(f"--- {label} ---")
                lines.extend(f"- [{i.type}] {i.repo}/{i.file}: {i.description}" for i in group)
        if low:
            lines.append(f"--- low: {len(low)} (left for periodic review) ---")
        return "\n".join(lines)


@dataclass(frozen=True)
class ActivityEntry:
    """One line of the JSON-lines activity log."""

    ts: float
    channel_id: str
    worker_id: str
    author: str
    content: str
    extra: dict = field(default_factory=dict)

    def to_doc(self) -> dict:
        return {
            "ts": self.ts,
            "channel_id": self.channel_id,
            "worker_id": self.worker_id,
            "author": self.author,
            "content": self.content,
            **self.extra,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> ActivityEntry:
        ts = doc["ts"]
        if not isinstance(ts, (int, float)) or isinstance(ts, bool) or ts != ts:
            raise ValueError(f"invalid ts: {ts!r}")
        return cls(
            ts=float(ts),
            channel_id=str(doc.get("channel_id", "")),
            worker_id=str(doc.get("worker_id", "")),
            author=str(doc.get("author", "")),
            content=str(doc.get("content", "")),
        )

"""File-backed worker memory, inboxes, activity log and issue report.

Layout under the workspace root::

    .crewdispatch/memory/<worker>/short-term.md
    .crewdispatch/inbox/<worker>.md
    .crewdispatch/inbox/issues.json
    .crewdispatch/logs/activity-log.jsonl

Methods are synchronous; async callers run them with ``asyncio.to_thread``.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

from crewdispatch.infra.memory.parser import parse_memory
from crewdispatch.models.memory import ActivityEntry, IssueReport, MemoryDocument, ReportedIssue

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATE_DIR = ".crewdispatch"
SHORT_TERM_FILE = "short-term.md"
ISSUES_FILE = "issues.json"
ACTIVITY_FILE = "activity-log.jsonl"

# Rewrite a JSON-lines file without its corrupt lines past this share.
CORRUPTION_REWRITE_RATIO = 0.3

MAX_INBOX_ENTRIES = 20
MAX_ENTRY_CHARS = 200

_INBOX_LINE = re.compile(r"^\[([^\]]+)\]\s+([^:]+):\s*(.*)$")


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


def read_jsonl(path: Path, parse: Callable[[dict], T]) -> list[T]:
    """Parse a JSON-lines file, skipping corrupt lines.

    When at least 30% of the non-empty lines are corrupt the file is
    rewritten with only the valid ones.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []

    lines = [line for line in raw.splitlines() if line.strip()]
    items: list[T] = []
    valid_lines: list[str] = []
    corrupt = 0
    for line in lines:
        try:
            items.append(parse(json.loads(line)))
            valid_lines.append(line)
        except (ValueError, KeyError, TypeError) as e:
            corrupt += 1
            logger.warning("Skipping corrupt line in %s: %s", path.name, e)

    if lines and corrupt / len(lines) >= CORRUPTION_REWRITE_RATIO:
        logger.warning(
            "%s: %d/%d lines corrupt, rewriting with valid lines only",
            path.name, corrupt, len(lines),
        )
        _atomic_write(path, "".join(f"{line}\n" for line in valid_lines))
    return items


def summarize_inbox(raw: str, worker_id: str) -> str:
    """Trim an inbox for prompting.

    Entries mentioning *worker_id* are kept first, the remaining slots go to
    the most recent other entries, and each entry is truncated.
    """
    if not raw:
        return ""

    entries = []
    for line in raw.splitlines():
        if not line.strip():
            continue
        match = _INBOX_LINE.match(line)
        if match:
            ts, sender, content = match.groups()
            entries.append((ts, sender, content, worker_id.lower() in content.lower()))
        else:
            entries.append(("", "", line, False))

    mentioning = [e for e in entries if e[3]][-MAX_INBOX_ENTRIES:]
    others = [e for e in entries if not e[3]]
    remaining = MAX_INBOX_ENTRIES - len(mentioning)
    kept = mentioning + (others[-remaining:] if remaining > 0 else [])

    out = []
    for ts, sender, content, _ in kept:
        if len(content) > MAX_ENTRY_CHARS:
            content = content[:MAX_ENTRY_CHARS] + "..."
        out.append(f"[{ts}] {sender}: {content}" if ts else content)
    return "\n".join(out)


class MemoryStore:
    """Reads and writes the per-worker files of a workspace."""

    def __init__(self, workspace_root: Path) -> None:
        self._root = Path(workspace_root)
        self._state = self._root / STATE_DIR

    @property
    def workspace_root(self) -> Path:
        return self._root

    @property
    def inbox_dir(self) -> Path:
        return self._state / "inbox"

    def memory_path(self, worker_id: str) -> Path:
        return self._state / "memory" / worker_id / SHORT_TERM_FILE

    def inbox_path(self, worker_id: str) -> Path:
        return self.inbox_dir / f"{worker_id}.md"

    @property
    def issues_path(self) -> Path:
        return self.inbox_dir / ISSUES_FILE

    @property
    def activity_path(self) -> Path:
        return self._state / "logs" / ACTIVITY_FILE

    # --- Short-term memory ---

    def read_memory(self, worker_id: str) -> str:
        try:
            return self.memory_path(worker_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def load_memory(self, worker_id: str) -> MemoryDocument:
        return parse_memory(self.read_memory(worker_id))

    # --- Inboxes ---

    def append_inbox(
        self,
        worker_id: str,
        sender: str,
        content: str,
        when: datetime | None = None,
    ) -> None:
        when = when or datetime.now()
        flat = " ".join(content.split())
        line = f"[{when.strftime('%Y-%m-%d %H:%M')}] {sender}: {flat}\n"
        path = self.inbox_path(worker_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line)

    def read_inbox(self, worker_id: str) -> str:
        try:
            return self.inbox_path(worker_id).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return ""

    def clear_inbox(self, worker_id: str) -> None:
        path = self.inbox_path(worker_id)
        if path.exists():
            path.write_text("", encoding="utf-8")

    # --- Issue report ---

    def load_issue_report(self) -> IssueReport:
        """Load the issue report; a corrupt file is replaced by an empty one."""
        path = self.issues_path
        try:
            doc = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return IssueReport()
        except ValueError as e:
            logger.warning("Corrupt issue report %s (%s), resetting", path, e)
            _atomic_write(path, json.dumps({"issues": [], "last_scan_at": ""}, indent=2))
            return IssueReport()

        if not isinstance(doc, dict):
            logger.warning("Issue report %s is not an object, ignoring", path)
            return IssueReport()

        issues = []
        for raw in doc.get("issues", []):
            try:
                issues.append(ReportedIssue.from_doc(raw))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping malformed issue: %s", e)
        return IssueReport(issues=tuple(issues), last_scan_at=str(doc.get("last_scan_at", "")))

    # --- Activity log ---

    def append_activity(self, entry: ActivityEntry) -> None:
        path = self.activity_path
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_doc(), ensure_ascii=False) + "\n")

    def read_activity(self) -> list[ActivityEntry]:
        return read_jsonl(self.activity_path, ActivityEntry.from_doc)

    def drain_activity(self) -> list[ActivityEntry]:
        """Take every entry logged so far, leaving an empty log behind.

        The log is renamed before reading so appends that race with the
        drain land in a fresh file.
        """
        path = self.activity_path
        if not path.exists():
            return []
        draining = path.with_name(f"{path.name}.{int(time.time() * 1000)}.draining")
        try:
            os.replace(path, draining)
        except FileNotFoundError:
            return []
        try:
            return read_jsonl(draining, ActivityEntry.from_doc)
        finally:
            draining.unlink(missing_ok=True)

"""Parser for worker short-term memory files.

Memory files are free-form markdown written by the workers themselves.
The only structure relied on is headings (``##``/``###``) that split the
file into sections, and the pending section, whose lines may carry a
destination channel (``#ch:<id>``) and state markers such as
``[BLOCKED]``, ``[WAITING]``, ``[READY]`` or ``[SCHEDULED:2025-01-31]``.
"""

from __future__ import annotations

import logging
import re
from datetime import date

from crewdispatch.models.memory import MemoryDocument, MemorySection, PendingItem, PendingState

logger = logging.getLogger(__name__)

PENDING_SECTION_TITLES = ("pending", "pending items", "대기 항목")

_HEADING = re.compile(r"^\s*#{2,3}\s+(.+?)\s*$")
_CHANNEL = re.compile(r"#ch:([\w+/=.-]+)")
_BLOCKED = re.compile(r"\[BLOCKED\]", re.IGNORECASE)
_WAITING = re.compile(r"\[WAITING\]", re.IGNORECASE)
_READY = re.compile(r"\[READY\]", re.IGNORECASE)
_SCHEDULED = re.compile(r"\[SCHEDULED:(\d{4}-\d{2}-\d{2}|tomorrow)\]", re.IGNORECASE)
_BULLET = re.compile(r"^[\s\-*]+")

# Phrases meaning the item is waiting on someone else or already reported.
WAITING_PHRASES = re.compile(
    r"awaiting\s+(?:approval|review|reply|response|confirmation|instructions?|results?)"
    r"|waiting\s+(?:for|on)\s+"
    r"|reported\s+(?:complete|done)|completion\s+reported"
    r"|승인\s*대기|지시\s*대기|결과\s*대기|판단\s*대기|리뷰\s*대기|확인\s*대기|답변\s*대기|응답\s*대기"
    r"|보고\s*완료|완료\s*보고",
    re.IGNORECASE,
)


def _parse_pending_line(line: str) -> PendingItem | None:
    if not line.strip():
        return None

    state = PendingState.READY
    scheduled_for = ""
    if _BLOCKED.search(line):
        state = PendingState.BLOCKED
    elif _WAITING.search(line) or WAITING_PHRASES.search(line):
        state = PendingState.WAITING
    elif match := _SCHEDULED.search(line):
        state = PendingState.SCHEDULED
        scheduled_for = match.group(1).lower()

    channel = _CHANNEL.search(line)
    text = _CHANNEL.sub("", line)
    text = _READY.sub("", text)
    text = _BULLET.sub("", text).strip()
    if not text:
        return None
    return PendingItem(
        text=text,
        channel_id=channel.group(1) if channel else "",
        state=state,
        scheduled_for=scheduled_for,
    )


def parse_memory(text: str, pending_titles: tuple[str, ...] = PENDING_SECTION_TITLES) -> MemoryDocument:
    """Split *text* into sections and extract the pending items."""
    sections: list[MemorySection] = []
    title = ""
    lines: list[str] = []

    for raw in text.splitlines():
        heading = _HEADING.match(raw)
        if heading:
            if title or lines:
                sections.append(MemorySection(title=title, lines=tuple(lines)))
            title = heading.group(1)
            lines = []
        else:
            lines.append(raw)
    if title or lines:
        sections.append(MemorySection(title=title, lines=tuple(lines)))

    wanted = {t.lower() for t in pending_titles}
    pending: list[PendingItem] = []
    for section in sections:
        if section.title.strip().lower() not in wanted:
            continue
        for line in section.lines:
            item = _parse_pending_line(line)
            if item is not None:
                pending.append(item)

    return MemoryDocument(sections=tuple(sections), pending=tuple(pending))


def is_actionable(item: PendingItem, today: date | None = None) -> bool:
    """Return True if the item is ready to work on now and has a channel."""
    if not item.channel_id:
        return False
    if item.state in (PendingState.BLOCKED, PendingState.WAITING):
        return False
    if item.state == PendingState.SCHEDULED:
        if item.scheduled_for == "tomorrow":
            return False
        today = today or date.today()
        try:
            when = date.fromisoformat(item.scheduled_for)
        except ValueError:
            logger.warning("Unparsable schedule marker: %s", item.scheduled_for)
            return False
        return when <= today
    return True


def actionable_items(document: MemoryDocument, today: date | None = None) -> list[PendingItem]:
    return [item for item in document.pending if is_actionable(item, today)]

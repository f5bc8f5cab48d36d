"""Tests for the inbox file watcher."""

from __future__ import annotations

import asyncio

import pytest
from watchdog.events import DirModifiedEvent, FileModifiedEvent, FileMovedEvent

from crewdispatch.infra.watch import InboxChangeHandler, InboxWatcher


class TestInboxChangeHandler:
    @pytest.mark.asyncio
    async def test_matching_file_schedules_callback(self):
        calls = []
        handler = InboxChangeHandler("lead.md", asyncio.get_running_loop(), lambda: calls.append(1))
        handler.on_modified(FileModifiedEvent("/ws/inbox/lead.md"))
        handler.on_modified(FileModifiedEvent("/ws/inbox/be.md"))
        handler.on_modified(DirModifiedEvent("/ws/inbox"))
        handler.on_moved(FileMovedEvent("/ws/inbox/lead.md.tmp", "/ws/inbox/lead.md"))
        await asyncio.sleep(0)
        assert calls == [1, 1]


class TestInboxWatcher:
    @pytest.mark.asyncio
    async def test_detects_writes(self, tmp_path):
        changed = asyncio.Event()
        watcher = InboxWatcher(tmp_path / "inbox", "lead.md")
        watcher.start(changed.set)
        try:
            assert watcher.running
            (tmp_path / "inbox" / "lead.md").write_text("[2025-01-15 09:00] Kim: hi\n")
            await asyncio.wait_for(changed.wait(), timeout=5)
        finally:
            watcher.stop()
        assert not watcher.running

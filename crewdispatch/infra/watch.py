"""Filesystem watch on a worker inbox, bridged onto the event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class InboxChangeHandler(FileSystemEventHandler):
    """Calls back onto the event loop when one inbox file changes.

    watchdog delivers events on its own thread, so the callback is handed
    to the loop with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        filename: str,
        loop: asyncio.AbstractEventLoop,
        on_change: Callable[[], None],
    ) -> None:
        self._filename = filename
        self._loop = loop
        self._on_change = on_change

    def _matches(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        paths = [event.src_path, getattr(event, "dest_path", "")]
        return any(p and Path(str(p)).name == self._filename for p in paths)

    def on_created(self, event: FileSystemEvent) -> None:
        self._notify(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._notify(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._notify(event)

    def _notify(self, event: FileSystemEvent) -> None:
        if not self._matches(event):
            return
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._on_change)


class InboxWatcher:
    """Watches ``directory`` for changes to ``filename``."""

    def __init__(self, directory: Path, filename: str) -> None:
        self._directory = Path(directory)
        self._filename = filename
        self._observer: Observer | None = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self, on_change: Callable[[], None]) -> None:
        """Begin watching; *on_change* runs on the calling thread's event loop."""
        if self._observer is not None:
            return
        self._directory.mkdir(parents=True, exist_ok=True)
        handler = InboxChangeHandler(self._filename, asyncio.get_running_loop(), on_change)
        observer = Observer()
        observer.schedule(handler, str(self._directory), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching %s for changes to %s", self._directory, self._filename)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None

"""
Debounced file-system notifications.

A watchdog observer reports raw events from its own thread into a
queue. :class:`DebouncedWatcher` runs one more thread that waits for
the first event, keeps collecting for a fixed window, then hands the
whole batch of relative paths to a ``deliver`` callback. The callback
is the only thing the consumer sees; it never touches the observer.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path, PurePath
from typing import Callable, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


DEFAULT_DEBOUNCE_SECONDS = 2.0

IGNORED_DIRS = {
    ".git",
    "node_modules",
    "target",
    "__pycache__",
    ".venv",
    "venv",
    ".mypy_cache",
    ".pytest_cache",
    ".idea",
}
IGNORED_FILES = {".weaver.lock", ".weaver.json", "weaver.lock"}


def is_ignored(relative: str) -> bool:
    """Return True for paths the watcher never reports."""
    parts = PurePath(relative).parts
    if not parts:
        return True
    if any(part in IGNORED_DIRS for part in parts[:-1]):
        return True
    name = parts[-1]
    return name in IGNORED_DIRS or name in IGNORED_FILES or name.endswith(("~", ".swp", ".swx"))


class _QueueingHandler(FileSystemEventHandler):
    """Push the relative path of every relevant event into ``events``."""

    def __init__(self, root: Path, events: "queue.Queue[str]") -> None:
        super().__init__()
        self.root = root
        self.events = events

    def _relative(self, raw: Optional[str]) -> Optional[str]:
        if not raw:
            return None
        try:
            relative = Path(raw).resolve().relative_to(self.root)
        except ValueError:
            return None
        return relative.as_posix()

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in {"opened", "closed_no_write"}:
            return
        for raw in (event.src_path, getattr(event, "dest_path", None)):
            if isinstance(raw, bytes):
                raw = raw.decode(errors="replace")
            relative = self._relative(raw)
            if relative and not is_ignored(relative):
                self.events.put(relative)


class DebouncedWatcher:
    """Watch ``root`` recursively and deliver debounced batches of paths.

    Parameters
    ----------
    root : Path
        Directory to watch, normally the repository root.
    debounce_seconds : float
        Length of the window over which events are coalesced.
    observer_factory : callable, optional
        Builds the watchdog observer; tests pass a fake.
    """

    def __init__(
        self,
        root: Path,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        observer_factory: Callable[[], object] = Observer,
    ) -> None:
        self.root = Path(root).resolve()
        self.debounce_seconds = debounce_seconds
        self.events: "queue.Queue[str]" = queue.Queue()
        self.handler = _QueueingHandler(self.root, self.events)
        self._observer_factory = observer_factory
        self._observer = None
        self._thread: Optional[threading.Thread] = None
        self._stopping = threading.Event()

    def start(self, deliver: Callable[[Set[str]], None]) -> None:
        if self._thread is not None:
            return
        self._stopping.clear()
        self._observer = self._observer_factory()
        self._observer.schedule(self.handler, str(self.root), recursive=True)
        self._observer.start()
        self._thread = threading.Thread(
            target=self._debounce, args=(deliver,), name="weaver-debounce", daemon=True
        )
        self._thread.start()
        logger.info("Watching %s (debounce %.1fs)", self.root, self.debounce_seconds)

    def stop(self) -> None:
        self._stopping.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        logger.debug("Stopped watching %s", self.root)

    def collect_batch(self, first: str) -> Set[str]:
        """Gather ``first`` plus every event arriving within the debounce window."""
        batch = {first}
        deadline = time.monotonic() + self.debounce_seconds
        while not self._stopping.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                batch.add(self.events.get(timeout=remaining))
            except queue.Empty:
                break
        return batch

    def _debounce(self, deliver: Callable[[Set[str]], None]) -> None:
        while not self._stopping.is_set():
            try:
                first = self.events.get(timeout=0.5)
            except queue.Empty:
                continue
            batch = self.collect_batch(first)
            if self._stopping.is_set():
                break
            logger.debug("Debounced batch of %d path(s)", len(batch))
            deliver(batch)

"""
Cooperative driver loop for unattended mode.

:class:`WatchLoop` waits on three things at once: a debounced batch
from the watcher thread, an idle timer tick and a stop request (signal
or :meth:`WatchLoop.stop`). Whichever resolves first is handled by
calling the work handler, and the loop waits again.

The handler is synchronous and runs in a worker thread. It is never
cancelled: a stop request during a unit of work takes effect on the
next wait, so the repository is never left half-mutated. Only one
handler call is in flight at a time.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set, Tuple

from commit_weaver.watch.watcher import DebouncedWatcher


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


DEFAULT_QUEUE_SIZE = 8

# handler(reason, paths) -> keep running?
WorkHandler = Callable[[str, Set[str]], bool]


@dataclass
class LoopSummary:
    """What a finished :meth:`WatchLoop.run` did."""

    iterations: int = 0
    reasons: List[str] = field(default_factory=list)
    stopped_by_signal: bool = False


class WatchLoop:
    """Run ``handler`` on file-system batches, timer ticks or both.

    Parameters
    ----------
    handler : callable
        ``handler(reason, paths)`` doing one unit of work; ``reason`` is
        ``"startup"``, ``"batch"`` or ``"tick"``. Returning False ends
        the loop.
    interval : float, optional
        Idle tick period in seconds. Without it the loop only reacts to
        batches.
    watcher : DebouncedWatcher, optional
        Source of batches. Without it the loop is pure polling.
    cancel_event : threading.Event, optional
        Set when a stop is requested, so retry backoff sleeps in the
        worker thread end early.
    run_on_start : bool
        Call the handler once before the first wait.
    """

    def __init__(
        self,
        handler: WorkHandler,
        interval: Optional[float] = None,
        watcher: Optional[DebouncedWatcher] = None,
        cancel_event: Optional[threading.Event] = None,
        run_on_start: bool = True,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        if interval is None and watcher is None:
            raise ValueError("WatchLoop needs an interval, a watcher or both")
        self.handler = handler
        self.interval = interval
        self.watcher = watcher
        self.cancel_event = cancel_event or threading.Event()
        self.run_on_start = run_on_start
        self.queue_size = queue_size
        self.summary = LoopSummary()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop: Optional[asyncio.Event] = None
        self._batches: Optional["asyncio.Queue[Set[str]]"] = None
        self._installed: List[Tuple[int, object]] = []

    # ------------------------------------------------------------------
    # Stop requests
    # ------------------------------------------------------------------
    def _request_stop(self) -> None:
        if self._stop is not None and not self._stop.is_set():
            logger.info("Stop requested; finishing current work")
            self._stop.set()
        self.cancel_event.set()

    def stop(self) -> None:
        """Ask the loop to finish; safe to call from any thread."""
        self.cancel_event.set()
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._request_stop)

    def _on_signal(self) -> None:
        self.summary.stopped_by_signal = True
        self._request_stop()

    def _install_signal_handlers(self) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._loop.add_signal_handler(sig, self._on_signal)
                self._installed.append((sig, None))
            except (NotImplementedError, RuntimeError, ValueError):
                # no loop signal support (Windows, or not the main thread)
                try:
                    previous = signal.signal(
                        sig, lambda *_: self._loop.call_soon_threadsafe(self._on_signal)
                    )
                    self._installed.append((sig, previous))
                except ValueError:
                    logger.debug("Cannot install handler for %s", sig)

    def _remove_signal_handlers(self) -> None:
        for sig, previous in self._installed:
            if previous is None:
                self._loop.remove_signal_handler(sig)
            else:
                signal.signal(sig, previous)
        self._installed = []

    # ------------------------------------------------------------------
    # Batches from the watcher thread
    # ------------------------------------------------------------------
    def _offer(self, batch: Set[str]) -> None:
        try:
            self._batches.put_nowait(batch)
        except asyncio.QueueFull:
            # the next unit of work picks these changes up anyway
            logger.debug("Batch queue full, dropping %d path(s)", len(batch))

    def _deliver(self, batch: Set[str]) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._offer, batch)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------
    async def _next_trigger(self) -> Optional[Tuple[str, Set[str]]]:
        get_batch = asyncio.ensure_future(self._batches.get())
        stopped = asyncio.ensure_future(self._stop.wait())
        try:
            done, _ = await asyncio.wait(
                {get_batch, stopped},
                timeout=self.interval,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (get_batch, stopped):
                if not task.done():
                    task.cancel()
        if stopped in done or self._stop.is_set():
            return None
        if get_batch in done:
            return "batch", get_batch.result()
        return "tick", set()

    async def _dispatch(self, reason: str, paths: Set[str]) -> bool:
        self.summary.iterations += 1
        self.summary.reasons.append(reason)
        return bool(await asyncio.to_thread(self.handler, reason, paths))

    async def run(self) -> LoopSummary:
        """Drive the handler until it returns False or a stop is requested."""
        self._loop = asyncio.get_running_loop()
        self._stop = asyncio.Event()
        self._batches = asyncio.Queue(maxsize=self.queue_size)
        if self.cancel_event.is_set():
            self._stop.set()
        self._install_signal_handlers()
        if self.watcher is not None:
            self.watcher.start(self._deliver)
        try:
            keep_going = True
            if self.run_on_start and not self._stop.is_set():
                keep_going = await self._dispatch("startup", set())
            while keep_going and not self._stop.is_set():
                trigger = await self._next_trigger()
                if trigger is None:
                    break
                keep_going = await self._dispatch(*trigger)
        finally:
            if self.watcher is not None:
                self.watcher.stop()
            self._remove_signal_handlers()
        return self.summary

"""
Unattended mode: file watching, the driver loop, locking and sessions.

The pieces are independent so they can be tested alone:
:class:`DebouncedWatcher` produces batches, :class:`WatchLoop` consumes
them, :class:`AutoSession` does the work and :class:`LockGuard` keeps a
second instance away from the same repository.
"""

from .deferred import DeferredCommit, DeferredSession, Snapshot  # noqa: F401
from .lock import LockError, LockGuard, is_process_running, lock_path_for  # noqa: F401
from .loop import LoopSummary, WatchLoop  # noqa: F401
from .session import AutoOptions, AutoSession, Decision, Review, SessionStats  # noqa: F401
from .watcher import DebouncedWatcher, is_ignored  # noqa: F401

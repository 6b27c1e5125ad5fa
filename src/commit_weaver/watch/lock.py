"""
Single-instance lock for one repository.

The lock is a file holding the owner's process id. Acquisition fails
while that process is alive; a lock left behind by a dead process is
reclaimed silently. :class:`LockGuard` releases the lock when its
``with`` block exits, whatever the exit path.
"""

from __future__ import annotations

import errno
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Callable, Optional


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


LOCK_FILE = "weaver.lock"
WORKTREE_LOCK_FILE = ".weaver.lock"


class LockError(Exception):
    """Raised when another live process holds the repository lock."""

    pass


def is_process_running(pid: int) -> bool:
    """Return True if a process with ``pid`` exists."""
    if pid <= 0:
        return False
    if sys.platform == "win32":
        try:
            result = subprocess.run(
                ["tasklist", "/FI", f"PID eq {pid}"],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError:
            return False
        return str(pid) in result.stdout
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by another user
        return True
    except OSError:
        return False
    return True


def lock_path_for(repo_root: Path, git_dir: Optional[Path] = None) -> Path:
    """Lock file location: inside the git directory when it is a plain directory."""
    if git_dir is not None and Path(git_dir).is_dir():
        return Path(git_dir) / LOCK_FILE
    return Path(repo_root) / WORKTREE_LOCK_FILE


def _read_pid(path: Path) -> Optional[int]:
    try:
        first = path.read_text(encoding="utf-8").splitlines()[0].strip()
    except (OSError, IndexError):
        return None
    return int(first) if first.isdigit() else None


class LockGuard:
    """Scope-bound owner of a repository lock file.

    Use :meth:`acquire` (or the constructor followed by ``with``)::

        with LockGuard.acquire(path):
            ...  # mutate the repository
    """

    def __init__(self, path: Path, probe: Callable[[int], bool] = is_process_running) -> None:
        self.path = Path(path)
        self.probe = probe
        self.pid = os.getpid()
        self._held = False

    @classmethod
    def acquire(cls, path: Path, probe: Callable[[int], bool] = is_process_running) -> "LockGuard":
        guard = cls(path, probe)
        guard.try_acquire()
        return guard

    @property
    def held(self) -> bool:
        return self._held

    def try_acquire(self) -> None:
        """Create the lock file or raise :class:`LockError`."""
        if self._held:
            return
        for _ in range(2):
            try:
                fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                owner = _read_pid(self.path)
                if owner is not None and self.probe(owner):
                    raise LockError(
                        f"Another weaver instance is already running (PID: {owner}). "
                        f"If this is incorrect, remove {self.path}"
                    )
                logger.debug("Removing stale lock %s (pid %s)", self.path, owner)
                try:
                    self.path.unlink()
                except FileNotFoundError:
                    pass
                continue
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(f"{self.pid}\n")
            self._held = True
            return
        raise LockError(f"Could not acquire lock {self.path}")

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            if _read_pid(self.path) == self.pid:
                self.path.unlink()
        except OSError as exc:
            if exc.errno != errno.ENOENT:
                logger.warning("Could not remove lock %s: %s", self.path, exc)

    def __enter__(self) -> "LockGuard":
        self.try_acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

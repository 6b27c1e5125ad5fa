"""
Deferred commits for unattended sessions.

In deferred mode nothing is committed while the session runs. Each unit
of work stages everything, snapshots the index as a tree and records the
diff against the previous snapshot as a :class:`DeferredCommit`. At the
end of the session the recorded diffs are replayed onto a clean index
one by one and committed, or thrown away if the user cancels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from commit_weaver.notices import Notifier, logging_notifier
from commit_weaver.vcs.git_client import GitClient, GitError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


@dataclass
class Snapshot:
    """Index state captured after staging everything."""

    tree: str
    diff: str
    files: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.diff.strip()


@dataclass
class DeferredCommit:
    message: str
    diff: str
    files: List[str]
    timestamp: Optional[datetime] = None


class DeferredSession:
    """Ordered list of pending commits for one repository."""

    def __init__(self, git: GitClient, notify: Optional[Notifier] = None) -> None:
        self.git = git
        self.notify = notify or logging_notifier(logger)
        self.commits: List[DeferredCommit] = []
        self._last_tree: Optional[str] = None

    def __len__(self) -> int:
        return len(self.commits)

    def _base_tree(self) -> str:
        if self._last_tree is None:
            self._last_tree = self.git.head_tree()
        return self._last_tree

    def snapshot(self) -> Snapshot:
        """Stage everything and diff it against the last recorded state."""
        self.git.stage_all()
        tree = self.git.write_tree()
        base = self._base_tree()
        if tree == base:
            return Snapshot(tree=tree, diff="")
        return Snapshot(
            tree=tree,
            diff=self.git.diff_trees(base, tree),
            files=self.git.changed_paths_between(base, tree),
        )

    def record(self, snapshot: Snapshot, message: str, timestamp: Optional[datetime] = None) -> DeferredCommit:
        commit = DeferredCommit(
            message=message,
            diff=snapshot.diff,
            files=list(snapshot.files),
            timestamp=timestamp,
        )
        self.commits.append(commit)
        self._last_tree = snapshot.tree
        self.notify(logging.INFO, f"Deferred: {message.splitlines()[0] if message else ''}")
        return commit

    def flush(self, timestamps: Optional[Sequence[Optional[datetime]]] = None) -> List[str]:
        """Turn every recorded commit into a real one, oldest first.

        Parameters
        ----------
        timestamps : sequence, optional
            One timestamp per deferred commit overriding the recorded ones.

        Returns
        -------
        List[str]
            Hashes of the created commits.
        """
        if not self.commits:
            return []
        shas: List[str] = []
        self.git.reset_index()
        for index, commit in enumerate(self.commits):
            when = timestamps[index] if timestamps and index < len(timestamps) else commit.timestamp
            try:
                self.git.apply_patch_to_index(commit.diff)
            except GitError as exc:
                logger.debug("Deferred patch rejected: %s", exc)
                self.notify(logging.WARNING, f"Patch did not apply, staging files: {', '.join(commit.files)}")
                self.git.stage_files(commit.files)
            if not self.git.has_staged_changes():
                self.notify(logging.WARNING, f"Skipping '{commit.message}': nothing staged")
                continue
            shas.append(self.git.commit(commit.message, when))
        self.commits = []
        self._last_tree = None
        return shas

    def discard(self) -> int:
        """Drop every recorded commit and unstage; the working tree is untouched."""
        count = len(self.commits)
        self.commits = []
        self._last_tree = None
        self.git.reset_index()
        return count

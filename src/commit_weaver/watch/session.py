"""
One unattended session: the work handler behind :class:`WatchLoop`.

Every call of :meth:`AutoSession.handle` is one unit of work: stage the
pending changes, obtain a message, then commit, defer, or only report
it (dry run). After a real commit the session can compact history by
squashing the unpushed commits once they reach a threshold. A git
failure only abandons the current unit; the session reports it and
keeps waiting for the next change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Set

from commit_weaver.notices import Notifier, logging_notifier
from commit_weaver.vcs.git_client import GitClient, GitError, StagedChanges
from commit_weaver.watch.deferred import DeferredSession


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


RECENT_COMMITS_CONTEXT = 5


class Decision(Enum):
    ACCEPT = "accept"
    SKIP = "skip"
    FLUSH = "flush"


@dataclass
class Review:
    """Answer of an interactive reviewer for one proposed commit."""

    decision: Decision
    message: str = ""
    timestamp: Optional[datetime] = None


# reviewer(message, changes) -> Review
Reviewer = Callable[[str, StagedChanges], Review]


@dataclass
class AutoOptions:
    max_commits: int = 100
    dry_run: bool = False
    defer: bool = False
    squash: bool = False
    squash_threshold: int = 5


@dataclass
class SessionStats:
    committed: int = 0
    deferred: int = 0
    skipped: int = 0
    squashed: int = 0
    previewed: int = 0
    failed: int = 0
    messages: List[str] = field(default_factory=list)

    @property
    def produced(self) -> int:
        return self.committed + self.deferred


class AutoSession:
    """Turn pending changes into commits, one unit of work per call.

    Parameters
    ----------
    git : GitClient
        The repository.
    messages
        Message generator with ``generate(diff, recent_commits,
        avoid_messages)`` and ``squash_message(messages)``.
    options : AutoOptions
        Session switches.
    reviewer : callable, optional
        Interactive reviewer; when given every proposal goes through it.
    deferred : DeferredSession, optional
        Required when ``options.defer`` is set.
    """

    def __init__(
        self,
        git: GitClient,
        messages,
        options: Optional[AutoOptions] = None,
        notify: Optional[Notifier] = None,
        reviewer: Optional[Reviewer] = None,
        deferred: Optional[DeferredSession] = None,
    ) -> None:
        self.git = git
        self.messages = messages
        self.options = options or AutoOptions()
        self.notify = notify or logging_notifier(logger)
        self.reviewer = reviewer
        self.deferred = deferred
        if self.options.defer and self.deferred is None:
            self.deferred = DeferredSession(git, self.notify)
        self.stats = SessionStats()
        self._last_seen: Optional[str] = None
        self._snapshot = None
        self._changes: Optional[StagedChanges] = None
        # consecutive commits on HEAD created by this session
        self._own_commits = 0

    @property
    def limit_reached(self) -> bool:
        return self.stats.produced >= self.options.max_commits

    def handle(self, reason: str, paths: Set[str]) -> bool:
        """Do one unit of work; return False once the session should end."""
        if self.limit_reached:
            self.notify(logging.WARNING, "Max commits reached. Stopping.")
            return False
        if reason == "batch":
            logger.debug("Changed: %s", ", ".join(sorted(paths)))
        try:
            return self._work()
        except GitError as exc:
            self.stats.failed += 1
            self.notify(logging.WARNING, f"Git error, retrying on the next change: {exc}")
            try:
                self.git.reset_index()
            except GitError as reset_exc:
                logger.debug("Index reset after failure also failed: %s", reset_exc)
            return True

    def _work(self) -> bool:
        diff = self._pending_diff()
        if diff is None:
            return True

        message = self.messages.generate(
            diff,
            recent_commits=self.git.get_recent_commits(RECENT_COMMITS_CONTEXT),
            avoid_messages=self.stats.messages,
        )
        timestamp: Optional[datetime] = None
        if self.reviewer is not None:
            review = self.reviewer(message, self._review_changes())
            if review.decision is Decision.SKIP:
                self.stats.skipped += 1
                self._last_seen = diff
                self.notify(logging.INFO, "Skipped")
                return True
            if review.decision is Decision.FLUSH:
                self.flush_deferred()
                return True
            message = review.message or message
            timestamp = review.timestamp

        subject = message.splitlines()[0] if message else ""
        if self.options.dry_run:
            self.stats.previewed += 1
            self._last_seen = diff
            self.notify(logging.INFO, f"[DRY RUN] Would commit: {subject}")
            return True

        if self.options.defer:
            self.deferred.record(self._snapshot, message, timestamp)
            self.stats.deferred += 1
        else:
            sha = self.git.commit(message, timestamp)
            self.stats.committed += 1
            self._own_commits += 1
            self.notify(logging.INFO, f"Committed {sha[:7]} {subject}")
            self._maybe_squash()
        self.stats.messages.append(subject)
        self._last_seen = None
        return not self.limit_reached

    # ------------------------------------------------------------------
    def _pending_diff(self) -> Optional[str]:
        """Stage pending work and return its diff, or None if there is nothing new."""
        if self.options.defer:
            self._snapshot = self.deferred.snapshot()
            diff = None if self._snapshot.is_empty else self._snapshot.diff
        else:
            if not self.git.has_uncommitted_changes():
                return None
            self.git.stage_all()
            self._changes = self.git.get_staged_changes()
            diff = None if self._changes.is_empty() else self._changes.diff
        if diff is None or diff == self._last_seen:
            # unchanged since the last skipped or previewed proposal
            return None
        return diff

    def _review_changes(self) -> StagedChanges:
        if self.options.defer:
            return StagedChanges(modified=list(self._snapshot.files), diff=self._snapshot.diff)
        return self._changes

    def _maybe_squash(self) -> None:
        if not self.options.squash:
            return
        # history from before the session is never rewritten
        count = min(self.git.count_unpushed_commits(), self._own_commits)
        if count < max(self.options.squash_threshold, 2):
            return
        messages = list(reversed(self.git.get_commit_messages(count)))
        try:
            summary = self.messages.squash_message(messages)
            self.git.squash_commits(count, summary)
        except GitError as exc:
            self.notify(logging.WARNING, f"Could not squash {count} commits: {exc}")
            return
        self._own_commits = 1
        self.stats.squashed += count
        self.notify(logging.INFO, f"Squashed {count} commits into: {summary.splitlines()[0]}")

    def flush_deferred(self, timestamps=None) -> List[str]:
        if not self.deferred or not len(self.deferred):
            return []
        shas = self.deferred.flush(timestamps)
        self.stats.committed += len(shas)
        self.stats.deferred = 0
        self.notify(logging.INFO, f"Flushed {len(shas)} deferred commit(s)")
        return shas

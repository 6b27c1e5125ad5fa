"""
Materialise planned commit groups as real commits.

:class:`CommitApplier` walks the ``(plan, timestamp)`` pairs in order.
For each plan it resolves the unit ids, stages exactly those units,
checks that something is staged and commits with the scheduled date.
A plan that cannot be resolved, stages nothing or fails in git is
reported and skipped; the remaining plans still run.

Three staging strategies exist, one per granularity:

* files are added or removed by path;
* hunks are turned into a minimal patch applied to the index only,
  falling back to staging the whole file when git rejects the patch;
* chunks are applied progressively: each file is rebuilt on disk from
  the chunks committed so far, so early commits hold a partial file that
  later commits complete. The original content of every such file is
  restored at the end whatever happened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from commit_weaver.chunking.models import FileChunk
from commit_weaver.diff.hunk_parser import Hunk, build_patch
from commit_weaver.grouping.group_model import CommitGroupPlan, FileUnit, Granularity
from commit_weaver.notices import Notifier, logging_notifier
from commit_weaver.vcs.git_client import GitClient, GitError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


PlannedCommit = Tuple[CommitGroupPlan, Optional[datetime]]


@dataclass
class ApplyReport:
    """Outcome of one :meth:`CommitApplier.apply` run."""

    created: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    has_leftovers: bool = False

    @property
    def commit_count(self) -> int:
        return len(self.created)


class CommitApplier:
    """Stage and commit planned groups through a :class:`GitClient`."""

    def __init__(self, git: GitClient, notify: Optional[Notifier] = None) -> None:
        self.git = git
        self.notify = notify or logging_notifier(logger)
        self._buffers: Dict[str, List[FileChunk]] = {}
        self._originals: Dict[str, Optional[str]] = {}

    # ------------------------------------------------------------------
    # Staging strategies
    # ------------------------------------------------------------------
    def _stage_files(self, units: Sequence[FileUnit]) -> None:
        paths: List[str] = []
        for unit in units:
            if unit.old_path and unit.old_path not in paths:
                paths.append(unit.old_path)
            if unit.path not in paths:
                paths.append(unit.path)
        self.git.stage_files(paths)

    def _stage_hunks(self, hunks: Sequence[Hunk]) -> None:
        patch = build_patch(hunks)
        try:
            self.git.apply_patch_to_index(patch)
        except GitError as exc:
            files = sorted({h.file_path for h in hunks})
            logger.debug("Patch rejected: %s", exc)
            self.notify(logging.WARNING, f"Patch did not apply, staging whole file(s): {', '.join(files)}")
            self.git.stage_files(files)

    def _stage_chunks(self, chunks: Sequence[FileChunk]) -> None:
        touched: List[str] = []
        for chunk in chunks:
            if chunk.is_whole_file:
                self.git.stage_files([chunk.file_path])
                continue
            if chunk.file_path not in self._originals:
                self._originals[chunk.file_path] = self.git.read_working_file(chunk.file_path)
            self._buffers.setdefault(chunk.file_path, []).append(chunk)
            if chunk.file_path not in touched:
                touched.append(chunk.file_path)
        for path in touched:
            parts = sorted(self._buffers[path], key=lambda c: c.start_line)
            self.git.write_working_file(path, "".join(c.content for c in parts))
            self.git.stage_files([path])

    def _restore_originals(self) -> None:
        for path, original in self._originals.items():
            if original is None:
                continue
            try:
                if self.git.read_working_file(path) != original:
                    self.git.write_working_file(path, original)
                    self.notify(logging.INFO, f"Restored {path}")
            except OSError as exc:
                self.notify(logging.ERROR, f"Could not restore {path}: {exc}")
        self._originals = {}
        self._buffers = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def apply(
        self,
        planned: Sequence[PlannedCommit],
        units: Mapping[int, object],
        granularity: Granularity,
    ) -> ApplyReport:
        """Create one commit per plan, in order.

        Parameters
        ----------
        planned : sequence of (CommitGroupPlan, datetime or None)
            Plans paired with their author/committer timestamps.
        units : mapping of int to unit
            :class:`FileUnit`, :class:`Hunk` or :class:`FileChunk` by id,
            matching ``granularity``.
        granularity : Granularity
            Selects the staging strategy.
        """
        report = ApplyReport()
        self.git.reset_index()
        try:
            for plan, timestamp in planned:
                self._apply_one(plan, timestamp, units, granularity, report)
        finally:
            if granularity is Granularity.CHUNK:
                self._restore_originals()
        report.has_leftovers = self.git.has_uncommitted_changes()
        return report

    def _apply_one(
        self,
        plan: CommitGroupPlan,
        timestamp: Optional[datetime],
        units: Mapping[int, object],
        granularity: Granularity,
        report: ApplyReport,
    ) -> None:
        resolved = [units[i] for i in plan.unit_ids if i in units]
        if not resolved:
            self.notify(logging.WARNING, f"Skipping '{plan.message}': no matching changes")
            report.skipped.append(plan.message)
            return
        try:
            if granularity is Granularity.FILE:
                self._stage_files(resolved)
            elif granularity is Granularity.HUNK:
                self._stage_hunks(resolved)
            else:
                self._stage_chunks(resolved)

            if not self.git.has_staged_changes():
                self.notify(logging.WARNING, f"Skipping '{plan.message}': nothing staged")
                report.skipped.append(plan.message)
                return
            sha = self.git.commit(plan.full_message(), timestamp)
        except GitError as exc:
            self.notify(logging.ERROR, f"Failed to commit '{plan.message}': {exc}")
            report.failed.append((plan.message, str(exc)))
            try:
                self.git.reset_index()
            except GitError as reset_exc:
                logger.debug("Index reset after failure also failed: %s", reset_exc)
            return
        report.created.append((sha, plan.message))
        self.notify(logging.INFO, f"Committed {sha[:7]} {plan.message}")

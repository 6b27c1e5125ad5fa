"""
Commit synthesis pipeline.

The pipeline connects the engine stages for the ``commit`` command:

1. decompose the staged changes into units (files, hunks or chunks);
2. ask a :class:`CommitGrouper` to partition the units, optionally into
   a target number of groups;
3. spread timestamps over the requested window;
4. hand the plans to the :class:`CommitApplier`.

It holds no user interface; the CLI previews the :class:`SynthesisPlan`
and asks for confirmation between :meth:`CommitPipeline.plan` and
:meth:`CommitPipeline.execute`.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from commit_weaver.apply.applier import ApplyReport, CommitApplier
from commit_weaver.chunking.models import ChunkType, FileChunk
from commit_weaver.chunking.ordering import file_priority
from commit_weaver.chunking.registry import chunk_file
from commit_weaver.diff.hunk_parser import parse_diff_into_hunks
from commit_weaver.grouping.fallback import FileGrouper, PerUnitGrouper
from commit_weaver.grouping.group_model import CommitGroupPlan, FileUnit, Granularity, UnitSummary
from commit_weaver.grouping.grouper import (
    CommitGrouper,
    summarize_chunks,
    summarize_files,
    summarize_hunks,
)
from commit_weaver.notices import Notifier, logging_notifier
from commit_weaver.scheduling import default_spread_duration, generate_spread_timestamps, now
from commit_weaver.vcs.git_client import GitClient, StagedChanges


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


REALISTIC_CHUNK_THRESHOLD = 30
RECENT_COMMITS_CONTEXT = 5


class CommitMode(Enum):
    SINGLE = "single"
    ATOMIC = "atomic"
    GRANULAR = "granular"
    REALISTIC = "realistic"

    @property
    def granularity(self) -> Granularity:
        return {
            "atomic": Granularity.FILE,
            "granular": Granularity.HUNK,
            "realistic": Granularity.CHUNK,
        }.get(self.value, Granularity.FILE)


@dataclass
class SynthesisPlan:
    """Grouped and scheduled commits, ready to preview and apply."""

    granularity: Granularity
    units: Dict[int, object]
    plans: List[CommitGroupPlan]
    timestamps: List[datetime]
    missing: List[int] = field(default_factory=list)

    def planned(self) -> List[Tuple[CommitGroupPlan, datetime]]:
        return list(zip(self.plans, self.timestamps))

    def files_of(self, plan: CommitGroupPlan) -> List[str]:
        files: List[str] = []
        for unit_id in plan.unit_ids:
            unit = self.units.get(unit_id)
            path = getattr(unit, "file_path", None) or getattr(unit, "path", None)
            if path and path not in files:
                files.append(path)
        return files


def offline_grouper(granularity: Granularity, notify: Optional[Notifier] = None) -> CommitGrouper:
    """Deterministic grouper for ``granularity``: per file, or per chunk."""
    if granularity is Granularity.CHUNK:
        return PerUnitGrouper(notify)
    return FileGrouper(notify)


# ----------------------------------------------------------------------
# Decomposition
# ----------------------------------------------------------------------
def file_units(changes: StagedChanges) -> List[FileUnit]:
    """One unit per changed file, in dependency order."""
    hunks_by_file: Dict[str, List[str]] = {}
    for hunk in parse_diff_into_hunks(changes.diff):
        hunks_by_file.setdefault(hunk.file_path, []).append(hunk.content)

    entries = [(path, "added", None) for path in changes.added]
    entries += [(path, "modified", None) for path in changes.modified]
    entries += [(path, "deleted", None) for path in changes.deleted]
    entries += [(new, "renamed", old) for old, new in changes.renamed]
    entries.sort(key=lambda entry: file_priority(entry[0]))

    units = []
    for unit_id, (path, status, old_path) in enumerate(entries):
        additions, deletions = changes.line_counts.get(path, (0, 0))
        units.append(
            FileUnit(
                id=unit_id,
                path=path,
                status=status,
                additions=additions,
                deletions=deletions,
                diff="".join(hunks_by_file.get(path, [])),
                old_path=old_path,
            )
        )
    return units


def _whole_file_chunk(unit_id: int, path: str, deleted: bool, content: Optional[str], label: str) -> FileChunk:
    lines = (content or "").count("\n")
    return FileChunk(
        id=unit_id,
        file_path=path,
        start_line=1,
        end_line=max(lines, 1),
        content=content or "",
        chunk_type=ChunkType.FULL_FILE,
        description=label,
        is_whole_file=True,
        is_deleted=deleted,
    )


def progressive_chunks(
    git: GitClient,
    changes: StagedChanges,
    threshold: int = REALISTIC_CHUNK_THRESHOLD,
) -> List[FileChunk]:
    """Chunk new files; every other change becomes one whole-file chunk.

    Files are visited in dependency order, and chunks of a file keep
    source-line order, so chunk ids follow the intended commit order.
    """
    entries: List[Tuple[str, str]] = [(path, "added") for path in changes.added]
    entries += [(path, "modified") for path in changes.modified]
    entries += [(path, "deleted") for path in changes.deleted]
    for old, new in changes.renamed:
        entries.append((old, "deleted"))
        entries.append((new, "renamed"))
    entries.sort(key=lambda entry: file_priority(entry[0]))

    chunks: List[FileChunk] = []
    for path, status in entries:
        content = None if status == "deleted" else git.read_working_file(path)
        if status == "added" and content is not None:
            chunks.extend(chunk_file(path, content, threshold=threshold, first_id=len(chunks)))
        else:
            chunks.append(_whole_file_chunk(len(chunks), path, status == "deleted", content, status))
    return chunks


class CommitPipeline:
    """Plan and apply commits for the staged changes of one repository.

    Parameters
    ----------
    git : GitClient
        The repository.
    grouper_factory : callable
        ``grouper_factory(granularity)`` returning the :class:`CommitGrouper`
        to use; see :func:`offline_grouper` for the deterministic one.
    messages
        Message generator exposing ``generate(diff, recent_commits,
        avoid_messages)``.
    notify : callable, optional
        Receives progress notices.
    rng : random.Random, optional
        Randomness for the timestamp spread.
    """

    def __init__(
        self,
        git: GitClient,
        grouper_factory: Callable[[Granularity], CommitGrouper],
        messages,
        notify: Optional[Notifier] = None,
        rng: Optional[random.Random] = None,
        realistic_threshold: int = REALISTIC_CHUNK_THRESHOLD,
    ) -> None:
        self.git = git
        self.grouper_factory = grouper_factory
        self.messages = messages
        self.notify = notify or logging_notifier(logger)
        self.rng = rng or random.Random()
        self.realistic_threshold = realistic_threshold

    def decompose(self, changes: StagedChanges, mode: CommitMode) -> Tuple[Dict[int, object], List[UnitSummary]]:
        """Return the units of ``changes`` for ``mode`` keyed by id, and their summaries."""
        if mode is CommitMode.GRANULAR:
            hunks = parse_diff_into_hunks(changes.diff)
            return {h.id: h for h in hunks}, summarize_hunks(hunks)
        if mode is CommitMode.REALISTIC:
            chunks = progressive_chunks(self.git, changes, self.realistic_threshold)
            return {c.id: c for c in chunks}, summarize_chunks(chunks)
        files = file_units(changes)
        return {f.id: f for f in files}, summarize_files(files)

    def plan(
        self,
        changes: StagedChanges,
        mode: CommitMode,
        target: Optional[int] = None,
        spread_secs: Optional[int] = None,
        start: Optional[datetime] = None,
        avoid_messages: Sequence[str] = (),
    ) -> Optional[SynthesisPlan]:
        """Group and schedule ``changes``.

        Returns None when the changes form a single logical commit (or
        decompose into nothing), in which case the caller commits them
        in one go.

        Raises
        ------
        GroupingError, LLMError
            When the grouper cannot produce a proposal.
        """
        units, summaries = self.decompose(changes, mode)
        if not summaries:
            self.notify(logging.WARNING, "No units to group")
            return None
        grouper = self.grouper_factory(mode.granularity)
        result = grouper.group(summaries, target=target, avoid_messages=avoid_messages)
        if len(result.plans) <= 1:
            self.notify(logging.INFO, "Changes are already atomic (single logical unit)")
            return None
        if result.missing:
            self.notify(
                logging.WARNING,
                f"{len(result.missing)} unit(s) were not grouped and will be left for a final commit",
            )
        duration = spread_secs if spread_secs is not None else default_spread_duration(self.rng)
        timestamps = generate_spread_timestamps(len(result.plans), start or now(), duration, rng=self.rng)
        return SynthesisPlan(
            granularity=mode.granularity,
            units=units,
            plans=result.plans,
            timestamps=timestamps,
            missing=result.missing,
        )

    def execute(self, synthesis: SynthesisPlan) -> ApplyReport:
        applier = CommitApplier(self.git, self.notify)
        return applier.apply(synthesis.planned(), synthesis.units, synthesis.granularity)

    def generate_message(self, diff: str, avoid_messages: Sequence[str] = ()) -> str:
        recent = self.git.get_recent_commits(RECENT_COMMITS_CONTEXT)
        return self.messages.generate(diff, recent_commits=recent, avoid_messages=avoid_messages)

    def commit_single(self, message: str, timestamp: Optional[datetime] = None) -> str:
        """Commit whatever is staged with ``message``."""
        return self.git.commit(message, timestamp)

    def commit_leftovers(
        self,
        timestamp: Optional[datetime] = None,
        avoid_messages: Sequence[str] = (),
    ) -> Optional[Tuple[str, str]]:
        """Stage every remaining change and commit it with a generated message.

        Returns ``(sha, message)`` or None when nothing was left.
        """
        self.git.stage_all()
        changes = self.git.get_staged_changes()
        if changes.is_empty():
            return None
        message = self.generate_message(changes.diff, avoid_messages)
        sha = self.git.commit(message, timestamp)
        return sha, message

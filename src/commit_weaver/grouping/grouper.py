"""
The commit grouping capability and its local post-processing.

A :class:`CommitGrouper` proposes commit groups for a set of units. The
proposal is always run through :func:`validate_partition`, which makes
every input unit appear in at most one group, and, when a target count
is requested, through :func:`merge_to_target`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from commit_weaver.chunking.models import FileChunk
from commit_weaver.diff.hunk_parser import Hunk
from commit_weaver.grouping.group_model import CommitGroupPlan, FileUnit, UnitSummary
from commit_weaver.notices import Notifier, logging_notifier


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


PREVIEW_LINES = 10
PREVIEW_CHARS = 500


class GroupingError(Exception):
    """Raised when a grouping proposal cannot be obtained or decoded."""

    pass


@dataclass
class GroupingResult:
    """Validated grouping: the plans plus the ids no plan claimed."""

    plans: List[CommitGroupPlan] = field(default_factory=list)
    missing: List[int] = field(default_factory=list)

    @property
    def is_single_group(self) -> bool:
        return len(self.plans) == 1


class CommitGrouper(ABC):
    """Abstract commit grouping capability."""

    def __init__(self, notify: Optional[Notifier] = None) -> None:
        self.notify = notify or logging_notifier(logger)

    @abstractmethod
    def propose(
        self,
        units: Sequence[UnitSummary],
        target: Optional[int] = None,
        avoid_messages: Sequence[str] = (),
    ) -> List[CommitGroupPlan]:
        """Return raw commit groups for ``units``, possibly with bad references."""

    def group(
        self,
        units: Sequence[UnitSummary],
        target: Optional[int] = None,
        avoid_messages: Sequence[str] = (),
    ) -> GroupingResult:
        """Propose, validate and (when ``target`` is set) merge commit groups."""
        if not units:
            return GroupingResult()
        plans = self.propose(units, target=target, avoid_messages=avoid_messages)
        plans, missing = validate_partition(plans, [u.id for u in units], self.notify)
        if target is not None and target > 0:
            plans = merge_to_target(plans, target)
        return GroupingResult(plans=plans, missing=missing)


def validate_partition(
    plans: Iterable[CommitGroupPlan],
    unit_ids: Sequence[int],
    notify: Optional[Notifier] = None,
) -> Tuple[List[CommitGroupPlan], List[int]]:
    """Filter ``plans`` down to a partition of ``unit_ids``.

    Unknown ids are dropped, an id claimed by several groups stays with
    the first one, and groups left empty are skipped. Returns the
    surviving plans and the ids that no plan claimed, in input order.
    """
    notify = notify or logging_notifier(logger)
    known = set(unit_ids)
    claimed = set()
    valid: List[CommitGroupPlan] = []
    for plan in plans:
        kept = []
        for unit_id in plan.unit_ids:
            if unit_id not in known:
                notify(logging.WARNING, f"Ignoring unknown unit {unit_id!r} in group '{plan.message}'")
                continue
            if unit_id in claimed:
                logger.debug("Unit %s already claimed, dropping from '%s'", unit_id, plan.message)
                continue
            claimed.add(unit_id)
            kept.append(unit_id)
        if not kept:
            notify(logging.WARNING, f"Skipping empty group '{plan.message}'")
            continue
        plan.unit_ids = kept
        valid.append(plan)
    missing = [unit_id for unit_id in unit_ids if unit_id not in claimed]
    if missing:
        notify(logging.WARNING, f"{len(missing)} unit(s) not assigned to any group")
    return valid, missing


def _join(first: str, second: str, separator: str) -> str:
    if first and second:
        return f"{first}{separator}{second}"
    return first or second


def merge_to_target(plans: List[CommitGroupPlan], target: int) -> List[CommitGroupPlan]:
    """Merge adjacent groups until exactly ``target`` remain.

    Each step merges the adjacent pair with the smallest combined size;
    ties go to the earliest pair. A list already at or below the target
    is returned unchanged.
    """
    if target <= 0 or len(plans) <= target:
        return plans
    merged = list(plans)
    while len(merged) > target:
        best = min(range(len(merged) - 1), key=lambda i: merged[i].size + merged[i + 1].size)
        left, right = merged[best], merged[best + 1]
        merged[best:best + 2] = [
            CommitGroupPlan(
                message=_join(left.message, right.message, "; "),
                description=_join(left.description, right.description, "\n"),
                unit_ids=left.unit_ids + right.unit_ids,
                hint=_join(left.hint, right.hint, ", "),
            )
        ]
    return merged


def summarize_hunks(hunks: Iterable[Hunk]) -> List[UnitSummary]:
    return [
        UnitSummary(
            id=h.id,
            file_path=h.file_path,
            is_new_file=h.is_new_file,
            is_deleted=h.is_deleted,
            additions=h.additions,
            deletions=h.deletions,
            preview=h.preview(PREVIEW_LINES, PREVIEW_CHARS),
            context=h.context,
        )
        for h in hunks
    ]


def summarize_chunks(chunks: Iterable[FileChunk]) -> List[UnitSummary]:
    return [
        UnitSummary(
            id=c.id,
            file_path=c.file_path,
            is_new_file=not c.is_whole_file,
            is_deleted=c.is_deleted,
            additions=0 if c.is_deleted else c.line_count,
            preview=c.preview(PREVIEW_LINES, PREVIEW_CHARS),
            context=c.description,
        )
        for c in chunks
    ]


def summarize_files(files: Iterable[FileUnit]) -> List[UnitSummary]:
    summaries = []
    for unit in files:
        changed = [ln for ln in unit.diff.splitlines() if ln.startswith(("+", "-")) and not ln.startswith(("+++", "---"))]
        preview = "\n".join(changed[:PREVIEW_LINES])
        summaries.append(
            UnitSummary(
                id=unit.id,
                file_path=unit.path,
                is_new_file=unit.is_new_file,
                is_deleted=unit.is_deleted,
                additions=unit.additions,
                deletions=unit.deletions,
                preview=preview[:PREVIEW_CHARS],
                context=unit.status,
            )
        )
    return summaries

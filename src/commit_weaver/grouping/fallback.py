"""
Deterministic groupers that never call an external service.

They back the ``--offline`` switch and the test suite: one group per
file for file and hunk granularity, and one group per unit for the
progressive chunk mode.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from commit_weaver.chunking.ordering import file_priority
from commit_weaver.grouping.change_classifier import describe_change
from commit_weaver.grouping.group_model import CommitGroupPlan, UnitSummary
from commit_weaver.grouping.grouper import CommitGrouper


def _status(unit: UnitSummary) -> str:
    if unit.is_deleted:
        return "deleted"
    if unit.is_new_file:
        return "added"
    return "modified"


def _unique(message: str, used: Dict[str, int]) -> str:
    count = used.get(message, 0)
    used[message] = count + 1
    return message if count == 0 else f"{message} (part {count + 1})"


class FileGrouper(CommitGrouper):
    """One commit per file, foundational files first."""

    def propose(
        self,
        units: Sequence[UnitSummary],
        target: Optional[int] = None,
        avoid_messages: Sequence[str] = (),
    ) -> List[CommitGroupPlan]:
        by_file: "OrderedDict[str, List[UnitSummary]]" = OrderedDict()
        for unit in units:
            by_file.setdefault(unit.file_path, []).append(unit)

        used = {message: 1 for message in avoid_messages}
        plans = []
        for path in sorted(by_file, key=file_priority):
            members = by_file[path]
            preview = "\n".join(u.preview for u in members)
            message = _unique(describe_change(path, preview, _status(members[0])), used)
            plans.append(
                CommitGroupPlan(
                    message=message,
                    description="",
                    unit_ids=[u.id for u in members],
                    hint=path,
                )
            )
        return plans


class PerUnitGrouper(CommitGrouper):
    """One commit per unit, in the order the units were given."""

    def propose(
        self,
        units: Sequence[UnitSummary],
        target: Optional[int] = None,
        avoid_messages: Sequence[str] = (),
    ) -> List[CommitGroupPlan]:
        used = {message: 1 for message in avoid_messages}
        plans = []
        for unit in units:
            preview = unit.preview
            if unit.is_new_file and not unit.is_deleted:
                # chunk previews are raw file text; present them as added lines
                preview = "\n".join("+" + line for line in preview.splitlines())
            base = describe_change(unit.file_path, preview, _status(unit))
            if unit.context and unit.context not in {"full file", "added", "modified", "deleted"}:
                base = f"{base} ({unit.context})"
            plans.append(
                CommitGroupPlan(
                    message=_unique(base, used),
                    unit_ids=[unit.id],
                    hint=unit.file_path,
                )
            )
        return plans

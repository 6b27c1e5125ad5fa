"""
Partitioning of change units into planned commits.

See :mod:`commit_weaver.grouping.grouper` for the grouping capability
and its post-processing, :mod:`commit_weaver.grouping.llm_grouper` for
the classifier-backed implementation and
:mod:`commit_weaver.grouping.fallback` for the deterministic ones.
"""

from .change_classifier import classify_change, describe_change  # noqa: F401
from .fallback import FileGrouper, PerUnitGrouper  # noqa: F401
from .group_model import CommitGroupPlan, FileUnit, Granularity, UnitSummary  # noqa: F401
from .grouper import (  # noqa: F401
    CommitGrouper,
    GroupingError,
    GroupingResult,
    merge_to_target,
    summarize_chunks,
    summarize_files,
    summarize_hunks,
    validate_partition,
)
from .llm_grouper import ClassifierGrouper  # noqa: F401

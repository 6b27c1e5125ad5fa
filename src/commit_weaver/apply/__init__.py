"""
Turning commit plans into commits.

See :class:`commit_weaver.apply.applier.CommitApplier`.
"""

from .applier import ApplyReport, CommitApplier, PlannedCommit  # noqa: F401

"""
Version control system (VCS) integration.

This package contains the :class:`GitClient` used by the commit
synthesis engine. It exposes the primitives the engine consumes:
staged change inspection, index manipulation, commit creation with
explicit timestamps, history walking and squashing.
"""

from .git_client import DiffStats, GitClient, GitError, StagedChanges  # noqa: F401

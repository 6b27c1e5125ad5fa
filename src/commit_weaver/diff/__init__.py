"""
Unified diff handling.

See :mod:`commit_weaver.diff.hunk_parser` for turning diff text into
:class:`Hunk` records and rebuilding minimal patches from a selection.
"""

from .hunk_parser import Hunk, build_patch, parse_diff_into_hunks  # noqa: F401

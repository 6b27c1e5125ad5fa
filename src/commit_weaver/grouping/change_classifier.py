"""
Heuristics for classifying file changes into Conventional Commit types.

The classifier is deterministic so that the offline grouper and message
generator work, and can be tested, without a language model. It looks
at the path first and only then at the changed lines of the diff.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import List, Tuple


_DOC_SUFFIXES = {".md", ".rst", ".txt", ".adoc"}
_BUILD_NAMES = {
    "dockerfile", "docker-compose.yml", "docker-compose.yaml", "makefile",
    "pyproject.toml", "setup.py", "setup.cfg", "package.json", "cargo.toml",
    "go.mod", "requirements.txt",
}

_KEYWORD_RULES: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("fix", re.compile(r"\b(fix(e[ds])?|bug|hotfix|patch)\b", re.IGNORECASE)),
    ("refactor", re.compile(r"\brefactor", re.IGNORECASE)),
    ("perf", re.compile(r"\b(perf|performance|optimi[sz]e)\b", re.IGNORECASE)),
    ("feat", re.compile(r"\bfeat(ure)?\b", re.IGNORECASE)),
)
_DEFINITION = re.compile(r"^\s*(async\s+)?(def|class|fn|func|function|struct|interface|impl)\b")

_VERBS = {
    "feat": "add",
    "fix": "fix",
    "docs": "update",
    "style": "format",
    "refactor": "refactor",
    "perf": "speed up",
    "test": "update tests for",
    "build": "update",
    "ci": "update",
    "chore": "update",
}


def _changed_lines(diff: str) -> Tuple[List[str], List[str]]:
    added, removed = [], []
    for line in diff.splitlines():
        if line.startswith(("+++", "---")):
            continue
        if line.startswith("+"):
            added.append(line[1:])
        elif line.startswith("-"):
            removed.append(line[1:])
    return added, removed


def _is_whitespace_only(added: List[str], removed: List[str]) -> bool:
    if not added and not removed:
        return False
    squash = lambda lines: "".join(re.sub(r"\s", "", ln) for ln in lines)  # noqa: E731
    return squash(added) == squash(removed)


def classify_change(file_path: str, diff: str) -> str:
    """Classify a change into a Conventional Commit type.

    Parameters
    ----------
    file_path : str
        Path to the changed file relative to the repository root.
    diff : str
        Unified diff (or changed-line preview) of the file.

    Returns
    -------
    str
        One of ``feat``, ``fix``, ``docs``, ``style``, ``refactor``,
        ``perf``, ``test``, ``build``, ``ci`` or ``chore``.
    """
    path = PurePosixPath(file_path.replace("\\", "/"))
    name = path.name.lower()
    parts = {part.lower() for part in path.parts[:-1]}

    if ".github" in parts or name in {".gitlab-ci.yml", ".travis.yml"}:
        return "ci"
    if name in _BUILD_NAMES or name.startswith("requirements"):
        return "build"
    if path.suffix.lower() in _DOC_SUFFIXES or "docs" in parts:
        return "docs"
    if name.startswith("test_") or path.stem.endswith(("_test", ".test", ".spec")) or parts & {"tests", "test"}:
        return "test"

    added, removed = _changed_lines(diff)
    if _is_whitespace_only(added, removed):
        return "style"
    changed = "\n".join(added + removed)
    for commit_type, pattern in _KEYWORD_RULES:
        if pattern.search(changed):
            return commit_type
    if any(_DEFINITION.match(line) for line in added):
        return "feat"
    if path.suffix.lower() in {".yaml", ".yml", ".toml", ".ini", ".cfg", ".json"}:
        return "chore"
    if removed and not added:
        return "refactor"
    return "feat" if added and not removed else "chore"


def describe_change(file_path: str, diff: str, status: str = "modified") -> str:
    """Return a one-line Conventional Commit subject for a single file change."""
    commit_type = classify_change(file_path, diff)
    target = PurePosixPath(file_path.replace("\\", "/")).name or file_path
    if status == "deleted":
        return f"{commit_type}: remove {target}"
    if status == "added" and commit_type in {"feat", "chore", "build", "ci", "docs"}:
        return f"{commit_type}: add {target}"
    return f"{commit_type}: {_VERBS.get(commit_type, 'update')} {target}"

"""
Git client implementation for commit_weaver.

This module wraps the Git operations required by the commit synthesis
engine. Every operation shells out to the ``git`` binary through
:meth:`GitClient._run` so that unit tests can mock a single method.
Commits are created with ``write-tree``/``commit-tree``/``update-ref``
so that author and committer dates and the parent commit are always
explicit.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)
# Attach a null handler to avoid logging errors when the root logger is not
# configured. Logs will propagate to the root when configured by the CLI.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# Hash of the empty tree, used as the diff base on an unborn branch.
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


class GitError(Exception):
    """Raised when a Git command fails."""

    pass


@dataclass
class DiffStats:
    """Summary statistics of a diff."""

    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0


@dataclass
class StagedChanges:
    """Information about the changes currently staged in the index."""

    added: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    renamed: List[Tuple[str, str]] = field(default_factory=list)
    diff: str = ""
    stats: DiffStats = field(default_factory=DiffStats)
    # Per-file (insertions, deletions) from ``--numstat``
    line_counts: Dict[str, Tuple[int, int]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted or self.renamed)

    def all_files(self) -> List[str]:
        """Return every changed path (new path for renames)."""
        files = list(self.added) + list(self.modified) + list(self.deleted)
        files.extend(new for _, new in self.renamed)
        return files

    def summary(self) -> str:
        parts = []
        if self.added:
            parts.append(f"{len(self.added)} added")
        if self.modified:
            parts.append(f"{len(self.modified)} modified")
        if self.deleted:
            parts.append(f"{len(self.deleted)} deleted")
        if self.renamed:
            parts.append(f"{len(self.renamed)} renamed")
        return ", ".join(parts) if parts else "No changes"


class GitClient:
    """Client for interacting with a Git repository."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = Path(repo_root)

    # ------------------------------------------------------------------
    # Static helpers
    # ------------------------------------------------------------------
    @staticmethod
    def find_repo_root(start: Path) -> Optional[Path]:
        """Find the root of the Git repository starting from ``start``.

        Walk upwards until a ``.git`` entry is found or the filesystem
        root is reached.
        """
        current = Path(start).resolve()
        while True:
            if (current / ".git").exists():
                return current
            if current.parent == current:
                return None
            current = current.parent

    # ------------------------------------------------------------------
    # Basic Git commands
    # ------------------------------------------------------------------
    def _run(
        self,
        args: List[str],
        check: bool = True,
        env: Optional[Dict[str, str]] = None,
        input: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        """Run a Git command in the repository root.

        Raises
        ------
        GitError
            If the command exits with a non-zero status when ``check`` is True.
        """
        full_cmd = ["git"] + args
        logger.debug("Executing Git command: %s", " ".join(full_cmd))
        run_env = None
        if env:
            run_env = dict(os.environ)
            run_env.update(env)
        try:
            result = subprocess.run(
                full_cmd,
                cwd=self.repo_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=run_env,
                input=input,
            )
        except OSError as exc:
            logger.error("Failed to execute git: %s", exc)
            raise GitError(f"Failed to execute git: {exc}") from exc

        if check and result.returncode != 0:
            logger.error(
                "Git command failed: %s\nSTDOUT: %s\nSTDERR: %s",
                " ".join(full_cmd),
                result.stdout,
                result.stderr,
            )
            raise GitError(result.stderr.strip() or result.stdout.strip())
        return result

    def _head_commit(self) -> Optional[str]:
        result = self._run(["rev-parse", "--verify", "-q", "HEAD"], check=False)
        sha = result.stdout.strip()
        return sha if result.returncode == 0 and sha else None

    def git_dir(self) -> Path:
        """Return the absolute path of the repository's git directory."""
        result = self._run(["rev-parse", "--git-dir"], check=True)
        path = Path(result.stdout.strip())
        return path if path.is_absolute() else self.repo_root / path

    # ------------------------------------------------------------------
    # Repository state
    # ------------------------------------------------------------------
    def get_current_branch(self) -> str:
        result = self._run(["symbolic-ref", "--short", "-q", "HEAD"], check=False)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
        head = self._head_commit()
        if head is None:
            raise GitError("Could not determine current branch")
        return f"HEAD detached at {head[:7]}"

    def get_staged_changes(self) -> StagedChanges:
        """Collect the changes staged in the index relative to HEAD."""
        changes = StagedChanges()
        base = self._head_commit() or EMPTY_TREE

        status = self._run(["diff", "--cached", "--name-status", "-M", base], check=True)
        for line in status.stdout.splitlines():
            parts = line.split("\t")
            if len(parts) < 2:
                continue
            code = parts[0][:1]
            if code == "A":
                changes.added.append(parts[1])
            elif code in {"M", "T"}:
                changes.modified.append(parts[1])
            elif code == "D":
                changes.deleted.append(parts[1])
            elif code == "R" and len(parts) >= 3:
                changes.renamed.append((parts[1], parts[2]))

        numstat = self._run(["diff", "--cached", "--numstat", "-M", base], check=True)
        stats = DiffStats()
        for line in numstat.stdout.splitlines():
            parts = line.split("\t")
            if len(parts) < 3:
                continue
            # Binary files report "-" for both counts
            ins = int(parts[0]) if parts[0].isdigit() else 0
            dels = int(parts[1]) if parts[1].isdigit() else 0
            path = parts[-1]
            if " => " in path:
                path = _resolve_rename_path(path)
            changes.line_counts[path] = (ins, dels)
            stats.files_changed += 1
            stats.insertions += ins
            stats.deletions += dels
        changes.stats = stats

        diff = self._run(
            ["diff", "--cached", "--no-color", "--no-ext-diff", "-M", base], check=True
        )
        changes.diff = diff.stdout
        return changes

    def has_staged_changes(self) -> bool:
        base = self._head_commit() or EMPTY_TREE
        result = self._run(["diff", "--cached", "--quiet", base], check=False)
        return result.returncode != 0

    def has_uncommitted_changes(self) -> bool:
        """Return True if the working tree or index differ from HEAD (untracked included)."""
        result = self._run(["status", "--porcelain"], check=True)
        return bool(result.stdout.strip())

    def get_recent_commits(self, count: int) -> List[str]:
        """Return the subject lines of the last ``count`` commits."""
        if self._head_commit() is None:
            return []
        result = self._run(["log", f"-n{count}", "--format=%s"], check=True)
        return [line for line in result.stdout.splitlines() if line.strip()]

    def get_commit_messages(self, count: int) -> List[str]:
        """Return the full messages of the last ``count`` commits, newest first."""
        if self._head_commit() is None:
            return []
        result = self._run(["log", f"-n{count}", "--format=%B%x00"], check=True)
        return [msg.strip() for msg in result.stdout.split("\x00") if msg.strip()]

    def count_unpushed_commits(self) -> int:
        """Count commits on HEAD that are absent from the configured upstream."""
        if self._head_commit() is None:
            return 0
        upstream = self._run(
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"], check=False
        )
        if upstream.returncode == 0 and upstream.stdout.strip():
            result = self._run(["rev-list", "--count", "@{u}..HEAD"], check=True)
        else:
            # No upstream, every commit is unpushed
            result = self._run(["rev-list", "--count", "HEAD"], check=True)
        return int(result.stdout.strip() or 0)

    # ------------------------------------------------------------------
    # Index manipulation
    # ------------------------------------------------------------------
    def stage_files(self, files: List[str]) -> None:
        """Stage the given paths.

        Paths that no longer exist in the working tree are removed from
        the index instead of added.
        """
        for file in files:
            if (self.repo_root / file).exists():
                self._run(["add", "--", file], check=True)
            else:
                self._run(["rm", "--cached", "--ignore-unmatch", "-q", "--", file], check=True)

    def stage_all(self) -> None:
        self._run(["add", "-A"], check=True)

    def apply_patch_to_index(self, patch: str) -> None:
        """Apply ``patch`` to the index only, never touching the working tree."""
        self._run(["apply", "--cached", "--recount", "-"], check=True, input=patch)

    def reset_index(self) -> None:
        """Unstage everything, keeping the working tree intact."""
        if self._head_commit() is None:
            self._run(["read-tree", "--empty"], check=True)
        else:
            self._run(["reset", "-q", "--mixed", "HEAD"], check=True)

    def write_tree(self) -> str:
        return self._run(["write-tree"], check=True).stdout.strip()

    def head_tree(self) -> str:
        """Return the tree of HEAD, or the empty tree on an unborn branch."""
        if self._head_commit() is None:
            return EMPTY_TREE
        return self._run(["rev-parse", "HEAD^{tree}"], check=True).stdout.strip()

    def diff_trees(self, old_tree: str, new_tree: str) -> str:
        result = self._run(
            ["diff", "--no-color", "--no-ext-diff", "--binary", old_tree, new_tree],
            check=True,
        )
        return result.stdout

    def changed_paths_between(self, old_tree: str, new_tree: str) -> List[str]:
        result = self._run(["diff", "--name-only", old_tree, new_tree], check=True)
        return [line for line in result.stdout.splitlines() if line.strip()]

    # ------------------------------------------------------------------
    # Working tree files
    # ------------------------------------------------------------------
    def read_working_file(self, path: str) -> Optional[str]:
        """Return the working tree content of ``path`` or None if it is missing."""
        full_path = self.repo_root / path
        if not full_path.is_file():
            return None
        return full_path.read_text(encoding="utf-8", errors="replace")

    def write_working_file(self, path: str, content: str) -> None:
        full_path = self.repo_root / path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        # newline="" keeps the exact line endings of ``content``
        with open(full_path, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------
    def commit(self, message: str, timestamp: Optional[datetime] = None) -> str:
        """Create a commit from the current index and move HEAD to it.

        Parameters
        ----------
        message : str
            The full commit message.
        timestamp : datetime, optional
            Author and committer date. When omitted git uses the current time.

        Returns
        -------
        str
            The hash of the new commit.
        """
        tree = self.write_tree()
        parent = self._head_commit()
        args = ["commit-tree", tree]
        if parent:
            args += ["-p", parent]
        args += ["-F", "-"]
        env = None
        if timestamp is not None:
            stamp = timestamp.isoformat()
            env = {"GIT_AUTHOR_DATE": stamp, "GIT_COMMITTER_DATE": stamp}
        result = self._run(args, check=True, env=env, input=message)
        sha = result.stdout.strip()
        self._update_head(sha, f"commit: {message.splitlines()[0] if message else ''}")
        return sha

    def _update_head(self, sha: str, reason: str) -> None:
        self._run(["update-ref", "-m", reason, "HEAD", sha], check=True)

    def squash_commits(self, count: int, message: str) -> str:
        """Rewrite the last ``count`` commits into a single commit.

        The new commit keeps the tree of HEAD and the parent of the oldest
        squashed commit. The root commit is never squashed.
        """
        if count < 2:
            raise GitError("Need at least 2 commits to squash")
        head = self._head_commit()
        if head is None:
            raise GitError("Cannot squash on an empty branch")
        base = self._run(["rev-parse", "--verify", "-q", f"HEAD~{count}"], check=False)
        parent = base.stdout.strip() if base.returncode == 0 else ""
        if not parent:
            raise GitError(f"Cannot squash initial commits: HEAD~{count} does not exist")
        tree = self._run(["rev-parse", "HEAD^{tree}"], check=True).stdout.strip()
        result = self._run(["commit-tree", tree, "-p", parent, "-F", "-"], check=True, input=message)
        sha = result.stdout.strip()
        self._update_head(sha, f"squash: {count} commits")
        return sha


def _resolve_rename_path(path: str) -> str:
    """Turn numstat rename notation (``a/{old => new}/b``) into the new path."""
    if "{" in path and "}" in path:
        prefix, rest = path.split("{", 1)
        inner, suffix = rest.split("}", 1)
        new = inner.split(" => ", 1)[-1]
        return (prefix + new + suffix).replace("//", "/")
    return path.split(" => ", 1)[-1]

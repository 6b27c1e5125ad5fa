"""
Commit message generation.

:class:`CommitMessageGenerator` asks the classifier service for a single
Conventional Commit message describing a diff, and for a unified
message when history is compacted. :class:`OfflineMessageGenerator`
offers the same two methods using the heuristic change classifier only.

Both take the previously used messages of a session so that an
unattended run does not repeat itself.
"""

from __future__ import annotations

import logging
import re
from collections import Counter, OrderedDict
from typing import Dict, List, Optional, Sequence

from commit_weaver.diff.hunk_parser import parse_diff_into_hunks
from commit_weaver.grouping.change_classifier import classify_change, describe_change
from commit_weaver.llm.claude_client import LLMError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


MAX_DIFF_CHARS = 10000

COMMIT_SYSTEM_PROMPT = """You are an expert at writing clear, concise git commit messages.

Follow the Conventional Commits specification:
- Format: <type>(<scope>): <description>
- Types: feat, fix, docs, style, refactor, test, chore, perf, ci, build
- Keep the first line under 72 characters
- Use imperative mood ("add" not "added")
- Focus on WHY, not just WHAT

Output ONLY the commit message, nothing else."""

SQUASH_SYSTEM_PROMPT = """You are an expert at writing clear, concise git commit messages.

Given multiple commit messages, create a single unified commit message that:
1. Summarizes all the changes in one coherent message
2. Follows Conventional Commits format: <type>(<scope>): <description>
3. Keeps the first line under 72 characters
4. Uses imperative mood
5. Captures the overall intent of all commits

Output ONLY the commit message, nothing else."""

_COMMIT_LINE = re.compile(
    r"^\s*\[?(feat|fix|docs|style|refactor|test|chore|perf|ci|build|revert)\]?(\([^)]*\))?!?:\s+",
    re.IGNORECASE,
)
_META_MARKERS = (
    "let me", "i will", "i'll", "based on", "looking at", "analyzing",
    "here's the", "here is the", "i can see",
)


def truncate_diff(diff: str, limit: int = MAX_DIFF_CHARS) -> str:
    if len(diff) <= limit:
        return diff
    return diff[:limit] + "\n... (truncated)\n"


def extract_commit_message(raw: str) -> str:
    """Return the commit message inside ``raw``, dropping preamble and fences.

    Raises
    ------
    ValueError
        If the reply is empty.
    """
    text = raw.strip()
    if not text:
        raise ValueError("Empty response")
    if text.startswith("```"):
        text = "\n".join(line for line in text.splitlines() if not line.startswith("```")).strip()
    lines = text.splitlines()
    for index, line in enumerate(lines):
        stripped = line.strip()
        if _COMMIT_LINE.match(stripped) and not any(m in stripped.lower()[:40] for m in _META_MARKERS):
            return "\n".join(lines[index:]).strip()
    # No typed subject; skip leading meta-commentary lines
    for index, line in enumerate(lines):
        lower = line.strip().lower()
        if lower and not any(marker in lower for marker in _META_MARKERS):
            return "\n".join(lines[index:]).strip()
    return text


def _message_or_error(raw: str) -> str:
    try:
        return extract_commit_message(raw)
    except ValueError as exc:
        raise LLMError("Empty commit message from API") from exc


class CommitMessageGenerator:
    """Generate commit messages through the classifier service.

    Parameters
    ----------
    client
        Object exposing ``generate(system, prompt) -> str``; normally a
        :class:`~commit_weaver.llm.retry.RetryingClient`.
    personality : str, optional
        Extra style guidance appended to the system prompt.
    """

    def __init__(self, client, personality: Optional[str] = None) -> None:
        self.client = client
        self.personality = personality

    def _system_prompt(self, base: str) -> str:
        if self.personality:
            return f"{base}\n\nPersonality: {self.personality}"
        return base

    def build_prompt(
        self,
        diff: str,
        recent_commits: Sequence[str] = (),
        avoid_messages: Sequence[str] = (),
    ) -> str:
        parts = ["Generate a commit message for the following changes:\n"]
        if recent_commits:
            parts.append("Recent commits:\n" + "\n".join(f"- {c}" for c in recent_commits) + "\n")
        if avoid_messages:
            parts.append(
                "Do not reuse any of these messages:\n" + "\n".join(f"- {m}" for m in avoid_messages) + "\n"
            )
        parts.append(f"```diff\n{truncate_diff(diff)}\n```")
        return "\n".join(parts)

    def generate(
        self,
        diff: str,
        recent_commits: Sequence[str] = (),
        avoid_messages: Sequence[str] = (),
    ) -> str:
        """Return a commit message for ``diff``.

        Raises
        ------
        LLMError
            If the service call fails after retries or returns an empty message.
        """
        prompt = self.build_prompt(diff, recent_commits, avoid_messages)
        raw = self.client.generate(self._system_prompt(COMMIT_SYSTEM_PROMPT), prompt)
        return _message_or_error(raw)

    def squash_message(self, messages: Sequence[str]) -> str:
        """Return one message summarising ``messages`` (oldest first)."""
        listing = "\n".join(f"- {m.splitlines()[0] if m else m}" for m in messages)
        raw = self.client.generate(
            SQUASH_SYSTEM_PROMPT, f"Summarize these commits into one message:\n\n{listing}"
        )
        return _message_or_error(raw)


class OfflineMessageGenerator:
    """Deterministic stand-in for :class:`CommitMessageGenerator`."""

    def _files(self, diff: str) -> "OrderedDict[str, List]":
        files: "OrderedDict[str, List]" = OrderedDict()
        for hunk in parse_diff_into_hunks(diff):
            files.setdefault(hunk.file_path, []).append(hunk)
        return files

    def generate(
        self,
        diff: str,
        recent_commits: Sequence[str] = (),
        avoid_messages: Sequence[str] = (),
    ) -> str:
        files = self._files(diff)
        if not files:
            subject = "chore: update files"
            body = ""
        elif len(files) == 1:
            path, hunks = next(iter(files.items()))
            status = "added" if hunks[0].is_new_file else "deleted" if hunks[0].is_deleted else "modified"
            subject = describe_change(path, "".join(h.content for h in hunks), status)
            body = ""
        else:
            types: Dict[str, str] = {
                path: classify_change(path, "".join(h.content for h in hunks)) for path, hunks in files.items()
            }
            dominant = Counter(types.values()).most_common(1)[0][0]
            subject = f"{dominant}: update {len(files)} files"
            body = "\n".join(f"- {path}" for path in files)
        subject = _avoid_repeat(subject, avoid_messages)
        return f"{subject}\n\n{body}" if body else subject

    def squash_message(self, messages: Sequence[str]) -> str:
        subjects = [m.splitlines()[0] for m in messages if m.strip()]
        if not subjects:
            return "chore: combine commits"
        types = [m.group(1).lower() for m in (_COMMIT_LINE.match(s) for s in subjects) if m]
        dominant = Counter(types).most_common(1)[0][0] if types else "chore"
        body = "\n".join(f"- {s}" for s in subjects)
        return f"{dominant}: combine {len(subjects)} changes\n\n{body}"


def _avoid_repeat(subject: str, used: Sequence[str]) -> str:
    taken = {m.splitlines()[0] for m in used if m}
    if subject not in taken:
        return subject
    suffix = 2
    while f"{subject} ({suffix})" in taken:
        suffix += 1
    return f"{subject} ({suffix})"

"""
Split unified diff text into hunks.

The parser is a small line-driven state machine. It never raises on
unexpected input: malformed or truncated diffs simply produce fewer (or
partial) hunks. Each :class:`Hunk` keeps the file header lines it came
from so that a subset of hunks can be turned back into a patch with
:func:`build_patch` and applied to the index.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple


CONTEXT_MAX_LEN = 60
CONTEXT_LINES = 3


@dataclass(frozen=True)
class Hunk:
    """One contiguous block of changes bounded by an ``@@`` header.

    Attributes
    ----------
    id : int
        Position of the hunk in the parsed diff, starting at 0.
    file_path : str
        Path of the file (new path for renames).
    is_new_file, is_deleted : bool
        Whether the file was created or removed by the diff.
    header : str
        The ``@@ -a,b +c,d @@ hint`` line.
    content : str
        Raw patch lines following the header, newline terminated.
    additions, deletions : int
        Number of ``+`` and ``-`` lines in ``content``.
    context : str
        Best-effort label for the enclosing scope.
    file_header : tuple of str
        The ``diff --git``/mode/``---``/``+++`` lines of the file.
    """

    id: int
    file_path: str
    is_new_file: bool
    is_deleted: bool
    header: str
    content: str
    additions: int
    deletions: int
    context: str
    file_header: Tuple[str, ...] = field(default=(), compare=False)

    def preview(self, max_lines: int = 10, max_chars: int = 500) -> str:
        """Return the first changed lines of the hunk for display or prompts."""
        lines = [ln for ln in self.content.splitlines() if ln.startswith(("+", "-"))]
        text = "\n".join(lines[:max_lines])
        if len(text) > max_chars:
            text = text[:max_chars] + "..."
        return text


def _count_changes(lines: Iterable[str]) -> Tuple[int, int]:
    # hunk bodies never contain the ---/+++ file markers, so every prefix counts
    additions = deletions = 0
    for line in lines:
        if line.startswith("+"):
            additions += 1
        elif line.startswith("-"):
            deletions += 1
    return additions, deletions


def _derive_context(header: str, lines: List[str]) -> str:
    # git appends the enclosing function after the closing "@@"
    parts = header.split("@@")
    if len(parts) >= 3:
        hint = "@@".join(parts[2:]).strip()
        if hint:
            return hint[:CONTEXT_MAX_LEN]
    added = []
    for line in lines:
        if line.startswith("+"):
            text = line[1:].strip()
            if text:
                added.append(text)
        if len(added) >= CONTEXT_LINES:
            break
    return " ".join(added)[:CONTEXT_MAX_LEN]


def _path_from_diff_line(line: str) -> str:
    # "diff --git a/foo b/foo"
    rest = line[len("diff --git "):]
    marker = rest.rfind(" b/")
    if marker != -1:
        return rest[marker + 3:].strip()
    parts = rest.split()
    return parts[-1] if parts else ""


class _ParserState:
    BETWEEN_FILES = "between-files"
    FILE_HEADER = "in-file-header"
    HUNK = "in-hunk"


def parse_diff_into_hunks(diff: str) -> List[Hunk]:
    """Parse unified diff text into an ordered list of :class:`Hunk` records.

    Parameters
    ----------
    diff : str
        Output of ``git diff`` (or any unified diff with ``diff --git`` headers).

    Returns
    -------
    List[Hunk]
        Hunks in the order they appear. Files without ``@@`` sections
        (pure renames, mode changes, binaries) contribute no hunks.
    """
    hunks: List[Hunk] = []
    state = _ParserState.BETWEEN_FILES

    file_path = ""
    is_new = False
    is_deleted = False
    file_header: List[str] = []
    header: Optional[str] = None
    body: List[str] = []

    def flush() -> None:
        if header is None:
            return
        additions, deletions = _count_changes(body)
        content = "".join(line + "\n" for line in body)
        hunks.append(
            Hunk(
                id=len(hunks),
                file_path=file_path,
                is_new_file=is_new,
                is_deleted=is_deleted,
                header=header,
                content=content,
                additions=additions,
                deletions=deletions,
                context=_derive_context(header, body),
                file_header=tuple(file_header),
            )
        )

    for line in diff.splitlines():
        if line.startswith("diff --git "):
            flush()
            header = None
            body = []
            file_path = _path_from_diff_line(line)
            is_new = is_deleted = False
            file_header = [line]
            state = _ParserState.FILE_HEADER
            continue

        if line.startswith("@@") and state != _ParserState.BETWEEN_FILES:
            flush()
            header = line
            body = []
            state = _ParserState.HUNK
            continue

        if state == _ParserState.FILE_HEADER:
            if line.startswith("new file mode"):
                is_new = True
            elif line.startswith("deleted file mode"):
                is_deleted = True
            elif line.startswith("+++ ") and not line.startswith("+++ /dev/null"):
                target = line[4:].strip()
                file_path = target[2:] if target.startswith("b/") else target
            file_header.append(line)
        elif state == _ParserState.HUNK:
            body.append(line)

    flush()
    return hunks


def build_patch(hunks: Iterable[Hunk]) -> str:
    """Rebuild a minimal patch containing only the given hunks.

    Hunks are grouped per file in order of first appearance and emitted
    in their original (id) order within each file.
    """
    per_file: Dict[str, List[Hunk]] = {}
    for hunk in hunks:
        per_file.setdefault(hunk.file_path, []).append(hunk)

    parts: List[str] = []
    for path, file_hunks in per_file.items():
        file_hunks.sort(key=lambda h: h.id)
        first = file_hunks[0]
        header = list(first.file_header)
        if not header:
            header = [f"diff --git a/{path} b/{path}"]
        if not any(line.startswith("--- ") for line in header):
            header.append("--- /dev/null" if first.is_new_file else f"--- a/{path}")
            header.append("+++ /dev/null" if first.is_deleted else f"+++ b/{path}")
        parts.extend(line + "\n" for line in header)
        for hunk in file_hunks:
            parts.append(hunk.header + "\n")
            parts.append(hunk.content)
    return "".join(parts)

"""Helpers for pulling structured data out of free-form model replies."""

from __future__ import annotations


def extract_json(text: str) -> str:
    """Return the JSON object embedded in ``text``.

    Tried in order: the whole text when it starts with ``{``; the body
    of a ```` ```json ```` fence; the body of any other fence (its
    language line skipped); the span from the first ``{`` to the last
    ``}``. When nothing matches the stripped text is returned and the
    caller's decoder reports the error.
    """
    stripped = text.strip()
    if stripped.startswith("{"):
        return stripped

    marker = "```json"
    start = stripped.find(marker)
    if start != -1:
        body_start = start + len(marker)
        end = stripped.find("```", body_start)
        if end != -1:
            return stripped[body_start:end].strip()

    start = stripped.find("```")
    if start != -1:
        line_end = stripped.find("\n", start + 3)
        if line_end != -1:
            end = stripped.find("```", line_end + 1)
            if end != -1:
                return stripped[line_end + 1:end].strip()

    first = stripped.find("{")
    last = stripped.rfind("}")
    if first != -1 and last > first:
        return stripped[first:last + 1]
    return stripped

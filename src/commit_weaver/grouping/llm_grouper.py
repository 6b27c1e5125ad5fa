"""
Commit grouping delegated to the classifier service.

:class:`ClassifierGrouper` renders the unit summaries into a prompt,
asks the service for ``{"commits": [...]}`` and turns the reply into
:class:`CommitGroupPlan` objects. Bad references in the reply are left
for :func:`validate_partition` to filter.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from commit_weaver.grouping.group_model import CommitGroupPlan, Granularity, UnitSummary
from commit_weaver.grouping.grouper import CommitGrouper, GroupingError
from commit_weaver.llm.response_parsing import extract_json
from commit_weaver.notices import Notifier


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


_UNIT_NAMES = {
    Granularity.FILE: "files",
    Granularity.HUNK: "hunks (contiguous blocks of changed lines)",
    Granularity.CHUNK: "chunks (logical sections of new files)",
}

SYSTEM_PROMPT = """You are an expert at analyzing code changes and creating realistic commit history.

You are given a list of {unit_name}. Group them into commits that look like
natural, incremental development.

Rules:
1. Group related units together (same feature, same logical change)
2. Each commit should be self-contained and not break the build
3. Earlier commits should be foundational (manifests, types, shared code)
4. Later commits should build on earlier ones (implementations, tests, docs)
5. Use Conventional Commit messages: <type>(<scope>): <description>
6. Each commit message must be UNIQUE - never repeat messages{extra}

Respond in JSON format:
{{
  "commits": [
    {{
      "message": "feat(auth): add User struct and types",
      "{key}": {example},
      "description": "Foundation for user authentication"
    }}
  ]
}}

Every unit must appear in exactly one commit."""


def _unit_ref(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


class ClassifierGrouper(CommitGrouper):
    """Group units with the classifier service.

    Parameters
    ----------
    client
        Object exposing ``generate(system, prompt) -> str``.
    granularity : Granularity
        Which kind of unit is being grouped; decides the reply key
        (``files``, ``hunk_ids`` or ``chunk_ids``).
    """

    def __init__(self, client, granularity: Granularity, notify: Optional[Notifier] = None) -> None:
        super().__init__(notify)
        self.client = client
        self.granularity = granularity

    def build_system_prompt(self, target: Optional[int], avoid_messages: Sequence[str]) -> str:
        extra = ""
        if target:
            extra += (
                f"\n\nIMPORTANT: Create EXACTLY {target} commits. Distribute the units "
                f"across {target} commits, grouping related changes together."
            )
        if avoid_messages:
            extra += "\n\nThese messages were already used; do not repeat them:\n" + "\n".join(
                f"- {m}" for m in avoid_messages
            )
        if self.granularity is Granularity.FILE:
            example = '["src/auth.py", "src/models/user.py"]'
        else:
            example = "[0, 2, 5]"
        return SYSTEM_PROMPT.format(
            unit_name=_UNIT_NAMES[self.granularity],
            extra=extra,
            key=self.granularity.response_key,
            example=example,
        )

    def build_prompt(self, units: Sequence[UnitSummary]) -> str:
        lines = [f"Units to organize into commits ({len(units)}):", ""]
        for unit in units:
            flags = "NEW " if unit.is_new_file else ""
            flags += "DELETED " if unit.is_deleted else ""
            lines.append(f"Unit {unit.id} ({flags.strip() or 'CHANGED'}):")
            lines.append(f"  File: {unit.file_path}")
            lines.append(f"  Changes: +{unit.additions} -{unit.deletions}")
            if unit.context:
                lines.append(f"  Context: {unit.context}")
            if unit.preview:
                preview = unit.preview.replace("\n", "\n    ")
                lines.append(f"  Content preview:\n    {preview}")
            lines.append("")
        return "\n".join(lines)

    def _resolve(self, entry: Dict[str, Any], by_path: Dict[str, List[int]]) -> List[int]:
        refs = entry.get(self.granularity.response_key)
        if refs is None:
            # Tolerate replies that use another key
            for key in ("files", "hunk_ids", "chunk_ids", "unit_ids", "ids"):
                if key in entry:
                    refs = entry[key]
                    break
        if not isinstance(refs, list):
            return []
        ids: List[int] = []
        for ref in refs:
            if isinstance(ref, str) and ref in by_path:
                ids.extend(by_path[ref])
                continue
            unit_id = _unit_ref(ref)
            if unit_id is None:
                self.notify(logging.WARNING, f"Ignoring unknown file reference {ref!r}")
                continue
            ids.append(unit_id)
        return ids

    def propose(
        self,
        units: Sequence[UnitSummary],
        target: Optional[int] = None,
        avoid_messages: Sequence[str] = (),
    ) -> List[CommitGroupPlan]:
        system = self.build_system_prompt(target, avoid_messages)
        raw = self.client.generate(system, self.build_prompt(units))
        try:
            data = json.loads(extract_json(raw))
        except json.JSONDecodeError as exc:
            raise GroupingError(f"Failed to parse grouping response: {raw[:200]}") from exc
        commits = data.get("commits") if isinstance(data, dict) else None
        if not isinstance(commits, list):
            raise GroupingError(f"Grouping response has no commit list: {raw[:200]}")

        by_path: Dict[str, List[int]] = {}
        for unit in units:
            by_path.setdefault(unit.file_path, []).append(unit.id)

        plans = []
        for entry in commits:
            if not isinstance(entry, dict):
                continue
            message = str(entry.get("message") or "").strip()
            if not message:
                self.notify(logging.WARNING, "Skipping commit without a message")
                continue
            ids = self._resolve(entry, by_path)
            files = sorted({u.file_path for u in units if u.id in set(ids)})
            plans.append(
                CommitGroupPlan(
                    message=message.splitlines()[0],
                    description=str(entry.get("description") or "").strip(),
                    unit_ids=ids,
                    hint=", ".join(files),
                )
            )
        logger.debug("Classifier proposed %d commit group(s)", len(plans))
        return plans

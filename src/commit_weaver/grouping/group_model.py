"""
Data models for commit grouping.

Units are the atoms the grouper partitions: whole files, diff hunks or
file chunks, each identified by an integer id. A
:class:`CommitGroupPlan` names the units one commit covers together
with its proposed message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Granularity(Enum):
    """Kind of unit a grouping run works on."""

    FILE = "file"
    HUNK = "hunk"
    CHUNK = "chunk"

    @property
    def response_key(self) -> str:
        """Key under which the classifier lists the units of a commit."""
        return {"file": "files", "hunk": "hunk_ids", "chunk": "chunk_ids"}[self.value]


@dataclass
class FileUnit:
    """A whole changed file used as a grouping unit."""

    id: int
    path: str
    status: str
    additions: int = 0
    deletions: int = 0
    diff: str = ""
    old_path: Optional[str] = None

    @property
    def is_new_file(self) -> bool:
        return self.status == "added"

    @property
    def is_deleted(self) -> bool:
        return self.status == "deleted"


@dataclass
class UnitSummary:
    """What the classifier gets to see about one unit."""

    id: int
    file_path: str
    is_new_file: bool = False
    is_deleted: bool = False
    additions: int = 0
    deletions: int = 0
    preview: str = ""
    context: str = ""

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "file": self.file_path,
            "additions": self.additions,
            "deletions": self.deletions,
        }
        if self.is_new_file:
            payload["new_file"] = True
        if self.is_deleted:
            payload["deleted"] = True
        if self.context:
            payload["context"] = self.context
        if self.preview:
            payload["preview"] = self.preview
        return payload


@dataclass
class CommitGroupPlan:
    """Representation of one planned commit.

    Attributes
    ----------
    message : str
        Commit subject line.
    description : str
        Optional commit body.
    unit_ids : List[int]
        Ordered ids of the units the commit covers.
    hint : str
        Free-form label of what the group touches (files, scopes).
    """

    message: str
    description: str = ""
    unit_ids: List[int] = field(default_factory=list)
    hint: str = ""

    @property
    def size(self) -> int:
        return len(self.unit_ids)

    def full_message(self) -> str:
        """Return the message with the description as body, if any."""
        if self.description.strip():
            return f"{self.message}\n\n{self.description.strip()}"
        return self.message

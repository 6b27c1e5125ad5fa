"""
Data models for whole-file chunking.

A :class:`FileChunk` is one logical section of a source file. The
chunks of a file partition its lines: no gaps, no overlaps, increasing
``start_line``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class ChunkType(Enum):
    """Kind of logical section a chunk represents."""

    IMPORTS = "imports"
    CONSTANTS = "constants"
    CLASS_DEFINITION = "class"
    FUNCTION = "function"
    FULL_FILE = "full"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value


@dataclass
class FileChunk:
    """Representation of a contiguous, 1-indexed, inclusive line range of a file.

    Attributes
    ----------
    id : int
        Identifier unique within one chunking run.
    file_path : str
        Path of the file relative to the repository root.
    start_line, end_line : int
        Inclusive line range.
    content : str
        Exact text of the range, line endings preserved.
    chunk_type : ChunkType
        The kind of section.
    description : str
        Short human-readable label, e.g. ``"function parse_args"``.
    dependencies : List[str]
        Import targets found in the chunk.
    """

    id: int
    file_path: str
    start_line: int
    end_line: int
    content: str
    chunk_type: ChunkType
    description: str = ""
    dependencies: List[str] = field(default_factory=list)
    # Set for chunks standing in for a whole tracked (modified/deleted) file
    is_whole_file: bool = False
    is_deleted: bool = False

    @property
    def line_count(self) -> int:
        return max(self.end_line - self.start_line + 1, 0)

    def preview(self, max_lines: int = 10, max_chars: int = 500) -> str:
        text = "\n".join(self.content.splitlines()[:max_lines])
        if len(text) > max_chars:
            text = text[:max_chars] + "..."
        return text

"""
Shared line-scanning machinery for language chunkers.

A :class:`SourceChunker` walks the lines of a file once. For each line
it asks :meth:`SourceChunker.boundary` whether a new section starts
there. Consecutive imports or constants stay in one chunk; every
top-level type or function opens its own chunk. Declarations nested
inside a still-open class chunk only split out once the class chunk has
reached :attr:`SourceChunker.min_nested_span` lines.

Subclasses supply the boundary predicates, a nesting measure
(indentation or brace depth), name extraction and dependency scraping.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from commit_weaver.chunking.models import ChunkType, FileChunk


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# Types that merge with an immediately preceding chunk of the same type.
_MERGING_TYPES = {ChunkType.IMPORTS, ChunkType.CONSTANTS}


class SourceChunker:
    """Base class for per-language chunkers."""

    #: Language tags this chunker handles.
    languages: Tuple[str, ...] = ()
    #: Minimum lines a class chunk must hold before a nested method splits out.
    min_nested_span = 20

    def __init__(self) -> None:
        self._depth = 0

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._depth = 0

    def is_top_level(self, line: str) -> bool:
        """Return True when ``line`` starts at the outermost nesting level."""
        return self._depth == 0

    def advance(self, line: str) -> None:
        """Update nesting state after ``line`` has been classified."""

    def boundary(self, line: str) -> Optional[ChunkType]:
        """Return the chunk type that starts at a top-level ``line``, if any."""
        return None

    def nested_boundary(self, line: str) -> bool:
        """Return True if ``line`` declares a method inside a type body."""
        return False

    def is_prefix_line(self, line: str) -> bool:
        """Lines such as decorators or attributes that belong to the next declaration."""
        return False

    def function_name(self, line: str) -> Optional[str]:
        return None

    def type_name(self, line: str) -> Optional[str]:
        return None

    def dependencies(self, lines: List[str]) -> List[str]:
        return []

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------
    def chunk(self, file_path: str, lines: List[str], first_id: int = 0) -> List[FileChunk]:
        """Split ``lines`` (with line endings) into ordered chunks."""
        self.reset()
        # (start_line, chunk_type, declaration line)
        sections: List[Tuple[int, ChunkType, str]] = []
        pending_prefix: Optional[int] = None
        in_type_body = False

        for number, line in enumerate(lines, start=1):
            stripped = line.rstrip("\r\n")
            kind: Optional[ChunkType] = None
            nested = False
            if stripped.strip():
                if self.is_top_level(stripped):
                    if self.is_prefix_line(stripped):
                        if pending_prefix is None:
                            pending_prefix = number
                    else:
                        kind = self.boundary(stripped)
                        if kind is None:
                            pending_prefix = None
                elif in_type_body and self.nested_boundary(stripped):
                    if sections and number - sections[-1][0] >= self.min_nested_span:
                        kind = ChunkType.FUNCTION
                        nested = True

            if kind is not None:
                start = pending_prefix if pending_prefix is not None else number
                pending_prefix = None
                if not nested:
                    in_type_body = kind == ChunkType.CLASS_DEFINITION
                if not sections:
                    # The preamble (comments, docstring) belongs to the first section
                    sections.append((1, kind, stripped))
                elif kind in _MERGING_TYPES and kind == sections[-1][1]:
                    pass
                else:
                    sections.append((start, kind, stripped))
            self.advance(stripped)

        if not sections:
            sections.append((1, ChunkType.OTHER, ""))

        chunks: List[FileChunk] = []
        for index, (start, kind, decl) in enumerate(sections):
            end = sections[index + 1][0] - 1 if index + 1 < len(sections) else len(lines)
            body = lines[start - 1:end]
            chunks.append(
                FileChunk(
                    id=first_id + len(chunks),
                    file_path=file_path,
                    start_line=start,
                    end_line=end,
                    content="".join(body),
                    chunk_type=kind,
                    description=self.describe(kind, decl),
                    dependencies=self.dependencies(body) if kind == ChunkType.IMPORTS else [],
                )
            )
        return chunks

    def describe(self, chunk_type: ChunkType, declaration: str) -> str:
        if chunk_type == ChunkType.FUNCTION:
            name = self.function_name(declaration.strip())
            return f"function {name}" if name else "function"
        if chunk_type == ChunkType.CLASS_DEFINITION:
            name = self.type_name(declaration.strip())
            return f"type {name}" if name else "type definition"
        if chunk_type == ChunkType.IMPORTS:
            return "imports"
        if chunk_type == ChunkType.CONSTANTS:
            return "constants"
        return "code"


class BraceDepthMixin:
    """Nesting measure for brace-delimited languages.

    String and comment contents are not parsed; braces inside them may
    skew the depth, which only affects chunk boundaries, never coverage.
    """

    _depth: int

    def is_top_level(self, line: str) -> bool:
        return self._depth <= 0

    def advance(self, line: str) -> None:
        code = line.split("//", 1)[0]
        self._depth += code.count("{") - code.count("}")
        if self._depth < 0:
            self._depth = 0


class IndentationMixin:
    """Nesting measure for indentation-delimited languages."""

    def is_top_level(self, line: str) -> bool:
        return not line[:1].isspace()

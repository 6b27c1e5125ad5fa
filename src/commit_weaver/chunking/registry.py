"""
Language registry and the :func:`chunk_file` entry point.

Chunkers register themselves by language tag; :func:`chunk_file`
dispatches on the tag and falls back to fixed-size line windows for
languages without a registered chunker. New languages plug in with
:func:`register_chunker` without touching any call site.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Callable, Dict, List, Optional

from commit_weaver.chunking.base import SourceChunker
from commit_weaver.chunking.languages import (
    GoChunker,
    JavaScriptChunker,
    PythonChunker,
    RustChunker,
)
from commit_weaver.chunking.models import ChunkType, FileChunk


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


DEFAULT_CHUNK_THRESHOLD = 50
GENERIC_WINDOW = 50

EXTENSION_LANGUAGES: Dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".rs": "rust",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
}

_REGISTRY: Dict[str, Callable[[], SourceChunker]] = {}


def register_chunker(factory: Callable[[], SourceChunker], languages=None) -> None:
    """Register ``factory`` for every tag in ``languages`` (defaults to ``factory.languages``)."""
    for language in languages or getattr(factory, "languages", ()):
        _REGISTRY[language] = factory


def get_chunker(language: Optional[str]) -> Optional[SourceChunker]:
    factory = _REGISTRY.get((language or "").lower())
    return factory() if factory else None


def detect_language(file_path: str) -> Optional[str]:
    """Return the language tag for ``file_path`` based on its extension."""
    return EXTENSION_LANGUAGES.get(PurePosixPath(file_path).suffix.lower())


for _chunker in (PythonChunker, RustChunker, JavaScriptChunker, GoChunker):
    register_chunker(_chunker)


def _single_chunk(file_path: str, lines: List[str], first_id: int, description: str) -> FileChunk:
    return FileChunk(
        id=first_id,
        file_path=file_path,
        start_line=1,
        end_line=len(lines),
        content="".join(lines),
        chunk_type=ChunkType.FULL_FILE,
        description=description,
    )


def chunk_generic(file_path: str, lines: List[str], first_id: int = 0, window: int = GENERIC_WINDOW) -> List[FileChunk]:
    """Split ``lines`` into consecutive windows of ``window`` lines."""
    chunks: List[FileChunk] = []
    for start in range(0, len(lines), window):
        body = lines[start:start + window]
        chunks.append(
            FileChunk(
                id=first_id + len(chunks),
                file_path=file_path,
                start_line=start + 1,
                end_line=start + len(body),
                content="".join(body),
                chunk_type=ChunkType.OTHER,
                description=f"lines {start + 1}-{start + len(body)}",
            )
        )
    return chunks


def chunk_file(
    file_path: str,
    content: str,
    language: Optional[str] = None,
    threshold: int = DEFAULT_CHUNK_THRESHOLD,
    first_id: int = 0,
) -> List[FileChunk]:
    """Split a whole file into ordered chunks covering every line exactly once.

    Parameters
    ----------
    file_path : str
        Path of the file relative to the repository root.
    content : str
        Full text of the file.
    language : str, optional
        Language tag; detected from the extension when omitted.
    threshold : int
        Files with fewer lines than this become a single ``FullFile`` chunk.
    first_id : int
        Identifier assigned to the first chunk; later chunks count up.
    """
    if "\x00" in content:
        # Binary content is kept opaque
        lines = content.splitlines(keepends=True)
        return [_single_chunk(file_path, lines, first_id, "binary content")]

    lines = content.splitlines(keepends=True)
    if len(lines) < threshold:
        return [_single_chunk(file_path, lines, first_id, "full file")]

    language = language or detect_language(file_path)
    chunker = get_chunker(language)
    if chunker is None:
        logger.debug("No chunker for %s (%s); using line windows", file_path, language)
        chunks = chunk_generic(file_path, lines, first_id)
    else:
        chunks = chunker.chunk(file_path, lines, first_id)

    if not chunks:
        return [_single_chunk(file_path, lines, first_id, "full file")]
    if len(chunks) == 1:
        chunks[0].chunk_type = ChunkType.FULL_FILE
        chunks[0].description = "full file"
    return chunks

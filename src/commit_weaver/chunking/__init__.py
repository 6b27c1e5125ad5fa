"""
Language-aware splitting of whole files into logical chunks.

See :func:`commit_weaver.chunking.registry.chunk_file` for the entry
point and :mod:`commit_weaver.chunking.ordering` for the dependency
rank used to order files and chunks.
"""

from .models import ChunkType, FileChunk  # noqa: F401
from .ordering import file_priority  # noqa: F401
from .registry import chunk_file, detect_language, register_chunker  # noqa: F401

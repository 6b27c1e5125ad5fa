"""
Language-specific chunkers.

Each class recognises the declaration syntax of one language family:
import statements, type declarations, function declarations and
module-level constants. Recognition is line based and deliberately
forgiving; anything unrecognised stays in the chunk that is open.
"""

from __future__ import annotations

import re
from typing import List, Optional

from commit_weaver.chunking.base import BraceDepthMixin, IndentationMixin, SourceChunker
from commit_weaver.chunking.models import ChunkType


class PythonChunker(IndentationMixin, SourceChunker):
    languages = ("python",)

    _IMPORT = re.compile(r"^(import\s+\S|from\s+\S+\s+import\b)")
    _CLASS = re.compile(r"^class\s+(\w+)")
    _FUNC = re.compile(r"^(?:async\s+)?def\s+(\w+)")
    _NESTED_FUNC = re.compile(r"^\s+(?:async\s+)?def\s+\w+")
    _CONST = re.compile(r"^[A-Z_][A-Z0-9_]*\s*(?::[^=]+)?=(?!=)")

    def reset(self) -> None:
        super().reset()
        self._in_string = False

    def is_top_level(self, line: str) -> bool:
        return not self._in_string and super().is_top_level(line)

    def advance(self, line: str) -> None:
        # Track triple-quoted strings so docstring text is never classified
        count = line.count('"""') + line.count("'''")
        if count % 2 == 1:
            self._in_string = not self._in_string

    def is_prefix_line(self, line: str) -> bool:
        return line.startswith("@")

    def boundary(self, line: str) -> Optional[ChunkType]:
        if self._IMPORT.match(line):
            return ChunkType.IMPORTS
        if self._CLASS.match(line):
            return ChunkType.CLASS_DEFINITION
        if self._FUNC.match(line):
            return ChunkType.FUNCTION
        if self._CONST.match(line):
            return ChunkType.CONSTANTS
        return None

    def nested_boundary(self, line: str) -> bool:
        return bool(self._NESTED_FUNC.match(line))

    def function_name(self, line: str) -> Optional[str]:
        match = re.match(r"^(?:async\s+)?def\s+(\w+)", line)
        return match.group(1) if match else None

    def type_name(self, line: str) -> Optional[str]:
        match = self._CLASS.match(line)
        return match.group(1) if match else None

    def dependencies(self, lines: List[str]) -> List[str]:
        deps: List[str] = []
        for line in lines:
            line = line.strip()
            if line.startswith("from "):
                deps.append(line.split()[1])
            elif line.startswith("import "):
                for name in line[len("import "):].split(","):
                    name = name.strip().split(" as ")[0].strip()
                    if name:
                        deps.append(name)
        return deps


class RustChunker(BraceDepthMixin, SourceChunker):
    languages = ("rust",)

    _VIS = r"(?:pub(?:\([^)]*\))?\s+)?"
    _IMPORT = re.compile(rf"^{_VIS}(?:use\s|extern\s+crate\s|mod\s+\w+\s*;)")
    _TYPE = re.compile(rf"^{_VIS}(?:unsafe\s+)?(?:struct|enum|trait|union|impl|type)\b")
    _FUNC = re.compile(rf"^{_VIS}(?:const\s+)?(?:async\s+)?(?:unsafe\s+)?(?:extern\s+\"\w+\"\s+)?fn\s+(\w+)")
    _NESTED_FUNC = re.compile(r"^\s+(?:pub(?:\([^)]*\))?\s+)?(?:const\s+)?(?:async\s+)?(?:unsafe\s+)?fn\s+\w+")
    _CONST = re.compile(rf"^{_VIS}(?:const|static)\s+")

    def is_prefix_line(self, line: str) -> bool:
        return line.startswith("#[") or line.startswith("///")

    def boundary(self, line: str) -> Optional[ChunkType]:
        if self._IMPORT.match(line):
            return ChunkType.IMPORTS
        if self._FUNC.match(line):
            return ChunkType.FUNCTION
        if self._TYPE.match(line):
            return ChunkType.CLASS_DEFINITION
        if self._CONST.match(line):
            return ChunkType.CONSTANTS
        return None

    def nested_boundary(self, line: str) -> bool:
        return bool(self._NESTED_FUNC.match(line))

    def function_name(self, line: str) -> Optional[str]:
        match = re.search(r"\bfn\s+(\w+)", line)
        return match.group(1) if match else None

    def type_name(self, line: str) -> Optional[str]:
        match = re.search(r"\b(?:struct|enum|trait|union|type)\s+(\w+)", line)
        if match:
            return match.group(1)
        match = re.search(r"\bimpl(?:<[^>]*>)?\s+(?:[\w:<>]+\s+for\s+)?([\w:]+)", line)
        return match.group(1) if match else None

    def dependencies(self, lines: List[str]) -> List[str]:
        deps: List[str] = []
        for line in lines:
            match = re.match(r"^\s*(?:pub(?:\([^)]*\))?\s+)?use\s+([^;{]+)", line)
            if match:
                deps.append(match.group(1).strip().rstrip(":"))
            match = re.match(r"^\s*extern\s+crate\s+(\w+)", line)
            if match:
                deps.append(match.group(1))
        return deps


class JavaScriptChunker(BraceDepthMixin, SourceChunker):
    languages = ("javascript", "typescript")

    _EXPORT = r"(?:export\s+)?(?:default\s+)?"
    _IMPORT = re.compile(
        r"^(?:import\s|export\s+(?:\*|\{[^}]*\})\s+from\s"
        r"|(?:const|let|var)\s+[\w{},\s]+=\s*require\()"
    )
    _TYPE = re.compile(rf"^{_EXPORT}(?:declare\s+)?(?:abstract\s+)?(?:class|interface|enum|type\s+\w+\s*=|namespace)\b")
    _FUNC = re.compile(
        rf"^{_EXPORT}(?:async\s+)?function\b"
        rf"|^{_EXPORT}(?:const|let)\s+\w+\s*(?::[^=]+)?=\s*(?:async\s+)?(?:\([^)]*\)|\w+)\s*(?::[^=]+)?=>"
    )
    _NESTED_FUNC = re.compile(
        r"^\s+(?:public\s+|private\s+|protected\s+|static\s+|async\s+|get\s+|set\s+)*"
        r"(?!if\b|for\b|while\b|switch\b|catch\b|return\b)\w+\s*\([^)]*\)\s*(?::[^{]+)?\{"
    )
    _CONST = re.compile(rf"^{_EXPORT}const\s+[A-Z_][A-Z0-9_]*\s*(?::[^=]+)?=")

    def is_prefix_line(self, line: str) -> bool:
        return line.startswith("@")

    def boundary(self, line: str) -> Optional[ChunkType]:
        if self._IMPORT.match(line):
            return ChunkType.IMPORTS
        if self._TYPE.match(line):
            return ChunkType.CLASS_DEFINITION
        if self._FUNC.match(line):
            return ChunkType.FUNCTION
        if self._CONST.match(line):
            return ChunkType.CONSTANTS
        return None

    def nested_boundary(self, line: str) -> bool:
        return bool(self._NESTED_FUNC.match(line))

    def function_name(self, line: str) -> Optional[str]:
        match = re.search(r"\bfunction\s*\*?\s*(\w+)", line)
        if match:
            return match.group(1)
        match = re.search(r"\b(?:const|let)\s+(\w+)", line)
        if match:
            return match.group(1)
        match = re.match(r"^\s*(?:(?:public|private|protected|static|async|get|set)\s+)*(\w+)\s*\(", line)
        return match.group(1) if match else None

    def type_name(self, line: str) -> Optional[str]:
        match = re.search(r"\b(?:class|interface|enum|type|namespace)\s+(\w+)", line)
        return match.group(1) if match else None

    def dependencies(self, lines: List[str]) -> List[str]:
        deps: List[str] = []
        for line in lines:
            match = re.search(r"""(?:from\s+|require\(\s*|^import\s+)['"]([^'"]+)['"]""", line.strip())
            if match:
                deps.append(match.group(1))
        return deps


class GoChunker(BraceDepthMixin, SourceChunker):
    languages = ("go",)

    _IMPORT = re.compile(r"^import\b")
    _TYPE = re.compile(r"^type\b")
    _FUNC = re.compile(r"^func\b")
    _CONST = re.compile(r"^(?:const|var)\b")

    def reset(self) -> None:
        super().reset()
        self._paren_block = False

    def is_top_level(self, line: str) -> bool:
        return not self._paren_block and super().is_top_level(line)

    def advance(self, line: str) -> None:
        super().advance(line)
        stripped = line.strip()
        if self._paren_block:
            if stripped.startswith(")"):
                self._paren_block = False
        elif re.match(r"^(?:import|const|var|type)\s*\($", stripped):
            self._paren_block = True

    def boundary(self, line: str) -> Optional[ChunkType]:
        if self._IMPORT.match(line) or line.startswith("package "):
            return ChunkType.IMPORTS
        if self._TYPE.match(line):
            return ChunkType.CLASS_DEFINITION
        if self._FUNC.match(line):
            return ChunkType.FUNCTION
        if self._CONST.match(line):
            return ChunkType.CONSTANTS
        return None

    def function_name(self, line: str) -> Optional[str]:
        # func (r *Receiver) Name(...) or func Name(...)
        match = re.match(r"^func\s+(?:\([^)]*\)\s*)?(\w+)", line)
        return match.group(1) if match else None

    def type_name(self, line: str) -> Optional[str]:
        match = re.match(r"^type\s+(\w+)", line)
        return match.group(1) if match else None

    def dependencies(self, lines: List[str]) -> List[str]:
        deps: List[str] = []
        for line in lines:
            deps.extend(re.findall(r'"([^"]+)"', line))
        return deps

"""Loading and parsing of middleware source files."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .ast_utils import JS_PARSER, parser_for_extension


class ParseError(ValueError):
    """Raised when a source file cannot be parsed into a clean syntax tree."""

    def __init__(self, path: Path, line: int | None = None) -> None:
        self.path = path
        self.line = line
        where = f" near line {line}" if line else ""
        super().__init__(f"Failed to parse {path}{where}")


@dataclass(slots=True)
class SourceModule:
    path: Path
    mtime: float
    source: bytes
    tree: object
    lines: List[str] = field(default_factory=list)

    @property
    def root(self):
        return self.tree.root_node

    def line(self, number: int) -> str:
        """1-based source line, stripped, or an empty string when out of range."""
        if 1 <= number <= len(self.lines):
            return self.lines[number - 1].strip()
        return ""


def _first_error_line(node) -> int | None:
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "ERROR" or current.is_missing:
            return current.start_point[0] + 1
        if current.has_error:
            stack.extend(reversed(current.children))
    return None


def parse_source(path: Path, source: bytes, mtime: float = 0.0) -> SourceModule:
    parser = parser_for_extension(path.suffix.lower()) or JS_PARSER
    tree = parser.parse(source)
    if tree.root_node.has_error:
        raise ParseError(path, _first_error_line(tree.root_node))
    text = source.decode("utf-8", errors="ignore")
    return SourceModule(
        path=path,
        mtime=mtime,
        source=source,
        tree=tree,
        lines=text.split("\n"),
    )


def load_source(path: Path) -> SourceModule:
    """Read and parse ``path``; raises ``OSError`` or ``ParseError``."""
    mtime = path.stat().st_mtime
    return parse_source(path, path.read_bytes(), mtime)

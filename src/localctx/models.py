"""localctx data models."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


SYMBOL_KINDS = (
    "class", "interface", "type", "enum", "function", "method",
    "property", "variable", "constant", "import", "export",
)

# Chunk levels
LEVEL_FILE = 0
LEVEL_CONTAINER = 1
LEVEL_CALLABLE = 2
LEVEL_BLOCK = 3


def split_lines(content: str) -> list[str]:
    """Split text on newlines; a trailing newline does not start a new line."""
    if not content:
        return []
    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [ln[:-1] if ln.endswith("\r") else ln for ln in lines]


@dataclass
class Symbol:
    name: str
    kind: str
    file_path: str
    start_line: int     # 1-indexed, inclusive
    end_line: int       # 1-indexed, inclusive
    signature: str
    exported: bool
    parent: Optional[str] = None


@dataclass
class ImportInfo:
    source: str
    specifiers: list[str]
    is_default: bool
    is_namespace: bool
    line: int


@dataclass
class LineMetrics:
    total_lines: int = 0
    code_lines: int = 0
    comment_lines: int = 0
    blank_lines: int = 0


@dataclass
class FileAnalysis:
    file_path: str
    language: str
    symbols: list[Symbol] = field(default_factory=list)
    imports: list[ImportInfo] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)
    complexity: LineMetrics = field(default_factory=LineMetrics)


@dataclass
class Chunk:
    id: str
    file_path: str
    content: str
    start_line: int
    end_line: int
    level: int
    symbol_name: Optional[str] = None
    parent_symbol: Optional[str] = None
    embedding: Optional[list[float]] = None

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def embedding_text(self) -> str:
        """Text sent to the embedding provider: file context header + raw content."""
        header = f"File: {self.file_path} | Lines {self.start_line}-{self.end_line}"
        if self.symbol_name:
            header += f" | Symbol: {self.symbol_name}"
        return f"{header}\n\n{self.content}"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "filePath": self.file_path,
            "content": self.content,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "level": self.level,
        }
        if self.symbol_name is not None:
            data["symbolName"] = self.symbol_name
        if self.parent_symbol is not None:
            data["parentSymbol"] = self.parent_symbol
        if self.embedding is not None:
            data["embedding"] = self.embedding
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Chunk":
        """Rebuild a chunk from its persisted form. Raises KeyError/TypeError/ValueError if malformed."""
        embedding = data.get("embedding")
        if embedding is not None:
            embedding = [float(x) for x in embedding]
        start, end = int(data["startLine"]), int(data["endLine"])
        if start < 1 or end < start:
            raise ValueError(f"invalid line range {start}-{end}")
        file_path = data["filePath"]
        content = data["content"]
        if not isinstance(file_path, str) or not isinstance(content, str):
            raise TypeError("filePath and content must be strings")
        return cls(
            id=str(data.get("id") or f"{file_path}:{start}"),
            file_path=file_path,
            content=content,
            start_line=start,
            end_line=end,
            level=int(data.get("level", LEVEL_BLOCK)),
            symbol_name=data.get("symbolName"),
            parent_symbol=data.get("parentSymbol"),
            embedding=embedding,
        )


@dataclass
class FileHashEntry:
    path: str
    content_hash: str
    indexed_at: float = field(default_factory=time.time)


@dataclass
class SearchResult:
    chunk: Chunk
    score: float


@dataclass
class FileInfo:
    path: str           # relative to workspace root, POSIX separators
    abs_path: str
    language: str
    size_bytes: int


class ChangeType(str, Enum):
    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"


@dataclass
class FileChange:
    type: ChangeType
    path: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class IndexingStats:
    files_indexed: int = 0
    files_skipped: int = 0
    files_removed: int = 0
    files_failed: int = 0
    chunks_created: int = 0
    elapsed_seconds: float = 0.0
    errors: dict[str, str] = field(default_factory=dict)

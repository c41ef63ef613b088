"""Hierarchical code chunking: file summary, symbol definitions, gap blocks."""

import hashlib
from dataclasses import dataclass
from typing import Iterator, Optional

from .config import ChunkingConfig
from .errors import ConfigError
from .models import LEVEL_BLOCK, LEVEL_CALLABLE, LEVEL_CONTAINER, LEVEL_FILE, Chunk, Symbol, split_lines
from .symbols import FileAnalyzer, SymbolExtractor

SUMMARY_SCAN_LINES = 50
SUMMARY_MAX_LINES = 10

_SYMBOL_LEVELS = {
    "class": LEVEL_CONTAINER,
    "interface": LEVEL_CONTAINER,
    "function": LEVEL_CALLABLE,
    "method": LEVEL_CALLABLE,
}
CHUNKED_KINDS = frozenset(_SYMBOL_LEVELS)

_BLOCK_COMMENTS = (("/*", "*/"), ('"""', '"""'), ("'''", "'''"), ("=begin", "=end"))
_IMPORT_PREFIXES = (
    "import ", "from ", "#include", "using ", "use ", "package ",
    "require ", "require(", "require_relative ",
)


def hash_content(text: str) -> str:
    """Stable SHA-256 hex digest of raw text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def symbol_level(kind: str) -> int:
    return _SYMBOL_LEVELS.get(kind, LEVEL_BLOCK)


@dataclass
class _Span:
    start: int
    end: int
    level: int
    symbol_name: Optional[str] = None
    parent_symbol: Optional[str] = None

    @property
    def size(self) -> int:
        return self.end - self.start + 1


class HierarchicalChunker:
    """Turn one file into overlapping, bounded chunks at several levels.

    Sizes are in lines. Output depends only on the content, the path's
    extension and the configuration, so re-chunking unchanged content
    always yields the same boundaries and ids.
    """

    def __init__(
        self,
        max_chunk_lines: int = 150,
        min_chunk_lines: int = 20,
        overlap_lines: int = 20,
        analyzer: Optional[FileAnalyzer] = None,
    ):
        if max_chunk_lines < 1 or not 1 <= min_chunk_lines <= max_chunk_lines:
            raise ConfigError(f"invalid chunk bounds: min={min_chunk_lines} max={max_chunk_lines}")
        if not 0 <= overlap_lines < max_chunk_lines:
            raise ConfigError(f"overlap_lines must be in [0, {max_chunk_lines}), got {overlap_lines}")
        self.max_chunk_lines = max_chunk_lines
        self.min_chunk_lines = min_chunk_lines
        self.overlap_lines = overlap_lines
        self.analyzer = analyzer or SymbolExtractor(max_chunk_lines)

    @classmethod
    def from_config(cls, cfg: ChunkingConfig, analyzer: Optional[FileAnalyzer] = None) -> "HierarchicalChunker":
        return cls(
            max_chunk_lines=cfg.max_chunk_lines,
            min_chunk_lines=cfg.min_chunk_lines,
            overlap_lines=cfg.overlap_lines,
            analyzer=analyzer or SymbolExtractor(cfg.max_chunk_lines, cfg.block_scan_factor),
        )

    def create_chunks(self, content: str, file_path: str) -> list[Chunk]:
        lines = split_lines(content)
        if not any(line.strip() for line in lines):
            return []

        if len(lines) < self.min_chunk_lines:
            return self._build(file_path, lines, [_Span(1, len(lines), LEVEL_FILE)])

        spans: list[_Span] = []
        summary = self._summary_span(lines)
        if summary is not None:
            spans.append(summary)

        analysis = self.analyzer.analyze(file_path, content)
        symbol_spans = self._symbol_spans(analysis.symbols, len(lines))
        spans.extend(symbol_spans)

        covered: set[int] = set()
        for span in spans:
            covered.update(range(span.start, span.end + 1))
        spans.extend(self._gap_spans(len(lines), covered, spans))

        return self._build(file_path, lines, spans)

    # ------------------------------------------------------------------
    # Pass 1: file summary
    # ------------------------------------------------------------------

    def _summary_span(self, lines: list[str]) -> Optional[_Span]:
        """Leading block comment, else the first few meaningful non-import lines, within max size."""
        picked: list[int] = []
        closing: Optional[str] = None

        for i, raw in enumerate(lines[:SUMMARY_SCAN_LINES]):
            line = raw.strip()

            if closing is not None:
                picked.append(i)
                if closing in line:
                    break
                continue

            if not line or line.startswith(_IMPORT_PREFIXES):
                continue

            if not picked:
                opener = next((pair for pair in _BLOCK_COMMENTS if line.startswith(pair[0])), None)
                if opener is not None:
                    picked.append(i)
                    if opener[1] in line[len(opener[0]):]:
                        break
                    closing = opener[1]
                    continue

            picked.append(i)
            if len(picked) >= SUMMARY_MAX_LINES:
                break

        if not picked:
            return None
        end = min(picked[-1], picked[0] + self.max_chunk_lines - 1)
        return _Span(picked[0] + 1, end + 1, LEVEL_FILE)

    # ------------------------------------------------------------------
    # Pass 2: symbol definitions
    # ------------------------------------------------------------------

    def _symbol_spans(self, symbols: list[Symbol], line_count: int) -> list[_Span]:
        spans: list[_Span] = []
        for sym in symbols:
            if sym.kind not in CHUNKED_KINDS:
                continue
            start, end = sym.start_line, min(sym.end_line, line_count)
            size = end - start + 1
            if size < self.min_chunk_lines:
                continue

            level = symbol_level(sym.kind)
            if size > self.max_chunk_lines:
                for s, e in self._windows(start, end):
                    spans.append(_Span(s, e, level, sym.name, sym.name))
            else:
                spans.append(_Span(start, end, level, sym.name))
        return spans

    def _windows(self, start: int, end: int) -> Iterator[tuple[int, int]]:
        """Windows of max_chunk_lines sliding by (max - overlap) until ``end`` is reached."""
        step = self.max_chunk_lines - self.overlap_lines
        s = start
        while True:
            e = min(s + self.max_chunk_lines - 1, end)
            yield s, e
            if e >= end:
                return
            s += step

    # ------------------------------------------------------------------
    # Pass 3: gaps
    # ------------------------------------------------------------------

    def _gap_spans(self, line_count: int, covered: set[int], existing: list[_Span]) -> list[_Span]:
        gaps: list[_Span] = []
        for start, end in _uncovered_runs(line_count, covered):
            size = end - start + 1
            if size >= self.min_chunk_lines:
                gaps.extend(_Span(s, e, LEVEL_BLOCK) for s, e in self._windows(start, end))
            elif not self._absorb(start, end, existing):
                # Nothing next to it can grow; keep the lines indexed anyway.
                gaps.append(_Span(start, end, LEVEL_BLOCK))
        return gaps

    def _absorb(self, start: int, end: int, spans: list[_Span]) -> bool:
        """Widen a neighbouring span over a short uncovered run, staying within max size."""
        size = end - start + 1
        before = sorted(
            (s for s in spans if s.end == start - 1),
            key=lambda s: (s.size, s.level, s.start),
        )
        for span in before:
            if span.size + size <= self.max_chunk_lines:
                span.end = end
                return True
        after = sorted(
            (s for s in spans if s.start == end + 1),
            key=lambda s: (s.size, s.level, s.end),
        )
        for span in after:
            if span.size + size <= self.max_chunk_lines:
                span.start = start
                return True
        return False

    @staticmethod
    def _build(file_path: str, lines: list[str], spans: list[_Span]) -> list[Chunk]:
        chunks: list[Chunk] = []
        seen: dict[str, int] = {}
        for span in spans:
            chunk_id = f"{file_path}:{span.start}"
            n = seen.get(chunk_id, 0)
            seen[chunk_id] = n + 1
            if n:
                chunk_id = f"{chunk_id}#{n}"
            chunks.append(Chunk(
                id=chunk_id,
                file_path=file_path,
                content="\n".join(lines[span.start - 1:span.end]),
                start_line=span.start,
                end_line=span.end,
                level=span.level,
                symbol_name=span.symbol_name,
                parent_symbol=span.parent_symbol,
            ))
        return chunks


def _uncovered_runs(line_count: int, covered: set[int]) -> Iterator[tuple[int, int]]:
    run_start: Optional[int] = None
    for line_no in range(1, line_count + 1):
        if line_no in covered:
            if run_start is not None:
                yield run_start, line_no - 1
                run_start = None
        elif run_start is None:
            run_start = line_no
    if run_start is not None:
        yield run_start, line_count

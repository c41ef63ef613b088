"""Pattern-based symbol, import and line-metric extraction.

This is a deliberate approximation of parsing: each language has an
ordered table of regex rules (see ``languages``), block extents come from
indentation or brace counting, and anything unsupported degrades to line
metrics only. Callers depend on the ``FileAnalyzer`` protocol so a
grammar-based analyzer can replace this one.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from .languages import BlockStyle, Language, LanguageSpec, detect_language, get_spec
from .models import FileAnalysis, ImportInfo, LineMetrics, Symbol, split_lines

log = logging.getLogger("localctx.symbols")

SIGNATURE_MAX_CHARS = 120
CONTAINER_KINDS = ("class", "interface")
_CLOSING_BRACKETS = (")", "]", "}")


class FileAnalyzer(Protocol):
    def analyze(self, file_path: str, content: str) -> FileAnalysis:
        ...


class LineKind(str, Enum):
    BLANK = "blank"
    COMMENT = "comment"
    CODE = "code"


def classify_lines(lines: list[str], spec: LanguageSpec) -> list[LineKind]:
    """Tag each line as blank, comment or code, tracking block comments across lines."""
    kinds: list[LineKind] = []
    in_block = False
    block = spec.block_comment

    for line in lines:
        trimmed = line.strip()
        if not trimmed:
            kinds.append(LineKind.BLANK)
            continue

        if in_block:
            kinds.append(LineKind.COMMENT)
            if block[1] in trimmed:
                in_block = False
            continue

        if block and trimmed.startswith(block[0]):
            kinds.append(LineKind.COMMENT)
            if block[1] not in trimmed[len(block[0]):]:
                in_block = True
            continue

        if spec.line_comments and trimmed.startswith(spec.line_comments):
            kinds.append(LineKind.COMMENT)
            continue

        kinds.append(LineKind.CODE)

    return kinds


def _indent_width(line: str) -> int:
    return len(line) - len(line.lstrip())


def find_block_end(
    lines: list[str],
    start_idx: int,
    style: BlockStyle,
    scan_limit: int,
    closer=None,
) -> int:
    """Return the 1-indexed last line of the block defined at ``start_idx`` (0-indexed).

    The forward scan never looks at more than ``scan_limit`` lines, so
    unbalanced or unterminated input cannot stall extraction.
    """
    last_idx = min(len(lines), start_idx + 1 + scan_limit) - 1

    if style is BlockStyle.INDENT:
        base = _indent_width(lines[start_idx])
        for j in range(start_idx + 1, last_idx + 1):
            line = lines[j]
            trimmed = line.strip()
            if not trimmed:
                continue
            if _indent_width(line) > base:
                continue
            # Closing bracket of a multi-line signature or literal
            if trimmed.startswith(_CLOSING_BRACKETS):
                continue
            if closer is not None and closer.match(trimmed):
                return j + 1
            return j
        return last_idx + 1

    depth = 0
    seen_open = False
    for j in range(start_idx, last_idx + 1):
        line = lines[j]
        if not seen_open and j > start_idx and not line.strip():
            break
        for ch in line:
            if ch == "{":
                depth += 1
                seen_open = True
            elif ch == "}":
                depth -= 1
                if seen_open and depth == 0:
                    return j + 1
            elif ch == ";" and not seen_open:
                return j + 1
    if seen_open:
        return last_idx + 1
    return start_idx + 1


@dataclass
class _Container:
    name: str
    entry_depth: int
    end_line: int
    opened: bool = False


class SymbolExtractor:
    """Lightweight multi-language analyzer driven by per-language rule tables."""

    def __init__(self, max_chunk_lines: int = 150, block_scan_factor: int = 20):
        self.scan_limit = max_chunk_lines * block_scan_factor

    def analyze(self, file_path: str, content: str) -> FileAnalysis:
        """Extract symbols, imports, exports and line metrics for one file."""
        language = detect_language(file_path)
        spec = get_spec(language)
        lines = split_lines(content)
        kinds = classify_lines(lines, spec)

        analysis = FileAnalysis(
            file_path=file_path,
            language=language.value,
            complexity=self._count_lines(kinds),
        )
        if language is Language.UNKNOWN:
            return analysis

        try:
            analysis.imports = self._extract_imports(lines, kinds, spec)
            analysis.symbols = self._extract_symbols(file_path, lines, kinds, spec)
        except Exception as e:
            log.warning("Symbol extraction failed for %s, keeping metrics only: %s", file_path, e)
            analysis.imports = []
            analysis.symbols = []

        analysis.exports = [s.name for s in analysis.symbols if s.exported]
        return analysis

    @staticmethod
    def _count_lines(kinds: list[LineKind]) -> LineMetrics:
        return LineMetrics(
            total_lines=len(kinds),
            code_lines=sum(1 for k in kinds if k is LineKind.CODE),
            comment_lines=sum(1 for k in kinds if k is LineKind.COMMENT),
            blank_lines=sum(1 for k in kinds if k is LineKind.BLANK),
        )

    @staticmethod
    def _extract_imports(lines: list[str], kinds: list[LineKind], spec: LanguageSpec) -> list[ImportInfo]:
        imports: list[ImportInfo] = []
        in_group = False

        for i, line in enumerate(lines):
            if kinds[i] is not LineKind.CODE:
                continue

            if spec.import_block:
                opener, closer = spec.import_block
                if in_group and closer.match(line):
                    in_group = False
                    continue
                if not in_group and opener.match(line):
                    in_group = True
                    continue

            for rule in spec.import_rules:
                if rule.in_block_only and not in_group:
                    continue
                m = rule.regex.search(line)
                if not m:
                    continue
                source, specifiers, is_default, is_namespace = rule.build(m)
                imports.append(ImportInfo(
                    source=source,
                    specifiers=specifiers,
                    is_default=is_default,
                    is_namespace=is_namespace,
                    line=i + 1,
                ))
                break

        return imports

    def _extract_symbols(
        self,
        file_path: str,
        lines: list[str],
        kinds: list[LineKind],
        spec: LanguageSpec,
    ) -> list[Symbol]:
        symbols: list[Symbol] = []
        containers: list[_Container] = []
        depth = 0
        braces = spec.block_style is BlockStyle.BRACES

        for i, line in enumerate(lines):
            line_no = i + 1
            if not braces:
                while containers and line_no > containers[-1].end_line:
                    containers.pop()

            if kinds[i] is not LineKind.CODE:
                continue

            parent = containers[-1].name if containers else None
            symbol = self._match_symbol(file_path, lines, i, spec, parent)
            if symbol is not None:
                symbols.append(symbol)
                has_body = symbol.end_line > symbol.start_line or "{" in line
                if symbol.kind in CONTAINER_KINDS and has_body:
                    containers.append(_Container(symbol.name, depth, symbol.end_line))

            if braces:
                for ch in line:
                    if ch == "{":
                        depth += 1
                        for c in containers:
                            if depth > c.entry_depth:
                                c.opened = True
                    elif ch == "}":
                        depth -= 1
                while containers and containers[-1].opened and depth <= containers[-1].entry_depth:
                    containers.pop()

        return symbols

    def _match_symbol(
        self,
        file_path: str,
        lines: list[str],
        idx: int,
        spec: LanguageSpec,
        parent: Optional[str],
    ) -> Optional[Symbol]:
        trimmed = lines[idx].strip()
        for rule in spec.symbol_rules:
            m = rule.regex.match(trimmed)
            if not m:
                continue
            name = m.group(rule.name_group)
            if not name:
                continue

            kind = "method" if rule.kind == "function" and parent else rule.kind
            signature = trimmed if len(trimmed) <= SIGNATURE_MAX_CHARS else trimmed[:SIGNATURE_MAX_CHARS] + "..."
            return Symbol(
                name=name,
                kind=kind,
                file_path=file_path,
                start_line=idx + 1,
                end_line=find_block_end(lines, idx, spec.block_style, self.scan_limit, spec.block_closer),
                signature=signature,
                exported=spec.is_exported(trimmed, name),
                parent=parent,
            )
        return None

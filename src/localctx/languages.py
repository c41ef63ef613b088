"""Per-language rule tables for pattern-based symbol extraction.

Each supported language maps to one LanguageSpec holding its comment
syntax, how block extents are found, and the ordered import and symbol
rules. Rules are tried top to bottom; the first match wins.
"""

import posixpath
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath
from typing import Callable, Optional


class Language(str, Enum):
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    GO = "go"
    RUST = "rust"
    JAVA = "java"
    C = "c"
    CSHARP = "csharp"
    RUBY = "ruby"
    PHP = "php"
    UNKNOWN = "unknown"


class BlockStyle(str, Enum):
    BRACES = "braces"
    INDENT = "indent"


EXT_TO_LANGUAGE: dict[str, Language] = {
    ".ts": Language.TYPESCRIPT, ".tsx": Language.TYPESCRIPT, ".mts": Language.TYPESCRIPT,
    ".js": Language.JAVASCRIPT, ".jsx": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT, ".cjs": Language.JAVASCRIPT,
    ".py": Language.PYTHON, ".pyi": Language.PYTHON,
    ".go": Language.GO,
    ".rs": Language.RUST,
    # Kotlin and Scala declarations are close enough to Java's.
    ".java": Language.JAVA, ".kt": Language.JAVA, ".scala": Language.JAVA,
    ".c": Language.C, ".h": Language.C, ".cpp": Language.C, ".cc": Language.C,
    ".cxx": Language.C, ".hpp": Language.C, ".hxx": Language.C,
    ".cs": Language.CSHARP,
    ".rb": Language.RUBY, ".rake": Language.RUBY,
    ".php": Language.PHP,
}


def detect_language(file_path: str) -> Language:
    return EXT_TO_LANGUAGE.get(PurePath(file_path).suffix.lower(), Language.UNKNOWN)


# ---------------------------------------------------------------------------
# Rule types
# ---------------------------------------------------------------------------

# (source, specifiers, is_default, is_namespace)
ImportParts = tuple[str, list[str], bool, bool]


@dataclass(frozen=True)
class ImportRule:
    regex: re.Pattern
    build: Callable[[re.Match], ImportParts]
    in_block_only: bool = False


@dataclass(frozen=True)
class SymbolRule:
    regex: re.Pattern
    kind: str
    name_group: int = 1


@dataclass(frozen=True)
class LanguageSpec:
    language: Language
    line_comments: tuple[str, ...]
    block_comment: Optional[tuple[str, str]]
    block_style: BlockStyle
    import_rules: tuple[ImportRule, ...] = ()
    symbol_rules: tuple[SymbolRule, ...] = ()
    # (trimmed definition line, symbol name) -> exported?
    is_exported: Callable[[str, str], bool] = lambda line, name: True
    # Multi-line import groups such as Go's `import ( ... )`.
    import_block: Optional[tuple[re.Pattern, re.Pattern]] = None
    # Indent-delimited blocks closed by a keyword line (Ruby's `end`).
    block_closer: Optional[re.Pattern] = None


def _names(raw: str, sep: str = ",") -> list[str]:
    """Split an import list, dropping `as` aliases and braces."""
    out = []
    for part in raw.strip().strip("{}()").split(sep):
        part = re.split(r"\s+as\s+", part.strip())[0].strip()
        if part:
            out.append(part)
    return out


def _stem(source: str) -> str:
    base = posixpath.basename(source)
    return posixpath.splitext(base)[0] or base


def _rule(pattern: str, build: Callable[[re.Match], ImportParts], in_block_only: bool = False) -> ImportRule:
    return ImportRule(re.compile(pattern), build, in_block_only)


def _sym(pattern: str, kind: str, name_group: int = 1) -> SymbolRule:
    return SymbolRule(re.compile(pattern), kind, name_group)


# ---------------------------------------------------------------------------
# Import rules
# ---------------------------------------------------------------------------

_JS_IMPORTS = (
    _rule(r"import\s+(?:type\s+)?\{([^}]+)\}\s+from\s+['\"]([^'\"]+)['\"]",
          lambda m: (m.group(2), _names(m.group(1)), False, False)),
    _rule(r"import\s+\*\s+as\s+(\w+)\s+from\s+['\"]([^'\"]+)['\"]",
          lambda m: (m.group(2), [m.group(1)], False, True)),
    _rule(r"import\s+(\w+)\s*,\s*\{([^}]+)\}\s+from\s+['\"]([^'\"]+)['\"]",
          lambda m: (m.group(3), [m.group(1)] + _names(m.group(2)), True, False)),
    _rule(r"import\s+(\w+)\s+from\s+['\"]([^'\"]+)['\"]",
          lambda m: (m.group(2), [m.group(1)], True, False)),
    _rule(r"^\s*import\s+['\"]([^'\"]+)['\"]",
          lambda m: (m.group(1), [], False, False)),
    _rule(r"(?:const|let|var)\s+\{([^}]+)\}\s*=\s*require\(\s*['\"]([^'\"]+)['\"]\s*\)",
          lambda m: (m.group(2), _names(m.group(1).replace(":", " as ")), False, False)),
    _rule(r"(?:const|let|var)\s+(\w+)\s*=\s*require\(\s*['\"]([^'\"]+)['\"]\s*\)",
          lambda m: (m.group(2), [m.group(1)], True, False)),
)

_PYTHON_IMPORTS = (
    _rule(r"^\s*from\s+(\S+)\s+import\s+\*",
          lambda m: (m.group(1), ["*"], False, True)),
    _rule(r"^\s*from\s+(\S+)\s+import\s+(.+)",
          lambda m: (m.group(1), _names(m.group(2).split("#")[0]), False, False)),
    _rule(r"^\s*import\s+([\w.]+(?:\s+as\s+\w+)?(?:\s*,\s*[\w.]+(?:\s+as\s+\w+)?)*)",
          lambda m: (_names(m.group(1))[0], _names(m.group(1)), True, False)),
)

_GO_IMPORTS = (
    _rule(r"^\s*import\s+(?:(\w+|\.|_)\s+)?\"([^\"]+)\"",
          lambda m: (m.group(2), [m.group(1) or posixpath.basename(m.group(2))], False, m.group(1) == ".")),
    _rule(r"^\s*(?:(\w+|\.|_)\s+)?\"([^\"]+)\"",
          lambda m: (m.group(2), [m.group(1) or posixpath.basename(m.group(2))], False, m.group(1) == "."),
          in_block_only=True),
)

_RUST_IMPORTS = (
    _rule(r"^\s*(?:pub(?:\([^)]*\))?\s+)?use\s+([\w:]+)::\{([^}]+)\}\s*;",
          lambda m: (m.group(1), _names(m.group(2)), False, False)),
    _rule(r"^\s*(?:pub(?:\([^)]*\))?\s+)?use\s+([\w:]+)::\*\s*;",
          lambda m: (m.group(1), ["*"], False, True)),
    _rule(r"^\s*(?:pub(?:\([^)]*\))?\s+)?use\s+([\w:]+)(?:\s+as\s+\w+)?\s*;",
          lambda m: (m.group(1), [m.group(1).split("::")[-1]], False, False)),
    _rule(r"^\s*extern\s+crate\s+(\w+)",
          lambda m: (m.group(1), [m.group(1)], True, False)),
)

_JAVA_IMPORTS = (
    _rule(r"^\s*import\s+(?:static\s+)?([\w.]+)\.\*\s*;",
          lambda m: (m.group(1), ["*"], False, True)),
    _rule(r"^\s*import\s+(?:static\s+)?([\w.]+)\s*;",
          lambda m: (m.group(1), [m.group(1).split(".")[-1]], False, False)),
)

_CSHARP_IMPORTS = (
    _rule(r"^\s*using\s+(?:static\s+)?(\w+)\s*=\s*([\w.]+)\s*;",
          lambda m: (m.group(2), [m.group(1)], True, False)),
    _rule(r"^\s*using\s+(?:static\s+)?([\w.]+)\s*;",
          lambda m: (m.group(1), [m.group(1).split(".")[-1]], False, True)),
)

_C_IMPORTS = (
    _rule(r"^\s*#\s*include\s*[<\"]([^>\"]+)[>\"]",
          lambda m: (m.group(1), [_stem(m.group(1))], False, False)),
)

_RUBY_IMPORTS = (
    _rule(r"^\s*require(?:_relative)?\s*\(?\s*['\"]([^'\"]+)['\"]",
          lambda m: (m.group(1), [_stem(m.group(1))], True, False)),
)

_PHP_IMPORTS = (
    _rule(r"^\s*use\s+(?:function\s+|const\s+)?([\w\\]+)\\\{([^}]+)\}\s*;",
          lambda m: (m.group(1), _names(m.group(2)), False, False)),
    _rule(r"^\s*use\s+(?:function\s+|const\s+)?([\w\\]+)(?:\s+as\s+(\w+))?\s*;",
          lambda m: (m.group(1), [m.group(2) or m.group(1).split("\\")[-1]], False, False)),
    _rule(r"^\s*(?:require|include)(?:_once)?\s*\(?\s*['\"]([^'\"]+)['\"]",
          lambda m: (m.group(1), [_stem(m.group(1))], True, False)),
)


# ---------------------------------------------------------------------------
# Symbol rules
# ---------------------------------------------------------------------------

# Statements that look like calls or definitions but are neither.
_NOT_A_DEFINITION = r"(?!(?:if|for|foreach|while|switch|catch|return|new|else|throw|await|yield|do|case|sizeof|using|lock)\b)"

_JS_SYMBOLS = (
    _sym(r"^(?:export\s+)?(?:default\s+)?(?:declare\s+)?(?:abstract\s+)?class\s+(\w+)", "class"),
    _sym(r"^(?:export\s+)?(?:declare\s+)?interface\s+(\w+)", "interface"),
    _sym(r"^(?:export\s+)?(?:declare\s+)?type\s+(\w+)(?:<[^>]*>)?\s*=", "type"),
    _sym(r"^(?:export\s+)?(?:declare\s+)?(?:const\s+)?enum\s+(\w+)", "enum"),
    _sym(r"^(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*(\w+)", "function"),
    _sym(r"^(?:export\s+)?(?:const|let|var)\s+(\w+)\s*(?::[^=]+)?=\s*(?:async\s*)?function\b", "function"),
    _sym(r"^(?:export\s+)?(?:const|let|var)\s+(\w+)\s*(?::[^=]+)?=\s*(?:async\s*)?\([^)]*\)\s*(?::\s*[^=]+)?=>", "function"),
    _sym(r"^(?:export\s+)?(?:const|let|var)\s+(\w+)\s*(?::[^=]+)?=\s*(?:async\s+)?\w+\s*=>", "function"),
    _sym(r"^(?:(?:public|private|protected|static|async|readonly|override|get|set)\s+)*"
         + _NOT_A_DEFINITION + r"(\w+)\s*(?:<[^>]*>)?\([^)]*\)\s*(?::\s*[^{;]+)?\{", "function"),
)

_PYTHON_SYMBOLS = (
    _sym(r"^class\s+(\w+)", "class"),
    _sym(r"^(?:async\s+)?def\s+(\w+)", "function"),
)

_GO_SYMBOLS = (
    _sym(r"^type\s+(\w+)\s+struct\b", "class"),
    _sym(r"^type\s+(\w+)\s+interface\b", "interface"),
    _sym(r"^type\s+(\w+)\s+", "type"),
    _sym(r"^func\s+(?:\([^)]*\)\s*)?(\w+)", "function"),
)

_RUST_VIS = r"(?:pub(?:\([^)]*\))?\s+)?"
_RUST_SYMBOLS = (
    _sym(r"^" + _RUST_VIS + r"struct\s+(\w+)", "class"),
    _sym(r"^" + _RUST_VIS + r"(?:unsafe\s+)?trait\s+(\w+)", "interface"),
    _sym(r"^" + _RUST_VIS + r"enum\s+(\w+)", "enum"),
    _sym(r"^" + _RUST_VIS + r"type\s+(\w+)", "type"),
    _sym(r"^" + _RUST_VIS + r"(?:const\s+)?(?:async\s+)?(?:unsafe\s+)?(?:extern\s+\"[^\"]*\"\s+)?fn\s+(\w+)", "function"),
    _sym(r"^(?:unsafe\s+)?impl(?:<[^>]+>)?\s+(?:[\w:<>]+\s+for\s+)?(\w+)", "class"),
)

_JAVA_MODS = r"(?:(?:public|private|protected|static|final|abstract|sealed|synchronized|native|default|open|data|internal)\s+)*"
_JAVA_SYMBOLS = (
    _sym(r"^" + _JAVA_MODS + r"(?:class|record)\s+(\w+)", "class"),
    _sym(r"^" + _JAVA_MODS + r"@?interface\s+(\w+)", "interface"),
    _sym(r"^" + _JAVA_MODS + r"enum\s+(\w+)", "enum"),
    _sym(r"^" + _JAVA_MODS + _NOT_A_DEFINITION + r"(?:<[^>]+>\s+)?[\w.<>\[\],?]+\s+(\w+)\s*\(", "function"),
)

_CSHARP_MODS = r"(?:(?:public|private|protected|internal|static|abstract|sealed|partial|virtual|override|async|readonly|unsafe|extern|new)\s+)*"
_CSHARP_SYMBOLS = (
    _sym(r"^" + _CSHARP_MODS + r"(?:class|record)\s+(\w+)", "class"),
    _sym(r"^" + _CSHARP_MODS + r"struct\s+(\w+)", "class"),
    _sym(r"^" + _CSHARP_MODS + r"interface\s+(\w+)", "interface"),
    _sym(r"^" + _CSHARP_MODS + r"enum\s+(\w+)", "enum"),
    _sym(r"^" + _CSHARP_MODS + _NOT_A_DEFINITION + r"[\w.<>\[\],?]+\s+(\w+)\s*(?:<[^>]*>)?\(", "function"),
)

_C_SYMBOLS = (
    _sym(r"^(?:template\s*<[^>]*>\s*)?(?:class|struct)\s+(\w+)\s*(?::[^{;]*)?\{?\s*$", "class"),
    _sym(r"^typedef\s+struct\s+(\w+)", "class"),
    _sym(r"^(?:typedef\s+)?enum\s+(?:class\s+)?(\w+)", "enum"),
    _sym(r"^(?:(?:static|inline|extern|virtual|constexpr)\s+)*" + _NOT_A_DEFINITION
         + r"[\w:<>]+(?:[\s\*&]+[\w:<>]+)*?[\s\*&]+((?:\w+::)*~?\w+)\s*\([^;]*$", "function"),
)

_RUBY_SYMBOLS = (
    _sym(r"^class\s+(\w+)", "class"),
    _sym(r"^module\s+(\w+)", "class"),
    _sym(r"^def\s+(?:self\.)?(\w+[?!=]?)", "function"),
)

_PHP_SYMBOLS = (
    _sym(r"^(?:(?:abstract|final|readonly)\s+)*class\s+(\w+)", "class"),
    _sym(r"^interface\s+(\w+)", "interface"),
    _sym(r"^trait\s+(\w+)", "class"),
    _sym(r"^enum\s+(\w+)", "enum"),
    _sym(r"^(?:(?:public|private|protected|static|abstract|final)\s+)*function\s+&?(\w+)", "function"),
)


def _starts_with(*keywords: str) -> Callable[[str, str], bool]:
    pattern = re.compile(r"^(?:" + "|".join(keywords) + r")\b")
    return lambda line, name: bool(pattern.match(line))


_C_STYLE_COMMENTS = dict(line_comments=("//",), block_comment=("/*", "*/"))

SPECS: dict[Language, LanguageSpec] = {
    Language.TYPESCRIPT: LanguageSpec(
        Language.TYPESCRIPT, **_C_STYLE_COMMENTS, block_style=BlockStyle.BRACES,
        import_rules=_JS_IMPORTS, symbol_rules=_JS_SYMBOLS, is_exported=_starts_with("export"),
    ),
    Language.JAVASCRIPT: LanguageSpec(
        Language.JAVASCRIPT, **_C_STYLE_COMMENTS, block_style=BlockStyle.BRACES,
        import_rules=_JS_IMPORTS, symbol_rules=_JS_SYMBOLS, is_exported=_starts_with("export"),
    ),
    Language.PYTHON: LanguageSpec(
        Language.PYTHON, line_comments=("#",), block_comment=None, block_style=BlockStyle.INDENT,
        import_rules=_PYTHON_IMPORTS, symbol_rules=_PYTHON_SYMBOLS,
    ),
    Language.GO: LanguageSpec(
        Language.GO, **_C_STYLE_COMMENTS, block_style=BlockStyle.BRACES,
        import_rules=_GO_IMPORTS, symbol_rules=_GO_SYMBOLS,
        is_exported=lambda line, name: name[:1].isupper(),
        import_block=(re.compile(r"^\s*import\s*\(\s*$"), re.compile(r"^\s*\)")),
    ),
    Language.RUST: LanguageSpec(
        Language.RUST, **_C_STYLE_COMMENTS, block_style=BlockStyle.BRACES,
        import_rules=_RUST_IMPORTS, symbol_rules=_RUST_SYMBOLS, is_exported=_starts_with("pub"),
    ),
    Language.JAVA: LanguageSpec(
        Language.JAVA, **_C_STYLE_COMMENTS, block_style=BlockStyle.BRACES,
        import_rules=_JAVA_IMPORTS, symbol_rules=_JAVA_SYMBOLS, is_exported=_starts_with("public"),
    ),
    Language.C: LanguageSpec(
        Language.C, **_C_STYLE_COMMENTS, block_style=BlockStyle.BRACES,
        import_rules=_C_IMPORTS, symbol_rules=_C_SYMBOLS,
        is_exported=lambda line, name: not line.startswith("static "),
    ),
    Language.CSHARP: LanguageSpec(
        Language.CSHARP, **_C_STYLE_COMMENTS, block_style=BlockStyle.BRACES,
        import_rules=_CSHARP_IMPORTS, symbol_rules=_CSHARP_SYMBOLS, is_exported=_starts_with("public"),
    ),
    Language.RUBY: LanguageSpec(
        Language.RUBY, line_comments=("#",), block_comment=("=begin", "=end"), block_style=BlockStyle.INDENT,
        import_rules=_RUBY_IMPORTS, symbol_rules=_RUBY_SYMBOLS, block_closer=re.compile(r"^end\b"),
    ),
    Language.PHP: LanguageSpec(
        Language.PHP, line_comments=("//", "#"), block_comment=("/*", "*/"), block_style=BlockStyle.BRACES,
        import_rules=_PHP_IMPORTS, symbol_rules=_PHP_SYMBOLS,
        is_exported=lambda line, name: not re.match(r"^(?:\w+\s+)*(?:private|protected)\b", line),
    ),
    # Metrics only: no imports or symbols.
    Language.UNKNOWN: LanguageSpec(
        Language.UNKNOWN, line_comments=("//", "#"), block_comment=("/*", "*/"), block_style=BlockStyle.BRACES,
    ),
}


def get_spec(language: Language) -> LanguageSpec:
    return SPECS[language]

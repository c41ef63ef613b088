"""File discovery: walk a workspace and decide which files are indexable."""

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from .models import FileInfo

log = logging.getLogger("localctx.discovery")

LANGUAGE_MAP: dict[str, str] = {
    ".py": "python", ".pyi": "python",
    ".go": "go",
    ".js": "javascript", ".mjs": "javascript", ".cjs": "javascript",
    ".ts": "typescript", ".tsx": "typescript", ".jsx": "javascript",
    ".rs": "rust",
    ".java": "java", ".kt": "kotlin", ".kts": "kotlin", ".scala": "scala",
    ".c": "c", ".h": "c", ".cpp": "cpp", ".hpp": "cpp", ".cc": "cpp", ".cxx": "cpp", ".hxx": "cpp",
    ".cs": "csharp", ".fs": "fsharp",
    ".swift": "swift", ".m": "objc",
    ".dart": "dart", ".arb": "json",
    ".rb": "ruby", ".rake": "ruby", ".gemspec": "ruby",
    ".php": "php",
    ".ex": "elixir", ".exs": "elixir", ".erl": "erlang",
    ".hs": "haskell", ".ml": "ocaml",
    ".lua": "lua",
    ".sh": "shell", ".bash": "shell", ".zsh": "shell",
    ".ps1": "powershell", ".bat": "batch", ".cmd": "batch",
    ".sql": "sql",
    ".r": "r",
    ".vue": "vue", ".svelte": "svelte", ".astro": "astro",
    ".html": "html", ".css": "css", ".scss": "scss", ".sass": "sass", ".less": "less",
    ".yml": "yaml", ".yaml": "yaml", ".toml": "toml", ".json": "json",
    ".xml": "xml", ".plist": "xml", ".gradle": "gradle",
    ".md": "markdown", ".mdx": "markdown", ".txt": "text", ".rst": "restructuredtext",
    ".tf": "terraform", ".hcl": "hcl",
    ".dockerfile": "dockerfile",
    ".proto": "protobuf",
    ".graphql": "graphql", ".gql": "graphql",
}

# Extensionless (or dot-) files worth indexing by exact name.
SPECIAL_FILES: dict[str, str] = {
    "Dockerfile": "dockerfile",
    "Makefile": "makefile",
    "Jenkinsfile": "groovy",
    "Vagrantfile": "ruby",
    "Gemfile": "ruby",
    "Rakefile": "ruby",
    ".env.example": "dotenv",
    ".editorconfig": "ini",
}

SKIP_DIRS: set[str] = {
    ".git", ".svn", ".hg",
    "node_modules", "__pycache__", ".mypy_cache", ".pytest_cache",
    ".tox", ".venv", "venv", "env", ".env",
    "dist", "build", "target", "out", "bin", "obj",
    ".next", ".nuxt", ".output",
    "vendor", "third_party",
    ".idea", ".vscode",
    "coverage", ".coverage",
}

SKIP_FILES: set[str] = {
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml",
    "go.sum", "Cargo.lock", "poetry.lock", "uv.lock",
    "Pipfile.lock", "composer.lock", "Gemfile.lock",
}


def language_hint(fname: str) -> Optional[str]:
    """Language label for a file name, or None when the file is not indexable."""
    if fname in SKIP_FILES:
        return None
    if fname in SPECIAL_FILES:
        return SPECIAL_FILES[fname]
    suffix = Path(fname).suffix
    return LANGUAGE_MAP.get(suffix.lower())


def _skip_dir(name: str, skip: set[str]) -> bool:
    return name in skip or name.startswith(".")


def is_indexable(rel_path: str, index_dir: str = ".local-context", extra_skip_dirs: Iterable[str] = ()) -> bool:
    """Apply the discovery filters to one workspace-relative path (used by the watcher)."""
    parts = PurePosixPath(rel_path.replace(os.sep, "/")).parts
    if not parts or parts[0] == "..":
        return False
    skip = SKIP_DIRS | set(extra_skip_dirs) | {index_dir}
    if any(_skip_dir(d, skip) for d in parts[:-1]):
        return False
    return language_hint(parts[-1]) is not None


def discover_files(
    root: Path,
    max_file_size_kb: int = 512,
    extra_skip_dirs: Optional[Iterable[str]] = None,
    index_dir: str = ".local-context",
) -> list[FileInfo]:
    """Walk the workspace and collect indexable files, sorted by relative path."""
    root = Path(root)
    skip = SKIP_DIRS | set(extra_skip_dirs or ()) | {index_dir}
    files: list[FileInfo] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not _skip_dir(d, skip))

        for fname in filenames:
            language = language_hint(fname)
            if language is None:
                continue

            full = Path(dirpath) / fname
            try:
                stat = full.stat()
            except OSError:
                continue

            if stat.st_size > max_file_size_kb * 1024:
                log.debug("Skipping %s (%d bytes, over %d KB)", full, stat.st_size, max_file_size_kb)
                continue

            files.append(FileInfo(
                path=full.relative_to(root).as_posix(),
                abs_path=str(full),
                language=language,
                size_bytes=stat.st_size,
            ))

    files.sort(key=lambda f: f.path)
    log.info("Discovered %d indexable files", len(files))
    return files


def read_text(path: Path) -> str:
    """Exact file content decoded as UTF-8; undecodable bytes become U+FFFD."""
    return Path(path).read_bytes().decode("utf-8", errors="replace")

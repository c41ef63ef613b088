"""localctx configuration: dataclass-based with env var overrides."""

import os
from dataclasses import dataclass, field

from .errors import ConfigError


def _env_list(name: str, default: str = "") -> list[str]:
    return [p.strip() for p in os.getenv(name, default).split(",") if p.strip()]


@dataclass(slots=True)
class OllamaConfig:
    base_url: str = field(default_factory=lambda: os.getenv("OLLAMA_URL", "http://localhost:11434"))
    embed_model: str = field(default_factory=lambda: os.getenv("OLLAMA_EMBED_MODEL", "nomic-embed-text"))
    timeout_s: float = field(default_factory=lambda: float(os.getenv("OLLAMA_TIMEOUT_S", "120")))


@dataclass(slots=True)
class ChunkingConfig:
    max_chunk_lines: int = field(default_factory=lambda: int(os.getenv("CHUNK_MAX_LINES", "150")))
    min_chunk_lines: int = field(default_factory=lambda: int(os.getenv("CHUNK_MIN_LINES", "20")))
    overlap_lines: int = field(default_factory=lambda: int(os.getenv("CHUNK_OVERLAP_LINES", "20")))
    # Block-end scans stop after block_scan_factor * max_chunk_lines lines.
    block_scan_factor: int = 20
    max_file_size_kb: int = 512

    def __post_init__(self):
        if self.max_chunk_lines < 1:
            raise ConfigError(f"max_chunk_lines must be positive, got {self.max_chunk_lines}")
        if not 1 <= self.min_chunk_lines <= self.max_chunk_lines:
            raise ConfigError(
                f"min_chunk_lines must be in [1, {self.max_chunk_lines}], got {self.min_chunk_lines}"
            )
        if not 0 <= self.overlap_lines < self.max_chunk_lines:
            raise ConfigError(
                f"overlap_lines must be in [0, {self.max_chunk_lines}), got {self.overlap_lines}"
            )
        if self.block_scan_factor < 1:
            raise ConfigError(f"block_scan_factor must be positive, got {self.block_scan_factor}")


@dataclass(slots=True)
class IndexConfig:
    index_dir: str = field(default_factory=lambda: os.getenv("LOCALCTX_INDEX_DIR", ".local-context"))
    index_file: str = "index.json"
    extra_skip_dirs: list[str] = field(default_factory=lambda: _env_list("LOCALCTX_SKIP_DIRS"))


@dataclass(slots=True)
class WatcherConfig:
    debounce_ms: int = field(default_factory=lambda: int(os.getenv("WATCH_DEBOUNCE_MS", "500")))
    burst_threshold: int = field(default_factory=lambda: int(os.getenv("WATCH_BURST_THRESHOLD", "10")))
    burst_delay_ms: int = 250
    cooldown_s: float = field(default_factory=lambda: float(os.getenv("WATCH_REINDEX_COOLDOWN_S", "60")))
    busy_retry_ms: int = 1000

    def __post_init__(self):
        if self.burst_threshold < 1:
            raise ConfigError(f"burst_threshold must be positive, got {self.burst_threshold}")
        if min(self.debounce_ms, self.burst_delay_ms, self.busy_retry_ms) < 0 or self.cooldown_s < 0:
            raise ConfigError("watcher delays must not be negative")


@dataclass(slots=True)
class AppConfig:
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)


def load_config() -> AppConfig:
    """Build a fresh AppConfig from defaults and environment variables."""
    try:
        return AppConfig()
    except ValueError as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e

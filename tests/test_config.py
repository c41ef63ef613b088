"""Tests for dataclass configuration and environment overrides."""

import pytest

from localctx.config import ChunkingConfig, IndexConfig, OllamaConfig, WatcherConfig, load_config
from localctx.errors import ConfigError


class TestDefaults:
    def test_defaults(self, monkeypatch):
        for var in (
            "OLLAMA_URL", "OLLAMA_EMBED_MODEL", "CHUNK_MAX_LINES", "CHUNK_MIN_LINES", "CHUNK_OVERLAP_LINES",
            "LOCALCTX_INDEX_DIR", "WATCH_DEBOUNCE_MS", "WATCH_BURST_THRESHOLD", "WATCH_REINDEX_COOLDOWN_S",
        ):
            monkeypatch.delenv(var, raising=False)
        cfg = load_config()
        assert cfg.ollama.base_url == "http://localhost:11434"
        assert cfg.ollama.embed_model == "nomic-embed-text"
        assert (cfg.chunking.max_chunk_lines, cfg.chunking.min_chunk_lines, cfg.chunking.overlap_lines) == (150, 20, 20)
        assert cfg.index.index_dir == ".local-context"
        assert cfg.index.index_file == "index.json"
        assert (cfg.watcher.debounce_ms, cfg.watcher.burst_threshold, cfg.watcher.cooldown_s) == (500, 10, 60)

    def test_instances_are_independent(self):
        first, second = load_config(), load_config()
        assert first is not second
        assert first.index.extra_skip_dirs is not second.index.extra_skip_dirs


class TestEnvOverrides:
    def test_env_values(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_URL", "http://gpu-box:11434")
        monkeypatch.setenv("CHUNK_MAX_LINES", "80")
        monkeypatch.setenv("LOCALCTX_SKIP_DIRS", "data, logs,,")
        monkeypatch.setenv("WATCH_REINDEX_COOLDOWN_S", "2.5")

        assert OllamaConfig().base_url == "http://gpu-box:11434"
        assert ChunkingConfig().max_chunk_lines == 80
        assert IndexConfig().extra_skip_dirs == ["data", "logs"]
        assert WatcherConfig().cooldown_s == 2.5

    def test_unparseable_env_value(self, monkeypatch):
        monkeypatch.setenv("CHUNK_MAX_LINES", "lots")
        with pytest.raises(ConfigError):
            load_config()


class TestValidation:
    def test_overlap_not_below_max(self):
        with pytest.raises(ConfigError):
            ChunkingConfig(max_chunk_lines=50, min_chunk_lines=10, overlap_lines=50)

    def test_min_above_max(self):
        with pytest.raises(ConfigError):
            ChunkingConfig(max_chunk_lines=10, min_chunk_lines=11, overlap_lines=0)

    def test_watcher_threshold(self):
        with pytest.raises(ConfigError):
            WatcherConfig(burst_threshold=0)

    def test_negative_delay(self):
        with pytest.raises(ConfigError):
            WatcherConfig(debounce_ms=-1)

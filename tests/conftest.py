"""Shared pytest configuration and fixtures for all test suites."""

import hashlib
import re
from pathlib import Path

import pytest

from localctx.config import AppConfig, ChunkingConfig, IndexConfig, OllamaConfig, WatcherConfig
from localctx.errors import EmbeddingError

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Embedding provider double
# ---------------------------------------------------------------------------
class FakeEmbedder:
    """Deterministic hashed bag-of-words embedder that records every call.

    Any text containing ``fail_on`` raises EmbeddingError, which lets tests
    break a single file inside a batch.
    """

    def __init__(self, dim: int = 256, fail_on: str | None = None):
        self.dim = dim
        self.fail_on = fail_on
        self.calls = 0
        self.texts: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        self.texts.append(text)
        if self.fail_on and self.fail_on in text:
            raise EmbeddingError(f"refusing to embed text containing {self.fail_on!r}")
        vec = [0.0] * self.dim
        for word in re.findall(r"[a-z_]+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dim
            vec[bucket] += 1.0
        return vec


@pytest.fixture()
def embedder():
    return FakeEmbedder()


# ---------------------------------------------------------------------------
# Workspace + config
# ---------------------------------------------------------------------------
@pytest.fixture(scope="session")
def fixtures_dir():
    return FIXTURES_DIR


@pytest.fixture()
def workspace(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture()
def app_config():
    """Defaults with no environment influence."""
    return AppConfig(
        ollama=OllamaConfig(base_url="http://ollama.test", embed_model="test-embed", timeout_s=5),
        chunking=ChunkingConfig(max_chunk_lines=150, min_chunk_lines=20, overlap_lines=20),
        index=IndexConfig(index_dir=".local-context", extra_skip_dirs=[]),
        watcher=WatcherConfig(debounce_ms=50, burst_threshold=10, burst_delay_ms=10, cooldown_s=60),
    )


def write(root: Path, rel: str, content: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path

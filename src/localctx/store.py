"""Persisted chunk + embedding store with content-hash change detection."""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from .chunking import HierarchicalChunker, hash_content
from .config import IndexConfig
from .embedder import EmbeddingProvider
from .errors import IndexStoreError
from .models import Chunk, FileHashEntry, SearchResult

log = logging.getLogger("localctx.store")

SNAPSHOT_VERSION = 2
# Score given to chunks that have no usable embedding; always ranked last.
MISSING_EMBEDDING_SCORE = -1.0


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|), defined as 0.0 when either norm is zero."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"dimension mismatch: {va.shape} vs {vb.shape}")
    na = float(np.dot(va, va))
    nb = float(np.dot(vb, vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    score = float(np.dot(va, vb) / np.sqrt(na * nb))
    if not np.isfinite(score):
        return 0.0
    return max(-1.0, min(1.0, score))


class IndexStore:
    """Chunks and file hashes for one workspace, persisted as a JSON snapshot.

    Invariant: a path has chunks if and only if it has a hash entry.
    """

    def __init__(
        self,
        index_path: Path,
        embedder: EmbeddingProvider,
        chunker: Optional[HierarchicalChunker] = None,
    ):
        self.index_path = Path(index_path)
        self.embedder = embedder
        self.chunker = chunker or HierarchicalChunker()
        self._by_file: dict[str, list[Chunk]] = {}
        self._hashes: dict[str, FileHashEntry] = {}

    @classmethod
    def for_workspace(
        cls,
        workspace: Path,
        embedder: EmbeddingProvider,
        chunker: Optional[HierarchicalChunker] = None,
        index_cfg: Optional[IndexConfig] = None,
    ) -> "IndexStore":
        cfg = index_cfg or IndexConfig()
        return cls(Path(workspace) / cfg.index_dir / cfg.index_file, embedder, chunker)

    # ── Introspection ─────────────────────────────────────

    @property
    def chunks(self) -> list[Chunk]:
        return [c for chunks in self._by_file.values() for c in chunks]

    @property
    def file_hashes(self) -> dict[str, FileHashEntry]:
        return dict(self._hashes)

    def chunks_for(self, path: str) -> list[Chunk]:
        return list(self._by_file.get(path, []))

    def get_hash(self, path: str) -> Optional[str]:
        entry = self._hashes.get(path)
        return entry.content_hash if entry else None

    def __len__(self) -> int:
        return sum(len(chunks) for chunks in self._by_file.values())

    def verify(self) -> set[str]:
        """Paths that break the hash-map / chunk-path equality invariant."""
        return set(self._hashes) ^ set(self._by_file)

    def _check_consistency(self):
        broken = self.verify()
        if broken:
            log.error("Index inconsistent for %d path(s): %s", len(broken), sorted(broken)[:5])

    # ── Persistence ───────────────────────────────────────

    def load(self) -> None:
        """Read the snapshot; a missing or unreadable file leaves an empty store."""
        self._by_file, self._hashes = {}, {}
        try:
            raw = self.index_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.info("No existing index at %s, starting fresh", self.index_path)
            return
        except OSError as e:
            log.warning("Cannot read index %s, starting fresh: %s", self.index_path, e)
            return

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            log.warning("Corrupt index %s, starting fresh: %s", self.index_path, e)
            return
        if not isinstance(data, dict):
            log.warning("Unexpected index document in %s, starting fresh", self.index_path)
            return

        version = data.get("version")
        if version != SNAPSHOT_VERSION:
            log.info("Index format version %r (current %d), reading what parses", version, SNAPSHOT_VERSION)

        chunks, damaged = self._parse_chunks(data.get("chunks"))
        hashes = self._parse_hashes(data.get("fileHashes"), data.get("indexedAt"))

        for chunk in chunks:
            self._by_file.setdefault(chunk.file_path, []).append(chunk)
        for path in self._by_file:
            # Unknown hash or partly lost chunk set: keep the chunks searchable, re-embed on next add_file.
            entry = None if path in damaged else hashes.get(path)
            self._hashes[path] = entry or FileHashEntry(path, "", 0.0)
        dropped = len(set(hashes) - set(self._by_file))
        if dropped:
            log.warning("Dropped %d hash entries with no chunks; those files will be re-indexed", dropped)

        log.info("Loaded %d chunks (%d files) from %s", len(chunks), len(self._hashes), self.index_path)

    @staticmethod
    def _parse_chunks(raw) -> tuple[list[Chunk], set[str]]:
        """Parse chunk entries, skipping bad ones. Also returns the paths named by bad entries."""
        if not isinstance(raw, list):
            if raw is not None:
                log.warning("Ignoring malformed 'chunks' field in index")
            return [], set()
        chunks: list[Chunk] = []
        damaged: set[str] = set()
        bad = 0
        for item in raw:
            try:
                chunks.append(Chunk.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError):
                bad += 1
                path = item.get("filePath") if isinstance(item, dict) else None
                if isinstance(path, str):
                    damaged.add(path)
        if bad:
            log.warning("Skipped %d malformed chunk entries", bad)
        return chunks, damaged

    @staticmethod
    def _parse_hashes(raw, indexed_at) -> dict[str, FileHashEntry]:
        if not isinstance(raw, dict):
            if raw is not None:
                log.warning("Ignoring malformed 'fileHashes' field in index")
            return {}
        times = indexed_at if isinstance(indexed_at, dict) else {}
        hashes: dict[str, FileHashEntry] = {}
        for path, digest in raw.items():
            if not isinstance(path, str) or not isinstance(digest, str):
                continue
            ts = times.get(path)
            hashes[path] = FileHashEntry(path, digest, float(ts) if isinstance(ts, (int, float)) else 0.0)
        return hashes

    def save(self) -> None:
        """Write the snapshot atomically, creating parent directories as needed."""
        data = {
            "version": SNAPSHOT_VERSION,
            "chunks": [c.to_dict() for c in self.chunks],
            "fileHashes": {p: e.content_hash for p, e in self._hashes.items()},
            "indexedAt": {p: e.indexed_at for p, e in self._hashes.items()},
        }
        tmp = self.index_path.with_name(self.index_path.name + ".tmp")
        try:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data), encoding="utf-8")
            os.replace(tmp, self.index_path)
        except OSError as e:
            raise IndexStoreError(f"Cannot write index {self.index_path}: {e}") from e
        log.info("Saved %d chunks (%d files) to %s", len(self), len(self._hashes), self.index_path)

    # ── Mutation ──────────────────────────────────────────

    async def add_file(self, path: str, content: str) -> bool:
        """Chunk, embed and store ``path``. Returns False when the content is unchanged.

        The old chunks are replaced in one step after every new chunk is
        embedded, so searches never see the file half-indexed. If embedding
        fails the previous chunks and hash stay in place.
        """
        new_hash = hash_content(content)
        if self.get_hash(path) == new_hash:
            log.debug("Unchanged, skipping %s", path)
            return False

        chunks = self.chunker.create_chunks(content, path)
        for chunk in chunks:
            chunk.embedding = list(await self.embedder.embed(chunk.embedding_text()))

        self._by_file.pop(path, None)
        self._hashes.pop(path, None)
        if chunks:
            self._by_file[path] = chunks
            self._hashes[path] = FileHashEntry(path, new_hash)
        self._check_consistency()
        log.debug("Indexed %s (%d chunks)", path, len(chunks))
        return True

    def remove_file(self, path: str) -> int:
        """Drop all chunks and the hash entry for ``path``; returns the number of chunks removed."""
        removed = self._by_file.pop(path, [])
        self._hashes.pop(path, None)
        self._check_consistency()
        return len(removed)

    def clear(self) -> None:
        self._by_file.clear()
        self._hashes.clear()

    # ── Query ─────────────────────────────────────────────

    async def search(self, query: str, top_k: int = 20) -> list[SearchResult]:
        """Rank every stored chunk by cosine similarity to the query embedding."""
        if top_k <= 0 or not self._by_file:
            return []

        q = np.asarray(await self.embedder.embed(query), dtype=np.float64)
        chunks = self.chunks

        usable = [i for i, c in enumerate(chunks) if c.embedding is not None and len(c.embedding) == q.shape[0]]
        scores = np.full(len(chunks), MISSING_EMBEDDING_SCORE)
        if usable:
            matrix = np.asarray([chunks[i].embedding for i in usable], dtype=np.float64)
            dots = matrix @ q
            denom = np.sqrt(np.einsum("ij,ij->i", matrix, matrix) * float(np.dot(q, q)))
            sims = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
            sims = np.clip(np.nan_to_num(sims, nan=0.0, posinf=0.0, neginf=0.0), -1.0, 1.0)
            scores[usable] = sims

        has_vector = np.zeros(len(chunks), dtype=bool)
        has_vector[usable] = True
        order = sorted(range(len(chunks)), key=lambda i: (has_vector[i], scores[i]), reverse=True)
        return [SearchResult(chunk=chunks[i], score=float(scores[i])) for i in order[:top_k]]

"""LocalContextService: lifecycle, batching and query surface for one workspace."""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Iterable, Optional

from .chunking import HierarchicalChunker
from .config import AppConfig, load_config
from .discovery import discover_files, read_text
from .embedder import EmbeddingProvider
from .models import FileChange, IndexingStats
from .scheduler import ChangeScheduler, SchedulerState
from .store import IndexStore
from .watcher import WorkspaceWatcher

log = logging.getLogger("localctx.service")


class LocalContextService:
    """Owns the index store of a workspace and serializes every mutation.

    All mutating operations take the same ``asyncio.Lock`` and save the
    snapshot once, after the whole batch. ``search`` does not take the lock;
    the store swaps a file's chunks in one step, so queries never see a
    half-indexed file.
    """

    def __init__(self, workspace: Path, store: IndexStore, config: Optional[AppConfig] = None):
        self.workspace = Path(workspace).resolve()
        self.store = store
        self.config = config or load_config()
        self._lock = asyncio.Lock()
        self._scheduler: Optional[ChangeScheduler] = None
        self._watcher: Optional[WorkspaceWatcher] = None

    @classmethod
    def create(
        cls,
        workspace: Path,
        embedder: EmbeddingProvider,
        config: Optional[AppConfig] = None,
    ) -> "LocalContextService":
        """Build the chunker and store from config and load any existing snapshot."""
        cfg = config or load_config()
        chunker = HierarchicalChunker.from_config(cfg.chunking)
        store = IndexStore.for_workspace(workspace, embedder, chunker, cfg.index)
        store.load()
        return cls(workspace, store, cfg)

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    @property
    def scheduler(self) -> Optional[ChangeScheduler]:
        return self._scheduler

    def _relative(self, path) -> str:
        p = Path(path)
        if not p.is_absolute():
            p = self.workspace / p
        return Path(os.path.normpath(p)).relative_to(self.workspace).as_posix()

    def _discover(self):
        return discover_files(
            self.workspace,
            self.config.chunking.max_file_size_kb,
            self.config.index.extra_skip_dirs,
            self.config.index.index_dir,
        )

    # ── Mutations ─────────────────────────────────────────

    async def _index_one(self, rel: str, stats: IndexingStats):
        abs_path = self.workspace / rel
        try:
            size = abs_path.stat().st_size
            if size > self.config.chunking.max_file_size_kb * 1024:
                log.debug("Skipping %s (%d bytes, over size limit)", rel, size)
                if self.store.remove_file(rel):
                    stats.files_removed += 1
                stats.files_skipped += 1
                return
            content = read_text(abs_path)
            if await self.store.add_file(rel, content):
                stats.files_indexed += 1
                stats.chunks_created += len(self.store.chunks_for(rel))
            else:
                stats.files_skipped += 1
        except FileNotFoundError:
            # Deleted between the event and the flush
            if self.store.remove_file(rel):
                stats.files_removed += 1
        except Exception as e:
            log.error("Failed to index %s: %s", rel, e)
            stats.files_failed += 1
            stats.errors[rel] = str(e)

    async def apply_batch(self, changed: Iterable, deleted: Iterable = ()) -> IndexingStats:
        """Remove ``deleted``, (re)index ``changed``, then save once.

        Each file is handled on its own; a failure is logged and counted in
        the returned stats without touching the rest of the batch.
        """
        stats = IndexingStats()
        t0 = time.monotonic()
        async with self._lock:
            for path in deleted:
                try:
                    rel = self._relative(path)
                except ValueError:
                    log.error("Ignoring path outside workspace: %s", path)
                    stats.files_failed += 1
                    continue
                if self.store.remove_file(rel):
                    stats.files_removed += 1

            for path in changed:
                try:
                    rel = self._relative(path)
                except ValueError:
                    log.error("Ignoring path outside workspace: %s", path)
                    stats.files_failed += 1
                    continue
                await self._index_one(rel, stats)

            if stats.files_indexed or stats.files_removed:
                self.store.save()

        stats.elapsed_seconds = round(time.monotonic() - t0, 3)
        log.info(
            "Batch done: %d indexed, %d unchanged, %d removed, %d failed in %.2fs",
            stats.files_indexed, stats.files_skipped, stats.files_removed,
            stats.files_failed, stats.elapsed_seconds,
        )
        return stats

    async def add_files(self, paths: Iterable) -> IndexingStats:
        return await self.apply_batch(paths, ())

    async def remove_files(self, paths: Iterable) -> IndexingStats:
        return await self.apply_batch((), paths)

    async def refresh(self) -> IndexingStats:
        """Incremental pass over the workspace: index new or changed files, drop vanished ones."""
        files = self._discover()
        found = {f.path for f in files}
        stale = [p for p in self.store.file_hashes if p not in found]
        return await self.apply_batch([f.path for f in files], stale)

    async def reindex_all(self) -> IndexingStats:
        """Drop everything and index every discoverable file from scratch."""
        stats = IndexingStats()
        t0 = time.monotonic()
        async with self._lock:
            files = self._discover()
            self.store.clear()
            for f in files:
                await self._index_one(f.path, stats)
            self.store.save()

        stats.elapsed_seconds = round(time.monotonic() - t0, 3)
        log.info(
            "Full reindex: %d files, %d chunks, %d failed in %.2fs",
            stats.files_indexed, stats.chunks_created, stats.files_failed, stats.elapsed_seconds,
        )
        return stats

    async def clear(self) -> None:
        async with self._lock:
            self.store.clear()
            self.store.save()
        log.info("Index cleared")

    # ── Queries ───────────────────────────────────────────

    async def search(self, query: str, top_k: int = 10) -> list[dict]:
        results = await self.store.search(query, top_k)
        return [
            {
                "path": r.chunk.file_path,
                "content": r.chunk.content,
                "score": r.score,
                "lines": f"{r.chunk.start_line}-{r.chunk.end_line}",
                "symbol": r.chunk.symbol_name,
                "level": r.chunk.level,
            }
            for r in results
        ]

    def status(self) -> dict:
        sched = self._scheduler
        return {
            "workspace": str(self.workspace),
            "index_path": str(self.store.index_path),
            "files": len(self.store.file_hashes),
            "chunks": len(self.store),
            "busy": self.is_busy,
            "watching": self._watcher is not None and self._watcher.is_running,
            "scheduler": sched.state.value if sched else None,
            "batches_run": sched.batches_run if sched else 0,
            "reindexes_run": sched.reindexes_run if sched else 0,
        }

    # ── Watching ──────────────────────────────────────────

    def start_watching(self) -> ChangeScheduler:
        """Start the filesystem watcher and the scheduler it feeds. Needs a running loop."""
        if self._scheduler is not None:
            return self._scheduler
        loop = asyncio.get_running_loop()
        self._scheduler = ChangeScheduler.from_config(self, self.config.watcher)
        self._watcher = WorkspaceWatcher(
            self.workspace,
            self._on_change,
            loop,
            self.config.index.index_dir,
            self.config.index.extra_skip_dirs,
        )
        self._watcher.start()
        return self._scheduler

    def _on_change(self, change: FileChange):
        if self._scheduler is None or self._scheduler.state is SchedulerState.SHUTTING_DOWN:
            return
        self._scheduler.notify(change)

    async def shutdown(self) -> None:
        """Stop watching and let any in-flight cycle finish and persist."""
        if self._watcher is not None:
            self._watcher.stop()
        if self._scheduler is not None:
            await self._scheduler.shutdown()
        self._watcher = None
        self._scheduler = None

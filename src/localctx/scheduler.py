"""Debounced change batching with deletion-burst, cooldown and busy policies.

The scheduler runs entirely on one asyncio loop. Watch sources call
``notify`` (from another thread via ``loop.call_soon_threadsafe``); timers
are ``loop.call_later`` handles and every index mutation happens inside a
single cycle lock, so batches and full reindexes never overlap.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Protocol

from .config import WatcherConfig
from .errors import SchedulerError
from .models import ChangeType, FileChange, IndexingStats

log = logging.getLogger("localctx.scheduler")


class SchedulerState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    INDEXING = "indexing"
    REINDEX_PENDING = "reindex_pending"
    REINDEXING = "reindexing"
    SHUTTING_DOWN = "shutting_down"


class IndexTarget(Protocol):
    """What the scheduler drives; implemented by ``LocalContextService``."""

    @property
    def is_busy(self) -> bool:
        ...

    async def apply_batch(self, changed: list[str], deleted: list[str]) -> IndexingStats:
        ...

    async def reindex_all(self) -> IndexingStats:
        ...


class ChangeScheduler:
    """Collapse file events into batches and decide when to rebuild everything.

    Deletions are applied per file and also counted; once counted they
    schedule a full reindex, after ``burst_delay_s`` when the count has
    reached ``burst_threshold`` and after ``debounce_s`` otherwise. A
    reindex never starts inside the cooldown that follows the previous one
    and is retried after ``busy_retry_s`` while the target is busy. The
    delete count only resets when a reindex actually starts.
    """

    def __init__(
        self,
        target: IndexTarget,
        *,
        debounce_s: float = 0.5,
        burst_threshold: int = 10,
        burst_delay_s: float = 0.25,
        cooldown_s: float = 60.0,
        busy_retry_s: float = 1.0,
    ):
        if burst_threshold < 1:
            raise SchedulerError(f"burst_threshold must be positive, got {burst_threshold}")
        self.target = target
        self.debounce_s = debounce_s
        self.burst_threshold = burst_threshold
        self.burst_delay_s = burst_delay_s
        self.cooldown_s = cooldown_s
        self.busy_retry_s = busy_retry_s

        self._pending: dict[str, ChangeType] = {}
        self._debounce: Optional[asyncio.TimerHandle] = None
        self._reindex: Optional[asyncio.TimerHandle] = None
        self._reindex_due: Optional[float] = None
        self._cooldown_until: Optional[float] = None
        self._delete_count = 0
        self._running: Optional[SchedulerState] = None
        self._closed = False
        self._cycle_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

        self.batches_run = 0
        self.reindexes_run = 0

    @classmethod
    def from_config(cls, target: IndexTarget, cfg: WatcherConfig) -> "ChangeScheduler":
        return cls(
            target,
            debounce_s=cfg.debounce_ms / 1000,
            burst_threshold=cfg.burst_threshold,
            burst_delay_s=cfg.burst_delay_ms / 1000,
            cooldown_s=cfg.cooldown_s,
            busy_retry_s=cfg.busy_retry_ms / 1000,
        )

    # ── Introspection ─────────────────────────────────────

    @property
    def state(self) -> SchedulerState:
        if self._closed:
            return SchedulerState.SHUTTING_DOWN
        if self._running is not None:
            return self._running
        if self._reindex is not None:
            return SchedulerState.REINDEX_PENDING
        if self._debounce is not None:
            return SchedulerState.DEBOUNCING
        return SchedulerState.IDLE

    @property
    def pending(self) -> dict[str, ChangeType]:
        return dict(self._pending)

    @property
    def delete_count(self) -> int:
        return self._delete_count

    # ── Event intake ──────────────────────────────────────

    def notify(self, change: FileChange) -> None:
        """Record one event and restart the debounce window. Must run on the loop thread."""
        if self._closed:
            raise SchedulerError("scheduler is shut down")
        # Later event for a path replaces the earlier one; an unlink therefore always wins.
        self._pending[change.path] = change.type
        loop = asyncio.get_running_loop()
        if self._debounce is not None:
            self._debounce.cancel()
        self._debounce = loop.call_later(self.debounce_s, self._on_debounce)

    def _on_debounce(self):
        self._debounce = None
        self._spawn(self._flush())

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ── Cycles ────────────────────────────────────────────

    async def _flush(self):
        async with self._cycle_lock:
            if self._closed or not self._pending:
                return
            batch, self._pending = self._pending, {}
            changed = [p for p, t in batch.items() if t is not ChangeType.UNLINK]
            deleted = [p for p, t in batch.items() if t is ChangeType.UNLINK]
            log.info("Flushing %d changed, %d deleted", len(changed), len(deleted))

            self._running = SchedulerState.INDEXING
            try:
                await self.target.apply_batch(changed, deleted)
            except Exception:
                log.exception("Batch update failed")
            finally:
                self._running = None
                self.batches_run += 1

        if deleted and not self._closed:
            self._delete_count += len(deleted)
            self._schedule_reindex()

    def _schedule_reindex(self):
        loop = asyncio.get_running_loop()
        burst = self._delete_count >= self.burst_threshold
        due = loop.time() + (self.burst_delay_s if burst else self.debounce_s)
        if self._cooldown_until is not None:
            due = max(due, self._cooldown_until)
        if self._reindex_due is not None and self._reindex_due <= due:
            return
        log.debug("Reindex scheduled in %.3fs (%d deletions, burst=%s)", due - loop.time(), self._delete_count, burst)
        self._arm_reindex(due)

    def _arm_reindex(self, due: float):
        loop = asyncio.get_running_loop()
        if self._reindex is not None:
            self._reindex.cancel()
        self._reindex_due = due
        self._reindex = loop.call_at(due, self._on_reindex_timer)

    def _on_reindex_timer(self):
        self._reindex = None
        self._reindex_due = None
        self._spawn(self._run_reindex())

    async def _run_reindex(self):
        if self._closed:
            return
        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._cooldown_until is not None and now < self._cooldown_until:
            log.info("Reindex deferred by cooldown (%.1fs left)", self._cooldown_until - now)
            self._arm_reindex(self._cooldown_until)
            return
        if self.target.is_busy or self._cycle_lock.locked():
            log.debug("Indexer busy, retrying reindex in %.3fs", self.busy_retry_s)
            self._arm_reindex(now + self.busy_retry_s)
            return

        async with self._cycle_lock:
            log.info("Full reindex starting (%d deletions since last)", self._delete_count)
            self._delete_count = 0
            self._running = SchedulerState.REINDEXING
            try:
                await self.target.reindex_all()
            except Exception:
                log.exception("Full reindex failed")
            finally:
                self._running = None
                self.reindexes_run += 1
                self._cooldown_until = loop.time() + self.cooldown_s

    # ── Shutdown ──────────────────────────────────────────

    async def shutdown(self) -> None:
        """Cancel timers, drop unflushed events and wait for the running cycle to finish."""
        if self._closed:
            return
        self._closed = True
        for handle in (self._debounce, self._reindex):
            if handle is not None:
                handle.cancel()
        self._debounce = self._reindex = None
        self._reindex_due = None
        if self._pending:
            log.info("Discarding %d unflushed change(s)", len(self._pending))
            self._pending.clear()
        if self._tasks:
            await asyncio.wait(list(self._tasks))
        log.info("Scheduler stopped")

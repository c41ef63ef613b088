"""Tests for change batching, deletion bursts, cooldown and busy deferral."""

import asyncio

import pytest

from localctx.config import WatcherConfig
from localctx.errors import SchedulerError
from localctx.models import ChangeType, FileChange, IndexingStats
from localctx.scheduler import ChangeScheduler, SchedulerState


class FakeTarget:
    """Records what the scheduler asks for, with loop timestamps."""

    def __init__(self):
        self.busy = False
        self.batches: list[tuple[list[str], list[str]]] = []
        self.batch_times: list[float] = []
        self.reindex_times: list[float] = []
        self.batch_gate: asyncio.Event | None = None
        self.batched = asyncio.Event()
        self.reindexed = asyncio.Event()

    @property
    def is_busy(self) -> bool:
        return self.busy

    async def apply_batch(self, changed, deleted):
        if self.batch_gate is not None:
            await self.batch_gate.wait()
        self.batches.append((sorted(changed), sorted(deleted)))
        self.batch_times.append(asyncio.get_running_loop().time())
        self.batched.set()
        return IndexingStats()

    async def reindex_all(self):
        self.reindex_times.append(asyncio.get_running_loop().time())
        self.reindexed.set()
        return IndexingStats()


def _unlinks(scheduler, count, prefix="gone"):
    for i in range(count):
        scheduler.notify(FileChange(ChangeType.UNLINK, f"{prefix}/{i}.py"))


async def _wait(event: asyncio.Event, timeout: float = 3.0):
    await asyncio.wait_for(event.wait(), timeout)
    event.clear()


class TestBatching:
    @pytest.mark.asyncio
    async def test_later_event_wins_per_path(self):
        target = FakeTarget()
        sched = ChangeScheduler(target, debounce_s=0.05, cooldown_s=0)
        sched.notify(FileChange(ChangeType.ADD, "a.py"))
        sched.notify(FileChange(ChangeType.CHANGE, "a.py"))
        sched.notify(FileChange(ChangeType.ADD, "b.py"))
        sched.notify(FileChange(ChangeType.UNLINK, "b.py"))
        assert sched.pending == {"a.py": ChangeType.CHANGE, "b.py": ChangeType.UNLINK}
        assert sched.state is SchedulerState.DEBOUNCING

        await _wait(target.batched)
        assert target.batches == [(["a.py"], ["b.py"])]
        await sched.shutdown()

    @pytest.mark.asyncio
    async def test_debounce_resets_on_new_events(self):
        target = FakeTarget()
        sched = ChangeScheduler(target, debounce_s=0.1, cooldown_s=0)
        for name in ("a.py", "b.py", "c.py"):
            sched.notify(FileChange(ChangeType.CHANGE, name))
            await asyncio.sleep(0.05)
        assert target.batches == []

        await _wait(target.batched)
        assert target.batches == [(["a.py", "b.py", "c.py"], [])]
        await sched.shutdown()

    @pytest.mark.asyncio
    async def test_changes_only_never_reindex(self):
        target = FakeTarget()
        sched = ChangeScheduler(target, debounce_s=0.02, cooldown_s=0)
        sched.notify(FileChange(ChangeType.CHANGE, "a.py"))
        await _wait(target.batched)
        await asyncio.sleep(0.1)
        assert target.reindex_times == []
        assert sched.state is SchedulerState.IDLE
        await sched.shutdown()


class TestDeletionBurst:
    @pytest.mark.asyncio
    async def test_burst_uses_short_delay(self):
        target = FakeTarget()
        sched = ChangeScheduler(target, debounce_s=0.3, burst_threshold=10, burst_delay_s=0.02, cooldown_s=5)
        _unlinks(sched, 12)

        await _wait(target.batched)
        assert len(target.batches[0][1]) == 12
        await _wait(target.reindexed)
        assert target.reindex_times[0] - target.batch_times[0] < sched.debounce_s
        assert sched.delete_count == 0
        await sched.shutdown()

    @pytest.mark.asyncio
    async def test_below_threshold_waits_debounce(self):
        target = FakeTarget()
        sched = ChangeScheduler(target, debounce_s=0.1, burst_threshold=10, burst_delay_s=0.01, cooldown_s=5)
        _unlinks(sched, 3)

        await _wait(target.batched)
        assert sched.state is SchedulerState.REINDEX_PENDING
        await _wait(target.reindexed)
        assert target.reindex_times[0] - target.batch_times[0] >= sched.debounce_s - 0.01
        await sched.shutdown()

    @pytest.mark.asyncio
    async def test_second_burst_waits_for_cooldown(self):
        target = FakeTarget()
        sched = ChangeScheduler(target, debounce_s=0.02, burst_threshold=10, burst_delay_s=0.01, cooldown_s=0.5)
        _unlinks(sched, 12, "first")
        await _wait(target.batched)
        await _wait(target.reindexed)

        _unlinks(sched, 12, "second")
        await _wait(target.batched)
        await asyncio.sleep(0.1)
        assert len(target.reindex_times) == 1
        assert sched.delete_count == 12
        assert sched.state is SchedulerState.REINDEX_PENDING

        await _wait(target.reindexed)
        assert target.reindex_times[1] - target.reindex_times[0] >= 0.5 - 0.01
        assert sched.delete_count == 0
        await sched.shutdown()

    @pytest.mark.asyncio
    async def test_busy_target_defers_reindex(self):
        target = FakeTarget()
        target.busy = True
        sched = ChangeScheduler(
            target, debounce_s=0.02, burst_threshold=2, burst_delay_s=0.01, cooldown_s=0, busy_retry_s=0.05,
        )
        _unlinks(sched, 3)
        await _wait(target.batched)
        await asyncio.sleep(0.15)
        assert target.reindex_times == []
        assert sched.delete_count == 3

        target.busy = False
        await _wait(target.reindexed)
        assert len(target.reindex_times) == 1
        await sched.shutdown()


class TestShutdown:
    @pytest.mark.asyncio
    async def test_pending_events_are_dropped(self):
        target = FakeTarget()
        sched = ChangeScheduler(target, debounce_s=0.05)
        sched.notify(FileChange(ChangeType.CHANGE, "a.py"))
        await sched.shutdown()
        await asyncio.sleep(0.1)

        assert target.batches == []
        assert sched.state is SchedulerState.SHUTTING_DOWN
        with pytest.raises(SchedulerError):
            sched.notify(FileChange(ChangeType.CHANGE, "b.py"))

    @pytest.mark.asyncio
    async def test_waits_for_running_batch(self):
        target = FakeTarget()
        target.batch_gate = asyncio.Event()
        sched = ChangeScheduler(target, debounce_s=0.01)
        sched.notify(FileChange(ChangeType.CHANGE, "a.py"))
        await asyncio.sleep(0.05)
        assert sched.state is SchedulerState.INDEXING

        stopping = asyncio.create_task(sched.shutdown())
        await asyncio.sleep(0.02)
        assert not stopping.done()

        target.batch_gate.set()
        await asyncio.wait_for(stopping, 2)
        assert target.batches == [(["a.py"], [])]

    @pytest.mark.asyncio
    async def test_pending_reindex_is_cancelled(self):
        target = FakeTarget()
        sched = ChangeScheduler(target, debounce_s=0.01, burst_threshold=1, burst_delay_s=0.2, cooldown_s=0)
        _unlinks(sched, 1)
        await _wait(target.batched)
        await sched.shutdown()
        await asyncio.sleep(0.3)
        assert target.reindex_times == []

    @pytest.mark.asyncio
    async def test_batch_finishing_after_shutdown_arms_no_reindex(self):
        target = FakeTarget()
        target.batch_gate = asyncio.Event()
        sched = ChangeScheduler(target, debounce_s=0.01, burst_threshold=1, burst_delay_s=0.05, cooldown_s=0)
        _unlinks(sched, 1)
        while sched.state is not SchedulerState.INDEXING:
            await asyncio.sleep(0.01)

        stopping = asyncio.create_task(sched.shutdown())
        await asyncio.sleep(0.01)
        target.batch_gate.set()
        await stopping

        assert target.batches == [([], ["gone/0.py"])]
        assert sched.batches_run == 1
        assert sched._reindex is None
        assert sched.delete_count == 0
        await asyncio.sleep(0.1)
        assert target.reindex_times == []


class TestFromConfig:
    def test_millisecond_fields_become_seconds(self):
        cfg = WatcherConfig(debounce_ms=500, burst_threshold=7, burst_delay_ms=250, cooldown_s=30, busy_retry_ms=1000)
        sched = ChangeScheduler.from_config(FakeTarget(), cfg)
        assert (sched.debounce_s, sched.burst_threshold, sched.burst_delay_s) == (0.5, 7, 0.25)
        assert (sched.cooldown_s, sched.busy_retry_s) == (30, 1.0)
        assert sched.state is SchedulerState.IDLE

    def test_invalid_threshold(self):
        with pytest.raises(SchedulerError):
            ChangeScheduler(FakeTarget(), burst_threshold=0)

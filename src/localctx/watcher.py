"""Filesystem watch source built on watchdog."""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .discovery import is_indexable
from .models import ChangeType, FileChange

log = logging.getLogger("localctx.watcher")


class WorkspaceEventHandler(FileSystemEventHandler):
    """Translate watchdog events into workspace-relative ``FileChange`` objects.

    Runs on the observer thread; ``emit`` is responsible for getting the
    change back onto the event loop.
    """

    def __init__(
        self,
        root: Path,
        emit: Callable[[FileChange], None],
        index_dir: str = ".local-context",
        extra_skip_dirs: Iterable[str] = (),
    ):
        super().__init__()
        self.root = Path(root).resolve()
        self.emit = emit
        self.index_dir = index_dir
        self.extra_skip_dirs = tuple(extra_skip_dirs)

    def _relative(self, path) -> Optional[str]:
        if isinstance(path, bytes):
            path = path.decode("utf-8", errors="replace")
        try:
            rel = Path(path).resolve().relative_to(self.root).as_posix()
        except ValueError:
            return None
        if not is_indexable(rel, self.index_dir, self.extra_skip_dirs):
            return None
        return rel

    def _emit(self, change_type: ChangeType, path):
        rel = self._relative(path)
        if rel is not None:
            self.emit(FileChange(change_type, rel))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(ChangeType.ADD, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(ChangeType.CHANGE, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(ChangeType.UNLINK, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(ChangeType.UNLINK, event.src_path)
            self._emit(ChangeType.ADD, event.dest_path)


class WorkspaceWatcher:
    """Recursive watchdog observer feeding a callback on the asyncio loop."""

    def __init__(
        self,
        root: Path,
        on_change: Callable[[FileChange], None],
        loop: asyncio.AbstractEventLoop,
        index_dir: str = ".local-context",
        extra_skip_dirs: Iterable[str] = (),
    ):
        self.root = Path(root)
        self.on_change = on_change
        self.loop = loop
        self.handler = WorkspaceEventHandler(self.root, self._dispatch, index_dir, extra_skip_dirs)
        self._observer: Optional[Observer] = None

    def _dispatch(self, change: FileChange):
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self._deliver, change)

    def _deliver(self, change: FileChange):
        log.debug("%s %s", change.type.value, change.path)
        self.on_change(change)

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        if self._observer is not None:
            return
        self._observer = Observer()
        self._observer.schedule(self.handler, str(self.root), recursive=True)
        self._observer.daemon = True
        self._observer.start()
        log.info("Watching %s", self.root)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        log.info("Stopped watching %s", self.root)

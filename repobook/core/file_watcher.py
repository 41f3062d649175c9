"""
Repository File Watcher.

Features:
- Platform observers via watchdog (inotify/FSEvents/ReadDirectoryChangesW)
- One non-recursive watch per directory, skipping ignored and heavyweight
  directories (.git, node_modules, vendor)
- New directories are picked up as they appear, including deleted and
  recreated ones
- Observer-thread events are handed to the asyncio loop, translated into
  ChangeEvents and coalesced per batch
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from .errors import WatcherError
from .events import ChangeEvent
from .ignore import IgnoreMatcher
from .paths import HEAVY_DIRECTORIES, is_markdown_name


__all__ = ["FileWatcher", "RawEvent"]

logger = logging.getLogger(__name__)

CREATED = "created"
DELETED = "deleted"
MODIFIED = "modified"
RENAMED = "renamed"

EventCallback = Callable[[ChangeEvent], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RawEvent:
    """Filesystem notification as seen by the observer thread."""
    kind: str
    path: str
    is_dir: bool = False


class _QueueingHandler(FileSystemEventHandler):
    """
    Forwards watchdog events to an asyncio queue.

    Runs on the observer thread, so the only thing it touches on the loop
    side is ``call_soon_threadsafe``. Moves are split into a rename of the
    source and a creation of the destination.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
        super().__init__()
        self._loop = loop
        self._queue = queue

    def on_any_event(self, event: FileSystemEvent) -> None:
        src = os.fsdecode(event.src_path)
        if event.event_type == EVENT_TYPE_MOVED:
            self._push(RawEvent(RENAMED, src, event.is_directory))
            self._push(RawEvent(CREATED, os.fsdecode(event.dest_path), event.is_directory))
        elif event.event_type == EVENT_TYPE_CREATED:
            self._push(RawEvent(CREATED, src, event.is_directory))
        elif event.event_type == EVENT_TYPE_DELETED:
            self._push(RawEvent(DELETED, src, event.is_directory))
        elif event.event_type == EVENT_TYPE_MODIFIED:
            self._push(RawEvent(MODIFIED, src, event.is_directory))

    def _push(self, raw: RawEvent) -> None:
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, raw)
        except RuntimeError:
            logger.debug("Event loop closed, dropping %s", raw)


class FileWatcher:
    """
    Watches a repository and reports ChangeEvents to an async callback.

    Lifecycle:
        watcher = FileWatcher(root, ignore, hub.broadcast)
        await watcher.start()
        ...
        await watcher.stop()
    """

    def __init__(self, root: Path, ignore: IgnoreMatcher | None, on_event: EventCallback):
        """
        Args:
            root: Repository root
            ignore: Ignore rules shared with the rest of the server
            on_event: Awaited once per coalesced ChangeEvent
        """
        self.root = Path(root).absolute()
        self.ignore = ignore or IgnoreMatcher()
        self.on_event = on_event

        self._observer = Observer()
        self._watches: dict[str, ObservedWatch] = {}
        self._watch_lock = threading.Lock()

        self._queue: asyncio.Queue[RawEvent] | None = None
        self._shutdown: asyncio.Event | None = None
        self._handler: _QueueingHandler | None = None
        self._task: asyncio.Task | None = None
        self._stopped = False

    @property
    def watched_directories(self) -> list[str]:
        with self._watch_lock:
            return sorted(self._watches)

    async def start(self) -> None:
        """
        Start the event loop task and the observer, then arm the initial
        watch set.

        Raises:
            WatcherError: the initial directory walk failed
        """
        if self._task is not None:
            return

        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._shutdown = asyncio.Event()
        self._handler = _QueueingHandler(loop, self._queue)
        self._task = loop.create_task(self._run(), name="repobook-watcher")

        # Observer first: nothing created during the walk is missed.
        self._observer.start()
        try:
            count = await asyncio.to_thread(self._watch_tree, str(self.root), True)
        except OSError as e:
            await self.stop()
            raise WatcherError(f"cannot watch {self.root}: {e}") from e

        logger.info("File watcher started: %s (%d directories)", self.root, count)

    async def stop(self) -> None:
        """Stop the observer and the loop task; safe to call repeatedly."""
        if self._stopped:
            return
        self._stopped = True

        if self._shutdown is not None:
            self._shutdown.set()

        if self._observer.is_alive():
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5.0)

        if self._task is not None:
            await self._task
        logger.info("File watcher stopped")

    async def _run(self) -> None:
        assert self._queue is not None and self._shutdown is not None
        stop_waiter = asyncio.ensure_future(self._shutdown.wait())
        try:
            while not self._shutdown.is_set():
                getter = asyncio.ensure_future(self._queue.get())
                done, _ = await asyncio.wait(
                    {getter, stop_waiter}, return_when=asyncio.FIRST_COMPLETED,
                )
                if getter not in done:
                    getter.cancel()
                    break

                batch = [getter.result()]
                while True:
                    try:
                        batch.append(self._queue.get_nowait())
                    except asyncio.QueueEmpty:
                        break
                await self._dispatch(batch)
        finally:
            stop_waiter.cancel()

    async def _dispatch(self, batch: list[RawEvent]) -> None:
        """Translate a batch, drop duplicates, deliver in first-seen order."""
        seen: set[ChangeEvent] = set()
        ordered: list[ChangeEvent] = []
        for raw in batch:
            try:
                events = self.classify(raw)
                if events and raw.kind == CREATED and raw.is_dir:
                    # New subtrees can be large; walk them off the loop.
                    await asyncio.to_thread(self._watch_tree, raw.path)
            except Exception as e:
                logger.warning("Failed to handle %s: %s", raw, e)
                continue
            for event in events:
                if event not in seen:
                    seen.add(event)
                    ordered.append(event)

        for event in ordered:
            try:
                await self.on_event(event)
            except Exception as e:
                logger.warning("Change callback failed for %s: %s", event, e)

    def classify(self, raw: RawEvent) -> list[ChangeEvent]:
        """
        Map one raw event to the ChangeEvents it implies.

        Removed directories are unwatched here; watches for created ones are
        armed by the caller when this returns events for them.
        """
        rel = self._relative(raw.path)
        if not rel:
            return []
        name = rel.rsplit("/", 1)[-1]

        if raw.kind == CREATED and raw.is_dir:
            if name in HEAVY_DIRECTORIES or self.ignore.is_ignored(rel, is_dir=True):
                return []
            return [ChangeEvent.tree_updated()]

        if raw.is_dir and raw.kind in (DELETED, RENAMED):
            self._unwatch_tree(raw.path)

        if self.ignore.is_ignored(rel, is_dir=raw.is_dir):
            return []

        if not raw.is_dir and is_markdown_name(name):
            events = [ChangeEvent.file_changed(rel)]
            if raw.kind in (CREATED, DELETED, RENAMED):
                events.append(ChangeEvent.tree_updated())
            return events

        if raw.kind in (DELETED, RENAMED) and name.lower().endswith(".md"):
            return [ChangeEvent.tree_updated()]
        return []

    def _relative(self, path: str) -> str:
        rel = Path(os.path.relpath(path, self.root)).as_posix()
        if rel == "." or rel == ".." or rel.startswith("../"):
            return ""
        return rel

    def _should_watch(self, path: str) -> bool:
        if os.path.basename(path) in HEAVY_DIRECTORIES:
            return False
        rel = self._relative(path)
        return not (rel and self.ignore.is_ignored(rel, is_dir=True))

    def _watch_tree(self, top: str, strict: bool = False) -> int:
        """
        Arm a non-recursive watch on ``top`` and every eligible directory
        below it. Returns the number of directories scheduled.

        With ``strict`` any OSError propagates; otherwise it is logged.
        """
        def onerror(e: OSError) -> None:
            if strict:
                raise e
            logger.warning("Cannot list %s: %s", e.filename, e)

        count = 0
        for dirpath, dirnames, _ in os.walk(top, onerror=onerror):
            dirnames[:] = sorted(d for d in dirnames if self._should_watch(os.path.join(dirpath, d)))
            try:
                self._schedule(dirpath)
                count += 1
            except OSError as e:
                if strict:
                    raise
                logger.warning("Cannot watch %s: %s", dirpath, e)
        return count

    def _schedule(self, path: str) -> None:
        assert self._handler is not None
        with self._watch_lock:
            previous = self._watches.pop(path, None)
            if previous is not None:
                self._unschedule(previous)
            self._watches[path] = self._observer.schedule(self._handler, path, recursive=False)

    def _unwatch_tree(self, top: str) -> None:
        prefix = top.rstrip(os.sep) + os.sep
        with self._watch_lock:
            for path in [p for p in self._watches if p == top or p.startswith(prefix)]:
                self._unschedule(self._watches.pop(path))

    def _unschedule(self, watch: ObservedWatch) -> None:
        try:
            self._observer.unschedule(watch)
        except (KeyError, OSError) as e:
            logger.debug("Unschedule of %s failed: %s", watch.path, e)

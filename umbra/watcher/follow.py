"""Run a sync pass after every burst of workspace changes."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

# Repository metadata churns on every sync; reacting to it would loop forever.
_IGNORE_PARTS = {".hg"}


def _should_ignore(path: str) -> bool:
    return any(part in _IGNORE_PARTS for part in Path(path).parts)


class _BurstHandler(FileSystemEventHandler):
    """Collects changed paths and remembers when the last one arrived."""

    def __init__(self, lock: threading.Lock, pending: set[str], wakeup: threading.Event) -> None:
        super().__init__()
        self._lock = lock
        self._pending = pending
        self._wakeup = wakeup
        self.last_event = 0.0

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        src = str(event.src_path)
        if _should_ignore(src):
            return
        with self._lock:
            self._pending.add(src)
            self.last_event = time.monotonic()
        self._wakeup.set()


class FollowWatcher:
    """Watches a workspace with watchdog and reports debounced bursts of changes."""

    def __init__(self, root: Path, debounce_seconds: float = 2.0) -> None:
        self._root = Path(root).resolve()
        self._debounce = debounce_seconds
        self._lock = threading.Lock()
        self._pending: set[str] = set()
        self._wakeup = threading.Event()
        self._handler = _BurstHandler(self._lock, self._pending, self._wakeup)
        self._observer: Observer | None = None

    def start(self) -> None:
        if self._observer is not None:
            return
        self._observer = Observer()
        self._observer.schedule(self._handler, str(self._root), recursive=True)
        self._observer.start()
        logger.info("Following changes in %s", self._root)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.info("Stopped following %s", self._root)

    def wait_for_burst(self, timeout: float | None = None) -> set[str]:
        """Block until changes arrive and then stay quiet for the debounce window.

        Returns the changed absolute paths, or an empty set if *timeout*
        elapsed with no changes.
        """
        if not self._wakeup.wait(timeout):
            return set()
        while True:
            with self._lock:
                quiet_for = time.monotonic() - self._handler.last_event
            if quiet_for >= self._debounce:
                break
            time.sleep(self._debounce - quiet_for)

        with self._lock:
            paths = set(self._pending)
            self._pending.clear()
            self._wakeup.clear()
        return paths


def follow_changes(
    watcher: FollowWatcher,
    run_pass: Callable[[set[str]], None],
    max_passes: int | None = None,
    idle_timeout: float | None = None,
) -> int:
    """Call *run_pass* after each burst; return the number of passes run.

    Stops after *max_passes* passes, or once no change arrives within
    *idle_timeout* seconds. With neither set, runs until interrupted.
    """
    passes = 0
    watcher.start()
    try:
        while max_passes is None or passes < max_passes:
            paths = watcher.wait_for_burst(idle_timeout)
            if not paths:
                if idle_timeout is not None:
                    break
                continue
            logger.info("Detected %d changed files, syncing", len(paths))
            run_pass(paths)
            passes += 1
    finally:
        watcher.stop()
    return passes

"""System-wide lock serializing umbra invocations."""

from __future__ import annotations

import fcntl
import logging
import os
import time
from pathlib import Path
from typing import IO

from umbra.errors import LockTimeoutError

logger = logging.getLogger(__name__)


class SystemLock:
    """Exclusive advisory lock on a file under the shadow directory.

    Acquisition polls a non-blocking flock until ``wait_seconds`` have passed.
    The lock file itself is left in place; only the flock matters.

    Usage:
        with SystemLock(Path("~/.umbra/lockfile").expanduser()):
            ...
    """

    def __init__(self, path: Path, wait_seconds: float = 60.0, poll_interval: float = 0.1) -> None:
        self.path = Path(path)
        self.wait_seconds = wait_seconds
        self.poll_interval = poll_interval
        self._handle: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        if self._handle is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a+")
        deadline = time.monotonic() + self.wait_seconds
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    handle.close()
                    raise LockTimeoutError(str(self.path), self.wait_seconds)
                time.sleep(self.poll_interval)

        handle.seek(0)
        handle.truncate()
        handle.write(f"pid={os.getpid()}\n")
        handle.flush()
        self._handle = handle
        logger.debug("Acquired lock %s", self.path)

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None
        logger.debug("Released lock %s", self.path)

    def __enter__(self) -> SystemLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

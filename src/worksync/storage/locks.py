"""Per-file read/write locks.

This module provides:
- ReadWriteLock: Reentrant read/write lock with acquisition timeouts
- FileLockRegistry: One shared ReadWriteLock per normalized path

Locks only coordinate threads of this process. There is no cross-file
ordering, so callers must not hold one file's lock while waiting on
another's.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from worksync.core.types import LockTimeoutError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Reentrant read/write lock.

    Any number of readers, or one writer. The writing thread may take the
    write lock again and may also take read locks. Waiting writers block
    new readers so a busy file cannot starve a writer.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._cond = threading.Condition(threading.Lock())
        self._readers: dict[int, int] = {}  # thread id -> hold count
        self._writer: int | None = None
        self._write_count = 0
        self._waiting_writers = 0
        self.last_used = time.monotonic()

    def _deadline(self, timeout: float | None) -> float | None:
        return None if timeout is None else time.monotonic() + timeout

    def _wait(self, deadline: float | None, timeout: float | None) -> None:
        if deadline is None:
            self._cond.wait()
            return
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not self._cond.wait(remaining):
            raise LockTimeoutError(self.name, timeout or 0.0)

    def acquire_read(self, timeout: float | None = None) -> None:
        me = threading.get_ident()
        deadline = self._deadline(timeout)
        with self._cond:
            if self._writer == me or me in self._readers:
                self._readers[me] = self._readers.get(me, 0) + 1
                return
            while self._writer is not None or self._waiting_writers:
                self._wait(deadline, timeout)
            self._readers[me] = 1
            self.last_used = time.monotonic()

    def release_read(self) -> None:
        me = threading.get_ident()
        with self._cond:
            count = self._readers.get(me)
            if not count:
                raise RuntimeError(f"Read lock on {self.name} released without being held")
            if count == 1:
                del self._readers[me]
                self._cond.notify_all()
            else:
                self._readers[me] = count - 1

    def acquire_write(self, timeout: float | None = None) -> None:
        me = threading.get_ident()
        deadline = self._deadline(timeout)
        with self._cond:
            if self._writer == me:
                self._write_count += 1
                return
            if me in self._readers:
                raise RuntimeError(f"Cannot upgrade read lock to write lock on {self.name}")
            self._waiting_writers += 1
            try:
                while self._writer is not None or self._readers:
                    self._wait(deadline, timeout)
            finally:
                self._waiting_writers -= 1
                self._cond.notify_all()
            self._writer = me
            self._write_count = 1
            self.last_used = time.monotonic()

    def release_write(self) -> None:
        with self._cond:
            if self._writer != threading.get_ident():
                raise RuntimeError(f"Write lock on {self.name} released by non-owner")
            self._write_count -= 1
            if self._write_count == 0:
                self._writer = None
                self._cond.notify_all()

    @property
    def is_idle(self) -> bool:
        with self._cond:
            return self._writer is None and not self._readers and not self._waiting_writers

    @contextmanager
    def read_locked(self, timeout: float | None = None) -> Iterator[None]:
        self.acquire_read(timeout)
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self, timeout: float | None = None) -> Iterator[None]:
        self.acquire_write(timeout)
        try:
            yield
        finally:
            self.release_write()


def normalize_path(path: Path | str) -> str:
    """Key used to share one lock between spellings of the same path."""
    return os.path.normcase(os.path.abspath(os.fspath(path)))


class FileLockRegistry:
    """Lazily created locks, one per normalized file path."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._locks: dict[str, ReadWriteLock] = {}

    def get(self, path: Path | str) -> ReadWriteLock:
        key = normalize_path(path)
        with self._lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = ReadWriteLock(key)
                self._locks[key] = lock
            lock.last_used = time.monotonic()
            return lock

    def prune(self, idle_for: float = 3600.0) -> int:
        """Drop locks nobody holds and nobody used recently.

        Returns:
            Number of locks removed.
        """
        cutoff = time.monotonic() - idle_for
        with self._lock:
            stale = [
                key
                for key, lock in self._locks.items()
                if lock.is_idle and lock.last_used < cutoff
            ]
            for key in stale:
                del self._locks[key]
        if stale:
            logger.debug("Pruned %d idle file locks", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._locks)

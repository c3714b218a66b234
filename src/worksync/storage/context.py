"""Shared state of the storage layer.

This module provides:
- NetworkState: Cached network availability with transition logging
- StorageContext: Locks, network state, sync registry and executors

A StorageContext is created once per application and handed to every
service. Its executors live until close() is called.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from worksync.storage.locks import FileLockRegistry
from worksync.storage.status import SyncStatusRegistry

if TYPE_CHECKING:
    from collections.abc import Iterable

    from worksync.core.config import StorageConfig

logger = logging.getLogger(__name__)

NetworkListener = Callable[[bool], None]


class NetworkState:
    """Cached availability of the network root.

    Transitions are logged once and delivered to listeners.
    """

    def __init__(self, available: bool = False) -> None:
        self._lock = threading.Lock()
        self._available = available
        self._last_checked: float | None = None
        self._listeners: list[NetworkListener] = []

    @property
    def available(self) -> bool:
        with self._lock:
            return self._available

    @property
    def last_checked(self) -> float | None:
        """time.monotonic() of the last probe, or None if never probed."""
        with self._lock:
            return self._last_checked

    def is_stale(self, max_age: float) -> bool:
        with self._lock:
            return self._last_checked is None or time.monotonic() - self._last_checked > max_age

    def add_listener(self, listener: NetworkListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def mark_checked(self) -> None:
        with self._lock:
            self._last_checked = time.monotonic()

    def set_available(self, available: bool) -> bool:
        """Record a probe result.

        Returns:
            True if the availability changed.
        """
        with self._lock:
            self._last_checked = time.monotonic()
            changed = self._available != available
            self._available = available
            listeners = list(self._listeners) if changed else []

        if changed:
            if available:
                logger.info("Network storage became available")
            else:
                logger.warning("Network storage became unavailable, using local storage only")
        for listener in listeners:
            try:
                listener(available)
            except Exception:
                logger.exception("Network status listener failed")
        return changed


class StorageContext:
    """Process-wide state shared by the storage services.

    Attributes:
        config: Storage configuration.
        locks: Per-path read/write locks.
        network: Cached network availability.
        sync_statuses: Replication state per (source, target) pair.
    """

    def __init__(self, config: StorageConfig) -> None:
        self.config = config
        self.locks = FileLockRegistry()
        self.network = NetworkState()
        self.sync_statuses = SyncStatusRegistry()
        self._sync_executor = ThreadPoolExecutor(
            max_workers=config.sync_workers, thread_name_prefix="file-sync"
        )
        self._event_executor = ThreadPoolExecutor(
            max_workers=config.event_workers, thread_name_prefix="backup-event"
        )
        self._closed = False

    @property
    def sync_executor(self) -> ThreadPoolExecutor:
        return self._sync_executor

    @property
    def event_executor(self) -> ThreadPoolExecutor:
        return self._event_executor

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, pending: Iterable[Future] = (), timeout: float | None = None) -> int:
        """Stop the executors.

        Waits up to timeout seconds for the given futures, then cancels
        whatever has not started yet.

        Args:
            pending: Futures to wait for.
            timeout: Bounded wait (default: config.sync_shutdown_timeout).

        Returns:
            Number of futures still unfinished when the wait ended.
        """
        if self._closed:
            return 0
        self._closed = True
        timeout = self.config.sync_shutdown_timeout if timeout is None else timeout

        pending = list(pending)
        not_done: set[Future] = set()
        if pending:
            logger.info("Waiting up to %.0fs for %d file operations", timeout, len(pending))
            _, not_done = wait(pending, timeout=timeout)
            if not_done:
                logger.warning(
                    "%d file operations did not finish in time, cancelling", len(not_done)
                )

        self._sync_executor.shutdown(wait=not not_done, cancel_futures=True)
        # queued backups still run unless the wait already timed out
        self._event_executor.shutdown(wait=not not_done, cancel_futures=bool(not_done))
        logger.info("Storage context closed")
        return len(not_done)

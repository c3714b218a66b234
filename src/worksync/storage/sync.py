"""Replication between the local and network roots.

This module provides:
- SyncFilesService: Asynchronous one-way and bidirectional file sync with a retry sweep
- BidirectionalSyncResult: Direction taken by a bidirectional sync and its outcome

Copies never leave a half-written destination: the source is first
copied to a temporary file next to the destination, the destination is
saved to a transient ``.sync.bak`` and then atomically replaced. If the
replace fails the destination is restored from the transient backup.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from worksync.core.serialization import compute_file_hash
from worksync.core.types import FileOperationResult, FilePath, SyncDirection

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from worksync.storage.context import StorageContext
    from worksync.storage.events import FileEventPublisher
    from worksync.storage.status import SyncStatus

logger = logging.getLogger(__name__)

SYNC_BACKUP_SUFFIX = ".sync.bak"
BACKUP_DELETE_ATTEMPTS = 3
BACKUP_DELETE_DELAY = 0.1  # doubles per attempt


@dataclass(frozen=True)
class BidirectionalSyncResult:
    """Outcome of sync_bidirectional.

    Attributes:
        direction: Copy performed, NONE when the files were already identical.
        result: Outcome of the copy (or of the comparison).
    """

    direction: SyncDirection
    result: FileOperationResult

    @property
    def success(self) -> bool:
        return self.result.success


def files_identical(first: Path, second: Path) -> bool:
    """Compare two files by size, then by SHA-256."""
    if first.stat().st_size != second.stat().st_size:
        return False
    return compute_file_hash(first) == compute_file_hash(second)


def _delete_with_retry(path: Path) -> bool:
    """Delete a file, retrying briefly while another process holds it."""
    delay = BACKUP_DELETE_DELAY
    for attempt in range(1, BACKUP_DELETE_ATTEMPTS + 1):
        try:
            path.unlink(missing_ok=True)
            return True
        except OSError as e:
            if attempt == BACKUP_DELETE_ATTEMPTS:
                logger.warning(
                    "Could not delete transient backup %s after %d attempts: %s",
                    path,
                    BACKUP_DELETE_ATTEMPTS,
                    e,
                )
                return False
            time.sleep(delay)
            delay *= 2
    return False


class SyncFilesService:
    """Copy files between local and network storage.

    Each (source, target) pair has a SyncStatus in the context registry.
    Failed copies stay pending and are retried by retry_failed_syncs().

    Args:
        context: Shared storage state (locks, sync registry, executor).
        publisher: Receives a sync event after each copy.
        network_available: Callable reporting network reachability.
    """

    def __init__(
        self,
        context: StorageContext,
        publisher: FileEventPublisher | None = None,
        network_available: Callable[[], bool] | None = None,
    ) -> None:
        config = context.config
        self._context = context
        self._statuses = context.sync_statuses
        self._publisher = publisher
        self._network_available = network_available or (lambda: context.network.available)
        self._lock_timeout = config.lock_timeout
        self._max_retries = config.sync_max_retries
        self._retry_delay = config.sync_retry_delay
        self._max_retry_delay = config.sync_max_retry_delay
        self._futures_lock = threading.Lock()
        self._futures: set[Future] = set()

    # ----- async API -----

    def _submit(self, fn: Callable[..., object], *args: object) -> Future:
        future = self._context.sync_executor.submit(fn, *args)
        with self._futures_lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._futures_lock:
            self._futures.discard(future)

    def sync_to_network(self, local: FilePath, network: FilePath) -> Future[FileOperationResult]:
        """Copy a local file over its network mirror in the background."""
        return self._submit(self.sync_file_to_network, local, network)

    def sync_to_local(self, network: FilePath, local: FilePath) -> Future[FileOperationResult]:
        """Copy a network file over its local copy in the background."""
        return self._submit(self.sync_file_to_local, network, local)

    def sync_bidirectional(
        self, local: FilePath, network: FilePath
    ) -> Future[BidirectionalSyncResult]:
        """Reconcile a local file and its network mirror in the background."""
        return self._submit(self.sync_bidirectional_now, local, network)

    # ----- synchronous API -----

    def sync_file_to_network(self, local: FilePath, network: FilePath) -> FileOperationResult:
        if not local.is_local or not network.is_network:
            return FileOperationResult.failed(
                local.path,
                f"Invalid path types for sync: local={local.is_local}, network={network.is_network}",
            )
        return self._sync(local, network, SyncDirection.TO_NETWORK)

    def sync_file_to_local(self, network: FilePath, local: FilePath) -> FileOperationResult:
        if not network.is_network or not local.is_local:
            return FileOperationResult.failed(
                network.path,
                f"Invalid path types for sync: network={network.is_network}, local={local.is_local}",
            )
        return self._sync(network, local, SyncDirection.TO_LOCAL)

    def sync_bidirectional_now(
        self, local: FilePath, network: FilePath
    ) -> BidirectionalSyncResult:
        """Make both copies equal.

        A file present on one side only is copied to the other. When both
        exist, identical content (same size and hash) means no copy;
        otherwise the newer modification time wins and ties go to the
        local copy.
        """
        if not self._network_available():
            return BidirectionalSyncResult(
                SyncDirection.NONE,
                FileOperationResult.failed(local.path, "Network not available"),
            )

        local_exists = local.path.exists()
        network_exists = network.path.exists()
        if not local_exists and not network_exists:
            return BidirectionalSyncResult(
                SyncDirection.NONE,
                FileOperationResult.failed(local.path, "Neither local nor network file exists"),
            )
        if not network_exists:
            return BidirectionalSyncResult(
                SyncDirection.TO_NETWORK, self.sync_file_to_network(local, network)
            )
        if not local_exists:
            return BidirectionalSyncResult(
                SyncDirection.TO_LOCAL, self.sync_file_to_local(network, local)
            )

        try:
            if files_identical(local.path, network.path):
                logger.debug("Files already in sync: %s", local.name)
                return BidirectionalSyncResult(
                    SyncDirection.NONE, FileOperationResult.succeeded(local.path)
                )
            local_mtime = local.path.stat().st_mtime_ns
            network_mtime = network.path.stat().st_mtime_ns
        except OSError as e:
            logger.error("Failed to compare %s with %s: %s", local.path, network.path, e)
            return BidirectionalSyncResult(
                SyncDirection.NONE,
                FileOperationResult.failed(local.path, f"Failed to compare files: {e}", e),
            )

        if local_mtime >= network_mtime:
            logger.info("Local copy of %s is newer, syncing to network", local.name)
            return BidirectionalSyncResult(
                SyncDirection.TO_NETWORK, self.sync_file_to_network(local, network)
            )
        logger.info("Network copy of %s is newer, syncing to local", local.name)
        return BidirectionalSyncResult(
            SyncDirection.TO_LOCAL, self.sync_file_to_local(network, local)
        )

    # ----- copy -----

    def _sync(self, source: FilePath, target: FilePath, direction: SyncDirection) -> FileOperationResult:
        with self._statuses.lock:
            status = self._statuses.get_or_create(source.path, target.path, direction)
            if status.in_progress:
                logger.debug("Sync already in progress: %s -> %s", source.path, target.path)
                return FileOperationResult.failed(target.path, "Sync already in progress")
            status.mark_in_progress()

        logger.info("Syncing file from %s to %s", source.path, target.path)
        try:
            if not self._network_available():
                raise ConnectionError("Network not available")
            self._copy(source.path, target.path)
        except Exception as e:
            message = f"Failed to sync file: {e}"
            logger.error("Failed to sync %s -> %s: %s", source.path, target.path, e)
            with self._statuses.lock:
                status.mark_failure(message)
            self._publish(source, target.path, False, message)
            return FileOperationResult.failed(target.path, message, e)

        with self._statuses.lock:
            status.mark_success()
        logger.info("File sync completed: %s", target.path.name)
        self._publish(source, target.path, True, None)
        return FileOperationResult.succeeded(target.path)

    def _copy(self, source: Path, target: Path) -> None:
        if not source.is_file():
            raise FileNotFoundError(f"Source file does not exist: {source}")
        target.parent.mkdir(parents=True, exist_ok=True)

        tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.tmp")
        transient = target.with_name(target.name + SYNC_BACKUP_SUFFIX)
        locks = self._context.locks
        restored = True  # False keeps the transient backup for manual recovery
        try:
            with locks.get(source).read_locked(self._lock_timeout):
                shutil.copy2(source, tmp)

            with locks.get(target).write_locked(self._lock_timeout):
                had_target = target.exists()
                if had_target:
                    shutil.copy2(target, transient)
                try:
                    os.replace(tmp, target)
                except OSError:
                    if had_target:
                        restored = self._restore_target(transient, target)
                    raise
        finally:
            tmp.unlink(missing_ok=True)
            if restored:
                _delete_with_retry(transient)

    def _restore_target(self, transient: Path, target: Path) -> bool:
        try:
            shutil.copy2(transient, target)
        except OSError as e:
            logger.error("Could not restore %s from %s: %s", target, transient, e)
            return False
        logger.info("Restored %s from its backup after failed sync", target)
        return True

    def _publish(self, source: FilePath, target: Path, success: bool, message: str | None) -> None:
        if self._publisher is not None:
            self._publisher.publish_sync(source, target, success, message)

    # ----- retry sweep and status -----

    def retry_failed_syncs(self) -> list[Future[FileOperationResult]]:
        """Re-run pending syncs whose backoff has elapsed.

        Pairs that reached the retry cap stay pending but are skipped.

        Returns:
            Futures of the retries started.
        """
        with self._statuses.lock:
            due = [
                s
                for s in self._statuses.pending()
                if s.should_retry(self._max_retries, self._retry_delay, self._max_retry_delay)
            ]
            now = datetime.now(UTC)
            for status in due:
                status.retry_count += 1
                status.last_attempt = now

        if not due:
            return []
        logger.info("Retrying %d failed sync operations", len(due))
        return [self._submit(self._retry, status) for status in due]

    def _retry(self, status: SyncStatus) -> FileOperationResult:
        logger.info("Retrying sync (attempt #%d): %s", status.retry_count, status.source)
        if status.direction is SyncDirection.TO_LOCAL:
            result = self.sync_file_to_local(
                FilePath.network(status.source), FilePath.local(status.target)
            )
        else:
            result = self.sync_file_to_network(
                FilePath.local(status.source), FilePath.network(status.target)
            )
        if result.success:
            logger.info("Retry sync succeeded: %s", status.source)
        else:
            logger.warning("Retry sync failed: %s", result.error_message)
        return result

    def get_sync_status(self, source: Path, target: Path) -> SyncStatus | None:
        return self._statuses.get(source, target)

    def is_sync_pending(self, source: Path, target: Path) -> bool:
        status = self._statuses.get(source, target)
        return status is not None and status.pending

    def pending_syncs(self) -> list[SyncStatus]:
        return self._statuses.pending()

    def cleanup_stale_entries(self, max_age: timedelta = timedelta(hours=24)) -> int:
        return self._statuses.cleanup_stale(max_age)

    def in_flight(self) -> list[Future]:
        with self._futures_lock:
            return [f for f in self._futures if not f.done()]

    def shutdown(self, extra: Iterable[Future] = (), timeout: float | None = None) -> int:
        """Wait a bounded time for in-flight syncs, then stop the executors.

        Returns:
            Number of operations that did not finish in time.
        """
        pending = self.in_flight() + list(extra)
        remaining = self._context.close(pending, timeout)
        logger.info("File sync service shutdown completed")
        return remaining

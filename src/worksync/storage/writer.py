"""Locked, retried writes of data files.

This module provides:
- FileWriterService: Serialize, obfuscate and persist data under a per-file write lock
- is_retriable_error: Classify access conflicts worth retrying

Writes retry only on access conflicts (another process holding the
file, lock timeouts). Repeated writes of the same user's file inside
the deduplication window return a synthetic success without touching
the disk. Successful writes publish an event the backup listener
reacts to.
"""

from __future__ import annotations

import errno
import logging
import os
import tempfile
import threading
import time
from typing import TYPE_CHECKING, Any

from worksync.core.serialization import encode_json
from worksync.core.types import FileOperationResult, LockTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable
    from concurrent.futures import Future
    from pathlib import Path

    from worksync.core.obfuscation import ObfuscationCodec
    from worksync.core.types import FilePath
    from worksync.storage.context import StorageContext
    from worksync.storage.events import FileEventPublisher
    from worksync.storage.paths import FilePathResolver
    from worksync.storage.sync import SyncFilesService

logger = logging.getLogger(__name__)

NETWORK_SYNC_DELAY = 0.2  # lets the local write settle before copying
DEDUP_CLEANUP_THRESHOLD = 100
PENDING_SYNC_CLEANUP_THRESHOLD = 50
SYSTEM_USER = "system"

_RETRIABLE_ERRNOS = {
    errno.EACCES,
    errno.EBUSY,
    errno.EAGAIN,
    errno.ETXTBSY,
    errno.EDEADLK,
}
# ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION
_RETRIABLE_WINERRORS = {32, 33}
_RETRIABLE_MESSAGES = (
    "process cannot access the file",
    "being used by another process",
    "access is denied",
    "resource temporarily unavailable",
)


def is_retriable_error(exc: BaseException) -> bool:
    """Return True for file access conflicts that may clear on retry."""
    if isinstance(exc, (LockTimeoutError, PermissionError, BlockingIOError)):
        return True
    if isinstance(exc, FileNotFoundError):
        return False
    if isinstance(exc, OSError):
        if getattr(exc, "winerror", None) in _RETRIABLE_WINERRORS:
            return True
        if exc.errno in _RETRIABLE_ERRNOS:
            return True
    message = str(exc).lower()
    return any(pattern in message for pattern in _RETRIABLE_MESSAGES)


class FileWriterService:
    """Write data files with locking, retry and deduplication.

    Args:
        context: Shared storage state (locks, config, executors).
        codec: Obfuscation codec applied unless skipped.
        publisher: Receives write start/success/failure events.
        resolver: Maps local paths to network paths for network sync writes.
        sync_service: Performs the background local-to-network copy.
        network_available: Callable reporting network reachability.
    """

    def __init__(
        self,
        context: StorageContext,
        codec: ObfuscationCodec,
        publisher: FileEventPublisher,
        resolver: FilePathResolver | None = None,
        sync_service: SyncFilesService | None = None,
        network_available: Callable[[], bool] | None = None,
    ) -> None:
        config = context.config
        self._context = context
        self._codec = codec
        self._publisher = publisher
        self._resolver = resolver
        self._sync = sync_service
        self._network_available = network_available or (lambda: context.network.available)

        self._lock_timeout = config.lock_timeout
        self._max_attempts = max(1, config.write_max_attempts)
        self._initial_delay = config.write_initial_delay
        self._max_delay = config.write_max_delay
        self._dedup_interval = config.write_dedup_interval

        self._state_lock = threading.Lock()
        self._last_writes: dict[str, float] = {}  # "user:filename" -> monotonic time
        self._pending_syncs: dict[str, Future[Any]] = {}

    # ----- public API -----

    def write_file(
        self,
        file_path: FilePath,
        data: Any,
        skip_obfuscation: bool = False,
        username: str | None = None,
    ) -> FileOperationResult:
        """Serialize and write data, then let the backup listener back it up."""
        return self.write_file_with_backup_control(
            file_path, data, skip_obfuscation, create_backup=True, username=username
        )

    def write_file_with_backup_control(
        self,
        file_path: FilePath,
        data: Any,
        skip_obfuscation: bool = False,
        create_backup: bool = True,
        username: str | None = None,
    ) -> FileOperationResult:
        """Serialize and write data.

        Args:
            file_path: Destination.
            data: JSON-serializable data or pydantic model.
            skip_obfuscation: Write plain JSON.
            create_backup: Whether the write-success event asks for a backup.
            username: User the write is attributed to (default: file owner).

        Returns:
            The write outcome. Duplicate requests inside the deduplication
            window return success without writing.
        """
        path = file_path.path
        key = self._dedup_key(file_path, username)
        if not self._can_attempt_write(key):
            logger.warning(
                "Write attempt too soon for %s - ignoring duplicate request", key
            )
            return FileOperationResult.succeeded(path)

        try:
            content = encode_json(data)
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize data for %s: %s", path.name, e)
            return FileOperationResult.failed(path, f"Failed to serialize data: {e}", e)
        if not skip_obfuscation:
            content = self._codec.obfuscate(content)

        result = self.write_bytes(file_path, content, create_backup=create_backup)
        if result.success:
            self._record_write(key)
        return result

    def write_bytes(
        self, file_path: FilePath, content: bytes, create_backup: bool = True
    ) -> FileOperationResult:
        """Write already encoded content with locking and retry.

        No deduplication is applied.
        """
        path = file_path.path
        start = time.monotonic()
        logger.info(
            "Starting file write: %s (user: %s, backup: %s)",
            path.name,
            file_path.username,
            create_backup,
        )
        self._publisher.publish_write_start(file_path)

        last_error: BaseException | None = None
        for attempt in range(self._max_attempts):
            if attempt > 0:
                logger.info("Retry #%d for file write: %s", attempt, path.name)
            try:
                self._locked_write(path, content)
            except Exception as e:
                last_error = e
                if not is_retriable_error(e):
                    logger.error("Write of %s failed: %s", path, e)
                    break
                if attempt < self._max_attempts - 1:
                    delay = min(self._initial_delay * 2**attempt, self._max_delay)
                    logger.warning(
                        "File access conflict, retrying in %.0fms (attempt %d/%d): %s",
                        delay * 1000,
                        attempt + 1,
                        self._max_attempts,
                        e,
                    )
                    time.sleep(delay)
                continue

            duration_ms = (time.monotonic() - start) * 1000
            if attempt > 0:
                logger.info("Write succeeded on retry #%d for file: %s", attempt, path.name)
            logger.info("Successfully wrote file: %s (duration: %.0fms)", path, duration_ms)
            self._publisher.publish_write_success(file_path, duration_ms, create_backup)
            return FileOperationResult.succeeded(path)

        message = f"Failed to write file: {last_error}"
        if last_error is not None and is_retriable_error(last_error):
            message = f"Failed to write file after {self._max_attempts} attempts: {last_error}"
            logger.error("Failed to write %s after %d attempts", path.name, self._max_attempts)
        self._publisher.publish_write_failure(file_path, message, last_error)
        return FileOperationResult.failed(path, message, last_error)

    def write_with_network_sync(
        self, local_path: FilePath, data: Any, skip_obfuscation: bool = False
    ) -> FileOperationResult:
        """Write locally with backup, then copy to the network in the background."""
        return self._write_and_sync(local_path, data, skip_obfuscation, create_backup=True)

    def write_with_network_sync_no_backup(
        self, local_path: FilePath, data: Any, skip_obfuscation: bool = False
    ) -> FileOperationResult:
        """Write locally without backup, then copy to the network in the background."""
        return self._write_and_sync(local_path, data, skip_obfuscation, create_backup=False)

    def pending_network_sync(self, local_path: FilePath) -> Future[Any] | None:
        """Future of the background network sync started for a file, if still tracked."""
        key = self._dedup_key(local_path, None)
        with self._state_lock:
            return self._pending_syncs.get(key)

    def pending_syncs(self) -> list[Future[Any]]:
        """Background network syncs that have not finished yet."""
        with self._state_lock:
            return [f for f in self._pending_syncs.values() if not f.done()]

    # ----- internals -----

    def _locked_write(self, path: Path, content: bytes) -> None:
        lock = self._context.locks.get(path)
        with lock.write_locked(self._lock_timeout):
            self._persist(path, content)

    def _persist(self, path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    @staticmethod
    def _dedup_key(file_path: FilePath, username: str | None) -> str:
        return f"{username or file_path.username or SYSTEM_USER}:{file_path.name}"

    def _can_attempt_write(self, key: str) -> bool:
        with self._state_lock:
            last = self._last_writes.get(key)
        return last is None or time.monotonic() - last >= self._dedup_interval

    def _record_write(self, key: str) -> None:
        now = time.monotonic()
        with self._state_lock:
            self._last_writes[key] = now
            if len(self._last_writes) > DEDUP_CLEANUP_THRESHOLD:
                cutoff = now - self._dedup_interval * 10
                self._last_writes = {k: t for k, t in self._last_writes.items() if t >= cutoff}

    def _write_and_sync(
        self, local_path: FilePath, data: Any, skip_obfuscation: bool, create_backup: bool
    ) -> FileOperationResult:
        if not local_path.is_local:
            return FileOperationResult.failed(
                local_path.path, "Path must be local for network sync operation"
            )
        result = self.write_file_with_backup_control(
            local_path, data, skip_obfuscation, create_backup=create_backup
        )
        if result.success and self._network_available():
            self._trigger_network_sync(local_path)
        return result

    def _trigger_network_sync(self, local_path: FilePath) -> None:
        if self._resolver is None or self._sync is None:
            logger.debug("Network sync not configured, skipping for %s", local_path.name)
            return

        resolver, sync = self._resolver, self._sync
        key = self._dedup_key(local_path, None)
        with self._state_lock:
            existing = self._pending_syncs.get(key)
            if existing is not None and not existing.done():
                logger.debug(
                    "Network sync already in progress for %s - skipping duplicate",
                    local_path.name,
                )
                return
            future = self._context.sync_executor.submit(self._network_sync, resolver, sync, local_path)
            self._pending_syncs[key] = future
        future.add_done_callback(lambda f: self._sync_finished(key, f))
        logger.info("Network sync initiated for: %s", local_path.name)

    def _network_sync(
        self, resolver: FilePathResolver, sync: SyncFilesService, local_path: FilePath
    ) -> FileOperationResult:
        time.sleep(NETWORK_SYNC_DELAY)
        network_path = resolver.to_network_path(local_path)
        result = sync.sync_file_to_network(local_path, network_path)
        if not result.success:
            logger.warning(
                "Async network sync failed for %s: %s", local_path.name, result.error_message
            )
        return result

    def _sync_finished(self, key: str, future: Future[Any]) -> None:
        with self._state_lock:
            if self._pending_syncs.get(key) is future:
                del self._pending_syncs[key]
            if len(self._pending_syncs) > PENDING_SYNC_CLEANUP_THRESHOLD:
                self._pending_syncs = {k: f for k, f in self._pending_syncs.items() if not f.done()}

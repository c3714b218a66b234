"""Best-effort multi-file transactions.

This module provides:
- FileTransaction: Ordered writes and syncs applied together, rolled back on failure
- FileTransactionResult: Outcome of a commit or rollback
- FileTransactionManager: One current transaction per thread

A transaction snapshots every file it will touch in memory when the
operation is added. Commit applies all operations; if any fails, every
snapshot is restored and files that did not exist are removed. This is
not crash-safe: a process dying mid-commit leaves the files as they were
at that moment.
"""

from __future__ import annotations

import logging
import shutil
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from worksync.core.filetypes import criticality_for_file
from worksync.core.types import CriticalityLevel, FileOperationResult, TransactionError
from worksync.storage.backup import BackupService

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from worksync.core.types import FilePath
    from worksync.storage.context import StorageContext
    from worksync.storage.writer import FileWriterService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileTransactionResult:
    """Outcome of a transaction commit or rollback."""

    success: bool
    transaction_id: str
    message: str | None = None
    results: list[FileOperationResult] = field(default_factory=list)


@dataclass(frozen=True)
class _WriteOperation:
    file_path: FilePath
    data: bytes


@dataclass(frozen=True)
class _SyncOperation:
    source: FilePath
    target: FilePath


class FileTransaction:
    """A unit of file writes and syncs committed or rolled back together."""

    def __init__(self, context: StorageContext, writer: FileWriterService) -> None:
        self.transaction_id = str(uuid.uuid4())
        self._locks = context.locks
        self._lock_timeout = context.config.lock_timeout
        self._writer = writer
        self._operations: list[_WriteOperation | _SyncOperation] = []
        self._snapshots: dict[Path, bytes | None] = {}  # None: file did not exist
        self._active = True
        logger.debug("Created file transaction %s", self.transaction_id)

    @property
    def active(self) -> bool:
        return self._active

    @property
    def operation_count(self) -> int:
        return len(self._operations)

    def _check_active(self) -> None:
        if not self._active:
            raise TransactionError(
                f"Cannot add operations to completed transaction {self.transaction_id}"
            )

    def _snapshot(self, path: Path) -> None:
        if path in self._snapshots:
            return
        if path.exists():
            with self._locks.get(path).read_locked(self._lock_timeout):
                self._snapshots[path] = path.read_bytes()
            logger.debug("Created in-memory backup for %s", path)
        else:
            self._snapshots[path] = None

    def add_write(self, file_path: FilePath, data: bytes) -> None:
        """Queue a write of already encoded bytes.

        Raises:
            TransactionError: If the transaction was committed or rolled back.
            OSError: If the existing file cannot be snapshotted.
        """
        self._check_active()
        self._snapshot(file_path.path)
        self._operations.append(_WriteOperation(file_path, data))
        logger.debug("Added write of %s to transaction %s", file_path.path, self.transaction_id)

    def add_sync(self, source: FilePath, target: FilePath) -> None:
        """Queue a copy of source over target."""
        self._check_active()
        self._snapshot(target.path)
        self._operations.append(_SyncOperation(source, target))
        logger.debug(
            "Added sync %s -> %s to transaction %s", source.path, target.path, self.transaction_id
        )

    def _execute(self, operation: _WriteOperation | _SyncOperation) -> FileOperationResult:
        if isinstance(operation, _WriteOperation):
            return self._writer.write_bytes(operation.file_path, operation.data, create_backup=False)
        return self._execute_sync(operation.source, operation.target)

    def _execute_sync(self, source: FilePath, target: FilePath) -> FileOperationResult:
        source_path, target_path = source.path, target.path
        if not source_path.exists():
            return FileOperationResult.failed(source_path, "Source file does not exist")

        backup = BackupService.get_simple_backup_path(target_path)
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            with self._locks.get(target_path).write_locked(self._lock_timeout):
                if target_path.exists():
                    shutil.copyfile(target_path, backup)
                with self._locks.get(source_path).read_locked(self._lock_timeout):
                    shutil.copyfile(source_path, target_path)
                if criticality_for_file(target_path) is CriticalityLevel.LOW:
                    backup.unlink(missing_ok=True)
        except Exception as e:
            logger.error("Error syncing %s to %s: %s", source_path, target_path, e)
            return FileOperationResult.failed(target_path, f"Failed to sync file: {e}", e)
        return FileOperationResult.succeeded(target_path)

    def commit(self) -> FileTransactionResult:
        """Apply every operation, rolling back all of them if one fails."""
        if not self._active:
            return FileTransactionResult(
                False, self.transaction_id, "Transaction is no longer active"
            )

        logger.info(
            "Committing transaction %s with %d operations",
            self.transaction_id,
            len(self._operations),
        )
        results: list[FileOperationResult] = []
        for operation in self._operations:
            result = self._execute(operation)
            results.append(result)
            if not result.success:
                logger.warning(
                    "Operation failed in transaction %s: %s",
                    self.transaction_id,
                    result.error_message,
                )
                break

        if all(r.success for r in results):
            self._snapshots.clear()
            self._active = False
            logger.info("Transaction %s committed successfully", self.transaction_id)
            return FileTransactionResult(True, self.transaction_id, None, results)

        self.rollback()
        logger.warning("Transaction %s failed, rolled back", self.transaction_id)
        return FileTransactionResult(
            False, self.transaction_id, "One or more operations failed", results
        )

    def rollback(self) -> FileTransactionResult:
        """Restore every file touched by the transaction to its snapshot."""
        if not self._active:
            return FileTransactionResult(
                False, self.transaction_id, "Transaction is no longer active"
            )

        logger.info(
            "Rolling back transaction %s with %d snapshots",
            self.transaction_id,
            len(self._snapshots),
        )
        results: list[FileOperationResult] = []
        for path, content in self._snapshots.items():
            try:
                with self._locks.get(path).write_locked(self._lock_timeout):
                    if content is None:
                        path.unlink(missing_ok=True)
                    else:
                        path.write_bytes(content)
                results.append(FileOperationResult.succeeded(path))
            except Exception as e:
                logger.error("Error restoring %s from in-memory backup: %s", path, e)
                results.append(
                    FileOperationResult.failed(path, f"Failed to restore backup: {e}", e)
                )

        self._active = False
        self._snapshots.clear()
        success = all(r.success for r in results)
        return FileTransactionResult(
            success, self.transaction_id, None if success else "Rollback partially failed", results
        )


class FileTransactionManager:
    """Track one active transaction per thread."""

    def __init__(self, context: StorageContext, writer: FileWriterService) -> None:
        self._context = context
        self._writer = writer
        self._local = threading.local()
        self._lock = threading.Lock()
        self._transactions: dict[str, FileTransaction] = {}

    def begin_transaction(self) -> FileTransaction:
        """Start a transaction on this thread.

        Raises:
            TransactionError: If this thread already has an active transaction.
        """
        current = self.get_current_transaction()
        if current is not None:
            raise TransactionError(
                f"Transaction {current.transaction_id} is already active on this thread"
            )
        transaction = FileTransaction(self._context, self._writer)
        self._local.transaction = transaction
        with self._lock:
            self._transactions[transaction.transaction_id] = transaction
        logger.debug("Started transaction %s", transaction.transaction_id)
        return transaction

    def get_current_transaction(self) -> FileTransaction | None:
        transaction = getattr(self._local, "transaction", None)
        if transaction is not None and not transaction.active:
            self._clear(transaction)
            return None
        return transaction

    def has_transaction(self) -> bool:
        return self.get_current_transaction() is not None

    def get_transaction(self, transaction_id: str) -> FileTransaction | None:
        with self._lock:
            return self._transactions.get(transaction_id)

    def _clear(self, transaction: FileTransaction) -> None:
        if getattr(self._local, "transaction", None) is transaction:
            self._local.transaction = None
        with self._lock:
            self._transactions.pop(transaction.transaction_id, None)

    def _require_current(self) -> FileTransaction:
        transaction = self.get_current_transaction()
        if transaction is None:
            raise TransactionError("No active transaction on this thread")
        return transaction

    def commit_transaction(self) -> FileTransactionResult:
        transaction = self._require_current()
        try:
            return transaction.commit()
        finally:
            self._clear(transaction)

    def rollback_transaction(self) -> FileTransactionResult:
        transaction = self._require_current()
        try:
            return transaction.rollback()
        finally:
            self._clear(transaction)

    @contextmanager
    def transaction(self) -> Iterator[FileTransaction]:
        """Run a block in a transaction.

        Commits when the block finishes, rolls back if it raises.
        """
        transaction = self.begin_transaction()
        try:
            yield transaction
        except BaseException:
            self.rollback_transaction()
            raise
        result = self.commit_transaction()
        if not result.success:
            raise TransactionError(
                f"Transaction {transaction.transaction_id} failed: {result.message}"
            )

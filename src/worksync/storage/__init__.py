"""Storage module - Paths, backups, reads, writes and replication."""

from worksync.storage.backup import BackupService, BackupSyncResult
from worksync.storage.context import NetworkState, StorageContext
from worksync.storage.data_access import DataAccessService
from worksync.storage.events import (
    BackupEventMonitor,
    BackupOperationEvent,
    FileEvent,
    FileEventPublisher,
    FileSyncEvent,
    FileWriteFailureEvent,
    FileWriteStartEvent,
    FileWriteSuccessEvent,
)
from worksync.storage.listeners import BackupEventListener
from worksync.storage.locks import FileLockRegistry, ReadWriteLock
from worksync.storage.network import NetworkStatusMonitor
from worksync.storage.paths import FilePathResolver, PathConfig, ResolvedPaths
from worksync.storage.reader import FileReaderService
from worksync.storage.scheduler import MaintenanceScheduler
from worksync.storage.status import SyncStatus, SyncStatusRegistry
from worksync.storage.sync import BidirectionalSyncResult, SyncFilesService
from worksync.storage.transactions import (
    FileTransaction,
    FileTransactionManager,
    FileTransactionResult,
)
from worksync.storage.writer import FileWriterService

__all__ = [
    # Shared state
    "FileLockRegistry",
    "NetworkState",
    "ReadWriteLock",
    "StorageContext",
    "SyncStatus",
    "SyncStatusRegistry",
    # Paths
    "FilePathResolver",
    "NetworkStatusMonitor",
    "PathConfig",
    "ResolvedPaths",
    # Backups
    "BackupEventListener",
    "BackupEventMonitor",
    "BackupService",
    "BackupSyncResult",
    # Events
    "BackupOperationEvent",
    "FileEvent",
    "FileEventPublisher",
    "FileSyncEvent",
    "FileWriteFailureEvent",
    "FileWriteStartEvent",
    "FileWriteSuccessEvent",
    # File services
    "BidirectionalSyncResult",
    "DataAccessService",
    "FileReaderService",
    "FileTransaction",
    "FileTransactionManager",
    "FileTransactionResult",
    "FileWriterService",
    "SyncFilesService",
    # Maintenance
    "MaintenanceScheduler",
]

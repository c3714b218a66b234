"""Application assembly.

This module provides:
- setup_logging: stdout and optional file logging for the worksync package
- WorkSync: Container holding every storage service
- create_worksync: Wire the services for a configuration
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING

from worksync.core.obfuscation import ObfuscationCodec
from worksync.storage.backup import BackupService
from worksync.storage.context import StorageContext
from worksync.storage.data_access import DataAccessService
from worksync.storage.events import BackupEventMonitor, FileEventPublisher
from worksync.storage.listeners import BackupEventListener
from worksync.storage.network import NetworkStatusMonitor
from worksync.storage.paths import FilePathResolver, PathConfig
from worksync.storage.reader import FileReaderService
from worksync.storage.scheduler import MaintenanceScheduler
from worksync.storage.sync import SyncFilesService
from worksync.storage.transactions import FileTransactionManager
from worksync.storage.writer import FileWriterService

if TYPE_CHECKING:
    from pathlib import Path

    from worksync.core.config import StorageConfig

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path | None = None, level: int = logging.INFO) -> None:
    """Configure logging to output to stdout and, optionally, a file.

    Args:
        log_path: Path to the log file, or None for stdout only.
        level: Level of the worksync logger.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for worksync
    root_logger = logging.getLogger("worksync")
    root_logger.setLevel(level)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # File handler
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


@dataclass
class WorkSync:
    """Every service of a running storage layer."""

    config: StorageConfig
    context: StorageContext
    paths: PathConfig
    monitor: NetworkStatusMonitor
    resolver: FilePathResolver
    publisher: FileEventPublisher
    backup_monitor: BackupEventMonitor
    backups: BackupService
    listener: BackupEventListener
    sync: SyncFilesService
    reader: FileReaderService
    writer: FileWriterService
    transactions: FileTransactionManager
    data: DataAccessService
    scheduler: MaintenanceScheduler

    def start(self, with_scheduler: bool = True) -> None:
        """Create directories, detect the network and start maintenance jobs."""
        if not self.paths.initialize():
            logger.warning("Local storage unavailable at %s", self.paths.local_root)
        available = self.monitor.check_now("startup")
        logger.info(
            "WorkSync started (network %s)", "available" if available else "unavailable"
        )
        if with_scheduler:
            self.scheduler.start()

    def stop(self, timeout: float | None = None) -> int:
        """Stop the scheduler and drain in-flight operations.

        Returns:
            Number of operations that did not finish in time.
        """
        self.scheduler.stop()
        if timeout is None:
            timeout = self.config.sync_shutdown_timeout
        remaining = self.sync.shutdown(self.writer.pending_syncs(), timeout)
        if remaining:
            logger.warning("%d operations still running at shutdown", remaining)
        logger.info("WorkSync stopped")
        return remaining


def create_worksync(config: StorageConfig) -> WorkSync:
    """Wire the storage services for a configuration.

    Nothing touches the filesystem until WorkSync.start().
    """
    context = StorageContext(config)
    paths = PathConfig(config)
    monitor = NetworkStatusMonitor(config.network_root, context, config)
    network_available = monitor.is_network_available
    codec = ObfuscationCodec(config.obfuscation_key)

    resolver = FilePathResolver(paths, context, network_available)
    publisher = FileEventPublisher(context.event_executor)
    backup_monitor = BackupEventMonitor()
    backups = BackupService(paths, context, config, network_available)
    listener = BackupEventListener(backups, publisher, backup_monitor)
    listener.register()

    sync = SyncFilesService(context, publisher, network_available)
    reader = FileReaderService(context, codec, network_available)
    writer = FileWriterService(context, codec, publisher, resolver, sync, network_available)
    transactions = FileTransactionManager(context, writer)
    data = DataAccessService(resolver, reader, writer, sync)
    scheduler = MaintenanceScheduler(config, context, monitor, sync, backups)

    return WorkSync(
        config=config,
        context=context,
        paths=paths,
        monitor=monitor,
        resolver=resolver,
        publisher=publisher,
        backup_monitor=backup_monitor,
        backups=backups,
        listener=listener,
        sync=sync,
        reader=reader,
        writer=writer,
        transactions=transactions,
        data=data,
        scheduler=scheduler,
    )

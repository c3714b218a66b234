"""Event handlers that create backups after successful writes."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from worksync.core.filetypes import criticality_for_file, file_type_from_filename
from worksync.core.types import CriticalityLevel
from worksync.storage.events import (
    BackupOperationEvent,
    FileSyncEvent,
    FileWriteFailureEvent,
    FileWriteSuccessEvent,
)

if TYPE_CHECKING:
    from worksync.storage.backup import BackupService
    from worksync.storage.events import BackupEventMonitor, FileEventPublisher

logger = logging.getLogger(__name__)


class BackupEventListener:
    """Create backups in reaction to write events.

    HIGH files are also mirrored to the network backup tree when the
    write carries an owner.
    """

    def __init__(
        self,
        backup_service: BackupService,
        publisher: FileEventPublisher,
        monitor: BackupEventMonitor,
    ) -> None:
        self._backups = backup_service
        self._publisher = publisher
        self._monitor = monitor

    def register(self) -> None:
        """Subscribe the handlers to the publisher."""
        self._publisher.subscribe(FileWriteSuccessEvent, self.handle_write_success)
        self._publisher.subscribe(FileWriteFailureEvent, self.handle_write_failure)
        self._publisher.subscribe(BackupOperationEvent, self.handle_backup_operation)
        self._publisher.subscribe(FileSyncEvent, self.handle_sync)

    def handle_write_success(self, event: FileWriteSuccessEvent) -> None:
        name = event.file_path.name
        if not event.create_backup:
            logger.debug(
                "Skipping backup for %s - backup disabled (Event ID: %s)", name, event.event_id
            )
            return

        start = time.monotonic()
        level = criticality_for_file(event.file_path.path)
        file_type = file_type_from_filename(name)
        logger.info(
            "Creating %s backup for %s (file type: %s, user: %s, Event ID: %s)",
            level.name,
            name,
            file_type.value if file_type else "unknown",
            event.username,
            event.event_id,
        )

        result = self._backups.create_backup(event.file_path, level)
        if result.success:
            self._monitor.record_backup_created(level)
            if level is CriticalityLevel.HIGH and event.username:
                self._backups.sync_backups_to_network(event.username, level, file_type)
        else:
            self._monitor.record_backup_failure()
            logger.error(
                "Event-driven backup failed for %s: %s (Event ID: %s)",
                name,
                result.error_message,
                event.event_id,
            )

        self._publisher.publish(
            BackupOperationEvent(
                event.file_path,
                success=result.success,
                backup_path=result.path if result.success else None,
                level=level,
                duration_ms=(time.monotonic() - start) * 1000,
                error_message=result.error_message,
            )
        )

    def handle_write_failure(self, event: FileWriteFailureEvent) -> None:
        logger.warning(
            "File write failed for %s by user %s: %s (Event ID: %s)",
            event.file_path.name,
            event.username,
            event.error_message or "Unknown error",
            event.event_id,
        )

    def handle_backup_operation(self, event: BackupOperationEvent) -> None:
        if event.success:
            logger.debug(
                "Backup of %s completed in %.0fms: %s",
                event.file_path.name,
                event.duration_ms,
                event.backup_path,
            )
        else:
            logger.warning(
                "Backup of %s failed: %s", event.file_path.name, event.error_message
            )

    def handle_sync(self, event: FileSyncEvent) -> None:
        if event.success:
            logger.debug("Synced %s -> %s", event.file_path, event.target)
        else:
            logger.warning(
                "Sync of %s -> %s failed: %s", event.file_path, event.target, event.error_message
            )

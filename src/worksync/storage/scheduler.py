"""Scheduler for storage maintenance tasks.

This module provides:
- Periodic network reachability check (every 10 minutes by default)
- Periodic retry of failed syncs (every 5 minutes by default)
- Daily cleanup of expired timestamped backups at 3:00 AM
- Hourly pruning of idle locks and stale sync statuses
- Manual triggers for CLI usage
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from worksync.core.config import StorageConfig
    from worksync.storage.backup import BackupService
    from worksync.storage.context import StorageContext
    from worksync.storage.network import NetworkStatusMonitor
    from worksync.storage.sync import SyncFilesService

logger = logging.getLogger(__name__)

STALE_SYNC_STATUS_AGE = timedelta(hours=24)
IDLE_LOCK_AGE = 3600.0  # seconds


class MaintenanceScheduler:
    """Scheduler for storage maintenance tasks.

    Runs:
    - Network check every ``network_check_interval`` seconds
    - Sync retry sweep every ``sync_retry_interval`` seconds
    - Backup cleanup daily at ``backup_cleanup_hour``
    - Stale entry cleanup hourly
    """

    def __init__(
        self,
        config: StorageConfig,
        context: StorageContext,
        monitor: NetworkStatusMonitor,
        sync_service: SyncFilesService,
        backup_service: BackupService,
    ) -> None:
        """Initialize the scheduler.

        Args:
            config: Intervals and cleanup hour.
            context: Shared storage state whose lock registry is pruned.
            monitor: Network reachability monitor.
            sync_service: Service whose failed syncs are retried.
            backup_service: Service whose old backups are cleaned up.
        """
        self._context = context
        self._monitor = monitor
        self._sync = sync_service
        self._backups = backup_service
        self._network_interval = config.network_check_interval
        self._retry_interval = config.sync_retry_interval
        self._cleanup_hour = config.backup_cleanup_hour
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _network_check_job(self) -> None:
        """Job function for the periodic network check."""
        try:
            self._monitor.scheduled_check()
        except Exception:
            logger.exception("Error during scheduled network check")

    def _sync_retry_job(self) -> None:
        """Job function for the periodic sync retry sweep."""
        try:
            started = self._sync.retry_failed_syncs()
            if started:
                logger.info("Sync retry sweep: %d retries started", len(started))
            else:
                logger.debug("Sync retry sweep: nothing due")
        except Exception:
            logger.exception("Error during scheduled sync retry")

    def _backup_cleanup_job(self) -> None:
        """Job function for the daily backup cleanup."""
        logger.info("Starting scheduled backup cleanup")
        try:
            self._backups.cleanup_old_backups()
        except Exception:
            logger.exception("Error during scheduled backup cleanup")

    def _stale_cleanup_job(self) -> None:
        """Job function for the hourly stale entry cleanup."""
        try:
            statuses, locks = self.cleanup_stale_now()
            logger.debug(
                "Stale cleanup: %d sync statuses and %d locks removed", statuses, locks
            )
        except Exception:
            logger.exception("Error during scheduled stale entry cleanup")

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._network_check_job,
            trigger=IntervalTrigger(seconds=self._network_interval),
            id="network_check",
            name="Network reachability check",
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._sync_retry_job,
            trigger=IntervalTrigger(seconds=self._retry_interval),
            id="sync_retry",
            name="Failed sync retry sweep",
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._backup_cleanup_job,
            trigger=CronTrigger(hour=self._cleanup_hour, minute=0),
            id="backup_cleanup",
            name="Daily backup cleanup",
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._stale_cleanup_job,
            trigger=IntervalTrigger(hours=1),
            id="stale_cleanup",
            name="Hourly stale entry cleanup",
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(
            "Maintenance scheduler started (network check: %.0fs, sync retry: %.0fs, "
            "backup cleanup daily at %02d:00)",
            self._network_interval,
            self._retry_interval,
            self._cleanup_hour,
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Maintenance scheduler stopped")

    def check_network_now(self) -> bool:
        """Probe the network immediately (manual trigger).

        Returns:
            Whether the network is available.
        """
        return self._monitor.check_now("manual trigger")

    def retry_syncs_now(self) -> int:
        """Run the sync retry sweep immediately (manual trigger).

        Returns:
            Number of retries started.
        """
        return len(self._sync.retry_failed_syncs())

    def cleanup_backups_now(self) -> int:
        """Run the backup cleanup immediately (manual trigger).

        Returns:
            Number of backups deleted.
        """
        return self._backups.cleanup_old_backups()

    def cleanup_stale_now(self) -> tuple[int, int]:
        """Prune stale sync statuses and idle locks immediately.

        Returns:
            Tuple of (statuses_removed, locks_removed).
        """
        statuses = self._sync.cleanup_stale_entries(STALE_SYNC_STATUS_AGE)
        locks = self._context.locks.prune(IDLE_LOCK_AGE)
        return statuses, locks

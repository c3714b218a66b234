"""Backups by criticality tier.

This module provides:
- BackupService: Create, rotate, list, restore and clean up backups
- BackupSyncResult: Counters of a backup-to-network copy
- backup_timestamp: Timestamp embedded in backup filenames

Layout under the local backup root::

    <tier>/<filetype>/<username>/<year>/<month>/<file>.<YYYYMMDD_HHMMSS>.bak

plus a sibling simple backup ``<file>.bak`` next to every original.
LOW files get only the simple backup and one structured copy; MEDIUM
and HIGH files get a timestamped copy per backup, rotated down to the
tier's max_backups.
"""

from __future__ import annotations

import logging
import re
import shutil
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from worksync.core.filetypes import criticality_for_file, file_type_from_filename, get_spec
from worksync.core.types import CriticalityLevel, FileOperationResult, FilePath, FileType

if TYPE_CHECKING:
    from collections.abc import Callable

    from worksync.core.config import StorageConfig
    from worksync.storage.context import StorageContext
    from worksync.storage.paths import PathConfig

logger = logging.getLogger(__name__)

BACKUP_EXTENSION = ".bak"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
NETWORK_BACKUP_DIR = "backup"
NETWORK_SYNC_MAX_AGE = 3600.0  # only recent backups are mirrored

_TIMESTAMPED = re.compile(r"\.\d{8}_\d{6}\.bak$")
_YEAR_MONTH = re.compile(r"_(\d{4})_(\d{2})\.json$")
_YEAR = re.compile(r"_(\d{4})\.json$")


def backup_timestamp() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


def is_timestamped_backup(path: Path) -> bool:
    return bool(_TIMESTAMPED.search(path.name))


def _sort_key(path: Path) -> tuple[int, str]:
    try:
        return path.stat().st_mtime_ns, path.name
    except OSError:
        return 0, path.name


@dataclass
class BackupSyncResult:
    """Counters of a sync_backups_to_network run."""

    synced: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.synced + self.skipped + self.failed


class BackupService:
    """Create and restore backups of data files.

    Args:
        path_config: Directory layout (backup root, network root).
        context: Shared storage state; file locks guard copies of originals.
        config: Retention and lock timeout settings.
        network_available: Callable reporting network reachability, used
            before mirroring backups to the network root.
    """

    def __init__(
        self,
        path_config: PathConfig,
        context: StorageContext,
        config: StorageConfig,
        network_available: Callable[[], bool] | None = None,
    ) -> None:
        self._paths = path_config
        self._locks = context.locks
        self._lock_timeout = config.lock_timeout
        self._retention_days = config.backup_retention_days
        self._network_available = network_available or (lambda: context.network.available)
        self._synced_names: set[str] = set()
        self._synced_lock = threading.Lock()

    # ----- paths -----

    @staticmethod
    def get_simple_backup_path(path: Path) -> Path:
        return path.with_name(path.name + BACKUP_EXTENSION)

    def _username_for(self, file_path: FilePath) -> str | None:
        if file_path.username:
            return file_path.username
        name = file_path.name
        file_type = file_type_from_filename(name)
        if file_type is None:
            return None
        fields = get_spec(file_type).parse(name) or {}
        return fields.get("username") or None

    def get_backup_directory(self, file_path: FilePath, level: CriticalityLevel) -> Path:
        """Structured backup directory of a file (not created)."""
        name = file_path.name
        directory = self._paths.backup_level_dir(level)

        file_type = file_type_from_filename(name)
        directory = directory / (file_type.value if file_type else name.split("_", 1)[0])

        username = self._username_for(file_path)
        if username:
            directory = directory / username

        match = _YEAR_MONTH.search(name)
        if match:
            directory = directory / match.group(1) / match.group(2)
        else:
            match = _YEAR.search(name)
            if match:
                directory = directory / match.group(1)
        return directory

    # ----- create -----

    def _copy_original(self, source: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with self._locks.get(source).read_locked(self._lock_timeout):
            shutil.copyfile(source, target)

    def create_backup(
        self, file_path: FilePath, level: CriticalityLevel | None = None
    ) -> FileOperationResult:
        """Back up a file according to its criticality tier.

        Args:
            file_path: File to back up.
            level: Tier to use (default: derived from the filename).

        Returns:
            Success with the main backup path, or failure if the file does
            not exist or cannot be copied.
        """
        level = level or criticality_for_file(file_path.path)
        path = file_path.path
        if not path.exists():
            logger.warning("Cannot create backup - original file does not exist: %s", path)
            return FileOperationResult.failed(path, "Original file does not exist")

        try:
            if level is CriticalityLevel.LOW:
                return self._create_simple_backup(file_path)
            return self._create_timestamped_backup(file_path, level)
        except Exception as e:
            logger.error("Failed to create %s backup for %s: %s", level.name, path, e)
            return FileOperationResult.failed(path, f"Failed to create backup: {e}", e)

    def _create_simple_backup(self, file_path: FilePath) -> FileOperationResult:
        path = file_path.path
        simple = self.get_simple_backup_path(path)
        self._copy_original(path, simple)
        logger.debug("Created simple backup: %s", simple)

        structured = self.get_backup_directory(file_path, CriticalityLevel.LOW) / (
            path.name + BACKUP_EXTENSION
        )
        self._copy_original(path, structured)
        logger.debug("Created LOW structured backup: %s", structured)
        return FileOperationResult.succeeded(simple)

    def _create_timestamped_backup(
        self, file_path: FilePath, level: CriticalityLevel
    ) -> FileOperationResult:
        path = file_path.path
        directory = self.get_backup_directory(file_path, level)
        target = directory / f"{path.name}.{backup_timestamp()}{BACKUP_EXTENSION}"
        self._copy_original(path, target)
        logger.info("Created %s backup: %s", level.name, target)

        self._copy_original(path, self.get_simple_backup_path(path))
        self._enforce_rotation(file_path, level)
        return FileOperationResult.succeeded(target)

    def _enforce_rotation(self, file_path: FilePath, level: CriticalityLevel) -> None:
        backups = [p for p in self.list_available_backups(file_path, level) if is_timestamped_backup(p)]
        excess = backups[level.max_backups :]
        for old in excess:
            try:
                old.unlink()
                logger.debug("Deleted old backup: %s", old)
            except OSError as e:
                logger.warning("Failed to delete old backup %s: %s", old, e)

    def create_memory_backup(self, file_path: FilePath) -> bytes | None:
        """Read a file's current content for in-memory rollback.

        Returns:
            File bytes, or None if the file does not exist or cannot be read.
        """
        path = file_path.path
        if not path.exists():
            return None
        try:
            with self._locks.get(path).read_locked(self._lock_timeout):
                return path.read_bytes()
        except OSError as e:
            logger.error("Failed to create memory backup of %s: %s", path, e)
            return None

    # ----- find / list -----

    def list_available_backups(
        self, file_path: FilePath, level: CriticalityLevel | None = None
    ) -> list[Path]:
        """Backups of a file in its structured directory, newest first."""
        level = level or criticality_for_file(file_path.path)
        directory = self.get_backup_directory(file_path, level)
        if not directory.is_dir():
            return []
        prefix = file_path.name + "."
        backups = [
            p
            for p in directory.iterdir()
            if p.is_file() and p.name.startswith(prefix) and p.name.endswith(BACKUP_EXTENSION)
        ]
        backups.sort(key=_sort_key, reverse=True)
        return backups

    def find_latest_backup(
        self, file_path: FilePath, level: CriticalityLevel | None = None
    ) -> Path | None:
        backups = self.list_available_backups(file_path, level)
        return backups[0] if backups else None

    # ----- restore / delete -----

    def _restore(self, backup: Path, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._locks.get(path).write_locked(self._lock_timeout):
            shutil.copyfile(backup, path)

    def restore_from_simple_backup(self, file_path: FilePath) -> FileOperationResult:
        path = file_path.path
        simple = self.get_simple_backup_path(path)
        if not simple.exists():
            logger.warning("No simple backup found for %s", path)
            return FileOperationResult.failed(path, "Simple backup does not exist")
        try:
            self._restore(simple, path)
        except Exception as e:
            logger.error("Failed to restore %s from simple backup: %s", path, e)
            return FileOperationResult.failed(path, f"Failed to restore from backup: {e}", e)
        logger.info("Restored %s from simple backup", path)
        return FileOperationResult.succeeded(path)

    def restore_from_latest_backup(
        self, file_path: FilePath, level: CriticalityLevel | None = None
    ) -> FileOperationResult:
        """Restore a file from its newest backup.

        LOW files use the simple backup. MEDIUM and HIGH files use the
        newest timestamped backup and fall back to the simple backup.
        """
        level = level or criticality_for_file(file_path.path)
        if level is CriticalityLevel.LOW:
            return self.restore_from_simple_backup(file_path)

        latest = next(
            (p for p in self.list_available_backups(file_path, level) if is_timestamped_backup(p)),
            None,
        )
        if latest is None:
            logger.info("No timestamped backup for %s, trying simple backup", file_path.path)
            return self.restore_from_simple_backup(file_path)

        try:
            self._restore(latest, file_path.path)
        except Exception as e:
            logger.error("Failed to restore %s from %s: %s", file_path.path, latest, e)
            return FileOperationResult.failed(file_path.path, f"Failed to restore from backup: {e}", e)
        logger.info("Restored %s from %s", file_path.path, latest.name)
        return FileOperationResult.succeeded(file_path.path)

    def delete_simple_backup(self, file_path: FilePath) -> bool:
        simple = self.get_simple_backup_path(file_path.path)
        try:
            simple.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to delete simple backup %s: %s", simple, e)
            return False
        return True

    # ----- maintenance -----

    def cleanup_old_backups(self) -> int:
        """Delete timestamped backups older than the retention window.

        Simple backups are left alone; rotation manages them.

        Returns:
            Number of files deleted.
        """
        root = self._paths.backup_root
        if not root.exists():
            return 0

        logger.info("Starting backup cleanup (retention: %d days)", self._retention_days)
        cutoff = time.time() - self._retention_days * 86400
        deleted = 0
        for path in root.rglob("*" + BACKUP_EXTENSION):
            if not path.is_file() or not is_timestamped_backup(path):
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    deleted += 1
                    logger.debug("Deleted old backup file: %s", path)
            except OSError as e:
                logger.warning("Could not delete old backup %s: %s", path, e)

        if deleted:
            logger.info("Backup cleanup: %d old backups deleted", deleted)
        else:
            logger.debug("Backup cleanup: no backups older than %d days", self._retention_days)
        return deleted

    def network_backup_dir(self, username: str, level: CriticalityLevel) -> Path:
        return self._paths.network_root / NETWORK_BACKUP_DIR / username / level.directory_name

    def sync_backups_to_network(
        self,
        username: str,
        level: CriticalityLevel,
        file_type: FileType | None = None,
    ) -> BackupSyncResult:
        """Mirror a user's recent local backups to the network backup tree.

        Empty files, backups older than an hour and targets that are
        already as new are skipped. Names copied once are remembered until
        clear_synced_backup_cache() is called.
        """
        result = BackupSyncResult()
        if not self._network_available():
            logger.warning("Network not available, cannot sync backups")
            return result

        source_root = self._paths.backup_level_dir(level)
        target_root = self.network_backup_dir(username, level)
        if file_type is not None:
            source_root = source_root / file_type.value
            target_root = target_root / file_type.value
        if not source_root.is_dir():
            logger.debug("No local backups for %s at level %s", username, level.name)
            return result

        logger.info("Starting backup sync for user %s, level %s", username, level.name)
        now = time.time()
        for source in sorted(source_root.rglob("*" + BACKUP_EXTENSION)):
            relative = source.relative_to(source_root)
            if not source.is_file() or username not in relative.parts[:-1]:
                continue
            try:
                stat = source.stat()
            except OSError:
                result.failed += 1
                continue
            if stat.st_size == 0 or now - stat.st_mtime > NETWORK_SYNC_MAX_AGE:
                result.skipped += 1
                continue
            if self._sync_backup_file(source, target_root / relative, stat.st_mtime):
                result.synced += 1
            else:
                result.failed += 1

        logger.info(
            "Backup sync completed for user %s, level %s: %d synced, %d skipped, %d failed",
            username,
            level.name,
            result.synced,
            result.skipped,
            result.failed,
        )
        return result

    def _sync_backup_file(self, source: Path, target: Path, source_mtime: float) -> bool:
        name = source.name
        with self._synced_lock:
            if name in self._synced_names and target.exists():
                return True
        try:
            if target.exists() and target.stat().st_mtime >= source_mtime:
                logger.debug("Network backup is up to date: %s", name)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, target)
                logger.debug("Synced backup file: %s", name)
        except OSError as e:
            logger.debug("Failed to sync backup file %s: %s", name, e)
            return False
        with self._synced_lock:
            self._synced_names.add(name)
        return True

    def clear_synced_backup_cache(self, username: str | None = None) -> int:
        """Forget which backup files were mirrored.

        Args:
            username: Only forget this user's files (default: all).

        Returns:
            Number of names forgotten.
        """
        with self._synced_lock:
            if username is None:
                count = len(self._synced_names)
                self._synced_names.clear()
            else:
                marker = f"_{username}_"
                names = {n for n in self._synced_names if marker in n}
                count = len(names)
                self._synced_names -= names
        logger.info("Cleared synced backup files cache (%d files)", count)
        return count

    def get_backup_diagnostics(self, file_path: FilePath) -> str:
        """Human-readable summary of a file's backup configuration."""
        name = file_path.name
        file_type = file_type_from_filename(name)
        level = criticality_for_file(file_path.path)
        backups = self.list_available_backups(file_path, level)
        lines = [
            "=== BACKUP DIAGNOSTICS ===",
            f"File: {name}",
            f"File type: {file_type.value if file_type else 'unknown'}",
            f"Criticality: {level.name} ({level.description}, max backups: {level.max_backups})",
            f"Backup directory: {self.get_backup_directory(file_path, level)}",
            f"Simple backup path: {self.get_simple_backup_path(file_path.path)}",
            f"Existing backups: {len(backups)}",
        ]
        if backups:
            lines.append(f"Latest backup: {backups[0].name}")
        return "\n".join(lines)

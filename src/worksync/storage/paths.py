"""Local and network path resolution.

This module provides:
- PathConfig: Directory layout under the local and network roots
- ResolvedPaths: Local path plus the network mirror when reachable
- FilePathResolver: FileType to FilePath resolution and path translation

When the network root is unreachable every resolution degrades to the
local root.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from worksync.core.filetypes import FILE_TYPES, get_spec
from worksync.core.types import CriticalityLevel, FilePath, FileType

if TYPE_CHECKING:
    from worksync.core.config import StorageConfig
    from worksync.storage.context import StorageContext
    from worksync.storage.locks import ReadWriteLock

logger = logging.getLogger(__name__)

ADMIN_BACKUP_DIR = "admin"

USER_FILE_TYPES = (
    FileType.SESSION,
    FileType.WORKTIME,
    FileType.REGISTER,
    FileType.CHECK_REGISTER,
    FileType.TIMEOFF_TRACKER,
    FileType.CHECK_VALUES,
)
ADMIN_FILE_TYPES = (
    FileType.ADMIN_WORKTIME,
    FileType.ADMIN_REGISTER,
    FileType.ADMIN_BONUS,
    FileType.LEAD_CHECK_REGISTER,
)


class PathConfig:
    """Directory layout of the local installation and the network mirror."""

    def __init__(self, config: StorageConfig) -> None:
        self._config = config
        self.local_root = config.local_root
        self.network_root = config.network_root
        self.backup_root = config.backup_root
        self._local_available = False

    @property
    def local_available(self) -> bool:
        return self._local_available

    def initialize(self) -> bool:
        """Create the local directory tree and the backup tree.

        Failures are logged and leave local_available False; they never
        raise.

        Returns:
            True if local storage is usable.
        """
        logger.info(
            "Initializing paths - local: %s, network: %s", self.local_root, self.network_root
        )
        self._initialize_local_directories()
        self._initialize_backup_directories()
        return self._local_available

    def _initialize_local_directories(self) -> None:
        directories = sorted({spec.directory for spec in FILE_TYPES.values()})
        try:
            for directory in directories:
                (self.local_root / directory).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to initialize local directories under %s: %s", self.local_root, e)
            self._local_available = False
            return
        self._local_available = True
        logger.info("Initialized local directories")

    def _initialize_backup_directories(self) -> None:
        try:
            for level in CriticalityLevel:
                self.backup_level_dir(level).mkdir(parents=True, exist_ok=True)
            (self.backup_root / ADMIN_BACKUP_DIR).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to initialize backup directories under %s: %s", self.backup_root, e)
            return
        logger.info("Initialized backup directory structure at %s", self.backup_root)

    def backup_level_dir(self, level: CriticalityLevel) -> Path:
        return self.backup_root / level.directory_name

    def local_path(
        self,
        file_type: FileType,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> Path:
        spec = get_spec(file_type)
        return self.local_root / spec.directory / spec.filename(username, user_id, year, month)

    def network_path(
        self,
        file_type: FileType,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> Path:
        """Network location of a file; local-only types stay under the local root."""
        spec = get_spec(file_type)
        root = self.local_root if spec.local_only else self.network_root
        return root / spec.directory / spec.filename(username, user_id, year, month)

    def _verify_directories(self, file_types: tuple[FileType, ...], kind: str) -> bool:
        try:
            for file_type in file_types:
                directory = self.local_root / get_spec(file_type).directory
                if not directory.exists():
                    directory.mkdir(parents=True, exist_ok=True)
                    logger.info("Created directory: %s", directory)
        except OSError as e:
            logger.error("Failed to verify/create %s directories: %s", kind, e)
            return False
        logger.info("%s directories verified", kind.capitalize())
        return True

    def verify_user_directories(self) -> bool:
        """Ensure the local directories of per-user files exist."""
        return self._verify_directories(USER_FILE_TYPES, "user")

    def verify_admin_directories(self) -> bool:
        """Ensure the local directories of admin files exist."""
        return self._verify_directories(ADMIN_FILE_TYPES, "admin")

    def revalidate_local_access(self) -> bool:
        self._initialize_local_directories()
        return self._local_available


@dataclass(frozen=True)
class ResolvedPaths:
    """Where a logical file lives right now.

    Attributes:
        local: Local copy, always present.
        network: Network mirror, or None when unreachable or local-only.
    """

    local: FilePath
    network: FilePath | None


class FilePathResolver:
    """Resolve logical files to local and network FilePaths.

    Args:
        path_config: Directory layout.
        context: Shared storage state (locks and network state).
        network_available: Callable reporting network reachability. Defaults
            to the cached flag in the context; the application passes the
            network monitor's lazily refreshed check instead.
    """

    def __init__(
        self,
        path_config: PathConfig,
        context: StorageContext,
        network_available: Callable[[], bool] | None = None,
    ) -> None:
        self._paths = path_config
        self._context = context
        self._network_available = network_available or (lambda: context.network.available)

    @property
    def path_config(self) -> PathConfig:
        return self._paths

    def is_network_available(self) -> bool:
        return self._network_available()

    def get_local_path(
        self,
        file_type: FileType,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> FilePath:
        path = self._paths.local_path(file_type, username, user_id, year, month)
        return FilePath.local(path, username, user_id)

    def get_network_path(
        self,
        file_type: FileType,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> FilePath:
        """Network FilePath of a file, regardless of reachability.

        Local-only file types return their local FilePath.
        """
        if get_spec(file_type).local_only:
            return self.get_local_path(file_type, username, user_id, year, month)
        path = self._paths.network_path(file_type, username, user_id, year, month)
        return FilePath.network(path, username, user_id)

    def resolve_paths(
        self,
        file_type: FileType,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> ResolvedPaths:
        local = self.get_local_path(file_type, username, user_id, year, month)
        if get_spec(file_type).local_only or not self.is_network_available():
            return ResolvedPaths(local, None)
        return ResolvedPaths(local, self.get_network_path(file_type, username, user_id, year, month))

    def resolve_read_path(
        self,
        file_type: FileType,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
        prefer_network: bool = False,
    ) -> FilePath:
        """Path to read from: the network mirror if preferred and reachable, else local."""
        resolved = self.resolve_paths(file_type, username, user_id, year, month)
        if prefer_network and resolved.network is not None:
            return resolved.network
        return resolved.local

    def resolve(self, path: Path | str) -> FilePath:
        """Classify an absolute path as local or network.

        Raises:
            ValueError: If the path is under neither root.
        """
        path = Path(path)
        if path.is_relative_to(self._paths.local_root):
            return FilePath.local(path)
        if path.is_relative_to(self._paths.network_root):
            return FilePath.network(path)
        raise ValueError(f"Path {path} is under neither the local nor the network root")

    def to_network_path(self, local: FilePath) -> FilePath:
        if not local.is_local:
            raise ValueError(f"Expected a local path, got network path {local}")
        relative = local.path.relative_to(self._paths.local_root)
        return local.with_path(self._paths.network_root / relative, is_local=False)

    def to_local_path(self, network: FilePath) -> FilePath:
        if not network.is_network:
            raise ValueError(f"Expected a network path, got local path {network}")
        relative = network.path.relative_to(self._paths.network_root)
        return network.with_path(self._paths.local_root / relative, is_local=True)

    def get_lock(self, file_path: FilePath | Path) -> ReadWriteLock:
        path = file_path.path if isinstance(file_path, FilePath) else file_path
        return self._context.locks.get(path)

"""Shared types for worksync.

This module provides:
- CriticalityLevel: Backup tier of a file type
- FileType: Logical role of a stored JSON file
- SyncState, SyncDirection: Replication state and outcome
- FilePath: Immutable locality-aware file identifier
- FileOperationResult: Outcome of an I/O attempt
- StorageError, LockTimeoutError, TransactionError: Exception classes
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class StorageError(Exception):
    """Base exception for storage errors."""


class LockTimeoutError(StorageError):
    """Failed to acquire a file lock within the timeout."""

    def __init__(self, path: Path | str, timeout: float) -> None:
        self.path = Path(path)
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:.1f}s waiting for lock on {path}")


class TransactionError(StorageError):
    """Operation attempted on a transaction that is no longer active."""


class CriticalityLevel(Enum):
    """Backup tier attached to a file type.

    The value drives how many timestamped backups are retained and
    whether a file gets timestamped copies at all.
    """

    LOW = (1, "level1_low", "Simple backup only")
    MEDIUM = (5, "level2_medium", "Timestamped backups with moderate retention")
    HIGH = (10, "level3_high", "Timestamped backups with extended retention")

    def __init__(self, max_backups: int, directory_name: str, description: str) -> None:
        self.max_backups = max_backups
        self.directory_name = directory_name
        self.description = description

    @property
    def uses_timestamped_backups(self) -> bool:
        return self is not CriticalityLevel.LOW


class FileType(str, Enum):
    """Logical role of a stored file."""

    SESSION = "session"
    WORKTIME = "worktime"
    REGISTER = "register"
    TIMEOFF_TRACKER = "timeoff_tracker"
    CHECK_REGISTER = "check_register"
    LEAD_CHECK_REGISTER = "lead_check_register"
    ADMIN_WORKTIME = "admin_worktime"
    ADMIN_REGISTER = "admin_register"
    ADMIN_BONUS = "admin_bonus"
    ADMIN_CHECK_BONUS = "admin_check_bonus"
    CHECK_VALUES = "check_values"
    USERS = "users"
    TEAM = "team"


class SyncState(str, Enum):
    """State of a (source, target) replication pair."""

    NONE = "none"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"


class SyncDirection(str, Enum):
    """Which way a bidirectional sync copied data."""

    NONE = "none"
    TO_NETWORK = "to_network"
    TO_LOCAL = "to_local"


@dataclass(frozen=True)
class FilePath:
    """A concrete file path tagged with locality and owner.

    Build instances with FilePath.local() or FilePath.network().

    Attributes:
        path: Absolute path of the file.
        is_local: True for the local installation root, False for the network mirror.
        username: Owner of the file, if any.
        user_id: Numeric id of the owner, if any.
    """

    path: Path
    is_local: bool
    username: str | None = None
    user_id: int | None = None

    @classmethod
    def local(
        cls, path: Path | str, username: str | None = None, user_id: int | None = None
    ) -> FilePath:
        return cls(Path(path), True, username, user_id)

    @classmethod
    def network(
        cls, path: Path | str, username: str | None = None, user_id: int | None = None
    ) -> FilePath:
        return cls(Path(path), False, username, user_id)

    @property
    def is_network(self) -> bool:
        return not self.is_local

    @property
    def name(self) -> str:
        return self.path.name

    def with_path(self, path: Path, is_local: bool) -> FilePath:
        """Return a copy pointing at another location, keeping the owner."""
        return FilePath(path, is_local, self.username, self.user_id)

    def __str__(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class FileOperationResult:
    """Outcome of a file operation.

    Public services report I/O failures through this type instead of
    raising.

    Attributes:
        success: Whether the operation completed.
        path: File the operation targeted.
        error_message: Human-readable failure reason.
        exception: Underlying cause, if any.
    """

    success: bool
    path: Path
    error_message: str | None = None
    exception: BaseException | None = None

    @classmethod
    def succeeded(cls, path: Path | str) -> FileOperationResult:
        return cls(True, Path(path))

    @classmethod
    def failed(
        cls,
        path: Path | str,
        message: str,
        exception: BaseException | None = None,
    ) -> FileOperationResult:
        return cls(False, Path(path), message, exception)

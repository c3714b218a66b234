"""File operation events.

This module provides:
- FileEvent and its subclasses: Write start/success/failure, sync and backup events
- FileEventPublisher: Type-keyed publish/subscribe with optional executor dispatch
- BackupEventMonitor: Counters of backup activity

Writers publish events instead of calling the backup service so backup
latency never adds to write latency.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from concurrent.futures import Executor
    from pathlib import Path

    from worksync.core.types import CriticalityLevel, FilePath

logger = logging.getLogger(__name__)


def _event_id() -> str:
    return uuid.uuid4().hex[:12]


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class FileEvent:
    """Base class of file events."""

    file_path: FilePath
    event_id: str = field(default_factory=_event_id, kw_only=True)
    timestamp: datetime = field(default_factory=_now, kw_only=True)

    @property
    def username(self) -> str | None:
        return self.file_path.username

    @property
    def user_id(self) -> int | None:
        return self.file_path.user_id


@dataclass(frozen=True)
class FileWriteStartEvent(FileEvent):
    operation: str = "write"


@dataclass(frozen=True)
class FileWriteSuccessEvent(FileEvent):
    duration_ms: float = 0.0
    create_backup: bool = True


@dataclass(frozen=True)
class FileWriteFailureEvent(FileEvent):
    error_message: str = ""
    exception: BaseException | None = None


@dataclass(frozen=True)
class FileSyncEvent(FileEvent):
    """A replication attempt finished; file_path is the source."""

    target: Path | None = None
    success: bool = True
    error_message: str | None = None


@dataclass(frozen=True)
class BackupOperationEvent(FileEvent):
    success: bool = True
    backup_path: Path | None = None
    level: CriticalityLevel | None = None
    duration_ms: float = 0.0
    error_message: str | None = None


E = TypeVar("E", bound=FileEvent)
Handler = Callable[[Any], None]


class FileEventPublisher:
    """Deliver file events to subscribed handlers.

    Handlers run on the executor when one is given, otherwise inline on
    the publishing thread. Handler errors are logged and never reach
    the publisher.
    """

    def __init__(self, executor: Executor | None = None) -> None:
        self._executor = executor
        self._lock = threading.Lock()
        self._handlers: dict[type[FileEvent], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)

    def _handlers_for(self, event: FileEvent) -> list[Handler]:
        with self._lock:
            return [
                handler
                for event_type, handlers in self._handlers.items()
                if isinstance(event, event_type)
                for handler in handlers
            ]

    def _run(self, handler: Handler, event: FileEvent) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception(
                "Handler %r failed for %s (Event ID: %s)",
                handler,
                type(event).__name__,
                event.event_id,
            )

    def publish(self, event: FileEvent) -> None:
        for handler in self._handlers_for(event):
            if self._executor is None:
                self._run(handler, event)
                continue
            try:
                self._executor.submit(self._run, handler, event)
            except RuntimeError:
                # Executor shut down; deliver inline so the event is not lost.
                self._run(handler, event)

    def publish_write_start(self, file_path: FilePath, operation: str = "write") -> None:
        self.publish(FileWriteStartEvent(file_path, operation=operation))

    def publish_write_success(
        self, file_path: FilePath, duration_ms: float, create_backup: bool
    ) -> None:
        self.publish(
            FileWriteSuccessEvent(file_path, duration_ms=duration_ms, create_backup=create_backup)
        )

    def publish_write_failure(
        self, file_path: FilePath, error_message: str, exception: BaseException | None = None
    ) -> None:
        self.publish(
            FileWriteFailureEvent(file_path, error_message=error_message, exception=exception)
        )

    def publish_sync(
        self,
        source: FilePath,
        target: Path,
        success: bool,
        error_message: str | None = None,
    ) -> None:
        self.publish(
            FileSyncEvent(source, target=target, success=success, error_message=error_message)
        )


class BackupEventMonitor:
    """Count backup outcomes for diagnostics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._created = 0
        self._failed = 0
        self._by_level: dict[str, int] = defaultdict(int)
        self._last_backup: datetime | None = None
        self._last_failure: datetime | None = None

    def record_backup_created(self, level: CriticalityLevel | None = None) -> None:
        with self._lock:
            self._created += 1
            self._last_backup = _now()
            if level is not None:
                self._by_level[level.name] += 1

    def record_backup_failure(self) -> None:
        with self._lock:
            self._failed += 1
            self._last_failure = _now()

    @property
    def backups_created(self) -> int:
        with self._lock:
            return self._created

    @property
    def backups_failed(self) -> int:
        with self._lock:
            return self._failed

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._created + self._failed
            return {
                "created": self._created,
                "failed": self._failed,
                "success_rate": (self._created / total) if total else 1.0,
                "by_level": dict(self._by_level),
                "last_backup": self._last_backup,
                "last_failure": self._last_failure,
            }

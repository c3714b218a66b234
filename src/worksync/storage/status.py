"""In-memory replication state.

This module provides:
- SyncStatus: State of one (source, target) pair
- SyncStatusRegistry: Thread-safe map of SyncStatus keyed by pair

State per pair moves NONE -> IN_PROGRESS -> NONE on success and
IN_PROGRESS -> PENDING on failure. Nothing here is persisted; after a
restart the next bidirectional sync rebuilds state from file timestamps.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

from worksync.core.types import SyncDirection, SyncState

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


def status_key(source: Path, target: Path) -> str:
    return f"{source}|{target}"


@dataclass
class SyncStatus:
    """Replication state of a (source, target) pair.

    Attributes:
        source: File copied from.
        target: File copied to.
        direction: Whether the copy goes to the network or to local storage.
        pending: Last attempt failed and the pair awaits a retry.
        in_progress: A copy is currently running.
        retry_count: Automatic retries attempted since the last success.
        last_attempt: Start of the most recent attempt.
        last_successful_sync: End of the most recent successful copy.
        error_message: Failure reason of the most recent attempt.
        created_time: When the pair was first seen.
    """

    source: Path
    target: Path
    direction: SyncDirection
    pending: bool = False
    in_progress: bool = False
    retry_count: int = 0
    last_attempt: datetime | None = None
    last_successful_sync: datetime | None = None
    error_message: str | None = None
    created_time: datetime = field(default_factory=_now)

    @property
    def key(self) -> str:
        return status_key(self.source, self.target)

    @property
    def state(self) -> SyncState:
        if self.in_progress:
            return SyncState.IN_PROGRESS
        if self.pending:
            return SyncState.PENDING
        return SyncState.NONE

    def mark_in_progress(self) -> None:
        self.in_progress = True
        self.last_attempt = _now()

    def mark_success(self) -> None:
        self.in_progress = False
        self.pending = False
        self.retry_count = 0
        self.error_message = None
        self.last_successful_sync = _now()

    def mark_failure(self, message: str) -> None:
        self.in_progress = False
        self.pending = True
        self.error_message = message

    def retry_delay(self, base_delay: float, max_delay: float) -> float:
        """Backoff before the next automatic retry, in seconds.

        The first retry is immediate, then the delay doubles from
        base_delay up to max_delay.
        """
        if self.retry_count <= 0:
            return 0.0
        return min(base_delay * 2 ** (self.retry_count - 1), max_delay)

    def should_retry(
        self,
        max_retries: int,
        base_delay: float,
        max_delay: float,
        now: datetime | None = None,
    ) -> bool:
        if not self.pending or self.in_progress or self.retry_count >= max_retries:
            return False
        if self.last_attempt is None:
            return True
        now = now or _now()
        elapsed = (now - self.last_attempt).total_seconds()
        return elapsed >= self.retry_delay(base_delay, max_delay)


class SyncStatusRegistry:
    """Thread-safe registry of SyncStatus entries."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._statuses: dict[str, SyncStatus] = {}

    @property
    def lock(self) -> threading.RLock:
        """Guards every SyncStatus held by the registry."""
        return self._lock

    def get(self, source: Path, target: Path) -> SyncStatus | None:
        with self._lock:
            return self._statuses.get(status_key(source, target))

    def get_or_create(self, source: Path, target: Path, direction: SyncDirection) -> SyncStatus:
        key = status_key(source, target)
        with self._lock:
            status = self._statuses.get(key)
            if status is None:
                status = SyncStatus(source, target, direction)
                self._statuses[key] = status
            return status

    def snapshot(self) -> list[SyncStatus]:
        with self._lock:
            return list(self._statuses.values())

    def pending(self) -> list[SyncStatus]:
        with self._lock:
            return [s for s in self._statuses.values() if s.pending]

    def remove(self, source: Path, target: Path) -> None:
        with self._lock:
            self._statuses.pop(status_key(source, target), None)

    def cleanup_stale(self, max_age: timedelta) -> int:
        """Remove idle, non-pending entries untouched for max_age.

        Returns:
            Number of entries removed.
        """
        cutoff = _now() - max_age
        with self._lock:
            stale = [
                key
                for key, s in self._statuses.items()
                if not s.pending
                and not s.in_progress
                and (s.last_attempt or s.created_time) < cutoff
            ]
            for key in stale:
                del self._statuses[key]
        if stale:
            logger.debug("Removed %d stale sync status entries", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._statuses)

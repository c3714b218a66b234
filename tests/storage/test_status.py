"""Tests for sync status tracking and the storage context."""

from __future__ import annotations

from concurrent.futures import Future
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

from worksync.core.config import StorageConfig
from worksync.core.types import SyncDirection, SyncState
from worksync.storage.context import NetworkState, StorageContext
from worksync.storage.status import SyncStatus, SyncStatusRegistry


class TestSyncStatus:
    """Tests for SyncStatus."""

    def test_lifecycle(self) -> None:
        """State should follow in-progress, failure and success."""
        status = SyncStatus(Path("/l/a.json"), Path("/n/a.json"), SyncDirection.TO_NETWORK)
        assert status.state is SyncState.NONE
        status.mark_in_progress()
        assert status.state is SyncState.IN_PROGRESS
        status.mark_failure("disk gone")
        assert status.state is SyncState.PENDING
        assert status.error_message == "disk gone"
        status.retry_count = 2
        status.mark_success()
        assert status.state is SyncState.NONE
        assert status.retry_count == 0
        assert status.last_successful_sync is not None

    def test_retry_delay_backoff(self) -> None:
        """First retry is immediate, then the delay doubles up to the cap."""
        status = SyncStatus(Path("a"), Path("b"), SyncDirection.TO_NETWORK)
        delays = []
        for count in range(6):
            status.retry_count = count
            delays.append(status.retry_delay(60, 200))
        assert delays == [0.0, 60, 120, 200, 200, 200]

    def test_should_retry(self) -> None:
        """Pending pairs retry after their delay and until the cap."""
        status = SyncStatus(Path("a"), Path("b"), SyncDirection.TO_NETWORK)
        assert not status.should_retry(3, 60, 3600)
        status.mark_in_progress()
        status.mark_failure("boom")
        assert status.should_retry(3, 60, 3600)

        status.retry_count = 1
        now = status.last_attempt + timedelta(seconds=30)
        assert not status.should_retry(3, 60, 3600, now=now)
        assert status.should_retry(3, 60, 3600, now=now + timedelta(seconds=31))

        status.retry_count = 3
        assert not status.should_retry(3, 60, 3600, now=now + timedelta(days=1))


class TestSyncStatusRegistry:
    """Tests for SyncStatusRegistry."""

    def test_get_or_create(self) -> None:
        """Same pair returns the same entry."""
        registry = SyncStatusRegistry()
        first = registry.get_or_create(Path("a"), Path("b"), SyncDirection.TO_NETWORK)
        second = registry.get_or_create(Path("a"), Path("b"), SyncDirection.TO_NETWORK)
        assert first is second
        assert registry.get(Path("a"), Path("b")) is first
        assert len(registry) == 1

    def test_pending(self) -> None:
        """Only failed pairs are pending."""
        registry = SyncStatusRegistry()
        registry.get_or_create(Path("a"), Path("b"), SyncDirection.TO_NETWORK)
        failed = registry.get_or_create(Path("c"), Path("d"), SyncDirection.TO_LOCAL)
        failed.mark_failure("boom")
        assert registry.pending() == [failed]

    def test_cleanup_stale(self) -> None:
        """Old idle entries are removed, pending ones kept."""
        registry = SyncStatusRegistry()
        old = registry.get_or_create(Path("a"), Path("b"), SyncDirection.TO_NETWORK)
        old.created_time = datetime.now(UTC) - timedelta(days=2)
        pending = registry.get_or_create(Path("c"), Path("d"), SyncDirection.TO_NETWORK)
        pending.created_time = datetime.now(UTC) - timedelta(days=2)
        pending.mark_failure("boom")
        registry.get_or_create(Path("e"), Path("f"), SyncDirection.TO_NETWORK)

        assert registry.cleanup_stale(timedelta(hours=24)) == 1
        assert registry.get(Path("a"), Path("b")) is None
        assert len(registry) == 2


class TestNetworkState:
    """Tests for NetworkState."""

    def test_transitions_notify_listeners(self) -> None:
        """Listeners hear only actual changes."""
        state = NetworkState()
        listener = MagicMock()
        state.add_listener(listener)

        assert state.set_available(True) is True
        assert state.set_available(True) is False
        assert state.set_available(False) is True
        assert [c.args for c in listener.call_args_list] == [(True,), (False,)]

    def test_listener_errors_are_contained(self) -> None:
        """A failing listener should not break the update."""
        state = NetworkState()
        state.add_listener(MagicMock(side_effect=RuntimeError("boom")))
        assert state.set_available(True) is True
        assert state.available

    def test_staleness(self) -> None:
        """Never-checked state is stale; a fresh check is not."""
        state = NetworkState()
        assert state.is_stale(600)
        state.mark_checked()
        assert not state.is_stale(600)
        assert state.last_checked is not None


class TestStorageContext:
    """Tests for StorageContext."""

    def test_close_waits_for_pending(self, config: StorageConfig) -> None:
        """Finished work counts as done; close is idempotent."""
        ctx = StorageContext(config)
        future = ctx.sync_executor.submit(lambda: 42)
        assert ctx.close([future], timeout=5) == 0
        assert future.result() == 42
        assert ctx.closed
        assert ctx.close() == 0

    def test_close_reports_unfinished(self, config: StorageConfig) -> None:
        """Futures that never complete are reported."""
        ctx = StorageContext(config)
        never: Future[None] = Future()
        assert ctx.close([never], timeout=0.05) == 1

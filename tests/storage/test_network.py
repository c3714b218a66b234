"""Tests for the network reachability monitor."""

from __future__ import annotations

import errno
import shutil
from pathlib import Path
from unittest.mock import patch

from worksync.core.config import StorageConfig
from worksync.core.types import FileType
from worksync.storage.context import StorageContext
from worksync.storage.network import PROBE_PREFIX, NetworkStatusMonitor
from worksync.storage.paths import FilePathResolver


class TestProbe:
    """Tests for NetworkStatusMonitor.probe."""

    def test_probe_writable_root(self, config: StorageConfig, context: StorageContext) -> None:
        """A writable directory is available and the probe file is removed."""
        monitor = NetworkStatusMonitor(config.network_root, context, config)
        assert monitor.probe()
        assert not list(config.network_root.glob(PROBE_PREFIX + "*"))

    def test_probe_missing_root_retries(
        self, config: StorageConfig, context: StorageContext
    ) -> None:
        """A missing root fails after the configured attempts."""
        config.network_probe_attempts = 3
        config.network_probe_backoff = 1.0
        monitor = NetworkStatusMonitor(config.network_root / "missing", context, config)
        with patch("worksync.storage.network.time.sleep") as sleep:
            assert not monitor.probe()
        assert sleep.call_count == 2

    def test_probe_file_root(self, config: StorageConfig, context: StorageContext) -> None:
        """A file is not a usable root."""
        target = config.network_root / "file.txt"
        target.write_text("x")
        monitor = NetworkStatusMonitor(target, context, config)
        assert not monitor.probe()

    def test_stale_mount_reports_unavailable(self, config: StorageConfig, context: StorageContext) -> None:
        """A stale handle on the root reports unavailable instead of raising."""
        monitor = NetworkStatusMonitor(config.network_root, context, config)
        stale = OSError(errno.ESTALE, "Stale file handle")
        with patch.object(Path, "exists", side_effect=stale):
            assert not monitor.probe()
            assert not monitor.check_now()
        assert not context.network.available

    def test_failed_write_reports_unavailable(
        self, config: StorageConfig, context: StorageContext, resolver: FilePathResolver
    ) -> None:
        """A root that passes attribute checks but refuses writes is unavailable."""
        monitor = NetworkStatusMonitor(config.network_root, context, config)
        with patch.object(Path, "write_bytes", side_effect=OSError(errno.EROFS, "Read-only")):
            assert not monitor.check_now()
            with patch.object(context.network, "is_stale", return_value=True):
                assert not monitor.is_network_available()
        resolved = resolver.resolve_paths(FileType.SESSION, "ion", 9)
        assert resolved.network is None
        assert resolved.local.is_local


class TestAvailability:
    """Tests for cached availability."""

    def test_check_now_applies_immediately(
        self, config: StorageConfig, context: StorageContext
    ) -> None:
        """Forced checks flip the state at once."""
        monitor = NetworkStatusMonitor(config.network_root, context, config)
        shutil.rmtree(config.network_root)
        assert not monitor.check_now()
        assert not context.network.available
        config.network_root.mkdir()
        assert monitor.check_now()
        assert context.network.available

    def test_unreachable_network_reports_unavailable(
        self, config: StorageConfig, context: StorageContext
    ) -> None:
        """A stale cached state is re-probed on demand."""
        shutil.rmtree(config.network_root)
        monitor = NetworkStatusMonitor(config.network_root, context, config)
        with patch.object(context.network, "is_stale", return_value=True):
            assert not monitor.is_network_available()
        assert not context.network.available

    def test_fresh_state_is_not_reprobed(
        self, config: StorageConfig, context: StorageContext
    ) -> None:
        """Cached state younger than the staleness window is trusted."""
        monitor = NetworkStatusMonitor(config.network_root, context, config)
        with patch.object(monitor, "probe") as probe:
            assert monitor.is_network_available()
        probe.assert_not_called()

    def test_scheduled_check_waits_for_stability(
        self, config: StorageConfig, context: StorageContext
    ) -> None:
        """Scheduled checks change state only after consecutive results."""
        config.network_stability_threshold = 3
        monitor = NetworkStatusMonitor(config.network_root, context, config, debounce=0)
        with patch.object(monitor, "probe", return_value=False):
            assert monitor.scheduled_check()
            assert monitor.scheduled_check()
            assert context.network.available
            assert not monitor.scheduled_check()
        assert not context.network.available

    def test_scheduled_check_resets_on_agreement(
        self, config: StorageConfig, context: StorageContext
    ) -> None:
        """An agreeing result resets the stability counter."""
        config.network_stability_threshold = 2
        monitor = NetworkStatusMonitor(config.network_root, context, config, debounce=0)
        with patch.object(monitor, "probe", side_effect=[False, True, False, False]):
            monitor.scheduled_check()
            monitor.scheduled_check()
            monitor.scheduled_check()
            assert context.network.available
            monitor.scheduled_check()
        assert not context.network.available

    def test_scheduled_check_debounced(
        self, config: StorageConfig, context: StorageContext
    ) -> None:
        """Changes within the debounce window after a forced change are ignored."""
        config.network_stability_threshold = 1
        monitor = NetworkStatusMonitor(config.network_root, context, config, debounce=3600)
        with patch.object(monitor, "probe", return_value=False):
            monitor.check_now()
        with patch.object(monitor, "probe", return_value=True):
            assert not monitor.scheduled_check()
        assert not context.network.available

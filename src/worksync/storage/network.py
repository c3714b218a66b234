"""Network root reachability monitor.

This module provides:
- NetworkStatusMonitor: Write-probe of the network root with bounded retry

A shared-drive mount can report that it exists while being stale, so
the probe creates and deletes a small file rather than trusting
directory attributes. Scheduled checks only flip the cached state after
several consecutive identical results and never within the debounce
window of the previous change; forced checks apply at once.
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from worksync.core.config import StorageConfig
    from worksync.storage.context import StorageContext

logger = logging.getLogger(__name__)

PROBE_PREFIX = ".worksync_probe_"
DEFAULT_DEBOUNCE = 10.0  # seconds


class NetworkStatusMonitor:
    """Track whether the network root can be written to.

    Args:
        network_root: Directory to probe.
        context: Shared storage state holding the cached flag.
        config: Probe attempts, backoff, staleness and stability settings.
        debounce: Minimum seconds between two scheduled state changes.
    """

    def __init__(
        self,
        network_root: Path,
        context: StorageContext,
        config: StorageConfig,
        debounce: float = DEFAULT_DEBOUNCE,
    ) -> None:
        self._root = network_root
        self._state = context.network
        self._attempts = max(1, config.network_probe_attempts)
        self._backoff = config.network_probe_backoff
        self._stale_after = config.network_stale_after
        self._stability_threshold = max(1, config.network_stability_threshold)
        self._debounce = debounce
        self._update_lock = threading.Lock()
        self._probe_lock = threading.Lock()
        self._stability_counter = 0
        self._last_change: float | None = None

    def _probe_once(self) -> bool:
        root = self._root
        # stale mounts raise ESTALE or EIO from stat itself
        try:
            if not root.exists():
                logger.debug("Network path does not exist: %s", root)
                return False
            if not root.is_dir():
                logger.debug("Network path is not a directory: %s", root)
                return False
            if not os.access(root, os.R_OK | os.W_OK):
                logger.debug("Network path is not readable and writable: %s", root)
                return False

            probe = root / f"{PROBE_PREFIX}{uuid.uuid4().hex}"
            probe.write_bytes(b"ok")
            probe.unlink()
        except OSError as e:
            logger.debug("Network probe failed on %s: %s", root, e)
            return False
        return True

    def probe(self) -> bool:
        """Probe the network root, retrying a bounded number of times.

        Returns:
            True if one attempt succeeded.
        """
        for attempt in range(1, self._attempts + 1):
            if self._probe_once():
                return True
            if attempt < self._attempts:
                logger.debug(
                    "Network check attempt %d/%d failed, retrying in %.1fs",
                    attempt,
                    self._attempts,
                    self._backoff,
                )
                time.sleep(self._backoff)
        logger.debug("Network check failed after %d attempts", self._attempts)
        return False

    def check_now(self, reason: str = "manual check") -> bool:
        """Probe and apply the result immediately.

        Used for the initial detection and for lazy refreshes.
        """
        available = self.probe()
        with self._update_lock:
            self._stability_counter = 0
            if self._state.set_available(available):
                self._last_change = time.monotonic()
                logger.info(
                    "Network status forced to %s (reason: %s)",
                    "available" if available else "unavailable",
                    reason,
                )
        return available

    def scheduled_check(self) -> bool:
        """Probe and apply the result once it is stable.

        Returns:
            The cached availability after the check.
        """
        observed = self.probe()
        with self._update_lock:
            if observed == self._state.available:
                self._stability_counter = 0
                self._state.mark_checked()
                return observed

            self._stability_counter += 1
            if self._stability_counter == 1:
                logger.debug(
                    "Potential network status change to %s observed, waiting for stability",
                    "available" if observed else "unavailable",
                )
            if self._stability_counter < self._stability_threshold:
                return self._state.available

            now = time.monotonic()
            if self._last_change is not None and now - self._last_change < self._debounce:
                logger.debug("Ignoring network status change within debounce period")
                return self._state.available

            self._stability_counter = 0
            self._last_change = now
            self._state.set_available(observed)
            return observed

    def is_network_available(self) -> bool:
        """Cached availability, re-probed when older than the staleness window.

        Only one thread probes at a time; others get the cached value.
        """
        if self._state.is_stale(self._stale_after) and self._probe_lock.acquire(blocking=False):
            try:
                if self._state.is_stale(self._stale_after):
                    self.check_now("stale status")
            finally:
                self._probe_lock.release()
        return self._state.available

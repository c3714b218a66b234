"""Configuration for worksync.

This module provides:
- StorageConfig: Roots, tuning values and backup/sync policy
- get_config_dir, get_config_file: Location of the JSON config file
- load_config, save_config: Read and write StorageConfig as JSON

Environment variables override the file:
- WORKSYNC_LOCAL_PATH: Local installation base directory
- WORKSYNC_NETWORK_PATH: Network shared root
- WORKSYNC_APP_TITLE: Application directory name under the local base
- WORKSYNC_LOG_PATH: Log file path
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ENV_PREFIX = "WORKSYNC_"


@dataclass
class StorageConfig:
    """Configuration of the storage layer.

    Durations are in seconds.

    Attributes:
        local_path: Base directory of the local installation.
        network_path: Root of the network shared folder.
        app_title: Directory created under local_path for application data.
        log_path: Optional log file.
        lock_timeout: Maximum wait for a file lock.
        write_max_attempts: Attempts for a write hitting an access conflict.
        write_initial_delay: First delay between write attempts.
        write_max_delay: Upper bound for the delay between write attempts.
        write_dedup_interval: Window in which repeated writes are skipped.
        min_file_size: Smallest readable file; smaller files are treated as corrupt.
        backup_retention_days: Age after which timestamped backups are deleted.
        backup_cleanup_hour: Hour of the daily backup cleanup.
        sync_max_retries: Automatic retries of a failed sync.
        sync_retry_delay: Base delay of the sync retry backoff.
        sync_max_retry_delay: Upper bound of the sync retry backoff.
        sync_retry_interval: Period of the scheduled sync retry sweep.
        sync_shutdown_timeout: Bounded wait for in-flight syncs on shutdown.
        network_check_interval: Period of the scheduled network probe.
        network_stale_after: Age after which a cached network state is re-probed.
        network_probe_attempts: Probe attempts before declaring the network down.
        network_probe_backoff: Delay between probe attempts.
        network_stability_threshold: Consecutive scheduled results needed to flip state.
        sync_workers: Threads of the sync executor.
        event_workers: Threads of the backup/event executor.
        obfuscation_key: Key of the XOR obfuscation codec.
    """

    local_path: Path
    network_path: Path
    app_title: str = "WorkSync"
    log_path: Path | None = None
    lock_timeout: float = 5.0
    write_max_attempts: int = 3
    write_initial_delay: float = 0.5
    write_max_delay: float = 3.0
    write_dedup_interval: float = 1.0
    min_file_size: int = 3
    backup_retention_days: int = 30
    backup_cleanup_hour: int = 3
    sync_max_retries: int = 3
    sync_retry_delay: float = 60.0
    sync_max_retry_delay: float = 3600.0
    sync_retry_interval: float = 300.0
    sync_shutdown_timeout: float = 60.0
    network_check_interval: float = 600.0
    network_stale_after: float = 600.0
    network_probe_attempts: int = 3
    network_probe_backoff: float = 1.0
    network_stability_threshold: int = 3
    sync_workers: int = 4
    event_workers: int = 2
    obfuscation_key: str = "worksync"

    def __post_init__(self) -> None:
        """Normalize paths."""
        self.local_path = Path(self.local_path).expanduser()
        self.network_path = Path(self.network_path).expanduser()
        if self.log_path is not None:
            self.log_path = Path(self.log_path).expanduser()

    @property
    def local_root(self) -> Path:
        """Directory holding the local copies of all data files."""
        return self.local_path / self.app_title

    @property
    def network_root(self) -> Path:
        return self.network_path

    @property
    def backup_root(self) -> Path:
        return self.local_root / "backup"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Path):
                data[key] = str(value)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StorageConfig:
        """Build a config from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
        return cls(**{k: v for k, v in data.items() if k in known})


def get_config_dir() -> Path:
    """Get the configuration directory for worksync.

    Returns:
        Path to ~/.worksync.
    """
    return Path.home() / ".worksync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def _env_overrides() -> dict[str, str]:
    overrides = {}
    for key in ("local_path", "network_path", "app_title", "log_path"):
        value = os.environ.get(ENV_PREFIX + key.upper())
        if value:
            overrides[key] = value
    return overrides


def load_config(path: Path | None = None) -> StorageConfig:
    """Load configuration from a JSON file and the environment.

    Args:
        path: Config file to read (default: ~/.worksync/config.json).

    Returns:
        The loaded configuration.

    Raises:
        ValueError: If no local or network path is configured.
    """
    config_file = path or get_config_file()
    data: dict[str, Any] = {}
    if config_file.exists():
        data = dict(json.loads(config_file.read_text(encoding="utf-8")))
    data.update(_env_overrides())

    for required in ("local_path", "network_path"):
        if not data.get(required):
            raise ValueError(
                f"'{required}' is not configured (set it in {config_file} "
                f"or {ENV_PREFIX}{required.upper()})"
            )
    return StorageConfig.from_dict(data)


def save_config(config: StorageConfig, path: Path | None = None) -> Path:
    """Save configuration to a JSON file.

    Returns:
        The file written.
    """
    config_file = path or get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
    return config_file

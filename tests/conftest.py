"""Shared pytest fixtures for worksync tests.

Every fixture works under tmp_path: a local base directory and an
existing network root, with retry delays shortened so tests stay fast.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from worksync.core.config import StorageConfig
from worksync.core.obfuscation import ObfuscationCodec
from worksync.storage.context import StorageContext
from worksync.storage.events import FileEventPublisher
from worksync.storage.paths import FilePathResolver, PathConfig


@pytest.fixture
def config(tmp_path: Path) -> StorageConfig:
    """Create a test configuration with an existing network root."""
    network = tmp_path / "network"
    network.mkdir()
    return StorageConfig(
        local_path=tmp_path / "local",
        network_path=network,
        app_title="TestApp",
        lock_timeout=1.0,
        write_initial_delay=0.01,
        write_max_delay=0.05,
        network_probe_attempts=1,
        network_probe_backoff=0.0,
        sync_shutdown_timeout=5.0,
        sync_workers=2,
        event_workers=1,
    )


@pytest.fixture
def context(config: StorageConfig) -> Generator[StorageContext, None, None]:
    """Create a storage context with the network marked available."""
    ctx = StorageContext(config)
    ctx.network.set_available(True)
    yield ctx
    ctx.close(timeout=5.0)


@pytest.fixture
def path_config(config: StorageConfig) -> PathConfig:
    """Create and initialize the directory layout."""
    paths = PathConfig(config)
    paths.initialize()
    return paths


@pytest.fixture
def resolver(path_config: PathConfig, context: StorageContext) -> FilePathResolver:
    """Create a path resolver backed by the context network flag."""
    return FilePathResolver(path_config, context)


@pytest.fixture
def codec(config: StorageConfig) -> ObfuscationCodec:
    """Create the obfuscation codec of the test configuration."""
    return ObfuscationCodec(config.obfuscation_key)


@pytest.fixture
def publisher() -> FileEventPublisher:
    """Create a publisher delivering events inline."""
    return FileEventPublisher()

"""Reads of data files with backup fallback.

This module provides:
- FileReaderService: Read, deobfuscate and decode a file, falling back to its simple backup

Files smaller than the configured minimum size are treated as corrupt.
Reads never raise for I/O or decoding problems; they return None when
neither the file nor its backup yields data.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from worksync.core.serialization import decode_json
from worksync.core.types import LockTimeoutError
from worksync.storage.backup import BackupService

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from worksync.core.obfuscation import ObfuscationCodec
    from worksync.core.types import FilePath
    from worksync.storage.context import StorageContext

logger = logging.getLogger(__name__)


class FileReaderService:
    """Read data files.

    Args:
        context: Shared storage state (locks, config).
        codec: Obfuscation codec reversed unless skipped.
        network_available: Callable reporting network reachability.
    """

    def __init__(
        self,
        context: StorageContext,
        codec: ObfuscationCodec,
        network_available: Callable[[], bool] | None = None,
    ) -> None:
        self._locks = context.locks
        self._codec = codec
        self._lock_timeout = context.config.lock_timeout
        self._min_size = context.config.min_file_size
        self._network_available = network_available or (lambda: context.network.available)

    def _decode_file(self, path: Path, model: Any, skip_deobfuscation: bool) -> Any:
        """Decode one file; raises on any problem."""
        if path.stat().st_size < self._min_size:
            raise ValueError(f"file is smaller than {self._min_size} bytes")
        content = path.read_bytes()
        if not skip_deobfuscation:
            content = self._codec.deobfuscate(content)
        return decode_json(content, model)

    def _read_with_fallback(self, path: Path, model: Any, skip_deobfuscation: bool) -> Any | None:
        if path.exists():
            try:
                return self._decode_file(path, model, skip_deobfuscation)
            except (OSError, ValueError) as e:
                logger.warning("Error reading file %s: %s", path, e)

        backup = BackupService.get_simple_backup_path(path)
        if backup.exists():
            logger.info("Attempting to read from backup file: %s", backup)
            try:
                return self._decode_file(backup, model, skip_deobfuscation)
            except (OSError, ValueError) as e:
                logger.error("Error reading backup file %s: %s", backup, e)
        return None

    def read_file(
        self, file_path: FilePath, model: Any = Any, skip_deobfuscation: bool = False
    ) -> Any | None:
        """Read a file under a shared lock.

        Args:
            file_path: File to read.
            model: Type to decode into (pydantic model, ``list[Model]``...).
            skip_deobfuscation: The file holds plain JSON.

        Returns:
            The decoded data, or None when neither the file nor its backup
            is readable.
        """
        lock = self._locks.get(file_path.path)
        try:
            with lock.read_locked(self._lock_timeout):
                return self._read_with_fallback(file_path.path, model, skip_deobfuscation)
        except LockTimeoutError as e:
            logger.warning("Could not read %s: %s", file_path.path, e)
            return None

    def read_file_read_only(
        self, file_path: FilePath, model: Any = Any, skip_deobfuscation: bool = False
    ) -> Any | None:
        """Read a file without taking its lock."""
        return self._read_with_fallback(file_path.path, model, skip_deobfuscation)

    def read_network_file(
        self, network_path: FilePath, model: Any = Any, skip_deobfuscation: bool = False
    ) -> Any | None:
        if not network_path.is_network:
            logger.warning("Not a network path: %s", network_path.path)
            return None
        if not self._network_available():
            logger.warning("Network not available, cannot read %s", network_path.name)
            return None
        return self.read_file(network_path, model, skip_deobfuscation)

    def read_local_file(
        self, local_path: FilePath, model: Any = Any, skip_deobfuscation: bool = False
    ) -> Any | None:
        if not local_path.is_local:
            logger.warning("Not a local path: %s", local_path.path)
            return None
        return self.read_file(local_path, model, skip_deobfuscation)

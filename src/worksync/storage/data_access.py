"""Read, write and sync logical files by FileType.

This module provides:
- DataAccessService: Facade over the resolver, reader, writer and sync service
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from worksync.core.filetypes import get_spec
from worksync.core.types import FileOperationResult, SyncDirection
from worksync.storage.sync import BidirectionalSyncResult

if TYPE_CHECKING:
    from worksync.core.types import FileType
    from worksync.storage.paths import FilePathResolver
    from worksync.storage.reader import FileReaderService
    from worksync.storage.sync import SyncFilesService
    from worksync.storage.writer import FileWriterService

logger = logging.getLogger(__name__)


class DataAccessService:
    """Work with files by type and owner instead of by path.

    Writes always land on the local copy first; the network mirror is
    updated in the background when it is reachable.
    """

    def __init__(
        self,
        resolver: FilePathResolver,
        reader: FileReaderService,
        writer: FileWriterService,
        sync_service: SyncFilesService,
    ) -> None:
        self._resolver = resolver
        self._reader = reader
        self._writer = writer
        self._sync = sync_service

    def read(
        self,
        file_type: FileType,
        model: Any = Any,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
        prefer_network: bool = False,
        skip_deobfuscation: bool = False,
    ) -> Any | None:
        """Read a file, from the network mirror first when requested and reachable.

        A network read that yields nothing falls back to the local copy.
        """
        path = self._resolver.resolve_read_path(
            file_type, username, user_id, year, month, prefer_network=prefer_network
        )
        data = self._reader.read_file(path, model, skip_deobfuscation)
        if data is None and path.is_network:
            logger.info("Network read of %s returned nothing, reading local copy", path.name)
            local = self._resolver.get_local_path(file_type, username, user_id, year, month)
            data = self._reader.read_file(local, model, skip_deobfuscation)
        return data

    def write(
        self,
        file_type: FileType,
        data: Any,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
        sync: bool = True,
        create_backup: bool = True,
        skip_obfuscation: bool = False,
    ) -> FileOperationResult:
        """Write the local copy and optionally start a network sync."""
        local = self._resolver.get_local_path(file_type, username, user_id, year, month)
        if not sync or get_spec(file_type).local_only:
            return self._writer.write_file_with_backup_control(
                local, data, skip_obfuscation, create_backup=create_backup
            )
        if create_backup:
            return self._writer.write_with_network_sync(local, data, skip_obfuscation)
        return self._writer.write_with_network_sync_no_backup(local, data, skip_obfuscation)

    def sync(
        self,
        file_type: FileType,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> BidirectionalSyncResult:
        """Reconcile the local copy with its network mirror."""
        resolved = self._resolver.resolve_paths(file_type, username, user_id, year, month)
        if resolved.network is None:
            reason = "File type is local only" if get_spec(file_type).local_only else "Network not available"
            return BidirectionalSyncResult(
                SyncDirection.NONE, FileOperationResult.failed(resolved.local.path, reason)
            )
        return self._sync.sync_bidirectional_now(resolved.local, resolved.network)

    def push(
        self,
        file_type: FileType,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> FileOperationResult:
        """Copy the local copy over the network mirror."""
        resolved = self._resolver.resolve_paths(file_type, username, user_id, year, month)
        if resolved.network is None:
            return FileOperationResult.failed(resolved.local.path, "Network path not available")
        return self._sync.sync_file_to_network(resolved.local, resolved.network)

    def pull(
        self,
        file_type: FileType,
        username: str | None = None,
        user_id: int | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> FileOperationResult:
        """Copy the network mirror over the local copy."""
        resolved = self._resolver.resolve_paths(file_type, username, user_id, year, month)
        if resolved.network is None:
            return FileOperationResult.failed(resolved.local.path, "Network path not available")
        return self._sync.sync_file_to_local(resolved.network, resolved.local)

"""Tests for locked, retried writes."""

from __future__ import annotations

import errno
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from worksync.core.config import StorageConfig
from worksync.core.obfuscation import ObfuscationCodec
from worksync.core.types import FilePath, FileType, LockTimeoutError
from worksync.storage.context import StorageContext
from worksync.storage.events import (
    FileEventPublisher,
    FileWriteFailureEvent,
    FileWriteStartEvent,
    FileWriteSuccessEvent,
)
from worksync.storage.paths import FilePathResolver
from worksync.storage.reader import FileReaderService
from worksync.storage.sync import SyncFilesService
from worksync.storage.writer import FileWriterService, is_retriable_error


@pytest.fixture
def writer(
    context: StorageContext,
    codec: ObfuscationCodec,
    publisher: FileEventPublisher,
    resolver: FilePathResolver,
) -> FileWriterService:
    """Create a writer wired for network sync."""
    sync = SyncFilesService(context, publisher)
    return FileWriterService(context, codec, publisher, resolver, sync)


@pytest.fixture
def reader(context: StorageContext, codec: ObfuscationCodec) -> FileReaderService:
    """Create a reader."""
    return FileReaderService(context, codec)


@pytest.fixture
def worktime(resolver: FilePathResolver) -> FilePath:
    """Local path of a worktime file."""
    return resolver.get_local_path(FileType.WORKTIME, "alice", year=2024, month=3)


class TestWriteFile:
    """Tests for FileWriterService.write_file."""

    def test_write_then_read(
        self, writer: FileWriterService, reader: FileReaderService, worktime: FilePath
    ) -> None:
        """Written data reads back equal."""
        data = {"entries": [{"day": "2024-03-01", "hours": 8}], "name": "Ана"}
        assert writer.write_file(worktime, data).success
        assert reader.read_file(worktime) == data

    def test_content_is_obfuscated(
        self, writer: FileWriterService, worktime: FilePath, codec: ObfuscationCodec
    ) -> None:
        """On-disk bytes are the obfuscated JSON."""
        writer.write_file(worktime, {"hours": 8})
        raw = worktime.path.read_bytes()
        assert b"hours" not in raw
        assert b"hours" in codec.deobfuscate(raw)

    def test_skip_obfuscation(self, writer: FileWriterService, worktime: FilePath) -> None:
        """Plain JSON is written when asked."""
        writer.write_file(worktime, {"hours": 8}, skip_obfuscation=True)
        assert b'"hours": 8' in worktime.path.read_bytes()

    def test_no_temp_files_left(self, writer: FileWriterService, worktime: FilePath) -> None:
        """Atomic replace leaves only the target."""
        writer.write_file(worktime, {"a": 1})
        assert [p.name for p in worktime.path.parent.iterdir()] == [worktime.name]

    def test_unserializable_data_fails(self, writer: FileWriterService, worktime: FilePath) -> None:
        """Serialization errors are returned, not raised."""
        result = writer.write_file(worktime, {"bad": object()})
        assert not result.success
        assert not worktime.path.exists()

    def test_duplicate_write_skipped(self, writer: FileWriterService, worktime: FilePath) -> None:
        """A second write of the same file within the window does no I/O."""
        assert writer.write_file(worktime, {"rev": 1}).success
        with patch.object(writer, "_locked_write") as locked_write:
            result = writer.write_file(worktime, {"rev": 2})
        assert result.success
        locked_write.assert_not_called()

    def test_dedup_is_per_user(self, writer: FileWriterService, worktime: FilePath) -> None:
        """Another user's write of the same file is not deduplicated."""
        writer.write_file(worktime, {"rev": 1}, skip_obfuscation=True, username="alice")
        assert writer.write_file(worktime, {"rev": 2}, skip_obfuscation=True, username="admin").success
        assert b'"rev": 2' in worktime.path.read_bytes()

    def test_dedup_window_expires(
        self,
        context: StorageContext,
        codec: ObfuscationCodec,
        publisher: FileEventPublisher,
        worktime: FilePath,
    ) -> None:
        """With a zero window every write goes to disk."""
        context.config.write_dedup_interval = 0
        writer = FileWriterService(context, codec, publisher)
        writer.write_file(worktime, {"rev": 1}, skip_obfuscation=True)
        writer.write_file(worktime, {"rev": 2}, skip_obfuscation=True)
        assert b'"rev": 2' in worktime.path.read_bytes()


class TestRetry:
    """Tests for retry on access conflicts."""

    def test_locked_file_retried_three_times(
        self, writer: FileWriterService, worktime: FilePath, config: StorageConfig
    ) -> None:
        """A file that stays locked is attempted three times with growing delays."""
        with (
            patch.object(writer, "_locked_write", side_effect=PermissionError("file is locked")) as locked,
            patch("worksync.storage.writer.time.sleep") as sleep,
        ):
            result = writer.write_bytes(worktime, b"{}  ")

        assert not result.success
        assert locked.call_count == 3
        delays = [c.args[0] for c in sleep.call_args_list]
        assert delays == [config.write_initial_delay, config.write_initial_delay * 2]
        assert "after 3 attempts" in result.error_message

    def test_succeeds_on_retry(self, writer: FileWriterService, worktime: FilePath) -> None:
        """A conflict that clears lets the write through."""
        original = writer._locked_write
        calls = {"n": 0}

        def flaky(path: Path, content: bytes) -> None:
            calls["n"] += 1
            if calls["n"] == 1:
                raise LockTimeoutError(path, 1.0)
            original(path, content)

        with patch.object(writer, "_locked_write", side_effect=flaky):
            with patch("worksync.storage.writer.time.sleep"):
                assert writer.write_bytes(worktime, b"{}  ").success
        assert worktime.path.read_bytes() == b"{}  "

    def test_permanent_error_not_retried(self, writer: FileWriterService, worktime: FilePath) -> None:
        """Errors other than access conflicts fail at once."""
        with patch.object(writer, "_locked_write", side_effect=OSError(errno.ENOSPC, "No space")) as locked:
            result = writer.write_bytes(worktime, b"{}  ")
        assert not result.success
        assert locked.call_count == 1

    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (PermissionError("denied"), True),
            (LockTimeoutError("/x", 1.0), True),
            (OSError(errno.EBUSY, "busy"), True),
            (OSError("The process cannot access the file"), True),
            (FileNotFoundError("gone"), False),
            (OSError(errno.ENOSPC, "No space left"), False),
            (ValueError("bad"), False),
        ],
    )
    def test_is_retriable_error(self, exc: BaseException, expected: bool) -> None:
        """Only access conflicts are retriable."""
        assert is_retriable_error(exc) is expected


class TestEvents:
    """Tests for write events."""

    def test_success_events(
        self, writer: FileWriterService, publisher: FileEventPublisher, worktime: FilePath
    ) -> None:
        """Start and success events carry the backup flag."""
        events: list = []
        publisher.subscribe(FileWriteStartEvent, events.append)
        publisher.subscribe(FileWriteSuccessEvent, events.append)
        writer.write_file_with_backup_control(worktime, {"a": 1}, create_backup=False)

        assert [type(e) for e in events] == [FileWriteStartEvent, FileWriteSuccessEvent]
        assert events[1].create_backup is False
        assert events[1].username == "alice"

    def test_failure_event(
        self, writer: FileWriterService, publisher: FileEventPublisher, worktime: FilePath
    ) -> None:
        """A failed write publishes the failure."""
        handler = MagicMock()
        publisher.subscribe(FileWriteFailureEvent, handler)
        with patch.object(writer, "_locked_write", side_effect=OSError(errno.EIO, "I/O error")):
            writer.write_bytes(worktime, b"{}  ")
        handler.assert_called_once()
        assert "I/O error" in handler.call_args.args[0].error_message


class TestNetworkSync:
    """Tests for writes followed by a background network sync."""

    def test_write_with_network_sync(
        self, writer: FileWriterService, worktime: FilePath, resolver: FilePathResolver
    ) -> None:
        """The local write is copied to the network mirror in the background."""
        assert writer.write_with_network_sync(worktime, {"hours": 8}).success
        future = writer.pending_network_sync(worktime)
        assert future is not None
        assert future.result(timeout=5).success

        network = resolver.to_network_path(worktime)
        assert network.path.read_bytes() == worktime.path.read_bytes()

    def test_network_path_rejected(self, writer: FileWriterService, resolver: FilePathResolver) -> None:
        """Network-sync writes need a local path."""
        network = resolver.get_network_path(FileType.WORKTIME, "alice", year=2024, month=3)
        result = writer.write_with_network_sync_no_backup(network, {"a": 1})
        assert not result.success
        assert not network.path.exists()

    def test_no_sync_when_offline(
        self, writer: FileWriterService, worktime: FilePath, context: StorageContext
    ) -> None:
        """Offline writes stay local."""
        context.network.set_available(False)
        assert writer.write_with_network_sync(worktime, {"a": 1}).success
        assert writer.pending_network_sync(worktime) is None

"""Tests for CLI commands - init, status, backup, sync, run."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from worksync.cli import cli
from worksync.core.obfuscation import ObfuscationCodec


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Path of the config file used by the tests."""
    return tmp_path / "config" / "config.json"


@pytest.fixture
def initialized(runner: CliRunner, tmp_path: Path, config_file: Path) -> Path:
    """Run 'worksync init' and return the local root."""
    network = tmp_path / "network"
    network.mkdir()
    result = runner.invoke(
        cli,
        [
            "--config",
            str(config_file),
            "init",
            "--local-path",
            str(tmp_path / "local"),
            "--network-path",
            str(network),
            "--app-title",
            "TestApp",
        ],
    )
    assert result.exit_code == 0, result.output
    return tmp_path / "local" / "TestApp"


def _write_session(local_root: Path, content: bytes = b'{"active": true}') -> Path:
    path = local_root / "user" / "session" / "session_ion_9.json"
    path.write_bytes(ObfuscationCodec("worksync").obfuscate(content))
    return path


class TestInitCommand:
    """Tests for 'worksync init' command."""

    def test_init_writes_config(self, initialized: Path, config_file: Path, tmp_path: Path) -> None:
        """Init should save the paths and create the local layout."""
        data = json.loads(config_file.read_text())
        assert data["local_path"] == str(tmp_path / "local")
        assert data["app_title"] == "TestApp"
        assert (initialized / "user" / "session").is_dir()
        assert (initialized / "backup" / "level3_high").is_dir()

    def test_init_fails_if_already_initialized(
        self, runner: CliRunner, initialized: Path, config_file: Path, tmp_path: Path
    ) -> None:
        """Init should refuse to overwrite without --force."""
        args = ["--config", str(config_file), "init", "--local-path", str(tmp_path / "other"),
                "--network-path", str(tmp_path / "network")]
        result = runner.invoke(cli, args)
        assert result.exit_code == 1
        assert "already exists" in result.output

        result = runner.invoke(cli, [*args, "--force"])
        assert result.exit_code == 0
        assert json.loads(config_file.read_text())["local_path"] == str(tmp_path / "other")

    def test_init_requires_paths(self, runner: CliRunner, config_file: Path) -> None:
        """Init should fail without the storage paths."""
        result = runner.invoke(cli, ["--config", str(config_file), "init"])
        assert result.exit_code != 0
        assert not config_file.exists()

    def test_init_uses_default_config_dir(self, runner: CliRunner, tmp_path: Path) -> None:
        """Without --config the file goes to the user config directory."""
        with patch("worksync.cli.config.get_config_dir", return_value=tmp_path / ".worksync"):
            result = runner.invoke(
                cli,
                ["init", "--local-path", str(tmp_path / "l"), "--network-path", str(tmp_path / "n")],
            )
        assert result.exit_code == 0
        assert (tmp_path / ".worksync" / "config.json").exists()


class TestStatusCommand:
    """Tests for 'worksync status' command."""

    def test_status(self, runner: CliRunner, initialized: Path, config_file: Path) -> None:
        """Status should show roots, availability and backup tiers."""
        result = runner.invoke(cli, ["--config", str(config_file), "status"])
        assert result.exit_code == 0, result.output
        assert str(initialized) in result.output
        assert "Network storage: available" in result.output
        assert "HIGH" in result.output

    def test_status_without_config(self, runner: CliRunner, config_file: Path) -> None:
        """Commands should ask for init when nothing is configured."""
        with patch.dict("os.environ", {}, clear=True):
            result = runner.invoke(cli, ["--config", str(config_file), "status"])
        assert result.exit_code == 1
        assert "worksync init" in result.output


class TestBackupCommands:
    """Tests for 'worksync backup' commands."""

    def test_create_list_restore(
        self, runner: CliRunner, initialized: Path, config_file: Path
    ) -> None:
        """A created backup is listed and can be restored."""
        path = _write_session(initialized)
        original = path.read_bytes()
        base = ["--config", str(config_file), "backup"]

        result = runner.invoke(cli, [*base, "create", str(path)])
        assert result.exit_code == 0, result.output
        assert "Backup created" in result.output

        result = runner.invoke(cli, [*base, "list", str(path)])
        assert result.exit_code == 0
        assert "timestamped" in result.output

        path.write_bytes(b"garbage")
        result = runner.invoke(cli, [*base, "restore", str(path)])
        assert result.exit_code == 0, result.output
        assert path.read_bytes() == original

    def test_list_without_backups(
        self, runner: CliRunner, initialized: Path, config_file: Path
    ) -> None:
        """Listing a file never backed up says so."""
        path = _write_session(initialized)
        result = runner.invoke(cli, ["--config", str(config_file), "backup", "list", str(path)])
        assert result.exit_code == 0
        assert "No backups found." in result.output

    def test_create_outside_storage(
        self, runner: CliRunner, initialized: Path, config_file: Path, tmp_path: Path
    ) -> None:
        """Files outside the storage roots are rejected."""
        stray = tmp_path / "stray.json"
        stray.write_text("{}")
        result = runner.invoke(cli, ["--config", str(config_file), "backup", "create", str(stray)])
        assert result.exit_code == 1
        assert "neither the local nor the network root" in result.output

    def test_cleanup(self, runner: CliRunner, initialized: Path, config_file: Path) -> None:
        """Cleanup with nothing expired deletes nothing."""
        result = runner.invoke(cli, ["--config", str(config_file), "backup", "cleanup"])
        assert result.exit_code == 0
        assert "No backups to delete." in result.output


class TestSyncCommands:
    """Tests for 'worksync sync' commands."""

    def test_push_then_auto(
        self, runner: CliRunner, initialized: Path, config_file: Path, tmp_path: Path
    ) -> None:
        """Push copies the file; a second reconcile finds nothing to do."""
        local = _write_session(initialized)
        base = ["--config", str(config_file), "sync"]
        ident = ["session", "--user", "ion", "--user-id", "9"]

        result = runner.invoke(cli, [*base, "push", *ident])
        assert result.exit_code == 0, result.output
        network = tmp_path / "network" / "user" / "session" / "session_ion_9.json"
        assert network.read_bytes() == local.read_bytes()

        result = runner.invoke(cli, [*base, "auto", *ident])
        assert result.exit_code == 0
        assert "Sync complete (none)" in result.output

    def test_pull(
        self, runner: CliRunner, initialized: Path, config_file: Path, tmp_path: Path
    ) -> None:
        """Pull restores a missing local copy from the network."""
        network = tmp_path / "network" / "user" / "session" / "session_ion_9.json"
        network.parent.mkdir(parents=True)
        network.write_bytes(b"remote")
        result = runner.invoke(
            cli, ["--config", str(config_file), "sync", "pull", "session", "--user", "ion", "--user-id", "9"]
        )
        assert result.exit_code == 0, result.output
        assert (initialized / "user" / "session" / "session_ion_9.json").read_bytes() == b"remote"

    def test_missing_fields(self, runner: CliRunner, initialized: Path, config_file: Path) -> None:
        """File types needing a period fail without one."""
        result = runner.invoke(
            cli, ["--config", str(config_file), "sync", "push", "worktime", "--user", "ion"]
        )
        assert result.exit_code == 1
        assert "Missing year, month" in result.output

    def test_local_only_type(self, runner: CliRunner, initialized: Path, config_file: Path) -> None:
        """Local-only file types are never reconciled."""
        result = runner.invoke(
            cli, ["--config", str(config_file), "sync", "auto", "admin_bonus", "--year", "2024", "--month", "3"]
        )
        assert result.exit_code == 1
        assert "File type is local only" in result.output


class TestRunCommand:
    """Tests for 'worksync run' command."""

    def test_run_stops_on_interrupt(
        self, runner: CliRunner, initialized: Path, config_file: Path
    ) -> None:
        """Run should start the scheduler and stop cleanly on Ctrl+C."""
        with (
            patch("worksync.cli.run.setup_logging") as setup,
            patch("worksync.cli.run.time.sleep", side_effect=KeyboardInterrupt),
        ):
            result = runner.invoke(cli, ["--config", str(config_file), "run"])
        assert result.exit_code == 0, result.output
        assert "WorkSync running" in result.output
        assert "Stopping" in result.output
        setup.assert_called_once()

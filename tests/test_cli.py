"""Unit tests for the pyremotesync CLI commands."""

import json
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from pyremotesync import __version__
from pyremotesync.cli import main
from pyremotesync.sync import SyncMode, UnknownTimestampPolicy


@pytest.fixture
def runner():
    """Provide a Click CLI test runner with a wide console."""
    return CliRunner(env={"COLUMNS": "200"})


@pytest.fixture
def dirs(temp_dir):
    """Local and remote directories for the local protocol."""
    local = temp_dir / "local"
    remote = temp_dir / "remote"
    local.mkdir()
    remote.mkdir()
    return local, remote


def local_args(local, remote, *extra):
    return ["--protocol", "local", "-r", str(remote), "-l", str(local), *extra]


NETWORK_ARGS = ["-s", "ftp.example.com", "-u", "me", "-r", "/backup"]


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        """Test main help shows all commands."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "pyremotesync" in result.output
        assert "backup" in result.output
        assert "restore" in result.output
        assert "sync" in result.output

    def test_version(self, runner):
        """Test the version option."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_sync_help_lists_options(self, runner):
        """Test that sync shows the shared and sync-only options."""
        result = runner.invoke(main, ["sync", "--help"])
        assert result.exit_code == 0
        for option in ("--protocol", "--dry-run", "--strict", "--unknown-timestamp"):
            assert option in result.output

    def test_missing_config_file(self, runner, temp_dir):
        """Test the error for a missing config file."""
        result = runner.invoke(main, ["-c", str(temp_dir / "nope.cfg"), "sync"])
        assert result.exit_code == 1
        assert "Specified config file does not exist." in result.output


class TestValidation:
    """Tests for option validation."""

    def test_missing_server(self, runner):
        """Test that a network protocol needs a server."""
        result = runner.invoke(main, ["sync", "-u", "me", "-r", "/r", "-l", "/l"])
        assert result.exit_code == 1
        assert "'--server'" in result.output

    def test_missing_local(self, runner):
        """Test that the local directory is required."""
        result = runner.invoke(main, ["backup", *NETWORK_ARGS])
        assert result.exit_code == 1
        assert "'--local'" in result.output

    def test_invalid_protocol(self, runner):
        """Test that click rejects unknown protocols."""
        result = runner.invoke(main, ["sync", "--protocol", "gopher"])
        assert result.exit_code == 2

    def test_invalid_workers(self, runner, dirs):
        """Test that at least one worker is required."""
        local, remote = dirs
        result = runner.invoke(main, ["sync", *local_args(local, remote, "--workers", "0")])
        assert result.exit_code == 1
        assert "Workers must be at least 1" in result.output


class TestLocalProtocol:
    """End-to-end runs against a local directory."""

    def test_backup(self, runner, dirs):
        """Test backing up a tree."""
        local, remote = dirs
        (local / "dir").mkdir()
        (local / "dir" / "a.txt").write_text("a")

        result = runner.invoke(main, ["backup", *local_args(local, remote)])

        assert result.exit_code == 0, result.output
        assert (remote / "dir" / "a.txt").read_text() == "a"
        assert "PROTOCOL [local]" in result.output

    def test_sync_removes_orphans(self, runner, dirs):
        """Test that sync mirrors the local tree."""
        local, remote = dirs
        (local / "keep.txt").write_text("k")
        (remote / "orphan.txt").write_text("o")

        result = runner.invoke(main, ["-q", "sync", *local_args(local, remote)])

        assert result.exit_code == 0, result.output
        assert (remote / "keep.txt").exists()
        assert not (remote / "orphan.txt").exists()

    def test_restore(self, runner, dirs):
        """Test restoring into an empty directory."""
        local, remote = dirs
        (remote / "a.txt").write_text("remote")

        result = runner.invoke(main, ["restore", *local_args(local, remote)])

        assert result.exit_code == 0, result.output
        assert (local / "a.txt").read_text() == "remote"

    def test_restore_missing_remote(self, runner, dirs):
        """Test that restoring a missing remote directory fails."""
        local, remote = dirs

        result = runner.invoke(main, ["restore", *local_args(local, remote / "gone")])

        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_dry_run(self, runner, dirs):
        """Test that a dry run leaves the remote side untouched."""
        local, remote = dirs
        (local / "a.txt").write_text("a")
        (remote / "orphan.txt").write_text("o")

        result = runner.invoke(main, ["sync", *local_args(local, remote, "--dry-run")])

        assert result.exit_code == 0, result.output
        assert not (remote / "a.txt").exists()
        assert (remote / "orphan.txt").exists()
        assert "Dry run complete!" in result.output

    def test_json_output(self, runner, dirs):
        """Test that --json prints only the result document."""
        local, remote = dirs
        (local / "a.txt").write_text("a")

        result = runner.invoke(main, ["--json", "sync", *local_args(local, remote)])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["pair"]["remote"] == str(remote)
        assert data["mode"] == "sync"
        assert data["state"] == "done"
        assert data["succeeded"] is True
        assert len(data["phases"]["additions"]["succeeded"]) == 1

    def test_config_file(self, runner, dirs, temp_dir):
        """Test settings from a config file, with a per-command section."""
        local, remote = dirs
        (local / "a.txt").write_text("a")
        config = temp_dir / "sync.cfg"
        config.write_text(
            f"protocol=local\nremote={remote}\nlocal={local}\n\n[sync]\ndry-run=true\n"
        )

        dry = runner.invoke(main, ["-c", str(config), "sync"])
        real = runner.invoke(main, ["-c", str(config), "backup"])

        assert dry.exit_code == 0, dry.output
        assert real.exit_code == 0, real.output
        assert "Dry run complete!" in dry.output
        assert (remote / "a.txt").exists()

    def test_command_line_overrides_config(self, runner, dirs, temp_dir):
        """Test that command-line options win over the config file."""
        local, remote = dirs
        (local / "a.txt").write_text("a")
        config = temp_dir / "sync.cfg"
        config.write_text(
            f"protocol=local\nremote={temp_dir / 'elsewhere'}\nlocal={local}\n"
        )

        result = runner.invoke(main, ["-c", str(config), "backup", "-r", str(remote)])

        assert result.exit_code == 0, result.output
        assert (remote / "a.txt").exists()
        assert not (temp_dir / "elsewhere").exists()


class TestExitCodes:
    """Tests for exit codes with a scripted remote port."""

    @pytest.fixture
    def local(self, temp_dir):
        (temp_dir / "a.txt").write_text("a")
        (temp_dir / "b.txt").write_text("b")
        return temp_dir

    def invoke(self, runner, port, local, *extra):
        with patch("pyremotesync.cli.create_backend", return_value=port):
            return runner.invoke(
                main, ["sync", *NETWORK_ARGS, "-l", str(local), *extra]
            )

    def test_partial_failure_is_tolerated(self, runner, memory_port, local):
        """Test exit code 0 when some items went through."""
        memory_port.fail("put", "/backup/b.txt", "disk full")

        result = self.invoke(runner, memory_port, local)

        assert result.exit_code == 0
        assert "disk full" in result.output

    def test_strict_fails_on_any_item(self, runner, memory_port, local):
        """Test exit code 1 with --strict."""
        memory_port.fail("put", "/backup/b.txt", "disk full")

        result = self.invoke(runner, memory_port, local, "--strict")

        assert result.exit_code == 1

    def test_connection_failure(self, runner, memory_port, local):
        """Test that a fatal error exits with 1."""
        memory_port.refuse_connection = True

        result = self.invoke(runner, memory_port, local)

        assert result.exit_code == 1
        assert "Unable to connect" in result.output

    def test_connection_failure_json(self, runner, memory_port, local):
        """Test that a fatal error still reports the failed result in JSON mode."""
        memory_port.refuse_connection = True

        with patch("pyremotesync.cli.create_backend", return_value=memory_port):
            result = runner.invoke(
                main, ["--json", "sync", *NETWORK_ARGS, "-l", str(local)]
            )

        assert result.exit_code == 1
        assert '"state": "failed"' in result.output


class TestEngineWiring:
    """Tests for how options reach the backend and the engine."""

    @pytest.fixture
    def mocks(self):
        with patch("pyremotesync.cli.create_backend") as create_backend, patch(
            "pyremotesync.cli.SyncEngine"
        ) as engine_class:
            engine_class.return_value.run.return_value.exit_code.return_value = 0
            yield create_backend, engine_class

    def test_backend_settings(self, runner, mocks, temp_dir):
        """Test protocol, port and credentials passed to the factory."""
        create_backend, _ = mocks

        result = runner.invoke(
            main,
            [
                "backup",
                "--protocol",
                "SFTP",
                "-s",
                "ssh.example.com",
                "-o",
                "2222",
                "-u",
                "me",
                "-r",
                "/backup",
                "-l",
                str(temp_dir),
                "--accept-unknown-hosts",
                "--key-file",
                "/keys/id",
            ],
            env={"PYREMOTESYNC_PASSWORD": "from-env"},
        )

        assert result.exit_code == 0, result.output
        create_backend.assert_called_once_with(
            "sftp",
            server="ssh.example.com",
            port=2222,
            user="me",
            password="from-env",
            use_tls=True,
            accept_unknown_hosts=True,
            key_filename="/keys/id",
        )

    def test_engine_options(self, runner, mocks, temp_dir):
        """Test policy, workers, mode and dry run passed to the engine."""
        create_backend, engine_class = mocks

        result = runner.invoke(
            main,
            [
                "sync",
                *NETWORK_ARGS,
                "-l",
                str(temp_dir),
                "--unknown-timestamp",
                "skip",
                "--workers",
                "4",
                "--dry-run",
                "--ignore",
                "*.tmp",
                "--ignore",
                "cache/*",
            ],
        )

        assert result.exit_code == 0, result.output
        engine_class.assert_called_once()
        assert engine_class.call_args.args[0] is create_backend.return_value
        assert engine_class.call_args.kwargs["policy"] == UnknownTimestampPolicy.SKIP
        assert engine_class.call_args.kwargs["max_workers"] == 4
        pair = engine_class.return_value.run.call_args.args[0]
        assert pair.sync_mode == SyncMode.SYNC
        assert pair.remote == "/backup"
        assert pair.ignore == ["*.tmp", "cache/*"]
        assert engine_class.return_value.run.call_args.kwargs["dry_run"] is True

    def test_keyboard_interrupt(self, runner, mocks, temp_dir):
        """Test that Ctrl+C exits with 130."""
        _, engine_class = mocks
        engine_class.return_value.run.side_effect = KeyboardInterrupt

        result = runner.invoke(main, ["sync", *NETWORK_ARGS, "-l", str(temp_dir)])

        assert result.exit_code == 130
        assert "cancelled by user" in result.output

    def test_password_not_in_banner(self, runner, mocks, temp_dir):
        """Test that the password is never printed."""
        result = runner.invoke(
            main, ["sync", *NETWORK_ARGS, "-p", "hunter2", "-l", str(temp_dir)]
        )

        assert "hunter2" not in result.output
        assert "USER [me]" in result.output


def test_engine_receives_quiet_output_in_json_mode(runner, temp_dir):
    """Test that the engine prints nothing when JSON output is requested."""
    with patch("pyremotesync.cli.create_backend"), patch(
        "pyremotesync.cli.SyncEngine"
    ) as engine_class:
        engine_class.return_value.run.return_value = Mock(
            exit_code=Mock(return_value=0), to_dict=Mock(return_value={})
        )
        result = runner.invoke(
            main, ["--json", "sync", *NETWORK_ARGS, "-l", str(temp_dir)]
        )

    assert result.exit_code == 0, result.output
    engine_output = engine_class.call_args.args[1]
    assert engine_output.quiet is True
    assert json.loads(result.output) == {
        "pair": {"local": str(temp_dir), "remote": "/backup", "syncMode": "sync"}
    }

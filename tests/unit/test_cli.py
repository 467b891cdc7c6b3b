"""
Tests for the tpm command-line tool.

Tests cover:
- Argument parsing
- init (write, refuse overwrite, force)
- install/update/clean wiring with a fake git executor
- Error reporting for malformed configuration
"""

import logging
from unittest.mock import patch

import pytest

from tpm.cli import configure_logging, create_parser, main
from trellis.config import load_config


@pytest.fixture(autouse=True)
def restore_logging():
    """configure_logging() replaces the root handlers; put them back."""
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "trellis.toml"
    data_dir = tmp_path / "data"
    path.write_text(
        "[trellis]\n"
        f'data_dir = "{data_dir.as_posix()}"\n'
        "close_delay = 0\n"
        "\n"
        "[[plugin]]\n"
        'name = "owner/tools"\n'
    )
    return path


class TestParser:
    """Test argument parsing."""

    def test_subcommands(self):
        parser = create_parser()

        args = parser.parse_args(["-c", "custom.toml", "-v", "clean", "--yes"])

        assert args.command == "clean"
        assert args.yes is True
        assert args.verbose is True
        assert str(args.config) == "custom.toml"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args([])

    def test_configure_logging(self):
        configure_logging("error")
        assert logging.getLogger().level == logging.ERROR

        configure_logging("error", verbose=True)
        assert logging.getLogger().level == logging.DEBUG


class TestInit:
    """Test tpm init."""

    def test_writes_default_file(self, tmp_path, capsys):
        path = tmp_path / "trellis.toml"

        assert main(["-c", str(path), "init"]) == 0

        assert load_config(path)[1] == []
        assert "Wrote" in capsys.readouterr().out

    def test_refuses_to_overwrite(self, config_file, capsys):
        assert main(["-c", str(config_file), "init"]) == 1
        assert "already exists" in capsys.readouterr().err

    def test_force(self, config_file):
        assert main(["-c", str(config_file), "init", "--force"]) == 0
        assert load_config(config_file)[1] == []


class TestOperations:
    """Test install, update and clean wiring."""

    def test_install(self, config_file, fake_git):
        with patch("trellis.plugin.manager.GitExecutor", return_value=fake_git):
            assert main(["-c", str(config_file), "install"]) == 0

        assert len(fake_git.calls_of("clone")) == 1
        assert (config_file.parent / "data" / "site" / "pack" / "trellis" / "start" / "tools").is_dir()

    def test_install_failure_exit_code(self, config_file, fake_git, capsys):
        fake_git.fail("clone")
        with patch("trellis.plugin.manager.GitExecutor", return_value=fake_git):
            assert main(["-c", str(config_file), "install"]) == 1

        assert "failed: owner/tools" in capsys.readouterr().out

    def test_update_nothing_installed(self, config_file, fake_git):
        with patch("trellis.plugin.manager.GitExecutor", return_value=fake_git):
            assert main(["-c", str(config_file), "update"]) == 0

        assert fake_git.calls == []

    def test_clean_with_yes(self, config_file):
        orphan = config_file.parent / "data" / "site" / "pack" / "trellis" / "opt" / "orphan"
        orphan.mkdir(parents=True)

        assert main(["-c", str(config_file), "clean", "--yes"]) == 0

        assert not orphan.exists()

    def test_clean_declined_on_eof(self, config_file):
        orphan = config_file.parent / "data" / "site" / "pack" / "trellis" / "start" / "orphan"
        orphan.mkdir(parents=True)

        with patch("builtins.input", side_effect=EOFError):
            assert main(["-c", str(config_file), "clean"]) == 0

        assert orphan.exists()

    def test_malformed_config(self, tmp_path, capsys):
        path = tmp_path / "trellis.toml"
        path.write_text('[[plugin]]\nname = "owner/tools"\ncolour = "red"\n')

        assert main(["-c", str(path), "install"]) == 1
        assert "Unknown keys" in capsys.readouterr().err

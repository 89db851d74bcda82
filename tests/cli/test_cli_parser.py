"""
Tests for the dlxkit command-line interface.

Tests cover:
- Argument parsing for run, install and cache
- Command dispatch and exit codes
- Error handling
- Output formatting helpers
"""

import subprocess
from unittest.mock import patch

import pytest
from conftest import FakeInstaller

from dlxkit.cli.parser import CLI
from dlxkit.cli.utils import format_age, format_size, strip_separator
from dlxkit.dlx.cache import generate_cache_key
from dlxkit.dlx.context import DlxContext


@pytest.fixture
def env(isolated_home, tmp_path, monkeypatch):
    """Point the dlx cache at a scratch directory."""
    dlx_dir = tmp_path / "_dlx"
    monkeypatch.setenv("DLXKIT_DLX_DIR", str(dlx_dir))
    monkeypatch.setenv("DLXKIT_CACACHE_DIR", str(tmp_path / "_cacache"))
    return dlx_dir


@pytest.fixture
def installer():
    """Route every CLI context through a fake installer."""
    fake = FakeInstaller()

    def _context(config):
        return DlxContext(config, installer=fake, exit_hook=None)

    with patch("dlxkit.cli.utils.DlxContext", side_effect=_context):
        yield fake


class TestParseArgs:
    """Test argument parsing."""

    def test_run_defaults(self):
        """Test run defaults: no force decision, no binary."""
        args = CLI().parse_args(["run", "cowsay@1.5.0"])

        assert args.command == "run"
        assert args.spec == "cowsay@1.5.0"
        assert args.force is None
        assert args.binary is None
        assert not args.yes
        assert args.args == []

    def test_run_options(self):
        """Test run flags and pass-through arguments."""
        args = CLI().parse_args(
            ["run", "--no-force", "-y", "-b", "cowthink", "cowsay", "--", "-f", "hi"]
        )

        assert args.force is False
        assert args.yes
        assert args.binary == "cowthink"
        assert strip_separator(args.args) == ["-f", "hi"]

    def test_install_force(self):
        """Test install --force."""
        args = CLI().parse_args(["install", "left-pad@1.3.0", "--force"])

        assert args.force is True

    def test_cache_clean(self):
        """Test cache clean --max-age."""
        args = CLI().parse_args(["cache", "clean", "--max-age", "3600"])

        assert args.cache_command == "clean"
        assert args.max_age == 3600.0

    def test_version(self, capsys):
        """Test --version exits cleanly."""
        with pytest.raises(SystemExit) as exc_info:
            CLI().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert "dlxkit" in capsys.readouterr().out

    def test_no_command(self, capsys):
        """Test running without a command prints help and fails."""
        assert CLI().run([]) == 1
        assert "usage" in capsys.readouterr().out.lower()


class TestInstallCommand:
    """Test 'dlxkit install'."""

    def test_install(self, env, installer, capsys):
        """Test a first install reports success."""
        assert CLI().run(["install", "left-pad@1.3.0"]) == 0

        out = capsys.readouterr().out
        assert "Installed left-pad@1.3.0" in out
        assert generate_cache_key("left-pad@1.3.0") in out
        assert installer.call_count == 1

    def test_already_installed(self, env, installer, capsys):
        """Test a second install reuses the slot."""
        CLI().run(["install", "left-pad@1.3.0"])
        capsys.readouterr()

        assert CLI().run(["install", "left-pad@1.3.0"]) == 0

        assert "already installed" in capsys.readouterr().out
        assert installer.call_count == 1

    def test_range_refreshed_unless_no_force(self, env, installer):
        """Test ranges reinstall by default and --no-force keeps the slot."""
        CLI().run(["install", "left-pad@^1.3.0"])
        CLI().run(["install", "left-pad@^1.3.0"])

        assert installer.call_count == 2

        CLI().run(["install", "left-pad@^1.3.0", "--no-force"])
        assert installer.call_count == 2

    def test_install_failure(self, env, installer):
        """Test installer errors map to exit code 1."""
        installer.fail_code = "E404"

        assert CLI().run(["install", "no-such-pkg@1.0.0"]) == 1

    def test_bad_config(self, env, tmp_path):
        """Test a missing --config file fails cleanly."""
        assert CLI().run(["--config", str(tmp_path / "missing.yaml"), "install", "x"]) == 1


class TestRunCommand:
    """Test 'dlxkit run'."""

    def test_exit_code_propagates(self, env, installer):
        """Test the binary's exit code becomes the CLI's."""
        completed = subprocess.CompletedProcess([], 7)
        with patch("dlxkit.dlx.package.subprocess.run", return_value=completed) as run:
            code = CLI().run(["run", "cowsay@1.5.0", "--", "moo"])

        assert code == 7
        assert run.call_args.args[0][1:] == ["moo"]

    def test_missing_binary(self, env, installer):
        """Test a package without bins fails with exit code 1."""
        installer.packages["left-pad"] = {"main": "index.js"}

        assert CLI().run(["run", "left-pad@1.3.0"]) == 1

    def test_keyboard_interrupt(self, env, installer):
        """Test Ctrl-C maps to exit code 130."""
        with patch("dlxkit.dlx.package.subprocess.run", side_effect=KeyboardInterrupt):
            assert CLI().run(["run", "cowsay@1.5.0"]) == 130


class TestCacheCommand:
    """Test 'dlxkit cache'."""

    def test_list_empty(self, env, capsys):
        """Test listing an empty cache."""
        assert CLI().run(["cache", "list"]) == 0

        assert "Cache is empty" in capsys.readouterr().out

    def test_list_installed(self, env, installer, capsys):
        """Test installed packages are listed with their spec."""
        CLI().run(["install", "left-pad@1.3.0"])
        capsys.readouterr()

        assert CLI().run(["cache", "list"]) == 0

        out = capsys.readouterr().out
        assert generate_cache_key("left-pad@1.3.0") in out
        assert "left-pad@1.3.0" in out
        assert "package 1.3.0" in out

    def test_remove(self, env, installer, capsys):
        """Test removing a slot also forgets its manifest entry."""
        CLI().run(["install", "left-pad@1.3.0"])
        key = generate_cache_key("left-pad@1.3.0")

        assert CLI().run(["cache", "remove", key]) == 0

        assert not (env / key).exists()
        with DlxContext(exit_hook=None) as ctx:
            assert ctx.manifest.get_entry("left-pad@1.3.0") is None

    def test_remove_unknown(self, env):
        """Test removing an unknown key fails."""
        assert CLI().run(["cache", "remove", "0000000000000000"]) == 1

    def test_clear(self, env, installer, capsys):
        """Test clear removes every slot and the manifest."""
        CLI().run(["install", "left-pad@1.3.0"])
        CLI().run(["install", "cowsay@1.5.0"])
        capsys.readouterr()

        assert CLI().run(["cache", "clear"]) == 0

        assert "Removed 2 cache entries" in capsys.readouterr().out
        assert not (env / ".dlx-manifest.json").exists()

    def test_clean(self, env, capsys):
        """Test clean reports how many entries it removed."""
        (env / "0123456789abcdef").mkdir(parents=True)

        assert CLI().run(["cache", "clean"]) == 0

        assert "Removed 1 expired cache entry" in capsys.readouterr().out


class TestFormatting:
    """Test output helpers."""

    @pytest.mark.parametrize(
        "size,expected",
        [(0, "0 B"), (1023, "1023 B"), (1536, "1.5 KB"), (5 * 1024**2, "5.0 MB"), (3 * 1024**3, "3.0 GB")],
    )
    def test_format_size(self, size, expected):
        """Test byte counts are humanized."""
        assert format_size(size) == expected

    @pytest.mark.parametrize(
        "seconds,expected", [(5, "5s"), (90, "1m"), (7200, "2h"), (3 * 86400, "3d"), (-1, "0s")]
    )
    def test_format_age(self, seconds, expected):
        """Test ages are humanized."""
        assert format_age(seconds) == expected

    def test_strip_separator(self):
        """Test only a leading '--' is removed."""
        assert strip_separator(["--", "a", "--"]) == ["a", "--"]
        assert strip_separator(["a"]) == ["a"]
        assert strip_separator(None) == []

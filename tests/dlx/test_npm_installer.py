"""
Unit tests for the npm installer.

Tests cover:
- npm executable resolution
- Command line construction
- Error code extraction from npm output
- Subprocess failures
"""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from dlxkit.core.exceptions import InstallerError
from dlxkit.dlx.installer import InstallRequest, NpmInstaller, parse_npm_error_code

NPM = "/usr/bin/npm"


@pytest.fixture
def request_(tmp_path):
    return InstallRequest(
        target_dir=tmp_path / "slot", cache_dir=tmp_path / "cacache", spec="left-pad@1.3.0"
    )


@pytest.fixture
def installer():
    with patch("dlxkit.dlx.installer.shutil.which", return_value=NPM):
        yield NpmInstaller()


class TestParseNpmErrorCode:
    """Test parse_npm_error_code."""

    def test_legacy_format(self):
        """Test npm <= 9 output."""
        assert parse_npm_error_code("npm ERR! code E404\nnpm ERR! 404 Not Found") == "E404"

    def test_modern_format(self):
        """Test npm >= 10 output."""
        assert parse_npm_error_code("npm error code ETARGET\n") == "ETARGET"

    def test_no_code(self):
        """Test output without a code."""
        assert parse_npm_error_code("something broke") is None
        assert parse_npm_error_code("") is None


class TestExecutable:
    """Test npm resolution."""

    def test_missing_npm(self):
        """Test a missing npm raises with code ENOENT."""
        with patch("dlxkit.dlx.installer.shutil.which", return_value=None):
            with pytest.raises(InstallerError) as exc_info:
                NpmInstaller("npm").get_npm_executable()

        assert exc_info.value.code == "ENOENT"
        assert "nodejs.org" in str(exc_info.value)

    def test_resolved_once(self):
        """Test the resolved path is cached."""
        with patch("dlxkit.dlx.installer.shutil.which", return_value=NPM) as which:
            installer = NpmInstaller()
            installer.get_npm_executable()
            installer.get_npm_executable()

        assert which.call_count == 1


class TestBuildCommand:
    """Test npm command construction."""

    def test_default_flags(self, installer, request_):
        """Test the default install command."""
        cmd = installer.build_command(request_)

        assert cmd[:2] == [NPM, "install"]
        assert cmd[cmd.index("--prefix") + 1] == str(request_.target_dir)
        assert cmd[cmd.index("--cache") + 1] == str(request_.cache_dir)
        for flag in ("--omit=dev", "--ignore-scripts", "--bin-links", "--no-audit", "--no-fund"):
            assert flag in cmd
        assert cmd[-2:] == ["--save", "left-pad@1.3.0"]
        assert "--registry" not in cmd

    def test_optional_flags(self, request_):
        """Test flags follow the request and the registry is passed through."""
        with patch("dlxkit.dlx.installer.shutil.which", return_value=NPM):
            installer = NpmInstaller(registry="https://registry.example/")
            request = InstallRequest(
                target_dir=request_.target_dir,
                cache_dir=request_.cache_dir,
                spec="cowsay",
                production_only=False,
                ignore_scripts=False,
                bin_links=False,
                quiet=False,
            )
            cmd = installer.build_command(request)

        assert "--omit=dev" not in cmd
        assert "--ignore-scripts" not in cmd
        assert "--no-bin-links" in cmd
        assert "--no-audit" not in cmd
        assert cmd[cmd.index("--registry") + 1] == "https://registry.example/"


class TestInstall:
    """Test running npm."""

    def test_success(self, installer, request_):
        """Test a zero exit runs npm in the slot directory."""
        completed = subprocess.CompletedProcess([], 0, stdout="", stderr="")
        with patch("dlxkit.dlx.installer.subprocess.run", return_value=completed) as run:
            installer.install(request_)

        args, kwargs = run.call_args
        assert args[0][-1] == "left-pad@1.3.0"
        assert kwargs["cwd"] == request_.target_dir
        assert kwargs["capture_output"] is True
        assert kwargs["env"]["NPM_CONFIG_UPDATE_NOTIFIER"] == "false"

    def test_failure_carries_code(self, installer, request_):
        """Test a non-zero exit raises with npm's error code."""
        completed = subprocess.CompletedProcess(
            [], 1, stdout="", stderr="npm ERR! code E404\nnpm ERR! 404 Not Found"
        )
        with patch("dlxkit.dlx.installer.subprocess.run", return_value=completed):
            with pytest.raises(InstallerError) as exc_info:
                installer.install(request_)

        assert exc_info.value.code == "E404"
        assert "exit code 1" in str(exc_info.value)

    def test_failure_without_code(self, installer, request_):
        """Test a failure without a recognizable code."""
        completed = subprocess.CompletedProcess([], 2, stdout="", stderr="segfault")
        with patch("dlxkit.dlx.installer.subprocess.run", return_value=completed):
            with pytest.raises(InstallerError) as exc_info:
                installer.install(request_)

        assert exc_info.value.code is None

    def test_spawn_failure(self, installer, request_):
        """Test an OSError starting npm becomes InstallerError."""
        with patch("dlxkit.dlx.installer.subprocess.run", side_effect=OSError("exec failed")):
            with pytest.raises(InstallerError) as exc_info:
                installer.install(request_)

        assert exc_info.value.code == "ENOENT"

    def test_extra_env(self, request_):
        """Test extra environment variables reach npm."""
        completed = subprocess.CompletedProcess([], 0)
        with patch("dlxkit.dlx.installer.shutil.which", return_value=NPM), patch(
            "dlxkit.dlx.installer.subprocess.run", return_value=completed
        ) as run:
            NpmInstaller(env={"NPM_CONFIG_FOO": "bar"}).install(request_)

        assert run.call_args.kwargs["env"]["NPM_CONFIG_FOO"] == "bar"
        assert Path(run.call_args.kwargs["cwd"]) == request_.target_dir

"""
Pytest configuration and shared fixtures for dlxkit tests.
"""

import json
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from dlxkit.core.exceptions import InstallerError
from dlxkit.core.locking import LockManager, LockRegistry
from dlxkit.dlx.installer import Installer, InstallRequest
from dlxkit.dlx.spec import parse_package_spec


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests that require npm and network access",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --integration flag is provided."""
    if not config.getoption("--integration"):
        skip_integration = pytest.mark.skip(reason="need --integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (requires --integration)",
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


# ============================================================================
# Fake Installer
# ============================================================================


class FakeInstaller(Installer):
    """
    Installer that writes node_modules/<name>/package.json instead of running npm.

    Attributes:
        packages: package.json contents by package name (default: one 'cli.js' bin)
        fail_code: npm error code to raise instead of installing
        delay: Seconds to sleep inside install(), to widen race windows
        calls: Specs installed, in order
    """

    def __init__(
        self,
        packages: Optional[Dict[str, Dict[str, Any]]] = None,
        fail_code: Optional[str] = None,
        delay: float = 0.0,
    ):
        self.packages = packages or {}
        self.fail_code = fail_code
        self.delay = delay
        self.calls: List[str] = []
        self._mutex = threading.Lock()

    def install(self, request: InstallRequest) -> None:
        with self._mutex:
            self.calls.append(request.spec)

        if self.delay:
            time.sleep(self.delay)

        if self.fail_code is not None:
            raise InstallerError(f"npm failed ({self.fail_code})", code=self.fail_code)

        spec = parse_package_spec(request.spec)
        manifest = dict(
            self.packages.get(spec.name)
            or {"bin": {spec.name.split("/")[-1]: "cli.js"}}
        )
        manifest.setdefault("name", spec.name)
        manifest.setdefault("version", spec.version or "1.0.0")

        installed_dir = Path(request.target_dir, "node_modules", *spec.name.split("/"))
        installed_dir.mkdir(parents=True, exist_ok=True)
        (installed_dir / "package.json").write_text(json.dumps(manifest))

        bins = manifest.get("bin")
        paths = [bins] if isinstance(bins, str) else list((bins or {}).values())
        for relative in paths:
            target = installed_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("#!/usr/bin/env node\nconsole.log('ok')\n")

    @property
    def call_count(self) -> int:
        with self._mutex:
            return len(self.calls)


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch) -> Path:
    """Point HOME and every dlxkit location at a scratch directory."""
    fake_home = tmp_path / "home"
    fake_home.mkdir()

    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setenv("USERPROFILE", str(fake_home))
    for name in ("DLXKIT_HOME", "DLXKIT_DLX_DIR", "DLXKIT_CACACHE_DIR", "DLXKIT_CONFIG"):
        monkeypatch.delenv(name, raising=False)

    return fake_home


@pytest.fixture
def dlx_dir(tmp_path: Path) -> Path:
    """Empty dlx directory."""
    path = tmp_path / "_dlx"
    path.mkdir()
    return path


@pytest.fixture
def cacache_dir(tmp_path: Path) -> Path:
    return tmp_path / "_cacache"


@pytest.fixture
def lock_manager() -> LockManager:
    """Lock manager whose registry never touches atexit."""
    return LockManager(registry=LockRegistry(exit_hook=None))


@pytest.fixture
def fake_installer() -> FakeInstaller:
    return FakeInstaller()


@pytest.fixture(autouse=True)
def reset_caches():
    """Reset module-level caches between tests."""
    from dlxkit.core import platform

    platform.clear_platform_cache()
    yield
    platform.clear_platform_cache()

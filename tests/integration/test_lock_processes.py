"""
Integration tests for slot locking with multiple processes.

These tests use multiprocessing to verify that directory locks hold across
separate interpreters, not just threads sharing one registry.
"""

import json
import multiprocessing
import shutil
import time
from pathlib import Path

import pytest

from dlxkit.config.parser import LockSettings
from dlxkit.core.locking import LockManager, LockRegistry
from dlxkit.dlx.cache import generate_cache_key
from dlxkit.dlx.installer import Installer, NpmInstaller
from dlxkit.dlx.package import InstallCoordinator
from dlxkit.dlx.spec import parse_package_spec

PATIENT = LockSettings(retries=300, base_delay=0.01, max_delay=0.05)


class CountingInstaller(Installer):
    """Writes a minimal package and appends one line per install to a log file."""

    def __init__(self, log_path, delay=0.3):
        self.log_path = Path(log_path)
        self.delay = delay

    def install(self, request):
        with open(self.log_path, "a") as f:
            f.write(request.spec + "\n")
        time.sleep(self.delay)
        spec = parse_package_spec(request.spec)
        package_dir = request.target_dir / "node_modules" / spec.name
        package_dir.mkdir(parents=True, exist_ok=True)
        (package_dir / "package.json").write_text(
            json.dumps({"name": spec.name, "version": spec.version or "1.0.0"})
        )


def worker_hold_lock(lock_path, result_queue, hold=0.3):
    """Acquire the lock, hold it, and report both timestamps."""
    try:
        manager = LockManager(registry=LockRegistry(exit_hook=None))
        with manager.lock(lock_path, **PATIENT.as_kwargs()):
            result_queue.put(("acquired", time.time()))
            time.sleep(hold)
            result_queue.put(("released", time.time()))
    except Exception as e:
        result_queue.put(("error", str(e)))


def worker_hold_forever(lock_path, result_queue):
    """Acquire the lock with a fast heartbeat and never release it."""
    manager = LockManager(registry=LockRegistry(exit_hook=None))
    manager.acquire(lock_path, retries=0, touch_interval=0.1)
    result_queue.put(("acquired", time.time()))
    time.sleep(60)


def worker_ensure_installed(dlx_dir, cacache_dir, log_path, spec, result_queue):
    """Run ensure_installed with a counting installer and report the outcome."""
    try:
        coordinator = InstallCoordinator(
            dlx_dir=Path(dlx_dir),
            cacache_dir=Path(cacache_dir),
            installer=CountingInstaller(log_path),
            lock_manager=LockManager(registry=LockRegistry(exit_hook=None)),
            lock_settings=PATIENT,
        )
        result = coordinator.ensure_installed(spec)
        result_queue.put(("installed" if result.installed else "reused", result.cache_key))
    except Exception as e:
        result_queue.put(("error", str(e)))


def worker_npm_install(dlx_dir, cacache_dir, spec, result_queue):
    """Run ensure_installed against the real npm."""
    try:
        coordinator = InstallCoordinator(
            dlx_dir=Path(dlx_dir),
            cacache_dir=Path(cacache_dir),
            installer=NpmInstaller(),
            lock_manager=LockManager(registry=LockRegistry(exit_hook=None)),
            lock_settings=LockSettings(retries=600, base_delay=0.05, max_delay=0.5),
        )
        result = coordinator.ensure_installed(spec)
        result_queue.put(("installed" if result.installed else "reused", result.cache_key))
    except Exception as e:
        result_queue.put(("error", str(e)))


def _collect(result_queue, count, timeout=30):
    return [result_queue.get(timeout=timeout) for _ in range(count)]


def _join(processes, timeout=30):
    for process in processes:
        process.join(timeout=timeout)
        if process.is_alive():
            process.terminate()
            pytest.fail(f"Worker {process.pid} did not finish")


@pytest.mark.slow
class TestCrossProcessLock:
    """Test the directory lock between processes."""

    def test_mutual_exclusion(self, tmp_path):
        """Test holders in different processes never overlap."""
        lock_path = tmp_path / "concurrency.lock"
        result_queue = multiprocessing.Queue()
        processes = [
            multiprocessing.Process(target=worker_hold_lock, args=(lock_path, result_queue))
            for _ in range(3)
        ]
        for process in processes:
            process.start()

        events = _collect(result_queue, 6)
        _join(processes)

        assert not [e for e in events if e[0] == "error"], events
        events.sort(key=lambda e: e[1])
        kinds = [kind for kind, _ in events]
        assert kinds == ["acquired", "released"] * 3
        assert not lock_path.exists()

    def test_stale_lock_after_killed_holder(self, tmp_path):
        """Test a lock left by a killed process is reclaimed once it goes stale."""
        lock_path = tmp_path / "concurrency.lock"
        result_queue = multiprocessing.Queue()
        holder = multiprocessing.Process(
            target=worker_hold_forever, args=(lock_path, result_queue)
        )
        holder.start()
        assert result_queue.get(timeout=30)[0] == "acquired"

        holder.kill()
        holder.join(timeout=10)
        assert lock_path.exists()

        manager = LockManager(registry=LockRegistry(exit_hook=None))
        held = manager.acquire(
            lock_path, retries=100, base_delay=0.05, max_delay=0.1, stale_after=0.5
        )

        assert held is not None
        held.release()
        assert not lock_path.exists()


@pytest.mark.slow
class TestCrossProcessInstall:
    """Test concurrent ensure_installed from several processes."""

    def test_single_install(self, tmp_path):
        """Test one process installs and the others reuse the slot."""
        dlx_dir = tmp_path / "_dlx"
        cacache_dir = tmp_path / "_cacache"
        log_path = tmp_path / "installs.log"
        result_queue = multiprocessing.Queue()
        processes = [
            multiprocessing.Process(
                target=worker_ensure_installed,
                args=(dlx_dir, cacache_dir, log_path, "left-pad@1.3.0", result_queue),
            )
            for _ in range(4)
        ]
        for process in processes:
            process.start()

        results = _collect(result_queue, 4)
        _join(processes)

        assert not [r for r in results if r[0] == "error"], results
        assert sorted(kind for kind, _ in results) == ["installed", "reused", "reused", "reused"]
        assert {key for _, key in results} == {generate_cache_key("left-pad@1.3.0")}
        assert log_path.read_text().splitlines() == ["left-pad@1.3.0"]


@pytest.mark.integration
class TestNpmInstall:
    """Test concurrent installs with the real npm binary."""

    def test_concurrent_npm_install(self, tmp_path):
        """Test two processes installing one package run npm once."""
        if shutil.which("npm") is None:
            pytest.skip("npm is not installed")

        dlx_dir = tmp_path / "_dlx"
        cacache_dir = tmp_path / "_cacache"
        result_queue = multiprocessing.Queue()
        processes = [
            multiprocessing.Process(
                target=worker_npm_install,
                args=(dlx_dir, cacache_dir, "left-pad@1.3.0", result_queue),
            )
            for _ in range(2)
        ]
        for process in processes:
            process.start()

        results = _collect(result_queue, 2, timeout=300)
        _join(processes, timeout=300)

        assert not [r for r in results if r[0] == "error"], results
        assert sorted(kind for kind, _ in results) == ["installed", "reused"]
        key = generate_cache_key("left-pad@1.3.0")
        assert (dlx_dir / key / "node_modules" / "left-pad" / "package.json").exists()

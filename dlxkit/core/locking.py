"""
Cross-process locking for the shared dlxkit cache.

A lock is a directory. Creating it with ``os.mkdir`` is atomic on every
platform and filesystem dlxkit supports, so whichever process creates the
directory first owns the lock. The holder refreshes the directory mtime on
a heartbeat; a lock whose mtime stops moving for longer than
``stale_after`` seconds belongs to a crashed process and is reclaimed.

Features:
- Cross-process mutual exclusion without OS lock primitives
- Stale lock detection and reclamation
- Heartbeat thread keeping live locks fresh
- Exponential backoff with jitter, cancellable via threading.Event
- Per-process registry that releases held locks at interpreter exit

Usage:
    from dlxkit.core.locking import LockManager

    lock_manager = LockManager()
    with lock_manager.lock(install_root / "concurrency.lock"):
        # Only one process at a time gets here
        install_package()

    # Or with a callable
    lock_manager.with_lock(manifest_path.with_name("m.lock"), write_manifest)
"""

import atexit
import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, TypeVar, Union

from dlxkit.core.exceptions import (
    LockAcquisitionError,
    LockCancelledError,
    LockContentionError,
    LockEnvironmentError,
    OperationCancelled,
)
from dlxkit.core.filesystem import (
    INVALID_PARENT,
    PERMISSION_DENIED,
    READ_ONLY,
    classify_os_error,
    normalize_path,
    remove_tree,
)
from dlxkit.core.retry import retry_call

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 3
DEFAULT_BASE_DELAY = 0.1
DEFAULT_MAX_DELAY = 1.0
DEFAULT_STALE_AFTER = 5.0
DEFAULT_TOUCH_INTERVAL = 2.0


def _lock_key(lock_path: Union[str, Path]) -> str:
    return str(normalize_path(lock_path))


class _Heartbeat(threading.Thread):
    """Daemon thread that keeps a held lock's mtime fresh."""

    def __init__(self, lock_path: Path, interval: float):
        super().__init__(name=f"dlxkit-heartbeat[{lock_path.parent.name}]", daemon=True)
        self.lock_path = lock_path
        self.interval = interval
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                os.utime(self.lock_path, None)
            except FileNotFoundError:
                logger.warning(f"Lock directory disappeared while held: {self.lock_path}")
                return
            except OSError as e:
                logger.warning(f"Failed to refresh lock {self.lock_path}: {e}")

    def stop(self) -> None:
        self._stopped.set()
        if self.is_alive() and self is not threading.current_thread():
            self.join(timeout=max(self.interval, 1.0))


class HeldLock:
    """
    A lock owned by this process.

    Releasing stops the heartbeat, removes the lock directory and
    deregisters the lock. ``release()`` may be called any number of times
    from any thread; only the first call has an effect.
    """

    def __init__(
        self, lock_path: Path, registry: "LockRegistry", touch_interval: float
    ):
        self.lock_path = Path(lock_path)
        self.key = _lock_key(lock_path)
        self.acquired_at = time.time()
        self._registry = registry
        self._released = False
        self._release_mutex = threading.Lock()
        self._heartbeat: Optional[_Heartbeat] = None
        if touch_interval > 0:
            self._heartbeat = _Heartbeat(self.lock_path, touch_interval)

    @property
    def released(self) -> bool:
        return self._released

    @property
    def heartbeat_active(self) -> bool:
        return self._heartbeat is not None and self._heartbeat.is_alive()

    def _start_heartbeat(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.start()

    def release(self) -> None:
        """Release the lock. Safe to call repeatedly."""
        with self._release_mutex:
            if self._released:
                return
            self._released = True

        if self._heartbeat is not None:
            self._heartbeat.stop()

        try:
            remove_tree(self.lock_path)
            logger.debug(f"Released lock: {self.lock_path}")
        except OSError as e:
            logger.warning(f"Failed to remove lock directory {self.lock_path}: {e}")
        finally:
            self._registry.discard(self)

    def __enter__(self) -> "HeldLock":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"HeldLock({str(self.lock_path)!r}, {state})"


class LockRegistry:
    """
    Tracks every lock held by this process.

    The registry serializes acquisition attempts per lock path inside the
    process and releases whatever is still held when the interpreter exits.
    The exit hook is registered through ``exit_hook`` the first time a lock
    is added, and never more than once.

    Attributes:
        exit_hook: Callable used to register drain() for process exit
    """

    def __init__(self, exit_hook: Optional[Callable] = atexit.register):
        self.exit_hook = exit_hook
        self._held: Dict[str, HeldLock] = {}
        self._path_mutexes: Dict[str, threading.Lock] = {}
        self._mutex = threading.Lock()
        self._hook_installed = False

    def _install_exit_hook(self) -> None:
        if self._hook_installed or self.exit_hook is None:
            return
        self.exit_hook(self.drain)
        self._hook_installed = True

    @property
    def exit_hook_installed(self) -> bool:
        return self._hook_installed

    def path_mutex(self, key: str) -> threading.Lock:
        """Get the in-process mutex guarding acquisition of one lock path."""
        with self._mutex:
            mutex = self._path_mutexes.get(key)
            if mutex is None:
                mutex = threading.Lock()
                self._path_mutexes[key] = mutex
            return mutex

    def add(self, held: HeldLock) -> None:
        with self._mutex:
            self._held[held.key] = held
            self._install_exit_hook()

    def discard(self, held: HeldLock) -> None:
        with self._mutex:
            if self._held.get(held.key) is held:
                del self._held[held.key]

    def is_held(self, lock_path: Union[str, Path]) -> bool:
        key = _lock_key(lock_path)
        with self._mutex:
            return key in self._held

    def held_paths(self) -> List[Path]:
        with self._mutex:
            return [held.lock_path for held in self._held.values()]

    def drain(self) -> int:
        """
        Release every held lock, best effort.

        Returns:
            Number of locks released
        """
        with self._mutex:
            pending = list(self._held.values())

        released = 0
        for held in pending:
            try:
                held.release()
                released += 1
            except Exception as e:
                logger.warning(f"Failed to release lock {held.lock_path} on exit: {e}")

        if released:
            logger.debug(f"Drained {released} held lock(s)")
        return released

    def __len__(self) -> int:
        with self._mutex:
            return len(self._held)


class LockManager:
    """
    Acquires directory locks with stale detection, heartbeat and retries.

    Example:
        >>> manager = LockManager()
        >>> held = manager.acquire(Path("/tmp/slot/concurrency.lock"))
        >>> try:
        ...     do_work()
        ... finally:
        ...     held.release()
    """

    def __init__(
        self,
        registry: Optional[LockRegistry] = None,
        exit_hook: Optional[Callable] = atexit.register,
    ):
        """
        Initialize lock manager.

        Args:
            registry: Registry of held locks (default: a new one)
            exit_hook: Exit registration used when a registry is created here
        """
        self.registry = registry if registry is not None else LockRegistry(exit_hook)

    @staticmethod
    def lock_age(lock_path: Union[str, Path]) -> Optional[float]:
        """Seconds since the lock was last refreshed, or None if it is gone."""
        try:
            mtime = os.stat(lock_path).st_mtime
        except FileNotFoundError:
            return None
        return time.time() - mtime

    def is_stale(
        self, lock_path: Union[str, Path], stale_after: float = DEFAULT_STALE_AFTER
    ) -> bool:
        """
        Check whether an existing lock belongs to a dead holder.

        A lock held by this process is never stale.
        """
        if self.registry.is_held(lock_path):
            return False
        age = self.lock_age(lock_path)
        return age is not None and age > stale_after

    def _environment_error(self, lock_path: Path, error: OSError) -> LockAcquisitionError:
        kind = classify_os_error(error)
        parent = lock_path.parent
        if kind == PERMISSION_DENIED:
            return LockEnvironmentError(
                f"Permission denied creating lock {lock_path}.\n"
                f"Make sure {parent} is writable by the current user.",
                lock_path,
            )
        if kind == READ_ONLY:
            return LockEnvironmentError(
                f"Cannot create lock {lock_path}: the filesystem is read-only.\n"
                "Set DLXKIT_DLX_DIR to a writable location.",
                lock_path,
            )
        if kind == INVALID_PARENT:
            return LockEnvironmentError(
                f"Cannot create lock {lock_path}: parent directory {parent} "
                "does not exist or is not a directory.",
                lock_path,
            )
        return LockAcquisitionError(f"Failed to create lock {lock_path}: {error}", lock_path)

    def _reclaim(self, lock_path: Path, stale_after: float) -> None:
        # Another waiter may have reclaimed and re-taken it since the first check
        age = self.lock_age(lock_path)
        if age is None or age <= stale_after:
            return
        logger.warning(f"Removing stale lock ({age:.1f}s old): {lock_path}")
        try:
            remove_tree(lock_path)
        except OSError as e:
            raise self._environment_error(lock_path, e) from e

    def _try_acquire(
        self, lock_path: Path, stale_after: float, touch_interval: float
    ) -> HeldLock:
        key = _lock_key(lock_path)
        with self.registry.path_mutex(key):
            if self.registry.is_held(key):
                raise LockContentionError(
                    f"Lock is already held by this process: {lock_path}", lock_path
                )

            try:
                os.mkdir(lock_path)
            except FileExistsError:
                age = self.lock_age(lock_path)
                if age is not None and age <= stale_after:
                    raise LockContentionError(
                        f"Lock is held by another process: {lock_path}", lock_path
                    )
                if age is not None:
                    self._reclaim(lock_path, stale_after)
                try:
                    os.mkdir(lock_path)
                except FileExistsError as e:
                    raise LockContentionError(
                        f"Lock was taken by another process: {lock_path}", lock_path
                    ) from e
                except OSError as e:
                    raise self._environment_error(lock_path, e) from e
            except OSError as e:
                raise self._environment_error(lock_path, e) from e

            held = HeldLock(lock_path, self.registry, touch_interval)
            self.registry.add(held)
            held._start_heartbeat()
            logger.debug(f"Acquired lock: {lock_path}")
            return held

    def acquire(
        self,
        lock_path: Union[str, Path],
        *,
        retries: int = DEFAULT_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        stale_after: float = DEFAULT_STALE_AFTER,
        touch_interval: float = DEFAULT_TOUCH_INTERVAL,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[HeldLock]:
        """
        Acquire a lock, waiting for other holders with backoff.

        Args:
            lock_path: Lock directory to create
            retries: Retries after the first attempt
            base_delay: Initial backoff delay in seconds
            max_delay: Maximum backoff delay in seconds
            stale_after: Age in seconds after which a lock is reclaimed
            touch_interval: Heartbeat period in seconds (<= 0 disables it)
            cancel: Event that aborts acquisition when set

        Returns:
            HeldLock, or None if acquisition was cancelled

        Raises:
            LockAcquisitionError: If the lock stayed contended after all retries
            LockEnvironmentError: On permission, read-only or bad parent errors
        """
        lock_path = normalize_path(lock_path)

        def _on_retry(attempt: int, error: BaseException, wait: float) -> None:
            logger.debug(f"Lock {lock_path} busy (attempt {attempt}), waiting {wait:.2f}s")

        try:
            return retry_call(
                lambda: self._try_acquire(lock_path, stale_after, touch_interval),
                retries=retries,
                base_delay=base_delay,
                max_delay=max_delay,
                retry_on=(LockContentionError,),
                cancel=cancel,
                on_retry=_on_retry,
            )
        except OperationCancelled:
            logger.debug(f"Lock acquisition cancelled: {lock_path}")
            return None
        except LockContentionError as e:
            raise LockAcquisitionError(
                f"Could not acquire lock {lock_path} after {retries + 1} attempt(s).\n"
                "Another dlxkit process may be using the same cache entry.\n"
                f"If no other process is running, remove the directory manually: {lock_path}",
                lock_path,
            ) from e

    @contextmanager
    def lock(self, lock_path: Union[str, Path], **opts) -> Iterator[HeldLock]:
        """
        Hold a lock for the duration of a with-block.

        Raises:
            LockCancelledError: If acquisition was cancelled
        """
        held = self.acquire(lock_path, **opts)
        if held is None:
            raise LockCancelledError(f"Lock acquisition cancelled: {lock_path}", Path(lock_path))
        try:
            yield held
        finally:
            held.release()

    def with_lock(self, lock_path: Union[str, Path], fn: Callable[[], T], **opts) -> T:
        """Run ``fn`` while holding the lock and return its result."""
        with self.lock(lock_path, **opts):
            return fn()


__all__ = [
    "HeldLock",
    "LockRegistry",
    "LockManager",
    "DEFAULT_RETRIES",
    "DEFAULT_BASE_DELAY",
    "DEFAULT_MAX_DELAY",
    "DEFAULT_STALE_AFTER",
    "DEFAULT_TOUCH_INTERVAL",
]

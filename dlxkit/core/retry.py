"""
Retry with exponential backoff, jitter and cooperative cancellation.

Usage:
    from dlxkit.core.retry import retry_call

    result = retry_call(
        attempt,
        retries=3,
        base_delay=0.1,
        max_delay=1.0,
        retry_on=(LockContentionError,),
        cancel=stop_event,
    )
"""

import logging
import random
import threading
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from dlxkit.core.exceptions import OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_delay(
    delay: float, max_delay: float, jitter: bool = True, rng: Optional[random.Random] = None
) -> float:
    """
    Compute the wait before the next attempt.

    With jitter, a random value in ``[0, delay)`` is added before clamping.

    Args:
        delay: Current (un-jittered) delay in seconds
        max_delay: Upper bound in seconds
        jitter: Whether to add randomness
        rng: Optional random source (for tests)

    Returns:
        Delay in seconds, never above max_delay
    """
    wait = delay
    if jitter:
        wait += (rng or random).random() * delay
    return min(wait, max_delay)


def retry_call(
    fn: Callable[[], T],
    *,
    retries: int = 3,
    base_delay: float = 0.1,
    max_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    cancel: Optional[threading.Event] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """
    Call ``fn`` until it succeeds or the retry budget is spent.

    Only exceptions matching ``retry_on`` are retried; anything else
    propagates immediately. The cancel event is checked before every
    attempt and while waiting between attempts.

    Args:
        fn: Zero-argument callable to invoke
        retries: Number of retries after the first attempt
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Multiplier applied to the delay after each retry
        jitter: Add random jitter to each delay
        retry_on: Exception types that trigger a retry
        cancel: Event that aborts the loop when set
        on_retry: Callback ``(attempt, error, wait)`` invoked before waiting

    Returns:
        Whatever ``fn`` returns

    Raises:
        OperationCancelled: If ``cancel`` was set
        Exception: The last retryable error once retries are exhausted,
            or the first non-retryable error
    """
    delay = base_delay
    attempt = 0

    while True:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Operation cancelled before attempt")

        try:
            return fn()
        except retry_on as e:
            if attempt >= retries:
                raise

            attempt += 1
            wait = compute_delay(delay, max_delay, jitter)
            if on_retry is not None:
                on_retry(attempt, e, wait)

            logger.debug(f"Attempt {attempt} failed: {e}. Retrying in {wait:.3f}s")

            if cancel is not None:
                if cancel.wait(wait):
                    raise OperationCancelled("Operation cancelled while waiting")
            else:
                time.sleep(wait)

            delay = min(delay * backoff_factor, max_delay)


__all__ = ["retry_call", "compute_delay", "OperationCancelled"]

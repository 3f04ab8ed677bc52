"""Rate limiting and retry utilities for API calls."""

from __future__ import annotations

import logging
import os
import threading
import time
from functools import wraps
from typing import Any, Callable, TypeVar

from kubernetes.client.exceptions import ApiException

from .. import metrics

logger = logging.getLogger(__name__)

_F = TypeVar("_F", bound=Callable[..., Any])
_T = TypeVar("_T")


class Throttle:
    """Keep successive calls at least ``1 / rate`` seconds apart.

    Sync kopf handlers and the object deletion pool call in from several
    threads. Each caller reserves the next free slot under the lock and
    sleeps until it after releasing the lock, so waiting threads queue up
    one interval apart. The rate is a process-wide ceiling shared by all of
    them.
    """

    def __init__(self, rate: float) -> None:
        self.min_interval = 1.0 / rate
        self.last_call = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            now = time.time()
            slot = max(now, self.last_call + self.min_interval)
            self.last_call = slot
        if slot > now:
            time.sleep(slot - now)

    def __call__(self, func: _F) -> _F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            self.wait()
            return func(*args, **kwargs)

        return wrapper  # type: ignore


k8s_throttle = Throttle(float(os.getenv("K8S_RATE_LIMIT_PER_SECOND", "10.0")))
gcs_throttle = Throttle(float(os.getenv("GCS_RATE_LIMIT_PER_SECOND", "10.0")))


def rate_limit_k8s(func: _F) -> _F:
    """Rate limit a Kubernetes API call."""
    return k8s_throttle(func)


def rate_limit_gcs(func: _F) -> _F:
    """Rate limit a Google Cloud Storage API call."""
    return gcs_throttle(func)


def handle_rate_limit_error(e: Exception, attempt: int = 0, max_retries: int = 3) -> bool:
    """Check if a Kubernetes API exception is a rate limit error and back off.

    Args:
        e: Exception raised by the Kubernetes client
        attempt: Number of retries already made
        max_retries: Maximum number of retries

    Returns:
        True if the caller should retry, False otherwise
    """
    if not isinstance(e, ApiException):
        return False
    # Kubernetes API rate limit errors typically return 429 or 503
    if e.status == 429 or (e.status == 503 and "rate limit" in str(e).lower()):
        metrics.rate_limit_hits_total.labels(api_type="k8s").inc()
        if attempt < max_retries:
            # Exponential backoff: 1s, 2s, 4s
            time.sleep(2 ** attempt)
            return True
    return False


def retry_transient(
    func: Callable[[], _T],
    operation: str,
    is_retryable: Callable[[Exception], bool],
    max_attempts: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> _T:
    """Call ``func`` retrying on retryable errors with exponential backoff.

    Args:
        func: Zero-argument callable performing one remote call
        operation: Operation name for logs
        is_retryable: Predicate selecting the errors worth retrying
        max_attempts: Total number of attempts, including the first
        base_delay: Delay before the first retry in seconds
        max_delay: Upper bound for a single delay

    Returns:
        The result of ``func``

    Raises:
        The last error raised by ``func`` once attempts are exhausted, or the
        first non-retryable error.
    """
    attempt = 1
    while True:
        try:
            return func()
        except Exception as e:
            if attempt >= max_attempts or not is_retryable(e):
                raise
            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            logger.warning(f"{operation} failed on attempt {attempt}/{max_attempts}, retrying in {delay:.1f}s: {e}")
            metrics.rate_limit_hits_total.labels(api_type="gcs").inc()
            time.sleep(delay)
            attempt += 1


def retry_until_deadline(
    func: Callable[[], _T],
    operation: str,
    is_retryable: Callable[[Exception], bool],
    timeout: float,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
) -> _T:
    """Call ``func`` retrying on retryable errors until ``timeout`` seconds pass.

    Non-retryable errors are raised immediately. Once the deadline has passed
    the last retryable error is raised.
    """
    deadline = time.monotonic() + timeout
    delay = base_delay
    while True:
        try:
            return func()
        except Exception as e:
            if not is_retryable(e):
                raise
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise
            sleep_for = min(delay, max_delay, remaining)
            logger.warning(f"{operation} was rate limited, retrying in {sleep_for:.1f}s")
            metrics.rate_limit_hits_total.labels(api_type="gcs").inc()
            time.sleep(sleep_for)
            delay *= 2

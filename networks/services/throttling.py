"""
Rate limiting, retry/backoff and cancellation for adapter calls.

All three take an injectable clock/sleep (and RNG for jitter) so tests can
drive them deterministically without real sleeps.
"""

import logging
import random
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from core.exceptions import AffiliateNetworkError, SyncCancelledError
from networks.types import RateLimitInfo

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Per-adapter request pacing.

    Before every remote call ``enforce()`` blocks until the call is allowed:

    1. if the server said ``remaining == 0`` and sent a ``Retry-After``,
       sleep that long (once; the info is then consumed)
    2. sleep enough to keep ``60 / per_minute`` seconds between calls

    Spacing every call by the per-minute interval keeps the adapter inside
    its declared hourly and daily budgets as well. State is owned by the
    instance and guarded by a lock, so concurrent callers on one adapter
    are serialized instead of both seeing spare budget.
    """

    def __init__(self, per_minute: int, clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep, name: str = ""):
        if per_minute <= 0:
            raise ValueError("per_minute must be positive")
        self.per_minute = per_minute
        self.min_interval = 60.0 / per_minute
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_request_at: Optional[float] = None
        self._info: Optional[RateLimitInfo] = None

    @property
    def info(self) -> Optional[RateLimitInfo]:
        return self._info

    def update(self, info: Optional[RateLimitInfo]) -> None:
        """Record the latest server-reported state."""
        if info is None:
            return
        with self._lock:
            self._info = info

    def enforce(self) -> float:
        """Block until the next call may go out. Returns seconds slept."""
        with self._lock:
            slept = 0.0
            info = self._info

            if info is not None and info.remaining == 0 and info.retry_after:
                logger.info(f"[{self.name}] Budget exhausted, waiting {info.retry_after:.1f}s (Retry-After)")
                self._sleep(info.retry_after)
                slept += info.retry_after
                self._info = replace(info, remaining=None, retry_after=None)

            if self._last_request_at is not None:
                elapsed = self._clock() - self._last_request_at
                wait = self.min_interval - elapsed
                if wait > 0:
                    self._sleep(wait)
                    slept += wait

            self._last_request_at = self._clock()
            return slept


@dataclass
class RetryState:
    """Explicit state of one retried call."""
    attempt: int = 0
    last_error: Optional[BaseException] = None
    next_delay: float = 0.0
    sleeps: int = 0


class RetryPolicy:
    """
    Exponential backoff with jitter: ``base_delay * 2**attempt + U(0, jitter)``.

    Only ``AffiliateNetworkError`` with ``retryable=True`` is retried, at most
    ``max_retries`` times. When retries run out the last error is re-raised
    unchanged; anything non-retryable propagates on the first attempt.
    """

    def __init__(self, max_retries: int = 3, base_delay: float = 1.0, jitter: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep, rng: random.Random = None):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.jitter = jitter
        self._sleep = sleep
        self._rng = rng or random.Random()

    def compute_delay(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt) + self._rng.uniform(0, self.jitter)

    def run(self, operation: Callable, *args, on_retry: Callable[[RetryState], None] = None, **kwargs):
        state = RetryState()
        while True:
            try:
                return operation(*args, **kwargs)
            except AffiliateNetworkError as exc:
                state.last_error = exc
                if not exc.retryable or state.attempt >= self.max_retries:
                    raise

                state.next_delay = self.compute_delay(state.attempt)
                logger.warning(
                    f"Retryable error ({exc.code}), attempt {state.attempt + 1}/{self.max_retries}, "
                    f"backing off {state.next_delay:.2f}s"
                )
                if on_retry:
                    on_retry(state)
                self._sleep(state.next_delay)
                state.sleeps += 1
                state.attempt += 1


class CancellationToken:
    """Cooperative cancel signal, checked by syncs at every page boundary."""

    def __init__(self):
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "Sync cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise SyncCancelledError(self.reason or "Sync cancelled")

"""
Exponential backoff for retrying transient store errors.

The queue operations never retry on their own; long-running callers such
as the refresh scheduler decide what is safe to retry and use this to
space the attempts out.
"""

import random

from kchoo.storage.errors import StoreConflict, StoreUnavailable

# Claims are idempotent, so these are always safe to retry.
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (StoreUnavailable, StoreConflict)


def is_retryable(exc: BaseException) -> bool:
    """Whether ``exc`` is a transient store failure."""
    return isinstance(exc, RETRYABLE_ERRORS)


class ExponentialBackoff:
    """
    Exponential backoff with jitter.

    delay = min(base * multiplier^attempt, max_delay), then scaled by a
    random factor in [1 - jitter_range, 1 + jitter_range].

    Usage:
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=300.0)
        while running:
            try:
                await scheduler.run_once()
                backoff.reset()
            except StoreUnavailable:
                await asyncio.sleep(backoff.next_delay())
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 300.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.25,
    ):
        if base_delay <= 0 or max_delay <= 0:
            raise ValueError("backoff delays must be positive")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._attempt = 0

    @property
    def attempt(self) -> int:
        """Number of delays handed out since the last reset."""
        return self._attempt

    def next_delay(self) -> float:
        """Return the next delay and advance the attempt counter."""
        delay = min(
            self.base_delay * (self.multiplier ** self._attempt),
            self.max_delay,
        )
        if self.jitter_range:
            delay *= 1 + random.uniform(-self.jitter_range, self.jitter_range)
        self._attempt += 1
        return max(0.0, delay)

    def reset(self) -> None:
        """Start over from ``base_delay`` after a successful attempt."""
        self._attempt = 0

"""Token-bucket rate limiter with an injectable clock.

The bucket lets callers reserve a token and then sleep outside the lock
until the reservation matures, so concurrent workers queue up fairly and
the long-run rate never exceeds ``rate`` per second.
"""

import threading
import time
from typing import Callable, Optional


class TokenBucket:
    """Thread-safe token bucket.

    Attributes:
        rate: Tokens added per second
        capacity: Maximum burst size
    """

    def __init__(
        self,
        rate: float,
        capacity: float = 1.0,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Args:
            rate: Sustained tokens per second, must be positive
            capacity: Burst size; a full bucket starts with this many tokens
            clock: Monotonic seconds source (defaults to time.monotonic)
            sleep: Sleep function (defaults to time.sleep)

        Raises:
            ValueError: If rate or capacity is not positive
        """
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self.rate = float(rate)
        self.capacity = float(capacity)
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self._tokens = self.capacity
        self._updated_at = self._clock()

    @classmethod
    def per_interval(cls, seconds: float, **kwargs) -> Optional["TokenBucket"]:
        """One token every ``seconds``; None when ``seconds`` is zero (no limit)."""
        if seconds <= 0:
            return None
        return cls(rate=1.0 / seconds, capacity=1.0, **kwargs)

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated_at = now

    def reserve(self, tokens: float = 1.0) -> float:
        """Take ``tokens`` now and return how long the caller must wait before using them."""
        with self._lock:
            self._refill(self._clock())
            self._tokens -= tokens
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.rate

    def acquire(self, tokens: float = 1.0) -> float:
        """Block until ``tokens`` are available. Returns the time slept."""
        wait = self.reserve(tokens)
        if wait > 0:
            self._sleep(wait)
        return wait

    def try_acquire(self, tokens: float = 1.0) -> bool:
        """Take ``tokens`` only if available right now."""
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

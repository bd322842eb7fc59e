"""Unit tests for the token-bucket rate limiter, driven by a fake clock."""

import threading

import pytest

from opportunity_notifier.pipeline import TokenBucket


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def test_rejects_non_positive_rate():
    """Test rate and capacity must be positive."""
    with pytest.raises(ValueError):
        TokenBucket(rate=0)
    with pytest.raises(ValueError):
        TokenBucket(rate=1, capacity=0)


def test_first_acquire_is_immediate(clock):
    """Test a full bucket serves the first token without waiting."""
    bucket = TokenBucket(rate=10, clock=clock, sleep=clock.sleep)
    assert bucket.acquire() == 0
    assert clock.sleeps == []


def test_sustained_rate_is_enforced(clock):
    """Test N acquisitions take at least (N - capacity) / rate seconds."""
    bucket = TokenBucket(rate=30, clock=clock, sleep=clock.sleep)
    start = clock.now

    for _ in range(31):
        bucket.acquire()

    assert clock.now - start == pytest.approx(1.0)
    assert all(wait == pytest.approx(1 / 30) for wait in clock.sleeps)


def test_burst_capacity(clock):
    """Test a larger capacity allows an initial burst."""
    bucket = TokenBucket(rate=1, capacity=5, clock=clock, sleep=clock.sleep)
    for _ in range(5):
        assert bucket.acquire() == 0
    assert bucket.acquire() == pytest.approx(1.0)


def test_tokens_refill_over_time(clock):
    """Test idle time refills the bucket up to capacity only."""
    bucket = TokenBucket(rate=2, capacity=2, clock=clock, sleep=clock.sleep)
    bucket.acquire()
    bucket.acquire()

    clock.now += 10
    assert bucket.acquire() == 0
    assert bucket.acquire() == 0
    assert bucket.acquire() == pytest.approx(0.5)


def test_try_acquire_does_not_block(clock):
    """Test try_acquire succeeds only when a token is available."""
    bucket = TokenBucket(rate=1, clock=clock, sleep=clock.sleep)
    assert bucket.try_acquire() is True
    assert bucket.try_acquire() is False
    clock.now += 1
    assert bucket.try_acquire() is True
    assert clock.sleeps == []


def test_reservations_queue_fairly(clock):
    """Test consecutive reservations wait progressively longer."""
    bucket = TokenBucket(rate=10, clock=clock, sleep=clock.sleep)
    waits = [bucket.reserve() for _ in range(4)]
    assert waits == pytest.approx([0.0, 0.1, 0.2, 0.3])


def test_per_interval(clock):
    """Test one token per interval, and no limiter for a zero interval."""
    assert TokenBucket.per_interval(0) is None

    pause = TokenBucket.per_interval(2.0, clock=clock, sleep=clock.sleep)
    assert pause.acquire() == 0
    assert pause.acquire() == pytest.approx(2.0)


def test_concurrent_acquire_never_exceeds_rate(clock):
    """Test parallel workers together never exceed the configured rate."""
    lock = threading.Lock()
    bucket = TokenBucket(rate=5, clock=clock, sleep=lambda seconds: None)
    total_wait = []

    def worker():
        for _ in range(10):
            wait = bucket.reserve()
            with lock:
                total_wait.append(wait)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # 40 tokens at 5/s with a capacity of 1: the last reservation waits 39 / 5 seconds.
    assert max(total_wait) == pytest.approx(39 / 5)
    assert sorted(total_wait) == pytest.approx([i / 5 for i in range(40)])

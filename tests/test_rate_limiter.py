"""
Tests for request pacing.
"""
import pytest
import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import AppConfig
from src.data.rate_limiter import RequestQueue, TokenBucketLimiter, build_limiter


class FakeTime:
    """Clock whose sleep advances time instead of blocking."""

    def __init__(self, now=0.0):
        self.now = now
        self.sleeps = []
        self._lock = threading.Lock()

    def clock(self):
        with self._lock:
            return self.now

    def sleep(self, seconds):
        with self._lock:
            self.sleeps.append(seconds)
            self.now += seconds


class TestRequestQueue:
    """Interval queue: FIFO order and minimum spacing."""

    def test_fifo_order_and_spacing(self):
        fake = FakeTime()
        limiter = RequestQueue(min_interval=1.0, clock=fake.clock, sleep=fake.sleep)
        dispatched = []

        def request(i):
            def run():
                dispatched.append((i, fake.clock()))
                return i
            return run

        futures = [limiter.submit(request(i)) for i in range(4)]
        results = [f.result(timeout=5) for f in futures]

        assert results == [0, 1, 2, 3]
        assert [i for i, _ in dispatched] == [0, 1, 2, 3]
        times = [t for _, t in dispatched]
        gaps = [b - a for a, b in zip(times, times[1:])]
        assert all(gap >= 1.0 for gap in gaps)

    def test_no_wait_when_interval_elapsed(self):
        fake = FakeTime()
        limiter = RequestQueue(min_interval=1.0, clock=fake.clock, sleep=fake.sleep)

        limiter.execute(lambda: None)
        fake.now += 5
        limiter.execute(lambda: None)

        assert fake.sleeps == []

    def test_error_goes_to_own_future_only(self):
        fake = FakeTime()
        limiter = RequestQueue(min_interval=0.5, clock=fake.clock, sleep=fake.sleep)

        def boom():
            raise RuntimeError("bad request")

        first = limiter.submit(lambda: "a")
        failing = limiter.submit(boom)
        last = limiter.submit(lambda: "c")

        assert first.result(timeout=5) == "a"
        with pytest.raises(RuntimeError, match="bad request"):
            failing.result(timeout=5)
        assert last.result(timeout=5) == "c"

    def test_execute_reraises(self):
        limiter = RequestQueue(min_interval=0, sleep=lambda s: None)
        with pytest.raises(ValueError):
            limiter.execute(lambda: int("x"))

    def test_system_exit_settles_future(self):
        limiter = RequestQueue(min_interval=0, sleep=lambda s: None)

        def stop():
            raise SystemExit("stop")

        with pytest.raises(SystemExit):
            limiter.submit(stop).result(timeout=5)
        assert limiter.execute(lambda: "still running") == "still running"

    def test_pacing_failure_settles_future(self):
        fake = FakeTime()
        calls = []

        def flaky_sleep(seconds):
            calls.append(seconds)
            if len(calls) == 1:
                raise OSError("sleep interrupted")
            fake.sleep(seconds)

        limiter = RequestQueue(min_interval=1.0, clock=fake.clock, sleep=flaky_sleep)
        first = limiter.submit(lambda: "a")
        second = limiter.submit(lambda: "b")
        third = limiter.submit(lambda: "c")

        assert first.result(timeout=5) == "a"
        with pytest.raises(OSError):
            second.result(timeout=5)
        assert third.result(timeout=5) == "c"

    def test_join_drains_queue(self):
        fake = FakeTime()
        limiter = RequestQueue(min_interval=1.0, clock=fake.clock, sleep=fake.sleep)
        for _ in range(3):
            limiter.submit(lambda: None)
        limiter.join()
        assert limiter.queue_length == 0


class TestTokenBucketLimiter:
    """Token bucket refill and spacing."""

    def test_spacing_after_each_request(self):
        fake = FakeTime()
        limiter = TokenBucketLimiter(max_tokens=5, clock=fake.clock, sleep=fake.sleep)
        for _ in range(3):
            limiter.execute(lambda: None)
        limiter.join()

        assert fake.sleeps == [0.1, 0.1, 0.1]
        assert limiter.status().available_tokens == 2

    def test_waits_for_refill_when_empty(self):
        fake = FakeTime()
        limiter = TokenBucketLimiter(
            max_tokens=2, refill_rate=2, refill_interval=60.0, spacing=0.0,
            clock=fake.clock, sleep=fake.sleep,
        )
        for _ in range(3):
            limiter.execute(lambda: None)

        # Third request waited for the next whole interval
        assert fake.now >= 60.0
        assert any(s > 50 for s in fake.sleeps)

    def test_spacing_failure_keeps_worker(self):
        fake = FakeTime()
        calls = []

        def flaky_sleep(seconds):
            calls.append(seconds)
            if len(calls) == 1:
                raise OSError("sleep interrupted")
            fake.sleep(seconds)

        limiter = TokenBucketLimiter(max_tokens=5, clock=fake.clock, sleep=flaky_sleep)
        first = limiter.submit(lambda: "a")
        second = limiter.submit(lambda: "b")

        assert first.result(timeout=5) == "a"
        assert second.result(timeout=5) == "b"

    def test_refill_capped_at_max(self):
        fake = FakeTime()
        limiter = TokenBucketLimiter(max_tokens=3, refill_rate=3, clock=fake.clock, sleep=fake.sleep)
        limiter.execute(lambda: None)
        limiter.join()
        fake.now += 600
        status = limiter.status()

        assert status.available_tokens == 3
        assert status.next_refill == fake.now + 60.0


class TestBuildLimiter:
    """Limiter selection from config."""

    def test_interval(self):
        limiter = build_limiter(AppConfig(rate_limiter="interval", min_request_interval=2.5))
        assert isinstance(limiter, RequestQueue)
        assert limiter.min_interval == 2.5

    def test_token_bucket(self):
        assert isinstance(build_limiter(AppConfig(rate_limiter="token_bucket")), TokenBucketLimiter)

    def test_unknown(self):
        with pytest.raises(ValueError):
            build_limiter(AppConfig(rate_limiter="burst"))

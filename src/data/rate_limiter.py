"""
Request pacing for the Google Sheets API.

Two limiters share one shape: callers submit zero-argument callables, a single
worker thread runs them in FIFO order, and each caller gets a Future holding
its own result or exception.

- RequestQueue: at least `min_interval` seconds between dispatches.
- TokenBucketLimiter: `max_tokens` requests per `refill_interval`, refilled
  in whole intervals, with a short fixed spacing after every request.
"""
import logging
import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Optional

from src.config import AppConfig, config

logger = logging.getLogger(__name__)


class _SerialExecutor:
    """FIFO executor backed by one daemon worker thread."""

    thread_name = "sheets-request-worker"

    def __init__(self, clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], None] = time.sleep):
        self.clock = clock
        self.sleep = sleep
        self._queue: "queue.Queue" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()

    @property
    def queue_length(self) -> int:
        return self._queue.qsize()

    def submit(self, fn: Callable[[], Any]) -> Future:
        """Queue `fn` and return a Future for its result."""
        future: Future = Future()
        self._queue.put((fn, future))
        self._ensure_worker()
        return future

    def execute(self, fn: Callable[[], Any]) -> Any:
        """Queue `fn` and block until it has run; re-raises its exception."""
        return self.submit(fn).result()

    def join(self) -> None:
        """Block until every queued request has been dispatched."""
        self._queue.join()

    def _ensure_worker(self) -> None:
        with self._worker_lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(target=self._run, name=self.thread_name, daemon=True)
                self._worker.start()

    def _run(self) -> None:
        while True:
            fn, future = self._queue.get()
            try:
                if not future.set_running_or_notify_cancel():
                    continue
                try:
                    self._before_dispatch()
                    result = fn()
                except BaseException as exc:
                    logger.debug("Queued request failed: %s", exc)
                    future.set_exception(exc)
                else:
                    future.set_result(result)
                try:
                    self._after_dispatch()
                except Exception:
                    # the future is settled; keep the worker alive for the rest of the queue
                    logger.exception("Pacing after a queued request failed")
            finally:
                self._queue.task_done()

    def _before_dispatch(self) -> None:
        pass

    def _after_dispatch(self) -> None:
        pass


class RequestQueue(_SerialExecutor):
    """Serialise requests with a minimum interval between dispatches."""

    def __init__(self, min_interval: float = 1.0, **kwargs):
        super().__init__(**kwargs)
        self.min_interval = min_interval
        self._last_dispatch: Optional[float] = None

    def _before_dispatch(self) -> None:
        if self._last_dispatch is not None:
            elapsed = self.clock() - self._last_dispatch
            if elapsed < self.min_interval:
                self.sleep(self.min_interval - elapsed)
        self._last_dispatch = self.clock()


@dataclass
class LimiterStatus:
    available_tokens: int
    queue_length: int
    next_refill: float


class TokenBucketLimiter(_SerialExecutor):
    """Token bucket: 50 requests per minute by default, 100ms apart."""

    def __init__(
        self,
        max_tokens: int = 50,
        refill_rate: int = 50,
        refill_interval: float = 60.0,
        spacing: float = 0.1,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.max_tokens = max_tokens
        self.refill_rate = refill_rate
        self.refill_interval = refill_interval
        self.spacing = spacing
        self._tokens = max_tokens
        self._last_refill = self.clock()
        self._bucket_lock = threading.Lock()

    def _refill(self) -> None:
        with self._bucket_lock:
            now = self.clock()
            elapsed = now - self._last_refill
            if elapsed >= self.refill_interval:
                intervals = int(elapsed // self.refill_interval)
                self._tokens = min(self.max_tokens, self._tokens + self.refill_rate * intervals)
                self._last_refill = now

    def _before_dispatch(self) -> None:
        while True:
            self._refill()
            with self._bucket_lock:
                if self._tokens > 0:
                    self._tokens -= 1
                    return
                wait = self.refill_interval - (self.clock() - self._last_refill)
            logger.debug("Token bucket empty; waiting %.2fs", max(0.1, wait))
            self.sleep(max(0.1, wait))

    def _after_dispatch(self) -> None:
        self.sleep(self.spacing)

    def status(self) -> LimiterStatus:
        self._refill()
        with self._bucket_lock:
            return LimiterStatus(
                available_tokens=self._tokens,
                queue_length=self.queue_length,
                next_refill=self._last_refill + self.refill_interval,
            )


def build_limiter(cfg: AppConfig = config) -> _SerialExecutor:
    """Create the limiter selected by SHEETS_RATE_LIMITER."""
    kind = (cfg.rate_limiter or "interval").lower()
    if kind == "token_bucket":
        return TokenBucketLimiter()
    if kind == "interval":
        return RequestQueue(min_interval=cfg.min_request_interval)
    raise ValueError(f"Unknown SHEETS_RATE_LIMITER '{cfg.rate_limiter}' (expected interval or token_bucket)")


_shared_limiter: Optional[_SerialExecutor] = None
_shared_lock = threading.Lock()


def get_shared_limiter() -> _SerialExecutor:
    """Process-wide limiter shared by every Sheets client."""
    global _shared_limiter
    with _shared_lock:
        if _shared_limiter is None:
            _shared_limiter = build_limiter(config)
        return _shared_limiter

"""Small concurrency helpers: a bounded worker pool, retry with backoff, single-flight."""

from __future__ import annotations

import concurrent.futures
import logging
import random
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, TypeVar

_log = logging.getLogger(__name__)

T = TypeVar("T")


class PoolClosedError(RuntimeError):
    """Raised by submit / try_submit after the pool is closed."""

    def __init__(self) -> None:
        super().__init__("pool is closed")


class PoolBusyError(RuntimeError):
    """Raised by try_submit when the queue is full."""

    def __init__(self) -> None:
        super().__init__("pool queue is full")


class Pool:
    """A fixed-size worker pool with a bounded queue."""

    def __init__(self, workers: int = 1, buffer_size: int = 0) -> None:
        workers = max(1, workers)
        self._capacity = max(0, buffer_size)
        self._pending: deque[Callable[[], Any]] = deque()
        self._idle = 0
        self._closed = False
        self._cond = threading.Condition()
        self._close_lock = threading.Lock()
        self._threads = [
            threading.Thread(target=self._run, name=f"pool-worker-{i}", daemon=True)
            for i in range(workers)
        ]
        for thread in self._threads:
            thread.start()

    def _run(self) -> None:
        while True:
            with self._cond:
                self._idle += 1
                self._cond.notify_all()
                while not self._pending and not self._closed:
                    self._cond.wait()
                self._idle -= 1
                if not self._pending:
                    return
                task = self._pending.popleft()
                self._cond.notify_all()
            try:
                task()
            except Exception:
                _log.debug("pool task raised", exc_info=True)

    def _has_room(self) -> bool:
        # A waiting worker takes a task directly, beyond the buffered capacity.
        return len(self._pending) < self._capacity + self._idle

    def submit(self, task: Callable[[], Any], timeout: float | None = None) -> None:
        """Enqueue task, blocking until there is room or timeout seconds pass."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._closed:
                    raise PoolClosedError()
                if self._has_room():
                    self._pending.append(task)
                    self._cond.notify_all()
                    return
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("pool submit timed out")
                self._cond.wait(remaining)

    def try_submit(self, task: Callable[[], Any]) -> None:
        """Enqueue task without blocking; raise PoolBusyError when full."""
        with self._cond:
            if self._closed:
                raise PoolClosedError()
            if not self._has_room():
                raise PoolBusyError()
            self._pending.append(task)
            self._cond.notify_all()

    def close(self) -> None:
        """Stop accepting tasks, drain the queue and wait for the workers."""
        with self._close_lock:
            with self._cond:
                self._closed = True
                self._cond.notify_all()
            for thread in self._threads:
                thread.join()

    def __enter__(self) -> Pool:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


@dataclass
class RetryOptions:
    """Settings for retry; non-positive values fall back to defaults."""

    attempts: int = 3
    min_delay: float = 0.1
    max_delay: float = 5.0
    multiplier: float = 2.0
    should_retry: Callable[[Exception], bool] | None = None


class RetryError(Exception):
    """Raised when retry gives up; last_error holds the final failure."""

    def __init__(self, message: str, last_error: Exception) -> None:
        super().__init__(message)
        self.last_error = last_error


class RetryInterruptedError(RetryError):
    """Raised when the cancel event fires while waiting between attempts."""


def _default_should_retry(exc: Exception) -> bool:
    return not isinstance(exc, (TimeoutError, concurrent.futures.CancelledError))


def _with_defaults(options: RetryOptions) -> RetryOptions:
    return replace(
        options,
        attempts=options.attempts if options.attempts > 0 else 3,
        min_delay=options.min_delay if options.min_delay > 0 else 0.1,
        max_delay=options.max_delay if options.max_delay > 0 else 5.0,
        multiplier=options.multiplier if options.multiplier > 1 else 2.0,
        should_retry=options.should_retry or _default_should_retry,
    )


def _backoff(rng: random.Random, options: RetryOptions, attempt: int) -> float:
    expo = min(options.min_delay * options.multiplier ** (attempt - 1), options.max_delay)
    jitter = max(0.0, rng.random() * (expo - options.min_delay))
    return options.min_delay + jitter


def retry(
    fn: Callable[[], T],
    options: RetryOptions | None = None,
    cancel: threading.Event | None = None,
) -> T:
    """Call fn until it succeeds, attempts run out, or cancel is set.

    Waits between attempts grow exponentially with full jitter. Errors the
    should_retry predicate rejects are raised unchanged.
    """
    opts = _with_defaults(options or RetryOptions())
    should_retry = opts.should_retry or _default_should_retry
    rng = random.Random()
    last_error: Exception | None = None
    for attempt in range(1, opts.attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if not should_retry(exc):
                raise
            last_error = exc
        if attempt == opts.attempts:
            break
        delay = _backoff(rng, opts, attempt)
        if cancel is None:
            time.sleep(delay)
        elif cancel.wait(delay):
            raise RetryInterruptedError(
                f"retry interrupted after error: {last_error}", last_error
            ) from last_error
    assert last_error is not None
    raise RetryError(
        f"gave up after {opts.attempts} attempts: {last_error}", last_error
    ) from last_error


class _Call:
    __slots__ = ("done", "value", "error", "dups")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.value: Any = None
        self.error: BaseException | None = None
        self.dups = 0


class SingleFlight:
    """De-duplicates concurrent calls that share a key."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[str, _Call] = {}

    def do(self, key: str, fn: Callable[[], T]) -> tuple[T, bool]:
        """Run fn once per in-flight key; return (value, shared)."""
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if call is None:
                call = _Call()
                self._calls[key] = call
            else:
                call.dups += 1
        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.value, True
        try:
            call.value = fn()
        except Exception as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                del self._calls[key]
                shared = call.dups > 0
            call.done.set()
        return call.value, shared
"""A circuit breaker that short-circuits calls to a failing dependency.

The breaker trips open after a run of failures, rejects calls while open,
lets a limited number of probe calls through once the timeout has passed
(half-open), and closes again when enough probes succeed.
"""

from __future__ import annotations

import enum
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TypeVar

T = TypeVar("T")


class State(enum.IntEnum):
    """Breaker state."""

    CLOSED = 0
    HALF_OPEN = 1
    OPEN = 2

    def __str__(self) -> str:
        return self.name.lower().replace("_", "-")


@dataclass
class Counts:
    """Request statistics for the current generation."""

    requests: int = 0
    total_successes: int = 0
    total_failures: int = 0
    consecutive_successes: int = 0
    consecutive_failures: int = 0

    def _on_request(self) -> None:
        self.requests += 1

    def _on_success(self) -> None:
        self.total_successes += 1
        self.consecutive_successes += 1
        self.consecutive_failures = 0

    def _on_failure(self) -> None:
        self.total_failures += 1
        self.consecutive_failures += 1
        self.consecutive_successes = 0

    def _clear(self) -> None:
        self.requests = 0
        self.total_successes = 0
        self.total_failures = 0
        self.consecutive_successes = 0
        self.consecutive_failures = 0


@dataclass
class BreakerOptions:
    """Settings for Breaker; zero values fall back to defaults.

    timeout and interval are in seconds.
    """

    name: str = "breaker"
    failure_threshold: int = 5
    timeout: float = 60.0
    max_requests: int = 1
    interval: float = 0.0
    should_trip: Callable[[Counts], bool] | None = None
    on_state_change: Callable[[State, State], None] | None = None
    is_successful: Callable[[BaseException | None], bool] | None = None


class BreakerError(Exception):
    """Base class for calls rejected by the breaker."""


class BreakerOpenError(BreakerError):
    """Raised when the breaker is open and the call is short-circuited."""

    def __init__(self) -> None:
        super().__init__("breaker: open")


class TooManyRequestsError(BreakerError):
    """Raised when the breaker is half-open and the probe limit is reached."""

    def __init__(self) -> None:
        super().__init__("breaker: too many requests (half-open)")


class Breaker:
    """Circuit breaker guarding calls to an external dependency."""

    def __init__(self, options: BreakerOptions | None = None) -> None:
        opts = options or BreakerOptions()
        self._name = opts.name or "breaker"
        threshold = opts.failure_threshold if opts.failure_threshold > 0 else 5
        self._timeout = opts.timeout if opts.timeout > 0 else 60.0
        self._max_requests = opts.max_requests if opts.max_requests > 0 else 1
        self._interval = opts.interval if opts.interval > 0 else 0.0
        self._ready_to_trip: Callable[[Counts], bool] = opts.should_trip or (
            lambda counts: counts.consecutive_failures >= threshold
        )
        self._on_state_change = opts.on_state_change
        self._is_successful: Callable[[BaseException | None], bool] = opts.is_successful or (
            lambda exc: exc is None
        )
        self._lock = threading.RLock()
        self._state = State.CLOSED
        self._generation = 0
        self._counts = Counts()
        self._expiry: float | None = None
        self._new_generation(time.monotonic())

    def do(self, fn: Callable[[], T]) -> T:
        """Call fn under the breaker's protection and return its result.

        Raises BreakerOpenError or TooManyRequestsError without calling fn
        when the breaker rejects the call; errors from fn propagate unchanged.
        """
        generation = self._before_request()
        try:
            result = fn()
        except Exception as exc:
            self._after_request(generation, self._is_successful(exc))
            raise
        except BaseException:
            self._after_request(generation, False)
            raise
        self._after_request(generation, self._is_successful(None))
        return result

    def state(self) -> State:
        """The current state."""
        with self._lock:
            state, _ = self._current_state(time.monotonic())
            return state

    def name(self) -> str:
        """The configured name."""
        return self._name

    def snapshot(self) -> Counts:
        """A copy of the current request statistics."""
        with self._lock:
            return replace(self._counts)

    def _before_request(self) -> int:
        with self._lock:
            state, generation = self._current_state(time.monotonic())
            if state is State.OPEN:
                raise BreakerOpenError()
            if state is State.HALF_OPEN and self._counts.requests >= self._max_requests:
                raise TooManyRequestsError()
            self._counts._on_request()
            return generation

    def _after_request(self, before: int, success: bool) -> None:
        with self._lock:
            now = time.monotonic()
            state, generation = self._current_state(now)
            if generation != before:
                return
            if success:
                self._on_success(state, now)
            else:
                self._on_failure(state, now)

    def _on_success(self, state: State, now: float) -> None:
        if state is State.CLOSED:
            self._counts._on_success()
        elif state is State.HALF_OPEN:
            self._counts._on_success()
            if self._counts.consecutive_successes >= self._max_requests:
                self._set_state(State.CLOSED, now)

    def _on_failure(self, state: State, now: float) -> None:
        if state is State.CLOSED:
            self._counts._on_failure()
            if self._ready_to_trip(replace(self._counts)):
                self._set_state(State.OPEN, now)
        elif state is State.HALF_OPEN:
            self._set_state(State.OPEN, now)

    def _current_state(self, now: float) -> tuple[State, int]:
        if self._state is State.CLOSED:
            if self._expiry is not None and self._expiry <= now:
                self._new_generation(now)
        elif self._state is State.OPEN:
            if self._expiry is not None and self._expiry <= now:
                self._set_state(State.HALF_OPEN, now)
        return self._state, self._generation

    def _set_state(self, state: State, now: float) -> None:
        if self._state is state:
            return
        previous = self._state
        self._state = state
        self._new_generation(now)
        if self._on_state_change is not None:
            self._on_state_change(previous, state)

    def _new_generation(self, now: float) -> None:
        self._generation += 1
        self._counts._clear()
        if self._state is State.CLOSED:
            self._expiry = now + self._interval if self._interval > 0 else None
        elif self._state is State.OPEN:
            self._expiry = now + self._timeout
        else:
            self._expiry = None
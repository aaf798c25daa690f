import threading
import time

import pytest

from svcbase.concurrency import (
    Pool,
    PoolBusyError,
    PoolClosedError,
    RetryError,
    RetryInterruptedError,
    RetryOptions,
    SingleFlight,
    retry,
)


class Counter:
    def __init__(self):
        self.value = 0
        self._lock = threading.Lock()

    def add(self):
        with self._lock:
            self.value += 1
            return self.value


def test_pool_submit_and_drain():
    pool = Pool(3, 10)
    counter = Counter()
    for _ in range(20):
        pool.submit(counter.add)
    pool.close()
    assert counter.value == 20


def test_pool_try_submit_full_queue():
    pool = Pool(1, 1)
    started = threading.Event()
    block = threading.Event()

    def blocker():
        started.set()
        block.wait()

    pool.try_submit(blocker)
    assert started.wait(2)
    pool.try_submit(lambda: None)
    with pytest.raises(PoolBusyError):
        pool.try_submit(lambda: None)
    block.set()
    pool.close()


def test_pool_closed_raises():
    pool = Pool(1, 1)
    pool.close()
    with pytest.raises(PoolClosedError):
        pool.submit(lambda: None)
    with pytest.raises(PoolClosedError):
        pool.try_submit(lambda: None)


def test_pool_close_idempotent():
    pool = Pool(2, 0)
    counter = Counter()
    pool.submit(counter.add)
    pool.close()
    pool.close()
    assert counter.value == 1


def test_pool_panic_does_not_kill_worker():
    pool = Pool(1, 1)
    counter = Counter()

    def boom():
        raise ValueError("boom")

    pool.submit(boom)
    pool.submit(counter.add)
    pool.close()
    assert counter.value == 1


def test_pool_submit_timeout():
    pool = Pool(1, 0)
    started = threading.Event()
    block = threading.Event()

    def blocker():
        started.set()
        block.wait()

    pool.submit(blocker)
    assert started.wait(2)
    with pytest.raises(TimeoutError):
        pool.submit(lambda: None, timeout=0.05)
    block.set()
    pool.close()


def test_pool_context_manager():
    counter = Counter()
    with Pool(2, 4) as pool:
        for _ in range(5):
            pool.submit(counter.add)
    assert counter.value == 5


def test_retry_eventual_success():
    counter = Counter()

    def fn():
        if counter.add() < 3:
            raise ValueError("transient")
        return "ok"

    result = retry(fn, RetryOptions(attempts=5, min_delay=0.001, max_delay=0.005))
    assert result == "ok"
    assert counter.value == 3


def test_retry_exhausted():
    sentinel = ValueError("nope")
    counter = Counter()

    def fn():
        counter.add()
        raise sentinel

    with pytest.raises(RetryError) as info:
        retry(fn, RetryOptions(attempts=3, min_delay=0.001, max_delay=0.002))
    assert info.value.last_error is sentinel
    assert info.value.__cause__ is sentinel
    assert "3 attempts" in str(info.value)
    assert counter.value == 3


def test_retry_should_retry_stops():
    sentinel = ValueError("fatal")
    counter = Counter()

    def fn():
        counter.add()
        raise sentinel

    with pytest.raises(ValueError) as info:
        retry(
            fn,
            RetryOptions(attempts=5, min_delay=0.000001, should_retry=lambda e: e is not sentinel),
        )
    assert info.value is sentinel
    assert counter.value == 1


def test_retry_default_does_not_retry_timeout():
    counter = Counter()

    def fn():
        counter.add()
        raise TimeoutError("deadline")

    with pytest.raises(TimeoutError):
        retry(fn, RetryOptions(attempts=4, min_delay=0.001))
    assert counter.value == 1


def test_retry_defaults_apply_for_zero_attempts():
    counter = Counter()

    def fn():
        counter.add()
        raise ValueError("x")

    with pytest.raises(RetryError):
        retry(fn, RetryOptions(attempts=0, min_delay=0.001, max_delay=0.002))
    assert counter.value == 3


def test_retry_cancel():
    cancel = threading.Event()
    timer = threading.Timer(0.005, cancel.set)
    timer.start()
    try:
        with pytest.raises(RetryInterruptedError) as info:
            retry(
                lambda: (_ for _ in ()).throw(ValueError("nope")),
                RetryOptions(attempts=10, min_delay=0.02, max_delay=0.05),
                cancel=cancel,
            )
    finally:
        timer.cancel()
    assert str(info.value.last_error) == "nope"


def test_single_flight_basic():
    group = SingleFlight()
    value, shared = group.do("k", lambda: 42)
    assert value == 42
    assert shared is False


def test_single_flight_propagates_error():
    group = SingleFlight()

    def fn():
        raise KeyError("missing")

    with pytest.raises(KeyError):
        group.do("k", fn)
    value, _ = group.do("k", lambda: 7)
    assert value == 7


def test_single_flight_shares_in_flight_call():
    group = SingleFlight()
    counter = Counter()
    entered = threading.Event()
    release = threading.Event()
    first_results = []

    def slow():
        counter.add()
        entered.set()
        release.wait(2)
        return "shared-value"

    first = threading.Thread(target=lambda: first_results.append(group.do("key", slow)))
    first.start()
    assert entered.wait(2)
    timer = threading.Timer(0.05, release.set)
    timer.start()
    try:
        second_result = group.do("key", slow)
    finally:
        timer.cancel()
        release.set()
    first.join(2)

    assert second_result == ("shared-value", True)
    assert first_results == [("shared-value", True)]
    assert counter.value == 1
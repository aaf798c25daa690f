import time

import pytest

from svcbase.breaker import (
    Breaker,
    BreakerError,
    BreakerOpenError,
    BreakerOptions,
    Counts,
    State,
    TooManyRequestsError,
)


class Boom(Exception):
    pass


def _fail():
    raise Boom("boom")


def _trip(breaker, times):
    for _ in range(times):
        with pytest.raises(Boom):
            breaker.do(_fail)


def test_passes_through_when_closed():
    b = Breaker(BreakerOptions(name="test"))
    calls = []
    assert b.do(lambda: calls.append(1) or "ok") == "ok"
    assert calls == [1]
    assert b.state() is State.CLOSED


def test_trips_after_failures():
    b = Breaker(BreakerOptions(name="trip-me", failure_threshold=3, timeout=1.0))
    _trip(b, 3)
    assert b.state() is State.OPEN

    called = []
    with pytest.raises(BreakerOpenError):
        b.do(lambda: called.append(1))
    assert called == []


def test_open_error_is_breaker_error():
    b = Breaker(BreakerOptions(failure_threshold=1, timeout=1.0))
    _trip(b, 1)
    with pytest.raises(BreakerError) as info:
        b.do(lambda: None)
    assert str(info.value) == "breaker: open"


def test_does_not_trip_below_threshold():
    b = Breaker(BreakerOptions(failure_threshold=3))
    _trip(b, 2)
    assert b.state() is State.CLOSED


def test_half_open_recovery():
    b = Breaker(
        BreakerOptions(name="recover", failure_threshold=2, timeout=0.05, max_requests=1)
    )
    _trip(b, 2)
    assert b.state() is State.OPEN

    time.sleep(0.08)
    assert b.do(lambda: 7) == 7
    assert b.state() is State.CLOSED


def test_half_open_failure_reopens():
    b = Breaker(BreakerOptions(failure_threshold=1, timeout=0.05))
    _trip(b, 1)
    time.sleep(0.08)
    assert b.state() is State.HALF_OPEN
    _trip(b, 1)
    assert b.state() is State.OPEN


def test_half_open_too_many_requests():
    b = Breaker(BreakerOptions(failure_threshold=1, timeout=0.05, max_requests=1))
    _trip(b, 1)
    time.sleep(0.08)

    def probe():
        with pytest.raises(TooManyRequestsError):
            b.do(lambda: None)
        return "probed"

    assert b.do(probe) == "probed"
    assert b.state() is State.CLOSED


def test_on_state_change():
    transitions = []
    b = Breaker(
        BreakerOptions(
            name="trace",
            failure_threshold=1,
            timeout=0.03,
            on_state_change=lambda frm, to: transitions.append((frm, to)),
        )
    )
    _trip(b, 1)
    time.sleep(0.05)
    b.do(lambda: None)

    assert transitions == [
        (State.CLOSED, State.OPEN),
        (State.OPEN, State.HALF_OPEN),
        (State.HALF_OPEN, State.CLOSED),
    ]


def test_do_returns_value_and_short_circuits():
    b = Breaker(BreakerOptions(name="gen"))
    assert b.do(lambda: 42) == 42

    b2 = Breaker(BreakerOptions(name="gen2", failure_threshold=1, timeout=1.0))
    _trip(b2, 1)
    called = []
    with pytest.raises(BreakerOpenError):
        b2.do(lambda: called.append(1) or 1)
    assert called == []


def test_error_from_fn_propagates_unchanged():
    b = Breaker()
    err = Boom("specific")
    with pytest.raises(Boom) as info:
        b.do(lambda: (_ for _ in ()).throw(err))
    assert info.value is err


def test_snapshot():
    b = Breaker(BreakerOptions(name="snap"))
    b.do(lambda: None)
    assert b.snapshot() == Counts(requests=1, total_successes=1, consecutive_successes=1)


def test_snapshot_is_copy():
    b = Breaker()
    snap = b.snapshot()
    snap.requests = 99
    assert b.snapshot().requests == 0


def test_snapshot_counts_failures():
    b = Breaker(BreakerOptions(failure_threshold=5))
    _trip(b, 2)
    assert b.snapshot() == Counts(requests=2, total_failures=2, consecutive_failures=2)


def test_state_string():
    b = Breaker(BreakerOptions(failure_threshold=1, timeout=0.05))
    assert str(b.state()) == "closed"
    _trip(b, 1)
    assert str(b.state()) == "open"
    time.sleep(0.08)
    assert str(b.state()) == "half-open"


def test_name_defaults():
    assert Breaker().name() == "breaker"
    assert Breaker(BreakerOptions(name="")).name() == "breaker"
    assert Breaker(BreakerOptions(name="payments")).name() == "payments"


def test_is_successful_ignores_selected_errors():
    b = Breaker(
        BreakerOptions(
            failure_threshold=1,
            is_successful=lambda exc: exc is None or isinstance(exc, Boom),
        )
    )
    _trip(b, 3)
    assert b.state() is State.CLOSED
    assert b.snapshot().total_successes == 3


def test_should_trip_custom_rule():
    b = Breaker(BreakerOptions(should_trip=lambda c: c.total_failures >= 2, timeout=1.0))
    with pytest.raises(Boom):
        b.do(_fail)
    b.do(lambda: None)
    assert b.state() is State.CLOSED
    with pytest.raises(Boom):
        b.do(_fail)
    assert b.state() is State.OPEN


def test_interval_resets_counts():
    b = Breaker(BreakerOptions(failure_threshold=2, interval=0.03))
    _trip(b, 1)
    time.sleep(0.05)
    _trip(b, 1)
    assert b.state() is State.CLOSED
    assert b.snapshot().consecutive_failures == 1
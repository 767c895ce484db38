import threading
import time

import pytest

from qbclient.domain.models.errors import RequestCancelledError
from qbclient.infrastructure.resilience.throttle import (
    DEFAULT_REQUESTS_PER_WINDOW,
    NoOpThrottle,
    SlidingWindowThrottle,
)


@pytest.fixture
def throttle(fake_clock):
    return SlidingWindowThrottle(3, 10.0, clock=fake_clock, sleep=fake_clock.sleep)


def test_admits_up_to_limit_without_waiting(throttle, fake_clock):
    for _ in range(3):
        throttle.acquire()
    assert fake_clock.sleeps == []
    assert throttle.window_count() == 3
    assert throttle.remaining() == 0


def test_blocks_until_earliest_admission_expires(throttle, fake_clock):
    throttle.acquire()            # t=1000
    fake_clock.advance(2)
    throttle.acquire()            # t=1002
    fake_clock.advance(2)
    throttle.acquire()            # t=1004

    throttle.acquire()

    assert fake_clock.sleeps == [pytest.approx(6.0)]
    assert fake_clock.now == pytest.approx(1010.0)
    # The first admission slid out; the two later ones plus the new one remain.
    assert throttle.window_count() == 3


def test_never_more_than_limit_in_any_window(fake_clock):
    throttle = SlidingWindowThrottle(5, 1.0, clock=fake_clock, sleep=fake_clock.sleep)
    admissions = []
    for _ in range(23):
        throttle.acquire()
        admissions.append(fake_clock.now)
        fake_clock.advance(0.125)

    for start in admissions:
        in_window = [t for t in admissions if start <= t < start + 1.0]
        assert len(in_window) <= 5


def test_cancel_before_acquire_raises(throttle):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RequestCancelledError):
        throttle.acquire(cancel)
    assert throttle.window_count() == 0


def test_cancel_while_waiting_raises(fake_clock):
    cancel = threading.Event()

    def cancelling_sleep(seconds, event=None):
        cancel.set()
        return True

    throttle = SlidingWindowThrottle(1, 10.0, clock=fake_clock, sleep=cancelling_sleep)
    throttle.acquire(cancel)
    with pytest.raises(RequestCancelledError):
        throttle.acquire(cancel)
    assert throttle.window_count() == 1


@pytest.mark.parametrize("limit", [0, -5])
def test_non_positive_limit_falls_back_to_default(limit):
    throttle = SlidingWindowThrottle(limit)
    assert throttle.max_requests == DEFAULT_REQUESTS_PER_WINDOW


def test_non_positive_window_rejected():
    with pytest.raises(ValueError):
        SlidingWindowThrottle(10, 0)


def test_reset_clears_window(throttle):
    throttle.acquire()
    throttle.acquire()
    throttle.reset()
    assert throttle.window_count() == 0
    assert throttle.remaining() == 3


def test_concurrent_acquirers_respect_limit():
    throttle = SlidingWindowThrottle(2, 0.2)
    admitted = []
    lock = threading.Lock()

    def worker():
        throttle.acquire()
        with lock:
            admitted.append(time.monotonic())

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    admitted.sort()
    assert len(admitted) == 4
    # The third admission has to wait for the first to leave the window.
    assert admitted[2] - admitted[0] >= 0.19


def test_noop_throttle_never_blocks():
    throttle = NoOpThrottle()
    for _ in range(1000):
        throttle.acquire()
    assert throttle.window_count() == 0
    assert throttle.remaining() == NoOpThrottle.UNLIMITED

import threading

from qbclient.infrastructure.resilience.waiting import is_cancelled, wait_or_cancel


def test_wait_without_event_sleeps(mocker):
    sleep = mocker.patch("qbclient.infrastructure.resilience.waiting.time.sleep")
    assert wait_or_cancel(0.5) is False
    sleep.assert_called_once_with(0.5)


def test_wait_returns_immediately_when_cancelled():
    cancel = threading.Event()
    cancel.set()
    assert wait_or_cancel(60.0, cancel) is True


def test_wait_times_out_when_not_cancelled():
    assert wait_or_cancel(0.01, threading.Event()) is False


def test_zero_wait_reports_cancel_state():
    cancel = threading.Event()
    assert wait_or_cancel(0, cancel) is False
    cancel.set()
    assert wait_or_cancel(0, cancel) is True


def test_is_cancelled():
    event = threading.Event()
    assert is_cancelled(None) is False
    assert is_cancelled(event) is False
    event.set()
    assert is_cancelled(event) is True

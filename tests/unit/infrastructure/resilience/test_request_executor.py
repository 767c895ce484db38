import random
import threading

import httpx
import pytest

from qbclient.domain.interfaces.auth import AuthStrategy
from qbclient.domain.models.common import AuthToken, RetryPolicy
from qbclient.domain.models.errors import (
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ReadOnlyError,
    RequestCancelledError,
    ServerError,
)
from qbclient.infrastructure.auth.user_token import UserTokenStrategy
from qbclient.infrastructure.resilience.error_classifier import ErrorClassifier
from qbclient.infrastructure.resilience.request_executor import RequestExecutor

BASE = "https://api.quickbase.com/v1"


@pytest.fixture
def build_executor(no_sleep):
    def build(transport, auth=None, max_retries=3, **kwargs):
        policy = RetryPolicy(max_retries=max_retries, initial_delay=1.0, max_delay=30.0)
        return RequestExecutor(
            transport,
            auth or UserTokenStrategy("user-token"),
            policy=policy,
            classifier=ErrorClassifier(policy, rng=random.Random(0)),
            sleep=no_sleep,
            **kwargs,
        )
    return build


def _get(path="/records"):
    return httpx.Request("GET", f"{BASE}{path}", params={"tableId": "bck7gp3q2"})


def test_success_on_first_attempt(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(200, json={"ok": True})])
    executor = build_executor(transport)

    response = executor.execute(_get())

    assert response.json() == {"ok": True}
    assert len(transport.requests) == 1
    assert transport.requests[0].headers["Authorization"] == "QB-USER-TOKEN user-token"


def test_retries_server_errors_until_success(build_executor, scripted_transport, make_response, no_sleep):
    transport = scripted_transport([make_response(500), make_response(500), make_response(200, json={})])
    executor = build_executor(transport)
    retries, attempts = [], []
    executor.on_retry(retries.append)
    executor.on_request(attempts.append)

    response = executor.execute(_get())

    assert response.status_code == 200
    assert [r.reason for r in retries] == ["5xx", "5xx"]
    assert [r.attempt for r in retries] == [2, 3]
    assert [a.status_code for a in attempts] == [500, 500, 200]
    assert [a.attempt for a in attempts] == [1, 2, 3]
    assert len(no_sleep.delays) == 2
    assert 0.9 <= no_sleep.delays[0] <= 1.1
    assert 1.8 <= no_sleep.delays[1] <= 2.2


def test_server_errors_exhaust_attempts(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(503, json={"message": "Unavailable"}) for _ in range(3)])
    executor = build_executor(transport)

    with pytest.raises(ServerError) as exc_info:
        executor.execute(_get())

    assert exc_info.value.status_code == 503
    assert len(transport.requests) == 3


def test_final_failure_logged_with_attempts_and_reason(build_executor, scripted_transport, make_response, caplog):
    transport = scripted_transport([make_response(502) for _ in range(2)])
    executor = build_executor(transport, max_retries=2)

    with caplog.at_level("WARNING", logger="qbclient.infrastructure.resilience.request_executor"):
        with pytest.raises(ServerError):
            executor.execute(_get())

    assert "failed after 2 attempt(s) (exhausted, 5xx)" in caplog.text


def test_single_attempt_when_retries_disabled(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(500)])
    executor = build_executor(transport, max_retries=0)

    with pytest.raises(ServerError):
        executor.execute(_get())
    assert len(transport.requests) == 1


def test_fatal_error_is_not_retried(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(404, json={"message": "Table not found"},
                                                  headers={"qb-api-ray": "ray-404"})])
    executor = build_executor(transport)

    with pytest.raises(NotFoundError) as exc_info:
        executor.execute(_get())

    assert exc_info.value.ray_id == "ray-404"
    assert len(transport.requests) == 1


def test_rate_limit_waits_retry_after(build_executor, scripted_transport, make_response, no_sleep):
    transport = scripted_transport([make_response(429, headers={"Retry-After": "5"}), make_response(200, json={})])
    executor = build_executor(transport)
    hits = []
    executor.on_rate_limit(hits.append)

    executor.execute(_get())

    assert no_sleep.delays == [5.0]
    assert len(hits) == 1
    assert hits[0].retry_after == 5.0
    assert hits[0].attempt == 1


def test_rate_limit_exhausted_raises_rate_limit_error(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(429, headers={"Retry-After": "2"}) for _ in range(2)])
    executor = build_executor(transport, max_retries=2)

    with pytest.raises(RateLimitError) as exc_info:
        executor.execute(_get())
    assert exc_info.value.retry_after == 2.0


def test_network_error_exhausted_keeps_cause(build_executor, scripted_transport):
    failure = httpx.ConnectError("connection refused")
    transport = scripted_transport([failure, failure])
    executor = build_executor(transport, max_retries=2)
    attempts = []
    executor.on_request(attempts.append)

    with pytest.raises(NetworkError) as exc_info:
        executor.execute(_get())

    assert exc_info.value.__cause__ is failure
    assert [a.status_code for a in attempts] == [0, 0]


@pytest.mark.parametrize("failure", [
    httpx.DecodingError("malformed gzip body"),
    httpx.TooManyRedirects("exceeded redirect limit"),
])
def test_non_transport_request_errors_become_network_errors(build_executor, scripted_transport, make_response,
                                                            failure):
    transport = scripted_transport([failure, make_response(200, json={"ok": True})])
    assert build_executor(transport).execute(_get()).json() == {"ok": True}

    transport = scripted_transport([failure] * 3)
    executor = build_executor(transport)
    attempts = []
    executor.on_request(attempts.append)

    with pytest.raises(NetworkError) as exc_info:
        executor.execute(_get())

    assert exc_info.value.__cause__ is failure
    assert [a.status_code for a in attempts] == [0, 0, 0]
    assert len(transport.requests) == 3


def test_unauthorized_retried_with_same_user_token(build_executor, scripted_transport, make_response, no_sleep):
    transport = scripted_transport([make_response(401), make_response(200, json={})])
    executor = build_executor(transport)
    retries = []
    executor.on_retry(retries.append)

    executor.execute(_get())

    assert len(transport.requests) == 2
    assert retries[0].reason == "401"
    assert retries[0].wait_time_s == 0.0
    assert no_sleep.delays == []


def test_unauthorized_gives_up_on_last_chance(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(401, json={"message": "Invalid token"}) for _ in range(2)])
    executor = build_executor(transport)

    with pytest.raises(AuthenticationError):
        executor.execute(_get())
    assert len(transport.requests) == 2


def test_unauthorized_uses_refreshed_token(build_executor, scripted_transport, make_response, mocker):
    auth = mocker.MagicMock(spec=AuthStrategy)
    auth.get_token.return_value = AuthToken("first")
    auth.on_auth_error.return_value = AuthToken("second")
    transport = scripted_transport([make_response(401), make_response(200, json={})])
    executor = build_executor(transport, auth=auth)

    executor.execute(_get())

    auth.get_token.assert_called_once_with("bck7gp3q2")
    auth.on_auth_error.assert_called_once_with(401, "bck7gp3q2", 1, 3)
    tokens = [c.args[1] for c in auth.apply_auth.call_args_list]
    assert tokens == ["first", "second"]


def test_cancelled_before_start_makes_no_attempt(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(200)])
    executor = build_executor(transport)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(RequestCancelledError):
        executor.execute(_get(), cancel=cancel)
    assert transport.requests == []


def test_cancelled_during_backoff(scripted_transport, make_response):
    cancel = threading.Event()

    def cancelling_sleep(seconds, event=None):
        cancel.set()
        return True

    transport = scripted_transport([make_response(500), make_response(200)])
    executor = RequestExecutor(transport, UserTokenStrategy("t"), sleep=cancelling_sleep)

    with pytest.raises(RequestCancelledError):
        executor.execute(_get(), cancel=cancel)
    assert len(transport.requests) == 1


def test_body_replayed_on_every_attempt(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(502), make_response(200, json={})])
    executor = build_executor(transport)
    request = httpx.Request("POST", f"{BASE}/records/query", json={"from": "bck7gp3q2", "select": [3]})

    executor.execute(request)

    bodies = [r.read() for r in transport.requests]
    assert bodies[0] == bodies[1] == request.read()
    assert transport.requests[0] is not transport.requests[1]


def test_read_only_blocks_writes_before_sending(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(200, json={})])
    executor = build_executor(transport, read_only=True)

    with pytest.raises(ReadOnlyError) as exc_info:
        executor.execute(httpx.Request("POST", f"{BASE}/records", json={"to": "bck7gp3q2", "data": []}))

    assert exc_info.value.method == "POST"
    assert exc_info.value.path == "/v1/records"
    assert transport.requests == []


def test_read_only_allows_query_posts(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(200, json={"data": []})])
    executor = build_executor(transport, read_only=True)

    executor.execute(httpx.Request("POST", f"{BASE}/records/query", json={"from": "bck7gp3q2"}))
    assert len(transport.requests) == 1


def test_failing_observer_does_not_change_outcome(build_executor, scripted_transport, make_response):
    transport = scripted_transport([make_response(500), make_response(200, json={})])
    executor = build_executor(transport)

    def broken(event):
        raise RuntimeError("observer bug")

    executor.on_request(broken)
    executor.on_retry(broken)

    assert executor.execute(_get()).status_code == 200


def test_throttle_consulted_before_every_attempt(build_executor, scripted_transport, make_response, mocker):
    throttle = mocker.MagicMock()
    transport = scripted_transport([make_response(500), make_response(200, json={})])
    executor = build_executor(transport, throttle=throttle)
    cancel = threading.Event()

    executor.execute(_get(), cancel=cancel)

    assert throttle.acquire.call_count == 2
    throttle.acquire.assert_called_with(cancel)

"""Service for executing QuickBase API calls with throttling and retries.

Every call goes through the same loop: wait for a throttle slot, attach a
token to a fresh copy of the request, send it, classify the result, then
either return, give up, or back off and go round again.

Retrying an ambiguous failure (for example a network error after the server
already applied a write) can duplicate the effect of a non-idempotent
request. QuickBase has no idempotency key, so this is not prevented here.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from qbclient.domain.events.api_events import RateLimitHit, RequestCompleted, RetryScheduled
from qbclient.domain.interfaces.auth import AuthStrategy
from qbclient.domain.interfaces.throttle import Throttle
from qbclient.domain.interfaces.transport import Transport
from qbclient.domain.models.common import DEFAULT_REQUEST_TIMEOUT_S, RateLimitInfo, RetryPolicy
from qbclient.domain.models.errors import QuickbaseError, ReadOnlyError, RequestCancelledError
from qbclient.infrastructure.monitoring.event_dispatcher import EventDispatcher
from qbclient.infrastructure.resilience.error_classifier import Classification, ErrorClassifier, Outcome
from qbclient.infrastructure.resilience.request_inspection import extract_dbid, is_write_request
from qbclient.infrastructure.resilience.throttle import NoOpThrottle
from qbclient.infrastructure.resilience.waiting import Sleeper, is_cancelled, wait_or_cancel

logger = logging.getLogger(__name__)


@dataclass
class RetryState:
    """Mutable bookkeeping for one logical call."""
    attempt: int = 0
    last: Optional[Classification] = None
    delay: float = 0.0


class RequestExecutor:
    """Handles API call execution with throttling, auth, retries and observers."""

    def __init__(
        self,
        transport: Transport,
        auth: AuthStrategy,
        throttle: Optional[Throttle] = None,
        policy: Optional[RetryPolicy] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_S,
        read_only: bool = False,
        classifier: Optional[ErrorClassifier] = None,
        dispatcher: Optional[EventDispatcher] = None,
        sleep: Sleeper = wait_or_cancel,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """Initializes the RequestExecutor.

        Args:
            transport: Sends a single request.
            auth: Supplies and attaches tokens, and handles 401 responses.
            throttle: Admission gate consulted before every attempt.
                Defaults to NoOpThrottle.
            policy: Retry and backoff configuration.
            request_timeout: Per-request timeout in seconds, reported in
                RequestTimeoutError.
            read_only: Reject write requests before sending anything.
            classifier: Overrides the classifier built from `policy`.
            dispatcher: Event dispatcher shared with observers.
            sleep: Interruptible sleep used between retries.
            clock: Time source for attempt durations.
        """
        self.transport = transport
        self.auth = auth
        self.throttle = throttle or NoOpThrottle()
        self.policy = policy or RetryPolicy()
        self.read_only = read_only
        self.classifier = classifier or ErrorClassifier(self.policy, request_timeout=request_timeout)
        self.dispatcher = dispatcher or EventDispatcher()
        self._sleep = sleep
        self._clock = clock

        logger.debug(
            f"RequestExecutor initialized: max_attempts={self.policy.max_attempts}, "
            f"initial_delay={self.policy.initial_delay}s, multiplier={self.policy.backoff_multiplier}, "
            f"max_delay={self.policy.max_delay}s, throttle={type(self.throttle).__name__}, "
            f"read_only={read_only}"
        )

    # --- Observer registration ---

    def on_request(self, callback: Callable[[RequestCompleted], None]) -> None:
        """Registers a callback fired after every attempt."""
        self.dispatcher.subscribe(RequestCompleted, callback)

    def on_retry(self, callback: Callable[[RetryScheduled], None]) -> None:
        """Registers a callback fired before every retry."""
        self.dispatcher.subscribe(RetryScheduled, callback)

    def on_rate_limit(self, callback: Callable[[RateLimitInfo], None]) -> None:
        """Registers a callback fired on every 429 response."""
        self.dispatcher.subscribe(RateLimitHit, lambda event: callback(event.info))

    # --- Execution ---

    def execute(self, request: httpx.Request, cancel: Optional[threading.Event] = None) -> httpx.Response:
        """Sends the request, retrying transient failures.

        Args:
            request: The request to send. Its body is read once and replayed
                on every attempt; the request object itself is never sent.
            cancel: Optional event; once set, no further attempts are made
                and backoff waits end immediately.

        Returns:
            The successful (2xx) response.

        Raises:
            RequestCancelledError: If `cancel` fired before the call finished.
            ReadOnlyError: If the executor is read-only and the request writes.
            QuickbaseError: The typed error for the final failed attempt.
        """
        method = request.method
        path = request.url.path
        url = str(request.url)

        if self.read_only and is_write_request(method, path):
            raise ReadOnlyError(method, path)

        body = request.read() or None
        dbid = extract_dbid(request, body)
        max_attempts = self.policy.max_attempts
        state = RetryState()
        refreshed_token = None
        call_started = self._clock()

        while True:
            if is_cancelled(cancel):
                raise RequestCancelledError()
            state.attempt += 1
            attempt = state.attempt

            self.throttle.acquire(cancel)

            token = refreshed_token or self.auth.get_token(dbid)
            refreshed_token = None
            attempt_request = self._clone(request, body)
            self.auth.apply_auth(attempt_request, token)

            response: Optional[httpx.Response] = None
            attempt_started = self._clock()
            try:
                response = self.transport.send(attempt_request)
            except httpx.RequestError as exc:
                self._emit_attempt(method, path, 0, self._clock() - attempt_started, attempt, exc, body)
                classification = self.classifier.classify_transport_error(
                    exc, attempt, cancelled=is_cancelled(cancel)
                )
            else:
                classification = self.classifier.classify_response(response, attempt, url)
                self._emit_attempt(method, path, response.status_code, self._clock() - attempt_started,
                                   attempt, classification.error, body)
                logger.debug(f"{method} {url} -> {response.status_code} (attempt {attempt})")
            state.last = classification

            if classification.rate_limit is not None:
                self._report_rate_limit(classification.rate_limit)

            if classification.outcome is Outcome.SUCCESS:
                logger.debug(f"{method} {url} completed in {(self._clock() - call_started) * 1000:.0f}ms")
                return response

            if classification.outcome is Outcome.RETRY:
                state.delay = classification.delay
                if response is not None:
                    response.close()
                self._schedule_retry(method, path, attempt, max_attempts, classification.reason, state.delay)
                if self._sleep(state.delay, cancel):
                    raise RequestCancelledError()
                continue

            if classification.outcome is Outcome.REAUTHENTICATE:
                new_token = None
                if attempt < max_attempts:
                    new_token = self.auth.on_auth_error(401, dbid, attempt, max_attempts)
                if new_token:
                    logger.debug("Token refreshed, retrying request")
                    refreshed_token = new_token
                    response.close()
                    self._schedule_retry(method, path, attempt, max_attempts, classification.reason, 0.0)
                    continue

            self._fail(method, url, state)

    # --- Internals ---

    @staticmethod
    def _clone(request: httpx.Request, body: Optional[bytes]) -> httpx.Request:
        return httpx.Request(
            request.method,
            request.url,
            headers=request.headers.copy(),
            content=body,
            extensions=dict(request.extensions),
        )

    def _emit_attempt(self, method, path, status_code, duration, attempt, error, body) -> None:
        self.dispatcher.dispatch(RequestCompleted(
            method=method,
            path=path,
            status_code=status_code,
            duration_s=duration,
            attempt=attempt,
            error=error,
            request_body=body,
        ))

    def _report_rate_limit(self, info: RateLimitInfo) -> None:
        message = (f"Rate limited (attempt {info.attempt}): {info.request_url} - "
                   f"Status {info.http_status}, Retry-After: {info.retry_after or 0:g}s")
        if info.ray_id:
            message += f", Ray: {info.ray_id}"
        logger.debug(message)
        self.dispatcher.dispatch(RateLimitHit(info=info))

    def _schedule_retry(self, method: str, path: str, attempt: int, max_attempts: int,
                        reason: str, delay: float) -> None:
        logger.debug(f"Retry {attempt}/{max_attempts} in {delay * 1000:.0f}ms: {reason}")
        self.dispatcher.dispatch(RetryScheduled(
            method=method,
            path=path,
            attempt=attempt + 1,
            reason=reason,
            wait_time_s=delay,
        ))

    @staticmethod
    def _fail(method: str, url: str, state: RetryState) -> None:
        last = state.last
        error: QuickbaseError = last.error
        logger.warning(f"{method} {url} failed after {state.attempt} attempt(s) ({last.outcome.value}, {last.reason}): {error}")
        if error.cause is not None:
            raise error from error.cause
        raise error

"""Maps one completed attempt to a retry decision or a typed failure.

The classifier is pure: it looks at a response (or the transport error that
replaced it) and the attempt number, and returns a Classification. It never
sleeps, sends or calls observers, so every transition of the retry loop can
be tested without a transport.
"""

import enum
import logging
import random
from dataclasses import dataclass
from typing import Any, List, Optional

import httpx

from qbclient.domain.models.common import DEFAULT_REQUEST_TIMEOUT_S, RateLimitInfo, RetryPolicy
from qbclient.domain.models.errors import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    FieldError,
    NetworkError,
    NotFoundError,
    QuickbaseError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
    ValidationError,
)
from qbclient.infrastructure.resilience.backoff import compute_backoff, parse_retry_after

logger = logging.getLogger(__name__)

RAY_ID_HEADER = "qb-api-ray"
CF_RAY_HEADER = "cf-ray"
TID_HEADER = "tid"


class Outcome(str, enum.Enum):
    SUCCESS = "success"
    RETRY = "retry"                    # Back off for `delay`, then try again
    REAUTHENTICATE = "reauthenticate"  # 401: ask the auth strategy for a new token
    EXHAUSTED = "exhausted"            # Retryable, but out of attempts
    FATAL = "fatal"                    # Not retryable


@dataclass(frozen=True)
class Classification:
    """Result of classifying a single attempt."""
    outcome: Outcome
    reason: str = ""
    delay: float = 0.0
    error: Optional[QuickbaseError] = None
    rate_limit: Optional[RateLimitInfo] = None

    @property
    def is_terminal(self) -> bool:
        return self.outcome in (Outcome.SUCCESS, Outcome.EXHAUSTED, Outcome.FATAL)


def extract_ray_id(response: httpx.Response) -> Optional[str]:
    return response.headers.get(RAY_ID_HEADER) or response.headers.get(CF_RAY_HEADER) or None


def _decode_error_body(response: httpx.Response) -> dict:
    try:
        body: Any = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _field_errors(raw_errors: Any) -> List[FieldError]:
    if not isinstance(raw_errors, list):
        return []
    errors = []
    for item in raw_errors:
        if isinstance(item, dict):
            errors.append(FieldError(message=str(item.get("message", "")), field=item.get("field")))
        elif isinstance(item, str):
            errors.append(FieldError(message=item))
    return errors


def parse_error_response(response: httpx.Response, request_url: str = "", attempt: int = 1) -> QuickbaseError:
    """Builds the typed error for a non-2xx response.

    QuickBase error bodies look like ``{"message": ..., "description": ...,
    "errors": [...]}``; missing or undecodable bodies fall back to the
    status line.
    """
    ray_id = extract_ray_id(response)
    body = _decode_error_body(response)
    status = response.status_code
    message = body.get("message") or f"{status} {response.reason_phrase}".strip()
    description = body.get("description") or None

    if status == 400:
        return ValidationError(message, ray_id=ray_id, field_errors=_field_errors(body.get("errors")),
                               description=description)
    if status == 401:
        return AuthenticationError(message, ray_id=ray_id, description=description)
    if status == 403:
        return AuthorizationError(message, ray_id=ray_id, description=description)
    if status == 404:
        return NotFoundError(message, ray_id=ray_id, description=description)
    if status == 429:
        return RateLimitError(rate_limit_info(response, request_url, attempt), body.get("message"))
    if status >= 500:
        return ServerError(status, message, ray_id=ray_id, description=description)
    return ApiError(message, status_code=status, description=description, ray_id=ray_id)


def rate_limit_info(response: httpx.Response, request_url: str, attempt: int) -> RateLimitInfo:
    return RateLimitInfo(
        request_url=request_url,
        attempt=attempt,
        http_status=response.status_code,
        retry_after=parse_retry_after(response),
        cf_ray=response.headers.get(CF_RAY_HEADER),
        tid=response.headers.get(TID_HEADER),
        qb_api_ray=response.headers.get(RAY_ID_HEADER),
    )


class ErrorClassifier:
    """Decides what the retry loop does after each attempt."""

    def __init__(
        self,
        policy: RetryPolicy,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_S,
        rng: Optional[random.Random] = None,
    ):
        self.policy = policy
        self.request_timeout = request_timeout
        self._rng = rng or random.Random()

    def _backoff(self, attempt: int) -> float:
        return compute_backoff(self.policy, attempt, self._rng)

    def _can_retry(self, attempt: int) -> bool:
        return attempt < self.policy.max_attempts

    def classify_response(self, response: httpx.Response, attempt: int, request_url: str = "") -> Classification:
        """Classifies an attempt that produced an HTTP response."""
        status = response.status_code

        if 200 <= status < 300:
            return Classification(Outcome.SUCCESS)

        if status == 429:
            info = rate_limit_info(response, request_url, attempt)
            if self._can_retry(attempt):
                delay = info.retry_after if info.retry_after else self._backoff(attempt)
                return Classification(Outcome.RETRY, reason="429", delay=delay, rate_limit=info)
            return Classification(Outcome.EXHAUSTED, reason="429", rate_limit=info,
                                  error=RateLimitError(info))

        if status == 401:
            return Classification(Outcome.REAUTHENTICATE, reason="401",
                                  error=parse_error_response(response, request_url, attempt))

        if status >= 500:
            if self._can_retry(attempt):
                return Classification(Outcome.RETRY, reason="5xx", delay=self._backoff(attempt))
            return Classification(Outcome.EXHAUSTED, reason="5xx",
                                  error=parse_error_response(response, request_url, attempt))

        return Classification(Outcome.FATAL, reason=str(status),
                              error=parse_error_response(response, request_url, attempt))

    def classify_transport_error(self, error: Exception, attempt: int, cancelled: bool = False) -> Classification:
        """Classifies an attempt that failed before any response arrived."""
        timeout_ms = int(self.request_timeout * 1000)
        timed_out = isinstance(error, httpx.TimeoutException)

        if cancelled:
            return Classification(Outcome.FATAL, reason="cancelled",
                                  error=RequestTimeoutError(timeout_ms, cause=error))

        reason = "timeout" if timed_out else "network error"
        if self._can_retry(attempt):
            return Classification(Outcome.RETRY, reason=reason, delay=self._backoff(attempt))

        if timed_out:
            final: QuickbaseError = RequestTimeoutError(timeout_ms, cause=error)
        else:
            final = NetworkError(f"Network error: {error}", cause=error)
        return Classification(Outcome.EXHAUSTED, reason=reason, error=final)

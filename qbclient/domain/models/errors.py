"""Error taxonomy for QuickBase API calls.

Every failure that reaches the caller is one of these exceptions. Each carries
the server's diagnostic ray id when one was returned, which QuickBase support
can use to trace the request.
"""

from dataclasses import dataclass
from typing import List, Optional

from qbclient.domain.models.common import RateLimitInfo


@dataclass(frozen=True)
class FieldError:
    """A validation error for a single field."""
    message: str
    field: Optional[str] = None


class QuickbaseError(Exception):
    """Base class for all errors raised by qbclient."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        description: Optional[str] = None,
        ray_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.description = description
        self.ray_id = ray_id
        self.cause = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.description:
            return f"{self.message}: {self.description} (status: {self.status_code})"
        return f"{self.message} (status: {self.status_code})"


class ApiError(QuickbaseError):
    """Non-2xx response that has no more specific type."""


class NetworkError(QuickbaseError):
    """The request never produced an HTTP response."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, status_code=0, cause=cause)


class RequestTimeoutError(QuickbaseError):
    """The request timed out or its caller gave up while it was in flight."""

    def __init__(self, timeout_ms: int, cause: Optional[BaseException] = None):
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timed out after {timeout_ms}ms", status_code=0, cause=cause)

    def __str__(self) -> str:
        return f"request timed out after {self.timeout_ms}ms"


class RequestCancelledError(QuickbaseError):
    """The caller's cancel event fired before the call could complete."""

    def __init__(self, message: str = "Request cancelled"):
        super().__init__(message, status_code=0)

    def __str__(self) -> str:
        return self.message


class RateLimitError(QuickbaseError):
    """HTTP 429 persisted through every retry."""

    def __init__(self, info: RateLimitInfo, message: Optional[str] = None):
        self.retry_after = info.retry_after
        self.rate_limit_info = info
        if not message:
            if info.retry_after:
                message = f"Rate limited. Retry after {info.retry_after:g} seconds"
            else:
                message = "Rate limited"
        super().__init__(message, status_code=429, ray_id=info.ray_id)

    def __str__(self) -> str:
        if self.retry_after:
            return f"rate limited, retry after {self.retry_after:g} seconds"
        return "rate limited"


class AuthenticationError(QuickbaseError):
    """HTTP 401 that the auth strategy could not recover from."""

    def __init__(self, message: str, ray_id: Optional[str] = None, description: Optional[str] = None):
        super().__init__(message, status_code=401, description=description, ray_id=ray_id)


class AuthorizationError(QuickbaseError):
    """HTTP 403."""

    def __init__(self, message: str, ray_id: Optional[str] = None, description: Optional[str] = None):
        super().__init__(message, status_code=403, description=description, ray_id=ray_id)


class NotFoundError(QuickbaseError):
    """HTTP 404."""

    def __init__(self, message: str, ray_id: Optional[str] = None, description: Optional[str] = None):
        super().__init__(message, status_code=404, description=description, ray_id=ray_id)


class ValidationError(QuickbaseError):
    """HTTP 400, optionally with per-field errors."""

    def __init__(
        self,
        message: str,
        ray_id: Optional[str] = None,
        field_errors: Optional[List[FieldError]] = None,
        description: Optional[str] = None,
    ):
        self.field_errors: List[FieldError] = list(field_errors or [])
        super().__init__(message, status_code=400, description=description, ray_id=ray_id)


class ServerError(QuickbaseError):
    """HTTP 5xx persisted through every retry."""

    def __init__(self, status_code: int, message: str, ray_id: Optional[str] = None, description: Optional[str] = None):
        super().__init__(message, status_code=status_code, description=description, ray_id=ray_id)


class ReadOnlyError(QuickbaseError):
    """A write request was attempted on a client in read-only mode."""

    def __init__(self, method: str, path: str):
        self.method = method
        self.path = path
        super().__init__(f"Write operation blocked in read-only mode: {method} {path}", status_code=0)

    def __str__(self) -> str:
        return self.message


class MissingTokenError(QuickbaseError):
    """No temporary token is available for the given table or app."""

    def __init__(self, dbid: str):
        self.dbid = dbid
        super().__init__(f"no temp token available for table {dbid}", status_code=0)

    def __str__(self) -> str:
        return self.message


class PaginationProtocolError(QuickbaseError):
    """A page's metadata contradicts the cursor style locked in earlier."""

    def __str__(self) -> str:
        return self.message


def is_retryable_error(error: BaseException) -> bool:
    """Returns True for the error types the request executor retries."""
    return isinstance(error, (RateLimitError, ServerError, RequestTimeoutError, NetworkError))

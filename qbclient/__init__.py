"""qbclient: a resilient Python client for the QuickBase JSON API.

Requests pass through a sliding-window throttle, a retry loop with
exponential backoff, and a pagination walker that hides QuickBase's two
cursor styles.
"""

__version__ = "0.1.0"

from qbclient.client import Client, validate_realm  # noqa: E402
from qbclient.domain.models.errors import (  # noqa: E402
    ApiError,
    AuthenticationError,
    AuthorizationError,
    FieldError,
    MissingTokenError,
    NetworkError,
    NotFoundError,
    PaginationProtocolError,
    QuickbaseError,
    RateLimitError,
    ReadOnlyError,
    RequestCancelledError,
    RequestTimeoutError,
    ServerError,
    ValidationError,
    is_retryable_error,
)
from qbclient.infrastructure.auth.sso_token import SSOTokenStrategy  # noqa: E402
from qbclient.infrastructure.auth.temp_token import TempTokenStrategy  # noqa: E402
from qbclient.infrastructure.auth.user_token import UserTokenStrategy  # noqa: E402
from qbclient.infrastructure.config.settings import ClientSettings, load_client_settings  # noqa: E402
from qbclient.infrastructure.monitoring.logger_setup import setup_logging, setup_logging_from_settings  # noqa: E402

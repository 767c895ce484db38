"""Defines common Value Objects used across the request pipeline.

These objects represent simple values like table ids and tokens, plus the
retry policy and the rate-limit details reported by the server.
"""

import time
from dataclasses import dataclass, field
from typing import NewType, Optional

# === Core Value Objects ===

DbId = NewType("DbId", str)            # QuickBase table or app id, e.g. 'bqxyz123'
AuthToken = NewType("AuthToken", str)  # User token, temp token or ticket
Realm = NewType("Realm", str)          # Realm subdomain, e.g. 'mycompany'

# === Retry Context ===

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_S = 1.0
DEFAULT_MAX_DELAY_S = 30.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_REQUEST_TIMEOUT_S = 30.0
JITTER_FRACTION = 0.1


@dataclass(frozen=True)
class RetryPolicy:
    """Value Object representing retry backoff configuration.

    Attributes:
        max_retries: Maximum number of attempts per call (at least 1 is made).
        initial_delay: Delay in seconds before the first retry.
        max_delay: Upper bound in seconds on the computed (pre-jitter) delay.
        backoff_multiplier: Growth factor between consecutive delays.
    """
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay: float = DEFAULT_INITIAL_DELAY_S
    max_delay: float = DEFAULT_MAX_DELAY_S
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER

    @property
    def max_attempts(self) -> int:
        return max(1, self.max_retries)


# === Rate Limit Context ===

@dataclass(frozen=True)
class RateLimitInfo:
    """Details of a single 429 response."""
    request_url: str
    attempt: int
    http_status: int = 429
    retry_after: Optional[float] = None  # seconds
    cf_ray: Optional[str] = None
    tid: Optional[str] = None
    qb_api_ray: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def ray_id(self) -> Optional[str]:
        return self.qb_api_ray or self.cf_ray

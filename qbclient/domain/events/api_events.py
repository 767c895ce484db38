"""Domain Events related to API calls and resilience.

Emitted by the request executor after each attempt, before each retry and on
every rate-limit response. Events are for observers only; nothing in the
pipeline reads them back.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

from qbclient.domain.models.common import RateLimitInfo


@dataclass(frozen=True)
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Specific API Events ---

@dataclass(frozen=True)
class RequestCompleted(DomainEvent):
    """Event triggered after every attempt, successful or not."""
    method: str
    path: str
    status_code: int  # 0 when the transport failed before a response arrived
    duration_s: float
    attempt: int
    error: Optional[BaseException] = None
    request_body: Optional[bytes] = None
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed attempt."""
    method: str
    path: str
    attempt: int  # The attempt about to happen (2 = first retry)
    reason: str   # e.g. '429', '5xx', '401', 'network error'
    wait_time_s: float
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class RateLimitHit(DomainEvent):
    """Event triggered when the server answers 429."""
    info: RateLimitInfo
    timestamp: float = field(default_factory=time.time)

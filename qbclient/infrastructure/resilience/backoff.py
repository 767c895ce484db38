"""Exponential backoff with jitter, and Retry-After parsing."""

import math
import random
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Optional

import httpx

from qbclient.domain.models.common import JITTER_FRACTION, RetryPolicy


def compute_backoff(policy: RetryPolicy, attempt: int, rng: Optional[random.Random] = None) -> float:
    """Returns the delay in seconds before retrying after `attempt` failed.

    The delay is ``initial_delay * multiplier ** (attempt - 1)``, capped at
    ``max_delay`` and then jittered uniformly by +/-10%, so it never exceeds
    ``max_delay * 1.1``.
    """
    rng = rng or random
    exponent = max(0, attempt - 1)
    try:
        delay = policy.initial_delay * (policy.backoff_multiplier ** exponent)
    except OverflowError:
        delay = policy.max_delay
    delay = min(delay, policy.max_delay)
    jitter = delay * JITTER_FRACTION * (rng.random() * 2 - 1)
    return max(0.0, delay + jitter)


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Parses the ``Retry-After`` header into seconds.

    Accepts both delta-seconds and HTTP-date forms; returns None when the
    header is absent, invalid or not in the future.
    """
    retry_after = response.headers.get("Retry-After")
    if not retry_after:
        return None

    try:
        seconds = float(retry_after)
    except (TypeError, ValueError):
        pass
    else:
        if seconds > 0.0 and math.isfinite(seconds):
            return seconds
        return None

    try:
        target_time = parsedate_to_datetime(retry_after)
    except (TypeError, ValueError, IndexError):
        return None
    if target_time is None:
        return None
    if target_time.tzinfo is None:
        target_time = target_time.replace(tzinfo=timezone.utc)

    delta = (target_time - datetime.now(timezone.utc)).total_seconds()
    if delta > 0.0 and math.isfinite(delta):
        return delta
    return None

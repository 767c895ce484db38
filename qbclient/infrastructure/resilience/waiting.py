"""Interruptible sleeping shared by the throttle and the retry loop."""

import threading
import time
from typing import Callable, Optional

# (seconds, cancel) -> True if the cancel event fired while waiting
Sleeper = Callable[[float, Optional[threading.Event]], bool]


def wait_or_cancel(seconds: float, cancel: Optional[threading.Event] = None) -> bool:
    """Blocks for up to `seconds`, waking early if `cancel` is set.

    Returns:
        True if the cancel event is set, False if the full delay elapsed.
    """
    if cancel is None:
        if seconds > 0:
            time.sleep(seconds)
        return False
    if seconds <= 0:
        return cancel.is_set()
    return cancel.wait(seconds)


def is_cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()

"""Interface for admission control.

QuickBase allows 100 requests per 10 seconds per user token. A throttle
keeps the client under that limit instead of relying on 429 responses.
"""

import abc
import threading
from typing import Optional


class Throttle(abc.ABC):
    """Abstract Base Class for throttling policies."""

    @abc.abstractmethod
    def acquire(self, cancel: Optional[threading.Event] = None) -> None:
        """Blocks until a request slot is available.

        Args:
            cancel: Optional event; when set, waiting stops.

        Raises:
            RequestCancelledError: If the cancel event fires first.
        """
        pass

    @abc.abstractmethod
    def window_count(self) -> int:
        """Returns the number of admissions in the current window."""
        pass

    @abc.abstractmethod
    def remaining(self) -> int:
        """Returns how many more admissions the current window allows."""
        pass

    @abc.abstractmethod
    def reset(self) -> None:
        """Clears the throttle state."""
        pass

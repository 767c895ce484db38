"""Synchronous in-process dispatcher for domain events.

Observers are side-effect only: an observer that raises is logged and the
remaining observers still run, so monitoring code can never change the
outcome of a request.
"""

import logging
import threading
from collections import defaultdict
from typing import Callable, DefaultDict, List, Type, TypeVar

from qbclient.domain.events.api_events import DomainEvent

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=DomainEvent)


class EventDispatcher:
    """Routes events to the callbacks subscribed to their type."""

    def __init__(self):
        self._subscribers: DefaultDict[type, List[Callable]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[E], callback: Callable[[E], None]) -> None:
        with self._lock:
            self._subscribers[event_type].append(callback)

    def unsubscribe(self, event_type: Type[E], callback: Callable[[E], None]) -> None:
        with self._lock:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def has_subscribers(self, event_type: type) -> bool:
        with self._lock:
            return bool(self._subscribers.get(event_type))

    def dispatch(self, event: DomainEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(type(event), []))
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Observer {callback!r} failed handling {type(event).__name__}")

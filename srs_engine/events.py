"""Publish/subscribe port for engine lifecycle events."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

logger = structlog.get_logger(__name__)


class EventType(str, Enum):
    ENGINE_INITIALIZED = "engine:initialized"
    CARD_REVIEWED = "card:reviewed"
    CARD_RESET = "card:reset"
    ALGORITHM_CHANGED = "algorithm:changed"
    PARAMETERS_ADAPTED = "parameters:adapted"
    CACHE_CLEARED = "cache:cleared"
    CACHE_HIT = "cache:hit"
    MIDDLEWARE_ERROR = "middleware:error"
    ERROR = "error"


@dataclass(frozen=True)
class Event:
    type: str
    data: Any
    timestamp: float = field(default_factory=time.time)


Listener = Callable[[Event], Any]
EventName = Union[EventType, str]


def _event_name(event: EventName) -> str:
    return event.value if isinstance(event, EventType) else str(event)


class EventBus:
    """Dispatches events to plain callbacks.

    A listener that raises is logged and skipped; the remaining listeners and
    the emitting call are unaffected.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = Lock()

    def on(self, event: EventName, listener: Listener) -> Callable[[], None]:
        """Subscribe *listener* and return a function that unsubscribes it."""

        name = _event_name(event)
        with self._lock:
            listeners = self._listeners.setdefault(name, [])
            if listener not in listeners:
                listeners.append(listener)
        return lambda: self.off(name, listener)

    def off(self, event: EventName, listener: Listener) -> None:
        name = _event_name(event)
        with self._lock:
            listeners = self._listeners.get(name)
            if listeners and listener in listeners:
                listeners.remove(listener)

    def emit(self, event: EventName, data: Any = None) -> Event:
        name = _event_name(event)
        payload = Event(type=name, data=data)
        with self._lock:
            listeners = list(self._listeners.get(name, ()))
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception("event_listener_failed", event_name=name, listener=repr(listener))
        return payload

    def clear(self, event: Optional[EventName] = None) -> None:
        with self._lock:
            if event is None:
                self._listeners.clear()
            else:
                self._listeners.pop(_event_name(event), None)

    def events(self) -> List[str]:
        with self._lock:
            return [name for name, listeners in self._listeners.items() if listeners]


__all__ = ["Event", "EventBus", "EventType", "Listener"]

"""In-process lifecycle events for steps, retries and completions."""

from __future__ import annotations

import fnmatch
import logging
import threading
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, Dict[str, Any]], None]

STEP_START = "step.start"
STEP_RETRY = "step.retry"
STEP_COMPLETE = "step.complete"
STEP_ERROR = "step.error"


class EventNotifier:
    """Publishes named events to subscribers matching a glob pattern.

    A failing subscriber is logged and skipped; events never interrupt the
    workflow that emitted them.
    """

    def __init__(self) -> None:
        self._subscribers: List[Tuple[str, EventCallback]] = []
        self._lock = threading.Lock()

    def subscribe(self, pattern: str, callback: EventCallback) -> EventCallback:
        with self._lock:
            self._subscribers.append((pattern, callback))
        return callback

    def unsubscribe(self, callback: EventCallback) -> None:
        with self._lock:
            self._subscribers = [
                (pattern, cb) for pattern, cb in self._subscribers if cb is not callback
            ]

    def instrument(self, event: str, **payload: Any) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug(f"event {event}: {payload}")
        for pattern, callback in subscribers:
            if not fnmatch.fnmatchcase(event, pattern):
                continue
            try:
                callback(event, payload)
            except Exception as e:
                logger.warning(f"Event subscriber for {event} failed: {e}")


default_notifier = EventNotifier()


__all__ = [
    "EventNotifier",
    "default_notifier",
    "STEP_START",
    "STEP_RETRY",
    "STEP_COMPLETE",
    "STEP_ERROR",
]

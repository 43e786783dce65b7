"""
In-process publish/subscribe channel.

Services publish plain payloads on named topics (`loading`, `error`, `spots.changed`, ...)
so a UI layer can react without the business logic knowing about it. Nothing here
is required for correctness: with no subscribers, `publish` is a no-op.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[["Event"], None]


@dataclass(frozen=True)
class Event:
    topic: str
    payload: dict[str, Any] = field(default_factory=dict)


class EventBus:
    """Topic-keyed handler registry; `"*"` subscribes to every topic."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register `handler` and return a callable that unregisters it."""
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(topic, [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def publish(self, topic: str, **payload: Any) -> None:
        with self._lock:
            handlers = [*self._handlers.get(topic, []), *self._handlers.get("*", [])]
        if not handlers:
            return
        event = Event(topic=topic, payload=dict(payload))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # A broken listener must not fail the operation that published the event.
                logger.exception("Event handler failed for topic=%s", topic)

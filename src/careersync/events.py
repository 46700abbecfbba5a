"""
In-process pub/sub used for change notifications.

Topics:
    store.changed       a Status Store key was written or deleted
    data.changed        imported activities or entries changed on the backend
    narratives.status   a background narrative poll tick finished
"""
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

STORE_CHANGED = "store.changed"
DATA_CHANGED = "data.changed"
NARRATIVES_STATUS = "narratives.status"

Event = Dict[str, Any]
Handler = Callable[[Event], None]


class EventBus:
    """Topic-routed event bus. Subscribe to "*" to receive everything."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a function that removes it again."""
        with self._lock:
            self._subscribers[topic].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._subscribers.get(topic, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, topic: str, event: Event) -> None:
        handlers: List[Handler] = []
        with self._lock:
            handlers.extend(self._subscribers.get(topic, []))
            handlers.extend(self._subscribers.get("*", []))
        for handler in handlers:
            try:
                handler({"topic": topic, **event})
            except Exception as exc:
                logger.error("EventBus handler failed for topic '%s': %s", topic, exc)


_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    global _bus
    if _bus is None:
        _bus = EventBus()
    return _bus

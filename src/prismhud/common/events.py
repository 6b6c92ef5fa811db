"""In-process event bus used to publish pipeline state to presentation."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from prismhud.common.logging import get_logger


@dataclass(frozen=True)
class Event:
    """Event message."""

    topic: str
    data: dict[str, Any]
    source: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)


EventHandler = Callable[[Event], Awaitable[None]]


def topic_matches(topic: str, pattern: str) -> bool:
    """Check a dotted topic against a pattern.

    ``*`` matches exactly one segment, a trailing ``**`` matches one or more.
    """
    topic_parts = topic.split(".")
    pattern_parts = pattern.split(".")

    if pattern_parts[-1] == "**":
        prefix = pattern_parts[:-1]
        if len(topic_parts) <= len(prefix):
            return False
        topic_parts = topic_parts[: len(prefix)]
        pattern_parts = prefix

    if len(topic_parts) != len(pattern_parts):
        return False
    return all(p in ("*", t) for t, p in zip(topic_parts, pattern_parts))


class EventBus:
    """Publish/subscribe bus on the running event loop.

    Handlers are awaited concurrently; a failing handler is logged and does
    not affect the publisher or the other handlers.
    """

    def __init__(self, history_limit: int = 200) -> None:
        self._handlers: list[tuple[str, EventHandler]] = []
        self._history: list[Event] = []
        self._history_limit = history_limit
        self.logger = get_logger("event_bus")

    async def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        self.logger.debug("publishing_event", topic=event.topic, source=event.source)

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]

        handlers = [h for pattern, h in self._handlers if topic_matches(event.topic, pattern)]
        if handlers:
            await asyncio.gather(*(self._dispatch(h, event) for h in handlers))

    async def _dispatch(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception as e:
            self.logger.exception("event_handler_error", topic=event.topic, error=str(e))

    def subscribe(
        self,
        pattern: str,
        handler: EventHandler | None = None,
    ) -> Callable[[EventHandler], EventHandler] | Callable[[], None]:
        """Subscribe to a topic pattern.

        Called with a handler it returns an unsubscribe function; called with
        only a pattern it returns a decorator.
        """
        if handler is not None:
            return self._register(pattern, handler)

        def decorator(fn: EventHandler) -> EventHandler:
            self._register(pattern, fn)
            return fn

        return decorator

    def _register(self, pattern: str, handler: EventHandler) -> Callable[[], None]:
        entry = (pattern, handler)
        self._handlers.append(entry)

        def unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe

    def get_history(self, topic: str | None = None, limit: int = 100) -> list[Event]:
        """Get published events, oldest first, optionally filtered by pattern."""
        events = self._history
        if topic:
            events = [e for e in events if topic_matches(e.topic, topic)]
        return events[-limit:]

    def clear_history(self) -> None:
        """Clear event history."""
        self._history.clear()


_global_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _global_bus
    if _global_bus is None:
        _global_bus = EventBus()
    return _global_bus


def reset_event_bus() -> None:
    """Reset the global event bus (for testing)."""
    global _global_bus
    _global_bus = None

"""
Publish/subscribe event bus for queue notifications.

Publishing is fire-and-forget: a listener that raises is logged and
skipped, and coroutine listeners are scheduled as tasks rather than
awaited, so a worker is never blocked or broken by its listeners.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

# Listener receives the event payload; may be sync or async.
EventListener = Callable[[Any], Any]


class EventBus:
    """
    Event bus mapping event names to listeners.

    Example:
        bus = EventBus()
        bus.subscribe("job complete", lambda job: print(job.id))
        bus.publish("job complete", job)
    """

    def __init__(self):
        self._listeners: dict[str, list[EventListener]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event: str, listener: EventListener) -> None:
        """Register a listener for an event."""
        self._listeners[event].append(listener)

    def unsubscribe(self, event: str, listener: EventListener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def has_listeners(self, event: str) -> bool:
        """Check whether anything is subscribed to an event."""
        return bool(self._listeners.get(event))

    def publish(self, event: str, payload: Any) -> int:
        """
        Deliver a payload to every listener of an event.

        Args:
            event: The event name.
            payload: The value passed to each listener.

        Returns:
            Number of listeners invoked.
        """
        listeners = list(self._listeners.get(event, []))

        for listener in listeners:
            try:
                outcome = listener(payload)
            except Exception:
                logger.exception("Event listener failed", extra={"event": event})
                continue

            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._pending.add(task)
                task.add_done_callback(self._listener_done)

        return len(listeners)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Async event listener failed",
                exc_info=task.exception(),
            )

    async def drain(self) -> None:
        """Wait for scheduled async listeners to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

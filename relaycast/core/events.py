"""
Ordered listener registry shared by the channel and orchestrator.
"""
import asyncio
from typing import Any, Callable, Dict, List

from relaycast.core.logging import LoggerMixin


class ListenerRegistry(LoggerMixin):
    """Keeps an ordered set of callbacks per event name and dispatches to them."""

    def __init__(self):
        super().__init__()
        self.listeners: Dict[str, List[Callable]] = {}

    def add_listener(self, event: str, callback: Callable):
        """Add a listener for an event. Adding the same callback twice is a no-op."""
        callbacks = self.listeners.setdefault(event, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def remove_listener(self, event: str, callback: Callable):
        """Remove a listener for an event."""
        callbacks = self.listeners.get(event)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def clear_listeners(self, event: str = None):
        """Drop all listeners, or only those of one event."""
        if event is None:
            self.listeners.clear()
        else:
            self.listeners.pop(event, None)

    def get_listener_count(self, event: str) -> int:
        """Get number of listeners for an event."""
        return len(self.listeners.get(event, []))

    async def emit(self, event: str, *args: Any) -> int:
        """Call every listener of an event in registration order.

        Coroutine results are awaited before the next listener runs. A failing
        listener is logged and does not stop the others. Returns the number of
        listeners called.
        """
        callbacks = list(self.listeners.get(event, []))
        for callback in callbacks:
            try:
                result = callback(*args)
                if asyncio.iscoroutine(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.log_error("Error in listener callback", {
                    "event": event,
                    "error": str(e),
                    "error_type": type(e).__name__
                })
        return len(callbacks)

"""
Minimal synchronous observer used by the replay session and playback clock.
"""

from collections import defaultdict
from typing import Any, Callable


SELECTION_CHANGED = "selection_changed"
WINDOW_REPLACED = "window_replaced"
WINDOW_EXTENDED = "window_extended"
ANCHOR_CHANGED = "anchor_changed"
STATE_CHANGED = "state_changed"


class EventEmitter:
    """Named events with ordered subscriber lists."""

    def __init__(self):
        self._listeners: dict[str, list[Callable[..., Any]]] = defaultdict(list)

    def subscribe(self, event: str, callback: Callable[..., Any]) -> Callable[[], None]:
        """Register callback; returns a function that unsubscribes it."""
        self._listeners[event].append(callback)

        def unsubscribe():
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        return unsubscribe

    def emit(self, event: str, *args: Any):
        for callback in list(self._listeners[event]):
            callback(*args)

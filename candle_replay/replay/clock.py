"""
Playback Clock - fast-forward over a replay session.

While running, one tick is scheduled on the event loop every `ff_speed_ms`;
each tick reveals one more bar. The clock stops itself on the last bar.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Optional

from loguru import logger

from candle_replay.config import settings
from candle_replay.replay.events import SELECTION_CHANGED, STATE_CHANGED, WINDOW_REPLACED, EventEmitter
from candle_replay.replay.preferences import PlaybackPreferences
from candle_replay.replay.session import ReplaySession


class PlaybackState(Enum):
    """Playback clock states."""
    STOPPED = "stopped"
    RUNNING = "running"


class PlaybackClock:
    """
    Fast-forward scheduler over a session's anchor index.

    At most one tick is pending at any time. Replacing the session window
    (reset, ticker or timeframe switch) stops playback.
    """

    def __init__(
        self,
        session: ReplaySession,
        ff_speed_ms: Optional[int] = None,
        preferences: Optional[PlaybackPreferences] = None,
    ):
        self.session = session
        self.preferences = preferences
        if ff_speed_ms is None:
            ff_speed_ms = preferences.ff_speed_ms if preferences else settings.ff_speed_ms
        self._ff_speed_ms = max(0, int(ff_speed_ms))

        self.state = PlaybackState.STOPPED
        self.events = EventEmitter()
        self._handle: Optional[asyncio.TimerHandle] = None

        self._unsubscribers = [
            session.subscribe(SELECTION_CHANGED, self._on_window_replaced),
            session.subscribe(WINDOW_REPLACED, self._on_window_replaced),
        ]

    def subscribe(self, event: str, callback: Callable[..., Any]) -> Callable[[], None]:
        return self.events.subscribe(event, callback)

    @property
    def is_running(self) -> bool:
        return self.state is PlaybackState.RUNNING

    @property
    def has_pending_tick(self) -> bool:
        return self._handle is not None

    @property
    def ff_speed_ms(self) -> int:
        return self._ff_speed_ms

    def change_speed(self, ff_speed_ms: int):
        """New delay applies from the next scheduled tick; persisted if preferences are set."""
        self._ff_speed_ms = max(0, int(ff_speed_ms or 0))
        if self.preferences is not None:
            self.preferences.ff_speed_ms = self._ff_speed_ms

    def _set_state(self, state: PlaybackState):
        if state is self.state:
            return
        self.state = state
        self.events.emit(STATE_CHANGED, self)

    def start(self) -> bool:
        """Start fast-forward. Returns False (and stays stopped) on the last bar."""
        if self.is_running:
            return True
        if self.session.at_end:
            logger.warning("No candles to run fast-forward on")
            self._set_state(PlaybackState.STOPPED)
            return False

        self._set_state(PlaybackState.RUNNING)
        self._schedule()
        return True

    def stop(self):
        """Stop playback and drop any pending tick."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._set_state(PlaybackState.STOPPED)

    def toggle(self) -> PlaybackState:
        if self.is_running:
            self.stop()
        else:
            self.start()
        return self.state

    def close(self):
        """Stop and detach from the session."""
        self.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()

    def _schedule(self):
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._ff_speed_ms / 1000, self._tick)

    def _tick(self):
        self._handle = None
        if not self.is_running:
            return

        self.session.advance()
        if self.session.at_end:
            self.stop()
            return
        self._schedule()

    def _on_window_replaced(self, session: ReplaySession):
        if self.is_running or self._handle is not None:
            logger.debug("Window replaced, stopping playback")
        self.stop()

"""
Replay module for the candle trainer.
Random history windows, playback and timeframe re-alignment.
"""

from candle_replay.replay.session import ReplaySession, TradeContext, skip_weekend, weekend_window
from candle_replay.replay.clock import PlaybackClock, PlaybackState
from candle_replay.replay.preferences import PlaybackPreferences

__all__ = [
    "ReplaySession",
    "TradeContext",
    "skip_weekend",
    "weekend_window",
    "PlaybackClock",
    "PlaybackState",
    "PlaybackPreferences",
]

"""
Candle Replay Trainer.
Keeps a local candle store in sync with upstream and replays random history windows.
"""

__version__ = "1.0.0"

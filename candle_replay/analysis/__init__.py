"""
Analysis package.
RSI and chart projection over replay windows.
"""

from candle_replay.analysis.indicators import calculate_rsi, rsi_display_series, RSI_DISPLAY_SENTINEL
from candle_replay.analysis.display import (
    ChartFrame,
    DisplayBar,
    OBFUSCATE_DAYS_OFFSET,
    build_synthetic_candle,
    deobfuscate_timestamp,
    obfuscate_timestamp,
    project_frame,
)

__all__ = [
    "calculate_rsi",
    "rsi_display_series",
    "RSI_DISPLAY_SENTINEL",
    "ChartFrame",
    "DisplayBar",
    "OBFUSCATE_DAYS_OFFSET",
    "build_synthetic_candle",
    "deobfuscate_timestamp",
    "obfuscate_timestamp",
    "project_frame",
]

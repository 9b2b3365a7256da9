"""
Display projection.
Turns a replay window into chart-ready frames: obfuscated times, masked
labels, RSI and volume series, and the synthetic forming bar.

Everything here is a pure function of its inputs; candles are never mutated.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Sequence

import pandas as pd

from candle_replay.analysis.indicators import rsi_display_series
from candle_replay.data.instruments import INTERVAL_DURATION
from candle_replay.data.types import Candle


YEARS_REPEAT_IN = 28
DAYS_BETWEEN_REPEAT_YEARS = 10227  # one 28-year calendar cycle

# Whole calendar cycles, so weekdays and dates line up after the shift
OBFUSCATE_DAYS_OFFSET = 77 * YEARS_REPEAT_IN * DAYS_BETWEEN_REPEAT_YEARS
MASK = "***"

UP_COLOR = "#26a69a"
DOWN_COLOR = "#ef5350"
FLAT_COLOR = "#999999"


@dataclass(frozen=True)
class DisplayBar:
    time: int  # unix seconds, possibly shifted
    open: float
    high: float
    low: float
    close: float
    synthetic: bool = False


@dataclass(frozen=True)
class LinePoint:
    time: int
    value: float


@dataclass(frozen=True)
class VolumeBar:
    time: int
    value: int
    color: str


@dataclass
class ChartFrame:
    """Everything the chart renderer needs for one redraw."""
    candles: list[DisplayBar] = field(default_factory=list)
    rsi: list[LinePoint] = field(default_factory=list)
    volume: list[VolumeBar] = field(default_factory=list)
    ticker_label: str = ""
    interval_label: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def to_timestamp(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def obfuscate_timestamp(ts: int, offset_days: int = OBFUSCATE_DAYS_OFFSET) -> int:
    """Shift unix seconds forward by a fixed number of days."""
    return ts + offset_days * 86400


def deobfuscate_timestamp(ts: int, offset_days: int = OBFUSCATE_DAYS_OFFSET) -> int:
    return ts - offset_days * 86400


def display_time(dt: datetime, obfuscate: bool, offset_days: int = OBFUSCATE_DAYS_OFFSET) -> int:
    ts = to_timestamp(dt)
    return obfuscate_timestamp(ts, offset_days) if obfuscate else ts


def mask_label(label: Optional[str], obfuscate: bool) -> str:
    if obfuscate:
        return MASK
    return label or ""


def build_synthetic_candle(real_last: Candle, current: Candle, interval: str) -> Optional[Candle]:
    """
    Bar still in formation: the real bar's open with high/low widened by and
    close taken from `current`.

    Returns None when `current` starts a whole interval (or more) after
    `real_last`, or when the interval length is unknown.
    """
    duration = INTERVAL_DURATION.get(interval)
    if duration is None or current.time - real_last.time >= duration:
        return None

    return replace(
        real_last,
        close=current.close,
        high=max(real_last.high, current.high),
        low=min(real_last.low, current.low),
    )


def volume_color(candle: Candle) -> str:
    if candle.close > candle.open:
        return UP_COLOR
    if candle.close < candle.open:
        return DOWN_COLOR
    return FLAT_COLOR


def project_frame(
    candles: Sequence[Candle],
    anchor_index: int,
    interval: str,
    ticker: Optional[str] = None,
    running: bool = False,
    obfuscate: bool = False,
    rsi_length: int = 14,
    offset_days: int = OBFUSCATE_DAYS_OFFSET,
) -> ChartFrame:
    """
    Project the revealed part of a window (up to and including anchor_index).

    When playback is paused and more than two bars are visible, the last bar is
    shown as a synthetic forming bar.
    """
    visible = list(candles[:anchor_index + 1]) if candles else []
    frame = ChartFrame(
        ticker_label=mask_label(ticker, obfuscate),
        interval_label=mask_label(interval, obfuscate),
    )
    if not visible:
        return frame

    times = [display_time(c.time, obfuscate, offset_days) for c in visible]
    bars = [
        DisplayBar(time=t, open=c.open, high=c.high, low=c.low, close=c.close)
        for t, c in zip(times, visible)
    ]

    if not running and len(visible) > 2:
        synthetic = build_synthetic_candle(visible[-1], visible[-1], interval)
        if synthetic is not None:
            bars[-1] = DisplayBar(
                time=times[-1],
                open=synthetic.open,
                high=synthetic.high,
                low=synthetic.low,
                close=synthetic.close,
                synthetic=True,
            )

    closes = pd.Series([b.close for b in bars], dtype=float)
    rsi = rsi_display_series(closes, rsi_length)

    frame.candles = bars
    frame.rsi = [LinePoint(time=t, value=float(v)) for t, v in zip(times, rsi.to_numpy())]
    frame.volume = [
        VolumeBar(time=t, value=c.volume, color=volume_color(c))
        for t, c in zip(times, visible)
    ]
    return frame

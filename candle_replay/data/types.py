"""
Plain data types passed between the store, the pipeline and the replay session.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def parse_time(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso_z(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar. `time` is the bar start as an aware UTC datetime."""
    ticker: str
    interval: str
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int = 0
    buy_volume: int = 0
    sell_volume: int = 0

    @property
    def key(self) -> tuple[str, str, datetime]:
        return (self.ticker, self.interval, self.time)

    @classmethod
    def from_upstream(cls, ticker: str, interval: str, raw: dict[str, Any]) -> "Candle":
        """Build from an upstream payload item: {time, o, h, l, c, v, vb, vs}."""
        return cls(
            ticker=ticker,
            interval=interval,
            time=parse_time(raw["time"]),
            open=float(raw["o"]),
            high=float(raw["h"]),
            low=float(raw["l"]),
            close=float(raw["c"]),
            volume=int(raw.get("v") or 0),
            buy_volume=int(raw.get("vb") or 0),
            sell_volume=int(raw.get("vs") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": iso_z(self.time),
            "o": self.open,
            "h": self.high,
            "l": self.low,
            "c": self.close,
            "v": self.volume,
            "vb": self.buy_volume,
            "vs": self.sell_volume,
        }


@dataclass
class CandleWindow:
    """Ascending candles for one (ticker, interval) plus the more-history flag."""
    candles: list[Candle] = field(default_factory=list)
    has_more_past: bool = False
    anchor_index: Optional[int] = None  # set by aligned queries

    def __len__(self) -> int:
        return len(self.candles)

    @property
    def oldest(self) -> Optional[Candle]:
        return self.candles[0] if self.candles else None

    @property
    def newest(self) -> Optional[Candle]:
        return self.candles[-1] if self.candles else None

    def index_of(self, time: datetime) -> Optional[int]:
        """Position of the candle with exactly this time, if loaded."""
        for i, candle in enumerate(self.candles):
            if candle.time == time:
                return i
        return None

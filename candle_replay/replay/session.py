"""
Replay Session - the in-memory window a user trades against.

The session picks a random historical window, keeps an anchor index marking
"now" inside it, re-aligns the window when the timeframe changes and pages in
older history when the chart scrolls left. Subscribers are notified through
named events (see replay.events).
"""

import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from candle_replay.analysis.display import ChartFrame, project_frame
from candle_replay.config import settings
from candle_replay.data.instruments import snap_time_to_interval
from candle_replay.data.store import CandleStore
from candle_replay.data.types import Candle, CandleWindow, parse_time
from candle_replay.errors import SessionLoadError
from candle_replay.replay.events import (
    ANCHOR_CHANGED,
    SELECTION_CHANGED,
    WINDOW_EXTENDED,
    WINDOW_REPLACED,
    EventEmitter,
)


# Load older history once the visible range starts this close to the oldest bar
PAGINATION_TRIGGER = timedelta(seconds=60)


@dataclass(frozen=True)
class TradeContext:
    """What the trading sidebar needs to place or close an order."""
    ticker: str
    interval: str
    time: datetime
    price: float


def weekend_window(dt: datetime) -> tuple[datetime, datetime]:
    """
    Market-closed window of dt's calendar week (Monday based):
    Friday 17:00 UTC to Sunday 14:00 UTC.

    The week starts on Monday, so a Sunday maps back to the Friday before it.
    The old web client counted weeks from Sunday and never skipped Sunday
    mornings; this one does.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    friday = (dt + timedelta(days=4 - dt.weekday())).replace(hour=17, minute=0, second=0, microsecond=0)
    sunday = (friday + timedelta(days=2)).replace(hour=14)
    return friday, sunday


def skip_weekend(candles: list[Candle], index: int) -> int:
    """
    Move an anchor candidate out of the weekend gap.

    If candles[index] falls inside its week's window, return the first later
    index whose time is strictly after that Sunday 14:00; when there is none,
    keep the candidate.
    """
    friday, sunday = weekend_window(candles[index].time)
    if not friday <= candles[index].time <= sunday:
        return index

    for i in range(index + 1, len(candles)):
        if candles[i].time > sunday:
            return i
    return index


class ReplaySession:
    """
    Ticker/interval selection plus the in-memory window and its anchor.

    Events:
        selection_changed(session): ticker/interval chosen, old window discarded
        window_replaced(session): reset, ticker or timeframe switch
        window_extended(session, added): older candles were prepended
        anchor_changed(session): anchor moved (not emitted on timeframe switch)
    """

    def __init__(
        self,
        store: CandleStore,
        initial_lookback: Optional[int] = None,
        min_future: Optional[int] = None,
        past_page_size: Optional[int] = None,
        reset_interval: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.initial_lookback = initial_lookback or settings.initial_lookback
        self.min_future = settings.min_future_candles if min_future is None else min_future
        self.past_page_size = past_page_size or settings.past_page_size
        self.reset_interval = reset_interval or settings.reset_interval
        self.rng = rng or random.Random()

        self.events = EventEmitter()
        self.ticker: Optional[str] = None
        self.interval: Optional[str] = None
        self.window = CandleWindow()
        self.anchor_index = 0

        # Bumped on every ticker/interval selection; results from older loads are dropped
        self._generation = 0
        self._loading_past = False

    def subscribe(self, event: str, callback: Callable[..., Any]) -> Callable[[], None]:
        return self.events.subscribe(event, callback)

    # ---- state ----

    @property
    def candles(self) -> list[Candle]:
        return self.window.candles

    @property
    def has_more_past(self) -> bool:
        return self.window.has_more_past

    @property
    def anchor_candle(self) -> Optional[Candle]:
        if not self.window.candles:
            return None
        return self.window.candles[self.anchor_index]

    @property
    def anchor_time(self) -> Optional[datetime]:
        candle = self.anchor_candle
        return candle.time if candle else None

    @property
    def at_end(self) -> bool:
        """True when no future bar is left to reveal."""
        return self.anchor_index >= len(self.window.candles) - 1

    @property
    def visible_candles(self) -> list[Candle]:
        return self.window.candles[:self.anchor_index + 1]

    def trade_context(self) -> Optional[TradeContext]:
        candle = self.anchor_candle
        if candle is None or self.ticker is None or self.interval is None:
            return None
        return TradeContext(ticker=self.ticker, interval=self.interval, time=candle.time, price=candle.close)

    def project(self, running: bool = False, obfuscate: bool = False) -> ChartFrame:
        """Chart frame for the revealed part of the window."""
        return project_frame(
            self.window.candles,
            self.anchor_index,
            interval=self.interval or "",
            ticker=self.ticker,
            running=running,
            obfuscate=obfuscate,
            rsi_length=settings.rsi_length,
        )

    # ---- anchor ----

    def _clamp(self, index: int) -> int:
        return max(0, min(index, len(self.window.candles) - 1))

    def set_anchor_index(self, index: int) -> bool:
        """Move the anchor (clamped). Returns True if it moved."""
        new_index = self._clamp(index)
        if new_index == self.anchor_index:
            return False
        self.anchor_index = new_index
        self.events.emit(ANCHOR_CHANGED, self)
        return True

    def advance(self, steps: int = 1) -> bool:
        """Reveal the next bar(s); used by the playback clock."""
        return self.set_anchor_index(self.anchor_index + steps)

    def jump_to_time(self, time: Union[datetime, str]) -> bool:
        """Anchor on the candle with exactly this time, if it is loaded."""
        if isinstance(time, str):
            time = parse_time(time)
        elif time.tzinfo is None:
            time = time.replace(tzinfo=timezone.utc)

        index = self.window.index_of(time)
        if index is None:
            return False
        self.set_anchor_index(index)
        return True

    # ---- loading ----

    def _begin_selection(self, ticker: Optional[str], interval: Optional[str]) -> int:
        self._generation += 1
        self.ticker = ticker
        self.interval = interval
        self.window = CandleWindow()
        self.anchor_index = 0
        self._loading_past = False
        self.events.emit(SELECTION_CHANGED, self)
        return self._generation

    async def _query(self, request: Awaitable):
        try:
            return await request
        except SQLAlchemyError as e:
            logger.error(f"Candle store query failed: {e}")
            raise SessionLoadError(f"Failed to load candles: {e}") from e

    def _replace_window(self, window: CandleWindow, anchor_index: int, notify_anchor: bool):
        self.window = window
        self.anchor_index = self._clamp(anchor_index)
        self.events.emit(WINDOW_REPLACED, self)
        if notify_anchor:
            self.events.emit(ANCHOR_CHANGED, self)

    async def _load_random(self, ticker: str, interval: str) -> bool:
        generation = self._begin_selection(ticker, interval)
        window = await self._query(
            self.store.random_window(ticker, interval, self.initial_lookback, self.min_future)
        )
        if generation != self._generation:
            logger.debug(f"Dropping stale random window for {ticker} {interval}")
            return False

        anchor = 0
        if window.candles:
            anchor = skip_weekend(window.candles, min(len(window) - 1, self.initial_lookback - 1))

        self._replace_window(window, anchor, notify_anchor=True)
        logger.info(f"Loaded {len(window)} candles for {ticker} {interval}, anchor at {anchor}")
        return True

    async def _load_aligned(self, ticker: str, interval: str, anchor_time: datetime, notify_anchor: bool) -> bool:
        generation = self._begin_selection(ticker, interval)
        target = snap_time_to_interval(anchor_time, interval)
        window = await self._query(
            self.store.aligned_window(ticker, interval, target, self.initial_lookback, self.min_future)
        )
        if generation != self._generation:
            logger.debug(f"Dropping stale aligned window for {ticker} {interval}")
            return False

        anchor = window.anchor_index if window.anchor_index is not None else 0
        self._replace_window(window, anchor, notify_anchor=notify_anchor)
        logger.info(f"Aligned {ticker} {interval} at {target.isoformat()}: {len(window)} candles")
        return True

    async def reset(self, ticker: Optional[str] = None) -> bool:
        """
        Start a new random session on the reset interval.

        The ticker is picked uniformly among stored tickers unless given.
        Returns False when nothing could be loaded or the load went stale.
        """
        if ticker is None:
            tickers = await self._query(self.store.list_tickers())
            if not tickers:
                logger.warning("No tickers in candle store")
                return False
            ticker = self.rng.choice(tickers)

        return await self._load_random(ticker, self.reset_interval)

    async def select_ticker(self, ticker: str) -> bool:
        """Switch ticker, keeping the current anchor time when there is one."""
        interval = self.interval or self.reset_interval
        anchor_time = self.anchor_time
        if anchor_time is None:
            return await self._load_random(ticker, interval)
        return await self._load_aligned(ticker, interval, anchor_time, notify_anchor=True)

    async def switch_interval(self, interval: str) -> bool:
        """
        Switch timeframe around the current anchor time.

        The anchor time is snapped down to the new interval's boundary and the
        window reloaded around it. The anchor moves to the matching bar without
        an anchor_changed event.
        """
        if interval == self.interval:
            return False
        if self.ticker is None:
            self.interval = interval
            return False

        anchor_time = self.anchor_time
        if anchor_time is None:
            return await self._load_random(self.ticker, interval)
        return await self._load_aligned(self.ticker, interval, anchor_time, notify_anchor=False)

    # ---- pagination ----

    def should_load_more_past(self, visible_from: datetime) -> bool:
        """True when the visible range starts within 60s of the oldest loaded bar."""
        oldest = self.window.oldest
        if oldest is None:
            return False
        if visible_from.tzinfo is None:
            visible_from = visible_from.replace(tzinfo=timezone.utc)
        return visible_from <= oldest.time + PAGINATION_TRIGGER

    async def load_more_past(self) -> int:
        """
        Prepend up to past_page_size older candles.

        The anchor index shifts by the number added so the anchored bar stays
        put. Returns the number of candles added.
        """
        oldest = self.window.oldest
        if oldest is None or self.ticker is None or self.interval is None:
            return 0

        generation = self._generation
        self._loading_past = True
        try:
            more = await self._query(
                self.store.before(self.ticker, self.interval, oldest.time, self.past_page_size)
            )
        finally:
            if generation == self._generation:
                self._loading_past = False

        if generation != self._generation or self.window.oldest is not oldest:
            logger.debug("Dropping stale pagination result")
            return 0

        if not more.candles:
            self.window.has_more_past = False
            return 0

        added = len(more.candles)
        self.window.candles = more.candles + self.window.candles
        self.window.has_more_past = more.has_more_past
        self.anchor_index += added
        self.events.emit(WINDOW_EXTENDED, self, added)
        logger.debug(f"Prepended {added} candles for {self.ticker} {self.interval}")
        return added

    async def maybe_load_more_past(self, visible_from: datetime) -> int:
        """Scroll hook: paginate when near the left edge and more history exists."""
        if self._loading_past or not self.window.has_more_past:
            return 0
        if not self.should_load_more_past(visible_from):
            return 0
        return await self.load_more_past()

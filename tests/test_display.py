"""
Tests for chart projection: obfuscation, masking and the synthetic bar.
"""

from dataclasses import replace
from datetime import timedelta

from candle_replay.analysis.display import (
    DOWN_COLOR,
    FLAT_COLOR,
    MASK,
    OBFUSCATE_DAYS_OFFSET,
    UP_COLOR,
    build_synthetic_candle,
    deobfuscate_timestamp,
    display_time,
    obfuscate_timestamp,
    project_frame,
    to_timestamp,
    volume_color,
)
from tests.conftest import T0, make_candles


class TestObfuscation:

    def test_shift_is_reversible(self):
        ts = to_timestamp(T0)

        shifted = obfuscate_timestamp(ts)

        assert shifted != ts
        assert deobfuscate_timestamp(shifted) == ts

    def test_offset_keeps_weekday(self):
        assert OBFUSCATE_DAYS_OFFSET % 7 == 0

    def test_display_time_plain(self):
        assert display_time(T0, obfuscate=False) == to_timestamp(T0)
        assert display_time(T0, obfuscate=True, offset_days=1) == to_timestamp(T0) + 86400

    def test_frame_masks_labels_and_shifts_times(self):
        candles = make_candles(5)

        frame = project_frame(candles, 4, "5min", ticker="SBER", obfuscate=True)

        assert frame.ticker_label == MASK
        assert frame.interval_label == MASK
        assert frame.candles[0].time == obfuscate_timestamp(to_timestamp(candles[0].time))
        assert candles[0].time == T0

    def test_frame_plain_labels(self):
        frame = project_frame(make_candles(3), 2, "5min", ticker="SBER")

        assert frame.ticker_label == "SBER"
        assert frame.interval_label == "5min"


class TestSyntheticCandle:

    def test_merges_current_into_real_bar(self):
        real = make_candles(1, interval="hour", closes=[100.0])[0]
        current = make_candles(1, start=T0 + timedelta(minutes=35), closes=[110.0])[0]

        synthetic = build_synthetic_candle(real, current, "hour")

        assert synthetic.time == real.time
        assert synthetic.open == real.open
        assert synthetic.close == 110.0
        assert synthetic.high == 111.0
        assert synthetic.low == 99.0

    def test_next_interval_returns_none(self):
        real = make_candles(1, interval="hour")[0]
        current = make_candles(1, start=T0 + timedelta(hours=1))[0]

        assert build_synthetic_candle(real, current, "hour") is None

    def test_unknown_interval_returns_none(self):
        real, current = make_candles(2)

        assert build_synthetic_candle(real, current, "week") is None


class TestProjectFrame:

    def test_only_revealed_bars(self):
        frame = project_frame(make_candles(10), 3, "5min", running=True)

        assert len(frame.candles) == 4
        assert len(frame.rsi) == 4
        assert len(frame.volume) == 4

    def test_paused_marks_last_bar_synthetic(self):
        frame = project_frame(make_candles(10), 3, "5min", running=False)

        assert frame.candles[-1].synthetic is True
        assert not any(bar.synthetic for bar in frame.candles[:-1])

    def test_running_has_no_synthetic_bar(self):
        frame = project_frame(make_candles(10), 3, "5min", running=True)

        assert not any(bar.synthetic for bar in frame.candles)

    def test_two_bars_have_no_synthetic_bar(self):
        frame = project_frame(make_candles(10), 1, "5min", running=False)

        assert not any(bar.synthetic for bar in frame.candles)

    def test_empty_window(self):
        frame = project_frame([], 0, "5min")

        assert frame.candles == []
        assert frame.to_dict()["rsi"] == []

    def test_volume_colors(self):
        up, down, flat = make_candles(3)
        down = replace(down, open=down.close + 1)
        flat = replace(flat, open=flat.close)

        assert volume_color(up) == UP_COLOR
        assert volume_color(down) == DOWN_COLOR
        assert volume_color(flat) == FLAT_COLOR

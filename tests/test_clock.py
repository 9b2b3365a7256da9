"""
Tests for fast-forward playback and persisted preferences.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from candle_replay.data.store import CandleStore
from candle_replay.replay.clock import PlaybackClock, PlaybackState
from candle_replay.replay.events import STATE_CHANGED
from candle_replay.replay.preferences import PlaybackPreferences
from tests.conftest import make_candles, make_session


async def wait_until_stopped(clock: PlaybackClock, timeout: float = 2.0):
    async def _poll():
        while clock.is_running:
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def preferences(tmp_path):
    return PlaybackPreferences(str(tmp_path / "prefs.json"))


class TestPlaybackClock:

    @pytest.mark.asyncio
    async def test_start_at_end_stays_stopped(self, store):
        await store.upsert_many(make_candles(100))
        session = make_session(store)
        await session.reset("SBER")
        session.set_anchor_index(len(session.candles) - 1)
        clock = PlaybackClock(session, ff_speed_ms=1)

        assert clock.start() is False
        assert clock.state is PlaybackState.STOPPED
        assert clock.has_pending_tick is False

    @pytest.mark.asyncio
    async def test_runs_to_last_bar_and_stops(self, store):
        await store.upsert_many(make_candles(100))
        session = make_session(store)
        await session.reset("SBER")
        session.set_anchor_index(len(session.candles) - 4)
        clock = PlaybackClock(session, ff_speed_ms=1)
        states = []
        clock.subscribe(STATE_CHANGED, lambda c: states.append(c.state))

        assert clock.start() is True
        await wait_until_stopped(clock)

        assert session.at_end
        assert clock.has_pending_tick is False
        assert states == [PlaybackState.RUNNING, PlaybackState.STOPPED]

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_tick(self, store):
        await store.upsert_many(make_candles(100))
        session = make_session(store)
        await session.reset("SBER")
        anchor = session.anchor_index
        clock = PlaybackClock(session, ff_speed_ms=20)

        clock.start()
        assert clock.has_pending_tick is True
        clock.stop()
        await asyncio.sleep(0.05)

        assert clock.has_pending_tick is False
        assert session.anchor_index == anchor

    @pytest.mark.asyncio
    async def test_speed_change_applies_from_next_tick(self, store):
        await store.upsert_many(make_candles(100))
        session = make_session(store)
        await session.reset("SBER")
        start = session.anchor_index
        clock = PlaybackClock(session, ff_speed_ms=50)

        clock.start()
        clock.change_speed(1000)
        await asyncio.sleep(0.12)

        assert session.anchor_index == start + 1
        assert clock.is_running
        assert clock.has_pending_tick
        clock.stop()

    @pytest.mark.asyncio
    async def test_toggle(self, store):
        await store.upsert_many(make_candles(100))
        session = make_session(store)
        await session.reset("SBER")
        clock = PlaybackClock(session, ff_speed_ms=1000)

        assert clock.toggle() is PlaybackState.RUNNING
        assert clock.toggle() is PlaybackState.STOPPED
        assert clock.has_pending_tick is False

    @pytest.mark.asyncio
    async def test_window_replacement_stops_playback(self, store):
        await store.upsert_many(make_candles(100))
        session = make_session(store)
        await session.reset("SBER")
        clock = PlaybackClock(session, ff_speed_ms=1000)
        clock.start()

        await session.reset("SBER")

        assert clock.is_running is False
        assert clock.has_pending_tick is False

    @pytest.mark.asyncio
    async def test_close_detaches(self, store):
        await store.upsert_many(make_candles(100))
        session = make_session(store)
        await session.reset("SBER")
        clock = PlaybackClock(session, ff_speed_ms=1000)
        clock.close()
        clock.start()

        await session.reset("SBER")

        assert clock.is_running is True
        clock.stop()


class TestPreferences:

    def test_speed_is_persisted(self, preferences):
        session = make_session(MagicMock(spec=CandleStore))
        clock = PlaybackClock(session, preferences=preferences)

        clock.change_speed(50)

        assert clock.ff_speed_ms == 50
        assert PlaybackPreferences(str(preferences.path)).ff_speed_ms == 50

    def test_speed_read_from_preferences(self, preferences):
        preferences.ff_speed_ms = 120

        clock = PlaybackClock(make_session(MagicMock(spec=CandleStore)), preferences=preferences)

        assert clock.ff_speed_ms == 120

    def test_obfuscate_defaults_on(self, preferences):
        assert preferences.obfuscate is True

        preferences.obfuscate = False

        assert PlaybackPreferences(str(preferences.path)).obfuscate is False

    def test_unreadable_file_uses_defaults(self, tmp_path):
        path = tmp_path / "prefs.json"
        path.write_text("{not json")

        prefs = PlaybackPreferences(str(path))

        assert prefs.obfuscate is True
        assert prefs.ff_speed_ms > 0

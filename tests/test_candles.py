"""Tests for OHLC candle aggregation."""

from __future__ import annotations

import pytest

from perpdex_indexer.database.models import OHLC, Candle
from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.engine.candles import bucket_start, share_adjusted_price, upsert_candle
from perpdex_indexer.utils.config import D1, H1, M5, M15
from perpdex_indexer.utils.fixed_point import Q96
from tests.factories import MARKET

# 2024-01-01T00:00:00Z
MIDNIGHT_MS = 1_704_067_200_000
# 2024-01-01T00:07:30Z
T_0730_MS = MIDNIGHT_MS + 450_000


def test_bucket_start_floors_per_resolution() -> None:
    """Test bucket starts for a timestamp inside the second 5-minute window."""
    assert bucket_start(T_0730_MS, M5) == 1_704_067_500
    assert bucket_start(T_0730_MS, M15) == 1_704_067_200
    assert bucket_start(T_0730_MS, H1) == 1_704_067_200
    assert bucket_start(T_0730_MS, D1) == 1_704_067_200


def test_share_adjusted_price() -> None:
    """Test candle price divides share price by the growth factor."""
    assert share_adjusted_price(2 * Q96, Q96) == 2 * Q96
    assert share_adjusted_price(Q96, 2 * Q96) == Q96 // 2


def test_share_adjusted_price_zero_factor_raises() -> None:
    """Test that a zero growth factor is an arithmetic error."""
    with pytest.raises(ZeroDivisionError):
        share_adjusted_price(Q96, 0)


def test_first_update_opens_all_resolutions(store: EntityStore) -> None:
    """Test a new bucket starts with open=high=low=close=price."""
    rows = upsert_candle(store, MARKET, T_0730_MS, 100, 5, 500, 7)

    assert [row.resolution for row in rows] == [M5, M15, H1, D1]
    assert store.count(OHLC) == 4
    for row in rows:
        assert (row.open, row.high, row.low, row.close) == (100, 100, 100, 100)
        assert row.base_amount == 5
        assert row.quote_amount == 500
        assert row.block_number == 7
        assert row.timestamp == T_0730_MS

    head = store.get(Candle, f"{MARKET}-{M5}")
    assert head is not None
    assert head.time_format == M5
    assert head.timestamp == T_0730_MS


def test_updates_adjust_high_low_close_and_volume(store: EntityStore) -> None:
    """Test that later prices move the bounds but never the open."""
    upsert_candle(store, MARKET, T_0730_MS, 100, 1, 10, 1)
    upsert_candle(store, MARKET, T_0730_MS + 1_000, 120, 2, 20, 2)
    upsert_candle(store, MARKET, T_0730_MS + 2_000, 90, 3, 30, 3)

    ohlc = store.get(OHLC, f"{MARKET}-{M5}-1704067500")
    assert ohlc is not None
    assert ohlc.open == 100
    assert ohlc.high == 120
    assert ohlc.low == 90
    assert ohlc.close == 90
    assert ohlc.base_amount == 6
    assert ohlc.quote_amount == 60
    assert ohlc.low <= min(ohlc.open, ohlc.close) <= max(ohlc.open, ohlc.close) <= ohlc.high


def test_price_below_open_updates_low_without_new_high(store: EntityStore) -> None:
    """Test that the low moves even when the price is not a new high."""
    upsert_candle(store, MARKET, T_0730_MS, 100, 0, 0, 1)
    upsert_candle(store, MARKET, T_0730_MS + 1_000, 80, 0, 0, 2)

    ohlc = store.get(OHLC, f"{MARKET}-{M5}-1704067500")
    assert ohlc is not None
    assert (ohlc.high, ohlc.low) == (100, 80)


def test_next_window_opens_new_short_bucket_only(store: EntityStore) -> None:
    """Test that crossing a 5m boundary leaves the 15m bucket shared."""
    upsert_candle(store, MARKET, T_0730_MS, 100, 0, 0, 1)
    upsert_candle(store, MARKET, T_0730_MS + 300_000, 110, 0, 0, 2)

    assert len(store.find(OHLC, market=MARKET, resolution=M5)) == 2
    fifteen = store.find(OHLC, market=MARKET, resolution=M15)
    assert len(fifteen) == 1
    assert (fifteen[0].open, fifteen[0].close, fifteen[0].high) == (100, 110, 110)

    newest = store.get(OHLC, f"{MARKET}-{M5}-1704067800")
    assert newest is not None
    assert newest.open == 110

"""Tests for position, liquidity and daily PnL ledgers."""

from __future__ import annotations

from perpdex_indexer.database.models import DaySummary, LiquidityHistory, PositionHistory
from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.engine.history import add_day_summary_pnl, append_liquidity_history, append_position_history
from perpdex_indexer.utils.config import DAY_MS
from perpdex_indexer.utils.fixed_point import Q96
from tests.factories import MARKET, TRADER


def test_position_history_accumulates_within_timestamp(store: EntityStore) -> None:
    """Test that fills at one timestamp merge into one row."""
    append_position_history(store, TRADER, MARKET, 1_000, 10, -2_000, 0, 3, Q96, 1)
    history = append_position_history(store, TRADER, MARKET, 1_000, 10, -2_200, 5, 4, Q96, 1)

    assert store.count(PositionHistory) == 1
    assert history.id == f"{TRADER}-{MARKET}-1000"
    assert history.base == 20
    assert history.quote == -4_200
    assert history.realized_pnl == 5
    assert history.protocol_fee == 7
    assert history.base_balance == 20
    assert history.entry_price == -210


def test_position_history_new_row_per_timestamp(store: EntityStore) -> None:
    """Test that a later timestamp starts a new ledger row."""
    append_position_history(store, TRADER, MARKET, 1_000, 10, -2_000, 0, 0, Q96, 1)
    append_position_history(store, TRADER, MARKET, 2_000, -10, 2_100, 100, 0, Q96, 2)

    rows = store.find(PositionHistory, trader=TRADER, market=MARKET)
    assert [row.time for row in rows] == [1_000, 2_000]
    assert rows[1].realized_pnl == 100


def test_position_history_uses_growth_factor(store: EntityStore) -> None:
    """Test that base balance is re-derived from the share delta."""
    history = append_position_history(store, TRADER, MARKET, 1_000, 100, -1_000, 0, 0, Q96 // 2, 1)

    assert history.base == 100
    assert history.base_balance == 50


def test_position_history_flat_row_has_zero_entry_price(store: EntityStore) -> None:
    """Test that offsetting fills leave a zero entry price instead of failing."""
    append_position_history(store, TRADER, MARKET, 1_000, 10, -2_000, 0, 0, Q96, 1)
    history = append_position_history(store, TRADER, MARKET, 1_000, -10, 2_000, 0, 0, Q96, 1)

    assert history.base_balance == 0
    assert history.entry_price == 0


def test_liquidity_history_accumulates_signed_deltas(store: EntityStore) -> None:
    """Test that removals are recorded as negative amounts."""
    append_liquidity_history(store, TRADER, MARKET, 1_000, 100, 200, 50, 1)
    history = append_liquidity_history(store, TRADER, MARKET, 1_000, -40, -80, -20, 1)

    assert store.count(LiquidityHistory) == 1
    assert (history.base, history.quote, history.liquidity) == (60, 120, 30)


def test_day_summary_same_day_accumulates(store: EntityStore) -> None:
    """Test two events 10ms apart share one daily row."""
    start = 19_723 * DAY_MS
    add_day_summary_pnl(store, TRADER, start + 1_000, 100, 1, DAY_MS)
    summary = add_day_summary_pnl(store, TRADER, start + 1_010, -30, 2, DAY_MS)

    assert store.count(DaySummary) == 1
    assert summary.realized_pnl == 70
    assert summary.time == start


def test_day_summary_next_day_new_bucket(store: EntityStore) -> None:
    """Test an event one day and one millisecond later opens a new row."""
    start = 19_723 * DAY_MS
    add_day_summary_pnl(store, TRADER, start, 100, 1, DAY_MS)
    later = add_day_summary_pnl(store, TRADER, start + 86_400_001, 7, 2, DAY_MS)

    assert store.count(DaySummary) == 2
    assert later.day_id == 19_724
    assert later.realized_pnl == 7

"""Append-and-merge ledgers: position fills, liquidity changes, daily PnL."""

from __future__ import annotations

from beartype import beartype

from perpdex_indexer.database.models import DaySummary, LiquidityHistory, PositionHistory
from perpdex_indexer.database.repository import (
    get_or_create_day_summary,
    get_or_create_liquidity_history,
    get_or_create_position_history,
)
from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.utils.fixed_point import entry_price, share_to_balance


@beartype
def append_position_history(
    store: EntityStore,
    trader_addr: str,
    market_addr: str,
    timestamp: int,
    base: int,
    quote: int,
    realized_pnl: int,
    protocol_fee: int,
    base_balance_per_share_x96: int,
    block_number: int,
) -> PositionHistory:
    """
    Merge a taker fill into the ledger row for ``(trader, market, timestamp)``.

    Amounts accumulate, so several fills in one block land in one row. The
    row's base balance and fill price are then re-derived from the accumulated
    share delta at the market's current growth factor.
    """
    history = get_or_create_position_history(store, trader_addr, market_addr, timestamp)
    history.base += base
    history.quote += quote
    history.realized_pnl += realized_pnl
    history.protocol_fee += protocol_fee
    history.base_balance = share_to_balance(history.base, base_balance_per_share_x96)
    history.entry_price = entry_price(history.quote, history.base_balance) if history.base_balance else 0
    history.block_number = block_number
    history.timestamp = timestamp
    store.save(history)
    return history


@beartype
def append_liquidity_history(
    store: EntityStore,
    trader_addr: str,
    market_addr: str,
    timestamp: int,
    base: int,
    quote: int,
    liquidity: int,
    block_number: int,
) -> LiquidityHistory:
    """Merge a liquidity change (negative for removals) into its ledger row."""
    history = get_or_create_liquidity_history(store, trader_addr, market_addr, timestamp)
    history.base += base
    history.quote += quote
    history.liquidity += liquidity
    history.block_number = block_number
    history.timestamp = timestamp
    store.save(history)
    return history


@beartype
def add_day_summary_pnl(
    store: EntityStore,
    trader_addr: str,
    timestamp: int,
    realized_pnl: int,
    block_number: int,
    day_ms: int,
) -> DaySummary:
    """Add realized PnL to the trader's summary for the day containing *timestamp*."""
    summary = get_or_create_day_summary(store, trader_addr, timestamp, day_ms)
    summary.realized_pnl += realized_pnl
    summary.block_number = block_number
    summary.timestamp = timestamp
    store.save(summary)
    return summary

"""Tests for the entity store and get-or-create factories."""

from __future__ import annotations

import pytest

from perpdex_indexer.database.models import EventLog, Market, OpenOrder, Protocol, Trader, TraderTakerInfo
from perpdex_indexer.database.repository import (
    add_trader_market,
    get_or_create_day_summary,
    get_or_create_market,
    get_or_create_open_order,
    get_or_create_protocol,
    get_or_create_trader,
    get_or_create_trader_taker_info,
)
from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.utils.config import DAY_MS, EngineConfig
from perpdex_indexer.utils.fixed_point import Q96
from tests.factories import MARKET, TRADER


def test_get_missing_returns_none(store: EntityStore) -> None:
    """Test that an unknown id is absent rather than defaulted."""
    assert store.get(Trader, TRADER) is None


def test_save_and_get_preserves_big_ints_lists_and_bools(store: EntityStore) -> None:
    """Test that values wider than 64 bits survive a save."""
    trader = Trader(id=TRADER, collateral_balance=-(2**200), markets=[MARKET])
    store.save(trader)
    market = Market(id=MARKET, base_balance_per_share_x96=Q96 * Q96, is_allowed=True)
    store.save(market)

    assert store.get(Trader, TRADER) == trader
    loaded = store.get(Market, MARKET)
    assert loaded is not None
    assert loaded.base_balance_per_share_x96 == Q96 * Q96
    assert loaded.is_allowed is True


def test_get_or_create_trader_defaults_and_persists(store: EntityStore) -> None:
    """Test that a new trader starts at zero and is written immediately."""
    trader = get_or_create_trader(store, TRADER)

    assert trader.collateral_balance == 0
    assert trader.markets == []
    assert store.count(Trader) == 1


def test_get_or_create_returns_existing_row_unmodified(store: EntityStore) -> None:
    """Test that an existing row is returned as stored."""
    trader = get_or_create_trader(store, TRADER)
    trader.collateral_balance = 42
    store.save(trader)

    again = get_or_create_trader(store, TRADER)

    assert again.collateral_balance == 42
    assert store.count(Trader) == 1


def test_get_or_create_protocol_uses_config_metadata(store: EntityStore) -> None:
    """Test that the protocol singleton carries network metadata."""
    config = EngineConfig(network="testnet", chain_id=1337, contract_version="v2")
    protocol = get_or_create_protocol(store, config)

    assert protocol.id == config.protocol_id
    assert protocol.network == "testnet"
    assert protocol.chain_id == 1337
    assert protocol.contract_version == "v2"
    assert protocol.protocol_fee == 0
    assert store.count(Protocol) == 1


def test_get_or_create_open_order_is_not_persisted(store: EntityStore) -> None:
    """Test that an open order only exists once saved by a liquidity event."""
    open_order = get_or_create_open_order(store, TRADER, MARKET)

    assert open_order.id == f"{TRADER}-{MARKET}"
    assert open_order.maker == TRADER
    assert store.count(OpenOrder) == 0


def test_transaction_rolls_back_on_error(store: EntityStore) -> None:
    """Test that nothing written inside a failed transaction survives."""
    with pytest.raises(RuntimeError, match="boom"):
        with store.transaction():
            get_or_create_trader(store, TRADER)
            get_or_create_market(store, MARKET)
            raise RuntimeError("boom")

    assert store.get(Trader, TRADER) is None
    assert store.get(Market, MARKET) is None


def test_transaction_commits_on_success(store: EntityStore) -> None:
    """Test that a clean transaction commits its writes."""
    assert not store.in_transaction
    with store.transaction():
        assert store.in_transaction
        trader = get_or_create_trader(store, TRADER)
        trader.collateral_balance = 10
        store.save(trader)
    assert not store.in_transaction

    loaded = store.get(Trader, TRADER)
    assert loaded is not None
    assert loaded.collateral_balance == 10


def test_transactions_cannot_nest(store: EntityStore) -> None:
    """Test that nesting is rejected."""
    with pytest.raises(RuntimeError, match="nested"):
        with store.transaction():
            with store.transaction():
                pass


def test_identity_map_inside_transaction(store: EntityStore) -> None:
    """Test that two lookups of one key share an object within a transaction."""
    with store.transaction():
        first = get_or_create_trader(store, TRADER)
        second = get_or_create_trader(store, TRADER)
        assert first is second


def test_find_filters_by_column(store: EntityStore) -> None:
    """Test column equality lookups."""
    other_market = "0x5555555555555555555555555555555555555555"
    get_or_create_trader_taker_info(store, TRADER, MARKET)
    get_or_create_trader_taker_info(store, TRADER, other_market)

    found = store.find(TraderTakerInfo, market=MARKET)

    assert [info.id for info in found] == [f"{TRADER}-{MARKET}"]
    assert len(store.find(TraderTakerInfo, trader=TRADER)) == 2


def test_find_rejects_unknown_column(store: EntityStore) -> None:
    """Test that filtering on a missing column is an error."""
    with pytest.raises(ValueError, match="no column"):
        store.find(TraderTakerInfo, nonexistent="x")


def test_day_summary_keyed_by_day_index(store: EntityStore) -> None:
    """Test day bucket id and start time."""
    summary = get_or_create_day_summary(store, TRADER, 3 * DAY_MS + 5, DAY_MS)

    assert summary.id == f"{TRADER}-3"
    assert summary.day_id == 3
    assert summary.time == 3 * DAY_MS


def test_add_trader_market_deduplicates() -> None:
    """Test that a market is recorded once per trader."""
    trader = Trader(id=TRADER)
    add_trader_market(trader, MARKET)
    add_trader_market(trader, MARKET)

    assert trader.markets == [MARKET]


def test_event_log_roundtrip_and_order_key(store: EntityStore) -> None:
    """Test event log existence checks and last order key."""
    assert store.last_order_key() is None
    assert not store.event_exists("0xabc-1")

    log = EventLog(
        id="0xabc-1",
        kind="Deposited",
        order_key=100 * 10_000 + 1,
        tx_hash="0xabc",
        block_number=100,
        log_index=1,
        contract_address=MARKET,
        timestamp=1_000,
        payload='{"amount": 5}',
    )
    store.save_event_log(log)

    assert store.event_exists("0xabc-1")
    assert store.get_event_log("0xabc-1") == log
    assert store.last_order_key() == 1_000_001
    assert store.event_log_count() == 1
    assert store.event_log_count("Withdrawn") == 0

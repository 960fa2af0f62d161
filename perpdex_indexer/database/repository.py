"""Data access layer: get-or-create factories for every entity kind.

Each factory returns the existing row unmodified, or builds one with zero and
empty defaults, persists it, and returns it. Event deltas are always applied by
the caller, followed by an explicit ``store.save``.
"""

from __future__ import annotations

from beartype import beartype

from perpdex_indexer.database.models import (
    OHLC,
    Candle,
    DaySummary,
    LiquidityHistory,
    Market,
    OpenOrder,
    Position,
    PositionHistory,
    Protocol,
    Trader,
    TraderMakerInfo,
    TraderTakerInfo,
)
from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.utils.config import EngineConfig


def trader_market_id(trader: str, market: str) -> str:
    """Composite key shared by all per-trader-per-market entities."""
    return f"{trader}-{market}"


@beartype
def get_or_create_trader(store: EntityStore, trader_addr: str) -> Trader:
    """
    Load a trader, creating an empty one on first sight.

    Args:
        store: Entity store
        trader_addr: Checksummed trader address, used as the id

    Returns:
        Trader with zero collateral and no markets when new
    """
    trader = store.get(Trader, trader_addr)
    if trader is None:
        trader = Trader(id=trader_addr)
        store.save(trader)
    return trader


@beartype
def get_or_create_protocol(store: EntityStore, config: EngineConfig) -> Protocol:
    """Load the protocol singleton, creating it with network metadata from *config*."""
    protocol = store.get(Protocol, config.protocol_id)
    if protocol is None:
        protocol = Protocol(
            id=config.protocol_id,
            network=config.network,
            chain_id=config.chain_id,
            contract_version=config.contract_version,
        )
        store.save(protocol)
    return protocol


@beartype
def get_or_create_market(store: EntityStore, market_addr: str) -> Market:
    """
    Load a market, creating an empty pool on first sight.

    Args:
        store: Entity store
        market_addr: Checksummed market contract address, used as the id

    Returns:
        Market with zero reserves when new
    """
    market = store.get(Market, market_addr)
    if market is None:
        market = Market(id=market_addr)
        store.save(market)
    return market


@beartype
def get_or_create_trader_taker_info(store: EntityStore, trader_addr: str, market_addr: str) -> TraderTakerInfo:
    """
    Load the taker state of a trader in a market.

    Args:
        store: Entity store
        trader_addr: Trader address
        market_addr: Market address

    Returns:
        TraderTakerInfo keyed by ``trader-market``
    """
    entity_id = trader_market_id(trader_addr, market_addr)
    info = store.get(TraderTakerInfo, entity_id)
    if info is None:
        info = TraderTakerInfo(id=entity_id, trader=trader_addr, market=market_addr)
        store.save(info)
    return info


@beartype
def get_or_create_trader_maker_info(store: EntityStore, trader_addr: str, market_addr: str) -> TraderMakerInfo:
    """
    Load the maker state of a trader in a market.

    Args:
        store: Entity store
        trader_addr: Trader address
        market_addr: Market address

    Returns:
        TraderMakerInfo keyed by ``trader-market``
    """
    entity_id = trader_market_id(trader_addr, market_addr)
    info = store.get(TraderMakerInfo, entity_id)
    if info is None:
        info = TraderMakerInfo(id=entity_id, trader=trader_addr, market=market_addr)
        store.save(info)
    return info


@beartype
def get_or_create_position(store: EntityStore, trader_addr: str, market_addr: str) -> Position:
    """Load the open position of a trader in a market, keyed by ``trader-market``."""
    entity_id = trader_market_id(trader_addr, market_addr)
    position = store.get(Position, entity_id)
    if position is None:
        position = Position(id=entity_id, trader=trader_addr, market=market_addr)
        store.save(position)
    return position


@beartype
def get_or_create_open_order(store: EntityStore, maker_addr: str, market_addr: str) -> OpenOrder:
    """
    Load a maker's open order, or build an unsaved empty one.

    Unlike the other factories a new open order is not persisted here; it only
    exists once a liquidity event saves it.
    """
    entity_id = trader_market_id(maker_addr, market_addr)
    open_order = store.get(OpenOrder, entity_id)
    if open_order is None:
        open_order = OpenOrder(id=entity_id, maker=maker_addr, market=market_addr)
    return open_order


@beartype
def get_or_create_candle(store: EntityStore, market_addr: str, resolution: int) -> Candle:
    """
    Load the candle series of a market at one resolution.

    Args:
        store: Entity store
        market_addr: Market address
        resolution: Bucket length in seconds

    Returns:
        Candle keyed by ``market-resolution``
    """
    entity_id = f"{market_addr}-{resolution}"
    candle = store.get(Candle, entity_id)
    if candle is None:
        candle = Candle(id=entity_id, market=market_addr, time_format=resolution)
        store.save(candle)
    return candle


@beartype
def get_ohlc(store: EntityStore, market_addr: str, resolution: int, bucket_start: int) -> OHLC | None:
    """
    Look up one price bucket without creating it.

    Args:
        store: Entity store
        market_addr: Market address
        resolution: Bucket length in seconds
        bucket_start: Bucket start in milliseconds

    Returns:
        The OHLC row, or None if no event has fallen in the bucket yet
    """
    return store.get(OHLC, f"{market_addr}-{resolution}-{bucket_start}")


@beartype
def get_or_create_position_history(
    store: EntityStore,
    trader_addr: str,
    market_addr: str,
    time: int,
) -> PositionHistory:
    """
    Load the position ledger row of a trader in a market at *time*.

    Args:
        store: Entity store
        trader_addr: Trader address
        market_addr: Market address
        time: Event time in milliseconds

    Returns:
        PositionHistory keyed by ``trader-market-time``
    """
    entity_id = f"{trader_market_id(trader_addr, market_addr)}-{time}"
    history = store.get(PositionHistory, entity_id)
    if history is None:
        history = PositionHistory(id=entity_id, trader=trader_addr, market=market_addr, time=time)
        store.save(history)
    return history


@beartype
def get_or_create_liquidity_history(
    store: EntityStore,
    trader_addr: str,
    market_addr: str,
    time: int,
) -> LiquidityHistory:
    """Load the liquidity ledger row keyed by ``trader-market-time``."""
    entity_id = f"{trader_market_id(trader_addr, market_addr)}-{time}"
    history = store.get(LiquidityHistory, entity_id)
    if history is None:
        history = LiquidityHistory(id=entity_id, trader=trader_addr, market=market_addr, time=time)
        store.save(history)
    return history


@beartype
def get_or_create_day_summary(store: EntityStore, trader_addr: str, timestamp: int, day_ms: int) -> DaySummary:
    """
    Load the day summary covering *timestamp* (ms).

    Args:
        store: Entity store
        trader_addr: Trader address
        timestamp: Event time in milliseconds
        day_ms: Bucket length in milliseconds

    Returns:
        DaySummary keyed by ``trader-dayIndex``
    """
    day_id = timestamp // day_ms
    entity_id = f"{trader_addr}-{day_id}"
    summary = store.get(DaySummary, entity_id)
    if summary is None:
        summary = DaySummary(id=entity_id, trader=trader_addr, day_id=day_id, time=day_id * day_ms)
        store.save(summary)
    return summary


@beartype
def add_trader_market(trader: Trader, market_addr: str) -> None:
    """Record that *trader* touched *market_addr*, keeping the list deduplicated."""
    if market_addr not in trader.markets:
        trader.markets.append(market_addr)

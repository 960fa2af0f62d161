"""State transitions: one handler per event kind.

A handler reads the aggregate rows an event touches, applies the event's
accounting and saves every row it changed. Handlers never commit; the engine
wraps each call in a store transaction so an event applies completely or not
at all.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from beartype import beartype

from perpdex_indexer.database.models import Market, Position, TraderMakerInfo, TraderTakerInfo
from perpdex_indexer.database.repository import (
    add_trader_market,
    get_or_create_market,
    get_or_create_open_order,
    get_or_create_position,
    get_or_create_protocol,
    get_or_create_trader,
    get_or_create_trader_maker_info,
    get_or_create_trader_taker_info,
)
from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.engine.candles import share_adjusted_price, upsert_candle
from perpdex_indexer.engine.events import (
    ChainEvent,
    Deposited,
    FundingMaxElapsedSecChanged,
    FundingMaxPremiumRatioChanged,
    FundingPaid,
    FundingRolloverSecChanged,
    ImRatioChanged,
    InsuranceFundTransferred,
    IsMarketAllowedChanged,
    LiquidationRewardConfigChanged,
    LiquidityAdded,
    LiquidityRemoved,
    MaxMarketsPerAccountChanged,
    MmRatioChanged,
    PoolFeeRatioChanged,
    PositionChanged,
    PositionLiquidated,
    PriceLimitConfigChanged,
    ProtocolFeeRatioChanged,
    ProtocolFeeTransferred,
    Swapped,
    Withdrawn,
)
from perpdex_indexer.engine.history import (
    add_day_summary_pnl,
    append_liquidity_history,
    append_position_history,
)
from perpdex_indexer.utils.config import FEE_SOURCE_INSURANCE_FUND, EngineConfig
from perpdex_indexer.utils.fixed_point import Q96, abs_val, entry_price, mul_div, share_to_balance
from perpdex_indexer.utils.logger import get_logger

logger = get_logger(__name__)

Handler = Callable[[EntityStore, EngineConfig, Any], None]


def _touch(entity: Any, event: ChainEvent) -> None:
    entity.block_number = event.block_number
    entity.timestamp = event.timestamp


def _entry_price_or_zero(quote_balance: int, base_balance: int) -> int:
    # flat positions have no entry price; store 0
    if base_balance == 0:
        return 0
    return entry_price(quote_balance, base_balance)


def _rederive_taker(info: TraderTakerInfo, base_balance_per_share_x96: int) -> None:
    info.base_balance = share_to_balance(info.base_balance_share, base_balance_per_share_x96)
    info.entry_price = _entry_price_or_zero(info.quote_balance, info.base_balance)


def _rederive_position(position: Position, base_balance_per_share_x96: int) -> None:
    position.base_balance = share_to_balance(position.base_share, base_balance_per_share_x96)
    position.entry_price = _entry_price_or_zero(position.open_notional, position.base_balance)


def _rederive_maker(info: TraderMakerInfo, base_balance_per_share_x96: int) -> None:
    info.base_debt_balance = share_to_balance(info.base_debt_share, base_balance_per_share_x96)


def _sync_market_price(market: Market, base_balance_per_share_x96: int, share_price_after_x96: int) -> None:
    market.base_balance_per_share_x96 = base_balance_per_share_x96
    market.share_price_after_x96 = share_price_after_x96


def _settle_taker(
    store: EntityStore,
    event: ChainEvent,
    market: Market,
    trader_addr: str,
    base: int,
    quote: int,
    realized_pnl: int,
    volume: int,
) -> TraderTakerInfo:
    """Apply a taker fill to the trader's taker info and position view."""
    info = get_or_create_trader_taker_info(store, trader_addr, market.id)
    info.base_balance_share += base
    info.quote_balance += quote - realized_pnl
    _rederive_taker(info, market.base_balance_per_share_x96)
    _touch(info, event)
    store.save(info)

    position = get_or_create_position(store, trader_addr, market.id)
    position.base_share += base
    position.open_notional += quote - realized_pnl
    position.realized_pnl += realized_pnl
    position.trading_volume += volume
    _rederive_position(position, market.base_balance_per_share_x96)
    _touch(position, event)
    store.save(position)
    return info


def _emit_candle(
    store: EntityStore,
    config: EngineConfig,
    event: ChainEvent,
    market_addr: str,
    share_price_after_x96: int,
    base_balance_per_share_x96: int,
    base_volume: int,
    quote_volume: int,
) -> None:
    price = share_adjusted_price(share_price_after_x96, base_balance_per_share_x96)
    upsert_candle(
        store,
        market_addr,
        event.timestamp,
        price,
        base_volume,
        quote_volume,
        event.block_number,
        config.candle_resolutions,
    )


# -- Collateral ----------------------------------------------------------------


@beartype
def handle_deposited(store: EntityStore, config: EngineConfig, event: Deposited) -> None:
    """
    Credit a deposit to the trader and to total value locked.

    Args:
        store: Entity store, inside the engine's transaction
        config: Engine settings (protocol id and network metadata)
        event: Deposited event from the exchange
    """
    trader = get_or_create_trader(store, event.trader)
    trader.collateral_balance += event.amount
    _touch(trader, event)

    protocol = get_or_create_protocol(store, config)
    protocol.total_value_locked += event.amount
    _touch(protocol, event)

    store.save(trader)
    store.save(protocol)


@beartype
def handle_withdrawn(store: EntityStore, config: EngineConfig, event: Withdrawn) -> None:
    """
    Debit a withdrawal from the trader and from total value locked.

    The balance is not clamped at zero; a negative balance is bad debt.

    Args:
        store: Entity store, inside the engine's transaction
        config: Engine settings
        event: Withdrawn event from the exchange
    """
    trader = get_or_create_trader(store, event.trader)
    trader.collateral_balance -= event.amount
    _touch(trader, event)

    protocol = get_or_create_protocol(store, config)
    protocol.total_value_locked -= event.amount
    _touch(protocol, event)

    store.save(trader)
    store.save(protocol)


@beartype
def handle_insurance_fund_transferred(
    store: EntityStore,
    config: EngineConfig,
    event: InsuranceFundTransferred,
) -> None:
    """Pay a trader out of the insurance fund."""
    trader = get_or_create_trader(store, event.trader)
    trader.collateral_balance += event.amount
    _touch(trader, event)

    protocol = get_or_create_protocol(store, config)
    protocol.insurance_fund_balance -= event.amount
    _touch(protocol, event)

    store.save(trader)
    store.save(protocol)


@beartype
def handle_protocol_fee_transferred(
    store: EntityStore,
    config: EngineConfig,
    event: ProtocolFeeTransferred,
) -> None:
    """Pay protocol fees out to a trader, from the fee balance or the insurance fund."""
    trader = get_or_create_trader(store, event.trader)
    trader.collateral_balance += event.amount
    _touch(trader, event)

    protocol = get_or_create_protocol(store, config)
    if config.protocol_fee_transfer_source == FEE_SOURCE_INSURANCE_FUND:
        protocol.insurance_fund_balance -= event.amount
    else:
        protocol.protocol_fee -= event.amount
    _touch(protocol, event)

    store.save(trader)
    store.save(protocol)


# -- Liquidity -------------------------------------------------------------------


@beartype
def handle_liquidity_added(store: EntityStore, config: EngineConfig, event: LiquidityAdded) -> None:
    """Register a maker's liquidity and grow the pool."""
    trader = get_or_create_trader(store, event.trader)
    add_trader_market(trader, event.market)
    _touch(trader, event)

    market = get_or_create_market(store, event.market)
    market.base_amount += event.base
    market.quote_amount += event.quote
    market.liquidity += event.liquidity
    _sync_market_price(market, event.base_balance_per_share_x96, event.share_price_after_x96)
    if market.timestamp_added == 0:
        market.block_number_added = event.block_number
        market.timestamp_added = event.timestamp
    _touch(market, event)

    maker_info = get_or_create_trader_maker_info(store, event.trader, event.market)
    maker_info.liquidity += event.liquidity
    maker_info.base_debt_share += event.base
    maker_info.quote_debt += event.quote
    maker_info.cum_base_share_per_liquidity_x96 = event.cum_base_per_liquidity_x96
    maker_info.cum_quote_per_liquidity_x96 = event.cum_quote_per_liquidity_x96
    _rederive_maker(maker_info, market.base_balance_per_share_x96)
    _touch(maker_info, event)

    open_order = get_or_create_open_order(store, event.trader, event.market)
    open_order.base += event.base
    open_order.quote += event.quote
    open_order.liquidity += event.liquidity
    open_order.trader_maker_info_ref_id = maker_info.id
    open_order.market_ref_id = event.market
    _touch(open_order, event)

    _emit_candle(
        store, config, event, event.market,
        event.share_price_after_x96, event.base_balance_per_share_x96, 0, 0,
    )
    append_liquidity_history(
        store, event.trader, event.market, event.timestamp,
        event.base, event.quote, event.liquidity, event.block_number,
    )

    store.save(trader)
    store.save(market)
    store.save(maker_info)
    store.save(open_order)


@beartype
def handle_liquidity_removed(store: EntityStore, config: EngineConfig, event: LiquidityRemoved) -> None:
    """
    Shrink the pool and convert the maker's residual exposure into a taker position.

    ``taker_base``/``taker_quote`` is the part of the removed range that
    became a position, priced at removal, with ``realized_pnl`` settled into
    collateral.
    """
    trader = get_or_create_trader(store, event.trader)
    add_trader_market(trader, event.market)
    trader.collateral_balance += event.realized_pnl
    _touch(trader, event)

    market = get_or_create_market(store, event.market)
    market.base_amount -= event.base
    market.quote_amount -= event.quote
    market.liquidity -= event.liquidity
    _sync_market_price(market, event.base_balance_per_share_x96, event.share_price_after_x96)
    _touch(market, event)

    _settle_taker(
        store, event, market, event.trader,
        event.taker_base, event.taker_quote, event.realized_pnl, 0,
    )

    maker_info = get_or_create_trader_maker_info(store, event.trader, event.market)
    maker_info.base_debt_share -= event.base - event.taker_base
    maker_info.quote_debt -= event.quote - event.taker_quote
    maker_info.liquidity -= event.liquidity
    _rederive_maker(maker_info, market.base_balance_per_share_x96)
    _touch(maker_info, event)

    open_order = get_or_create_open_order(store, event.trader, event.market)
    open_order.base -= event.base - event.taker_base
    open_order.quote -= event.quote - event.taker_quote
    open_order.liquidity -= event.liquidity
    open_order.realized_pnl += event.realized_pnl
    open_order.trader_maker_info_ref_id = maker_info.id
    open_order.market_ref_id = event.market
    _touch(open_order, event)

    _emit_candle(
        store, config, event, event.market,
        event.share_price_after_x96, event.base_balance_per_share_x96, 0, 0,
    )
    append_liquidity_history(
        store, event.trader, event.market, event.timestamp,
        -event.base, -event.quote, -event.liquidity, event.block_number,
    )
    add_day_summary_pnl(
        store, event.trader, event.timestamp, event.realized_pnl, event.block_number, config.day_ms,
    )

    store.save(trader)
    store.save(market)
    store.save(maker_info)
    store.save(open_order)


# -- Taker trades ------------------------------------------------------------------


@beartype
def handle_position_changed(store: EntityStore, config: EngineConfig, event: PositionChanged) -> None:
    """
    Settle a taker trade.

    Realized PnL goes to collateral and the protocol fee to the protocol. The
    fill is also recorded in the candle series and in the trader's ledgers.

    Args:
        store: Entity store, inside the engine's transaction
        config: Engine settings (candle resolutions, day length)
        event: PositionChanged event from the exchange
    """
    volume = abs_val(event.quote)

    trader = get_or_create_trader(store, event.trader)
    add_trader_market(trader, event.market)
    trader.collateral_balance += event.realized_pnl
    _touch(trader, event)

    market = get_or_create_market(store, event.market)
    _sync_market_price(market, event.base_balance_per_share_x96, event.share_price_after_x96)
    market.trading_volume += volume
    _touch(market, event)

    protocol = get_or_create_protocol(store, config)
    protocol.protocol_fee += event.protocol_fee
    protocol.trading_volume += volume
    _touch(protocol, event)

    _settle_taker(store, event, market, event.trader, event.base, event.quote, event.realized_pnl, volume)

    _emit_candle(
        store, config, event, event.market,
        event.share_price_after_x96, event.base_balance_per_share_x96,
        abs_val(event.base), volume,
    )
    append_position_history(
        store, event.trader, event.market, event.timestamp,
        event.base, event.quote, event.realized_pnl, event.protocol_fee,
        market.base_balance_per_share_x96, event.block_number,
    )
    add_day_summary_pnl(
        store, event.trader, event.timestamp, event.realized_pnl, event.block_number, config.day_ms,
    )

    store.save(trader)
    store.save(market)
    store.save(protocol)


@beartype
def handle_position_liquidated(store: EntityStore, config: EngineConfig, event: PositionLiquidated) -> None:
    """
    Settle a liquidation.

    The liquidated trader pays ``liquidation_penalty`` on top of realized PnL;
    the liquidator receives ``liquidation_reward``; the protocol fee and the
    insurance fund reward are credited to the protocol.
    """
    volume = abs_val(event.quote)

    trader = get_or_create_trader(store, event.trader)
    add_trader_market(trader, event.market)
    trader.collateral_balance += event.realized_pnl - event.liquidation_penalty
    _touch(trader, event)

    liquidator = get_or_create_trader(store, event.liquidator)
    add_trader_market(liquidator, event.market)
    liquidator.collateral_balance += event.liquidation_reward
    _touch(liquidator, event)

    market = get_or_create_market(store, event.market)
    _sync_market_price(market, event.base_balance_per_share_x96, event.share_price_after_x96)
    market.trading_volume += volume
    _touch(market, event)

    protocol = get_or_create_protocol(store, config)
    protocol.protocol_fee += event.protocol_fee
    protocol.insurance_fund_balance += event.insurance_fund_reward
    protocol.trading_volume += volume
    _touch(protocol, event)

    _settle_taker(store, event, market, event.trader, event.base, event.quote, event.realized_pnl, volume)

    _emit_candle(
        store, config, event, event.market,
        event.share_price_after_x96, event.base_balance_per_share_x96,
        abs_val(event.base), volume,
    )
    append_position_history(
        store, event.trader, event.market, event.timestamp,
        event.base, event.quote, event.realized_pnl, event.protocol_fee,
        market.base_balance_per_share_x96, event.block_number,
    )
    add_day_summary_pnl(
        store, event.trader, event.timestamp, event.realized_pnl, event.block_number, config.day_ms,
    )

    store.save(trader)
    store.save(liquidator)
    store.save(market)
    store.save(protocol)


# -- Market-level events -------------------------------------------------------------


@beartype
def handle_funding_paid(store: EntityStore, config: EngineConfig, event: FundingPaid) -> None:
    """
    Apply a funding payment to the pool.

    A positive rate deleverages quote, a negative one deleverages base; either
    way the base growth factor is scaled by ``(Q96 - rate) / Q96`` and every
    share-based balance in the market is re-derived against it.
    """
    rate = event.funding_rate_x96
    market = get_or_create_market(store, event.contract_address)
    market.base_balance_per_share_x96 = mul_div(market.base_balance_per_share_x96, Q96 - rate, Q96)

    if rate > 0:
        market.quote_amount -= mul_div(market.quote_amount, rate, Q96)
    else:
        market.base_amount -= mul_div(market.base_amount, -rate, Q96 - rate)

    # Per-liquidity trackers come from the event only
    market.mark_price_x96 = event.mark_price_x96
    market.cum_base_per_liquidity_x96 = event.cum_base_per_liquidity_x96
    market.cum_quote_per_liquidity_x96 = event.cum_quote_per_liquidity_x96
    _touch(market, event)
    store.save(market)

    factor = market.base_balance_per_share_x96
    for taker_info in store.find(TraderTakerInfo, market=market.id):
        _rederive_taker(taker_info, factor)
        store.save(taker_info)
    for position in store.find(Position, market=market.id):
        _rederive_position(position, factor)
        store.save(position)
    for maker_info in store.find(TraderMakerInfo, market=market.id):
        _rederive_maker(maker_info, factor)
        store.save(maker_info)

    logger.debug(f"Funding paid on {market.id}: rate_x96={rate}, growth factor now {factor}")


@beartype
def handle_swapped(store: EntityStore, config: EngineConfig, event: Swapped) -> None:
    """Move pool reserves by a swap; pool-level only."""
    market = get_or_create_market(store, event.contract_address)
    if event.is_exact_input:
        if event.is_base_to_quote:
            market.base_amount += event.amount
            market.quote_amount -= event.opposite_amount
        else:
            market.base_amount -= event.opposite_amount
            market.quote_amount += event.amount
    else:
        if event.is_base_to_quote:
            market.base_amount += event.opposite_amount
            market.quote_amount -= event.amount
        else:
            market.base_amount -= event.amount
            market.quote_amount += event.opposite_amount
    _touch(market, event)
    store.save(market)


@beartype
def handle_is_market_allowed_changed(
    store: EntityStore,
    config: EngineConfig,
    event: IsMarketAllowedChanged,
) -> None:
    """Record a market listing change and keep the public market count."""
    market = get_or_create_market(store, event.market)
    protocol = get_or_create_protocol(store, config)

    if event.is_market_allowed and not market.is_allowed:
        protocol.public_market_count += 1
        if market.timestamp_added == 0:
            market.block_number_added = event.block_number
            market.timestamp_added = event.timestamp
    elif not event.is_market_allowed and market.is_allowed:
        protocol.public_market_count -= 1
    market.is_allowed = event.is_market_allowed
    _touch(market, event)
    _touch(protocol, event)

    store.save(market)
    store.save(protocol)


# -- Parameter overwrites ------------------------------------------------------------


def _protocol_setter(**fields: str) -> Handler:
    """
    Build a handler that copies event fields onto the protocol row.

    Args:
        **fields: Protocol column name to event field name

    Returns:
        Handler for a protocol parameter event
    """

    @beartype
    def handler(store: EntityStore, config: EngineConfig, event: ChainEvent) -> None:
        protocol = get_or_create_protocol(store, config)
        for target, source in fields.items():
            setattr(protocol, target, getattr(event, source))
        _touch(protocol, event)
        store.save(protocol)

    return handler


def _market_setter(**fields: str) -> Handler:
    """
    Build a handler that copies event fields onto the emitting market's row.

    Args:
        **fields: Market column name to event field name

    Returns:
        Handler for a market parameter event
    """

    @beartype
    def handler(store: EntityStore, config: EngineConfig, event: ChainEvent) -> None:
        market = get_or_create_market(store, event.contract_address)
        for target, source in fields.items():
            setattr(market, target, getattr(event, source))
        _touch(market, event)
        store.save(market)

    return handler


handle_max_markets_per_account_changed = _protocol_setter(max_markets_per_account="value")
handle_im_ratio_changed = _protocol_setter(im_ratio="value")
handle_mm_ratio_changed = _protocol_setter(mm_ratio="value")
handle_liquidation_reward_config_changed = _protocol_setter(
    reward_ratio="reward_ratio",
    smooth_ema_time="smooth_ema_time",
)
handle_protocol_fee_ratio_changed = _protocol_setter(protocol_fee_ratio="value")

handle_pool_fee_ratio_changed = _market_setter(pool_fee_ratio="value")
handle_funding_max_premium_ratio_changed = _market_setter(max_premium_ratio="value")
handle_funding_max_elapsed_sec_changed = _market_setter(funding_max_elapsed_sec="value")
handle_funding_rollover_sec_changed = _market_setter(funding_rollover_sec="value")
handle_price_limit_config_changed = _market_setter(
    normal_order_ratio="normal_order_ratio",
    liquidation_ratio="liquidation_ratio",
    ema_normal_order_ratio="ema_normal_order_ratio",
    ema_liquidation_ratio="ema_liquidation_ratio",
    ema_sec="ema_sec",
)


HANDLERS: dict[type[ChainEvent], Handler] = {
    Deposited: handle_deposited,
    Withdrawn: handle_withdrawn,
    InsuranceFundTransferred: handle_insurance_fund_transferred,
    ProtocolFeeTransferred: handle_protocol_fee_transferred,
    LiquidityAdded: handle_liquidity_added,
    LiquidityRemoved: handle_liquidity_removed,
    PositionChanged: handle_position_changed,
    PositionLiquidated: handle_position_liquidated,
    MaxMarketsPerAccountChanged: handle_max_markets_per_account_changed,
    ImRatioChanged: handle_im_ratio_changed,
    MmRatioChanged: handle_mm_ratio_changed,
    LiquidationRewardConfigChanged: handle_liquidation_reward_config_changed,
    ProtocolFeeRatioChanged: handle_protocol_fee_ratio_changed,
    IsMarketAllowedChanged: handle_is_market_allowed_changed,
    FundingPaid: handle_funding_paid,
    Swapped: handle_swapped,
    PoolFeeRatioChanged: handle_pool_fee_ratio_changed,
    FundingMaxPremiumRatioChanged: handle_funding_max_premium_ratio_changed,
    FundingMaxElapsedSecChanged: handle_funding_max_elapsed_sec_changed,
    FundingRolloverSecChanged: handle_funding_rollover_sec_changed,
    PriceLimitConfigChanged: handle_price_limit_config_changed,
}

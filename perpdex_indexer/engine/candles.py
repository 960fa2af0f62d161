"""Multi-resolution OHLC aggregation of share-adjusted mark prices."""

from __future__ import annotations

from beartype import beartype

from perpdex_indexer.database.models import OHLC
from perpdex_indexer.database.repository import get_ohlc, get_or_create_candle
from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.utils.config import CANDLE_RESOLUTIONS
from perpdex_indexer.utils.fixed_point import Q96, mul_div


@beartype
def share_adjusted_price(share_price_x96: int, base_balance_per_share_x96: int) -> int:
    """
    Candle price: share price divided by the base growth factor.

    Raises:
        ZeroDivisionError: If the growth factor is zero
    """
    return mul_div(share_price_x96, Q96, base_balance_per_share_x96)


@beartype
def bucket_start(timestamp: int, resolution: int) -> int:
    """Start (seconds) of the *resolution*-second bucket holding *timestamp* (ms)."""
    return (timestamp // 1000) // resolution * resolution


@beartype
def upsert_ohlc(
    store: EntityStore,
    market_addr: str,
    resolution: int,
    timestamp: int,
    price: int,
    base_delta: int,
    quote_delta: int,
    block_number: int,
) -> OHLC:
    """Merge one price observation into its bucket at a single resolution."""
    candle = get_or_create_candle(store, market_addr, resolution)
    candle.block_number = block_number
    candle.timestamp = timestamp
    store.save(candle)

    start = bucket_start(timestamp, resolution)
    ohlc = get_ohlc(store, market_addr, resolution, start)
    if ohlc is None:
        ohlc = OHLC(
            id=f"{market_addr}-{resolution}-{start}",
            candle_id=candle.id,
            market=market_addr,
            resolution=resolution,
            time=start,
            open=price,
            high=price,
            low=price,
            close=price,
        )

    ohlc.high = max(ohlc.high, price)
    ohlc.low = min(ohlc.low, price)
    ohlc.close = price
    ohlc.base_amount += base_delta
    ohlc.quote_amount += quote_delta
    ohlc.block_number = block_number
    ohlc.timestamp = timestamp
    store.save(ohlc)
    return ohlc


@beartype
def upsert_candle(
    store: EntityStore,
    market_addr: str,
    timestamp: int,
    price: int,
    base_delta: int,
    quote_delta: int,
    block_number: int,
    resolutions: tuple[int, ...] = CANDLE_RESOLUTIONS,
) -> list[OHLC]:
    """
    Update the market's OHLC buckets at every resolution.

    Args:
        store: Entity store
        market_addr: Market address
        timestamp: Event time in milliseconds
        price: Share-adjusted mark price (Q96)
        base_delta: Base volume to add
        quote_delta: Quote volume to add
        block_number: Block of the event
        resolutions: Bucket lengths in seconds

    Returns:
        The updated OHLC rows, one per resolution
    """
    return [
        upsert_ohlc(store, market_addr, resolution, timestamp, price, base_delta, quote_delta, block_number)
        for resolution in resolutions
    ]

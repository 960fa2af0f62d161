"""Entity definitions and SQLite schema for indexed protocol state.

Every entity is a mutable dataclass whose ``id`` is a deterministic function of
its natural key. Integer fields hold arbitrary-precision values and are stored
as TEXT so nothing is truncated to 64 bits.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, ClassVar, get_type_hints


@dataclass
class Trader:
    """Collateral account of one address."""

    TABLE: ClassVar[str] = "traders"
    INDEXED: ClassVar[tuple[str, ...]] = ()

    id: str
    collateral_balance: int = 0
    markets: list[str] = field(default_factory=list)
    block_number: int = 0
    timestamp: int = 0


@dataclass
class Protocol:
    """Protocol-wide totals and risk parameters (singleton row)."""

    TABLE: ClassVar[str] = "protocols"
    INDEXED: ClassVar[tuple[str, ...]] = ()

    id: str
    network: str = ""
    chain_id: int = 0
    contract_version: str = ""
    public_market_count: int = 0
    trading_volume: int = 0
    total_value_locked: int = 0
    protocol_fee: int = 0
    insurance_fund_balance: int = 0
    max_markets_per_account: int = 0
    im_ratio: int = 0
    mm_ratio: int = 0
    reward_ratio: int = 0
    smooth_ema_time: int = 0
    protocol_fee_ratio: int = 0
    block_number: int = 0
    timestamp: int = 0


@dataclass
class Market:
    """AMM reserves, growth factor and configuration of one market."""

    TABLE: ClassVar[str] = "markets"
    INDEXED: ClassVar[tuple[str, ...]] = ()

    id: str
    trading_volume: int = 0
    base_amount: int = 0
    quote_amount: int = 0
    liquidity: int = 0
    base_balance_per_share_x96: int = 0
    share_price_after_x96: int = 0
    mark_price_x96: int = 0
    cum_base_per_liquidity_x96: int = 0
    cum_quote_per_liquidity_x96: int = 0
    pool_fee_ratio: int = 0
    max_premium_ratio: int = 0
    funding_max_elapsed_sec: int = 0
    funding_rollover_sec: int = 0
    normal_order_ratio: int = 0
    liquidation_ratio: int = 0
    ema_normal_order_ratio: int = 0
    ema_liquidation_ratio: int = 0
    ema_sec: int = 0
    is_allowed: bool = False
    block_number_added: int = 0
    timestamp_added: int = 0
    block_number: int = 0
    timestamp: int = 0


@dataclass
class TraderTakerInfo:
    """Taker exposure of a trader in a market."""

    TABLE: ClassVar[str] = "trader_taker_infos"
    INDEXED: ClassVar[tuple[str, ...]] = ("trader", "market")

    id: str
    trader: str = ""
    market: str = ""
    base_balance_share: int = 0
    base_balance: int = 0
    quote_balance: int = 0
    entry_price: int = 0
    block_number: int = 0
    timestamp: int = 0


@dataclass
class TraderMakerInfo:
    """Maker (liquidity provider) state of a trader in a market."""

    TABLE: ClassVar[str] = "trader_maker_infos"
    INDEXED: ClassVar[tuple[str, ...]] = ("trader", "market")

    id: str
    trader: str = ""
    market: str = ""
    base_debt_share: int = 0
    base_debt_balance: int = 0
    quote_debt: int = 0
    liquidity: int = 0
    cum_base_share_per_liquidity_x96: int = 0
    cum_quote_per_liquidity_x96: int = 0
    block_number: int = 0
    timestamp: int = 0


@dataclass
class OpenOrder:
    """Amounts a maker still has resting in a market's pool."""

    TABLE: ClassVar[str] = "open_orders"
    INDEXED: ClassVar[tuple[str, ...]] = ("maker", "market")

    id: str
    maker: str = ""
    market: str = ""
    base: int = 0
    quote: int = 0
    liquidity: int = 0
    realized_pnl: int = 0
    trader_maker_info_ref_id: str = "0"
    market_ref_id: str = "0"
    block_number: int = 0
    timestamp: int = 0


@dataclass
class Position:
    """Position view of a trader in a market."""

    TABLE: ClassVar[str] = "positions"
    INDEXED: ClassVar[tuple[str, ...]] = ("trader", "market")

    id: str
    trader: str = ""
    market: str = ""
    base_share: int = 0
    base_balance: int = 0
    open_notional: int = 0
    entry_price: int = 0
    realized_pnl: int = 0
    trading_volume: int = 0
    block_number: int = 0
    timestamp: int = 0


@dataclass
class Candle:
    """Head row for one market and resolution."""

    TABLE: ClassVar[str] = "candles"
    INDEXED: ClassVar[tuple[str, ...]] = ("market",)

    id: str
    market: str = ""
    time_format: int = 0
    block_number: int = 0
    timestamp: int = 0


@dataclass
class OHLC:
    """One price bucket of a candle series."""

    TABLE: ClassVar[str] = "ohlcs"
    INDEXED: ClassVar[tuple[str, ...]] = ("market", "candle_id")

    id: str
    candle_id: str = ""
    market: str = ""
    resolution: int = 0
    time: int = 0
    open: int = 0
    high: int = 0
    low: int = 0
    close: int = 0
    base_amount: int = 0
    quote_amount: int = 0
    block_number: int = 0
    timestamp: int = 0


@dataclass
class PositionHistory:
    """Taker fills of a trader in a market at one timestamp."""

    TABLE: ClassVar[str] = "position_histories"
    INDEXED: ClassVar[tuple[str, ...]] = ("trader", "market")

    id: str
    trader: str = ""
    market: str = ""
    time: int = 0
    base: int = 0
    base_balance: int = 0
    quote: int = 0
    entry_price: int = 0
    realized_pnl: int = 0
    protocol_fee: int = 0
    block_number: int = 0
    timestamp: int = 0


@dataclass
class LiquidityHistory:
    """Liquidity added (positive) or removed (negative) at one timestamp."""

    TABLE: ClassVar[str] = "liquidity_histories"
    INDEXED: ClassVar[tuple[str, ...]] = ("trader", "market")

    id: str
    trader: str = ""
    market: str = ""
    time: int = 0
    base: int = 0
    quote: int = 0
    liquidity: int = 0
    block_number: int = 0
    timestamp: int = 0


@dataclass
class DaySummary:
    """Realized PnL of a trader for one UTC day."""

    TABLE: ClassVar[str] = "day_summaries"
    INDEXED: ClassVar[tuple[str, ...]] = ("trader",)

    id: str
    trader: str = ""
    day_id: int = 0
    time: int = 0
    realized_pnl: int = 0
    block_number: int = 0
    timestamp: int = 0


@dataclass(frozen=True)
class EventLog:
    """Immutable audit record of one applied event."""

    id: str
    kind: str
    order_key: int
    tx_hash: str
    block_number: int
    log_index: int
    contract_address: str
    timestamp: int
    payload: str


ENTITY_TYPES: tuple[type, ...] = (
    Trader,
    Protocol,
    Market,
    TraderTakerInfo,
    TraderMakerInfo,
    OpenOrder,
    Position,
    Candle,
    OHLC,
    PositionHistory,
    LiquidityHistory,
    DaySummary,
)


@lru_cache(maxsize=None)
def entity_columns(entity_type: type) -> tuple[tuple[str, Any], ...]:
    """(column name, resolved type) pairs of an entity, in declaration order."""
    hints = get_type_hints(entity_type)
    return tuple((f.name, hints[f.name]) for f in dataclasses.fields(entity_type))


def table_schema(entity_type: type) -> str:
    """CREATE TABLE statement for an entity type."""
    columns = ["id TEXT PRIMARY KEY"]
    for name, column_type in entity_columns(entity_type):
        if name == "id":
            continue
        sql_type = "INTEGER" if column_type is bool else "TEXT"
        columns.append(f"{name} {sql_type} NOT NULL")
    joined = ",\n    ".join(columns)
    return f"CREATE TABLE IF NOT EXISTS {entity_type.TABLE} (\n    {joined}\n)"


def table_indexes(entity_type: type) -> list[str]:
    """CREATE INDEX statements for the lookup columns of an entity type."""
    return [
        f"CREATE INDEX IF NOT EXISTS idx_{entity_type.TABLE}_{column} ON {entity_type.TABLE}({column})"
        for column in entity_type.INDEXED
    ]


# SQL schema for the event log table
# id is txHash-logIndex; a row here means the event was already applied
EVENT_LOGS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS event_logs (
    id TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    order_key INTEGER NOT NULL,
    tx_hash TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    log_index INTEGER NOT NULL,
    contract_address TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    payload TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

EVENT_LOGS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_event_logs_order_key ON event_logs(order_key)",
    "CREATE INDEX IF NOT EXISTS idx_event_logs_kind ON event_logs(kind)",
    "CREATE INDEX IF NOT EXISTS idx_event_logs_timestamp ON event_logs(timestamp)",
]

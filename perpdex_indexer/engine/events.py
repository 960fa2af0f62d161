"""Typed records of decoded PerpDEX exchange and market events.

Every event carries the same envelope (transaction hash, block number, log
index, block timestamp and emitting contract) followed by its own payload.
Exchange events name their market explicitly; market events are emitted by
the market contract itself, so ``contract_address`` is the market.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, get_type_hints

from beartype import beartype
from web3 import Web3

from perpdex_indexer.utils.errors import MalformedEventError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ENVELOPE_FIELDS = ("tx_hash", "block_number", "log_index", "block_timestamp", "contract_address")

# Payload fields holding EVM addresses (normalized to EIP-55 checksum form)
ADDRESS_FIELDS = frozenset({"contract_address", "trader", "market", "liquidator"})


@beartype
def to_millis(instant: datetime) -> int:
    """Milliseconds since the Unix epoch, computed without float rounding."""
    return (instant - EPOCH) // timedelta(milliseconds=1)


@beartype
def from_millis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=millis)


@dataclass(frozen=True)
class ChainEvent:
    """Envelope shared by all events."""

    tx_hash: str
    block_number: int
    log_index: int
    block_timestamp: datetime
    contract_address: str

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def event_id(self) -> str:
        """Identity of the log: ``txHash-logIndex``."""
        return f"{self.tx_hash}-{self.log_index}"

    @property
    def timestamp(self) -> int:
        """Block time in milliseconds."""
        return to_millis(self.block_timestamp)

    def order_key(self, multiplier: int) -> int:
        """Total order position: ``block_number * multiplier + log_index``."""
        return self.block_number * multiplier + self.log_index

    def payload(self) -> dict[str, Any]:
        """Kind-specific fields as a plain dict."""
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if f.name not in ENVELOPE_FIELDS
        }

    def payload_json(self) -> str:
        return json.dumps(self.payload(), sort_keys=True)


# -- Exchange events -----------------------------------------------------------


@dataclass(frozen=True)
class Deposited(ChainEvent):
    trader: str
    amount: int


@dataclass(frozen=True)
class Withdrawn(ChainEvent):
    trader: str
    amount: int


@dataclass(frozen=True)
class InsuranceFundTransferred(ChainEvent):
    trader: str
    amount: int


@dataclass(frozen=True)
class ProtocolFeeTransferred(ChainEvent):
    trader: str
    amount: int


@dataclass(frozen=True)
class LiquidityAdded(ChainEvent):
    trader: str
    market: str
    base: int
    quote: int
    liquidity: int
    cum_base_per_liquidity_x96: int
    cum_quote_per_liquidity_x96: int
    base_balance_per_share_x96: int
    share_price_after_x96: int


@dataclass(frozen=True)
class LiquidityRemoved(ChainEvent):
    trader: str
    market: str
    liquidator: str
    base: int
    quote: int
    liquidity: int
    taker_base: int
    taker_quote: int
    realized_pnl: int
    base_balance_per_share_x96: int
    share_price_after_x96: int


@dataclass(frozen=True)
class PositionChanged(ChainEvent):
    trader: str
    market: str
    base: int
    quote: int
    realized_pnl: int
    protocol_fee: int
    base_balance_per_share_x96: int
    share_price_after_x96: int


@dataclass(frozen=True)
class PositionLiquidated(ChainEvent):
    trader: str
    market: str
    liquidator: str
    base: int
    quote: int
    realized_pnl: int
    protocol_fee: int
    base_balance_per_share_x96: int
    share_price_after_x96: int
    liquidation_penalty: int
    liquidation_reward: int
    insurance_fund_reward: int


@dataclass(frozen=True)
class MaxMarketsPerAccountChanged(ChainEvent):
    value: int


@dataclass(frozen=True)
class ImRatioChanged(ChainEvent):
    value: int


@dataclass(frozen=True)
class MmRatioChanged(ChainEvent):
    value: int


@dataclass(frozen=True)
class LiquidationRewardConfigChanged(ChainEvent):
    reward_ratio: int
    smooth_ema_time: int


@dataclass(frozen=True)
class ProtocolFeeRatioChanged(ChainEvent):
    value: int


@dataclass(frozen=True)
class IsMarketAllowedChanged(ChainEvent):
    market: str
    is_market_allowed: bool


# -- Market events ---------------------------------------------------------------


@dataclass(frozen=True)
class FundingPaid(ChainEvent):
    funding_rate_x96: int
    elapsed_sec: int
    premium_x96: int
    mark_price_x96: int
    cum_base_per_liquidity_x96: int
    cum_quote_per_liquidity_x96: int


@dataclass(frozen=True)
class Swapped(ChainEvent):
    is_base_to_quote: bool
    is_exact_input: bool
    amount: int
    opposite_amount: int


@dataclass(frozen=True)
class PoolFeeRatioChanged(ChainEvent):
    value: int


@dataclass(frozen=True)
class FundingMaxPremiumRatioChanged(ChainEvent):
    value: int


@dataclass(frozen=True)
class FundingMaxElapsedSecChanged(ChainEvent):
    value: int


@dataclass(frozen=True)
class FundingRolloverSecChanged(ChainEvent):
    value: int


@dataclass(frozen=True)
class PriceLimitConfigChanged(ChainEvent):
    normal_order_ratio: int
    liquidation_ratio: int
    ema_normal_order_ratio: int
    ema_liquidation_ratio: int
    ema_sec: int


EVENT_TYPES: dict[str, type[ChainEvent]] = {
    cls.__name__: cls
    for cls in (
        Deposited,
        Withdrawn,
        InsuranceFundTransferred,
        ProtocolFeeTransferred,
        LiquidityAdded,
        LiquidityRemoved,
        PositionChanged,
        PositionLiquidated,
        MaxMarketsPerAccountChanged,
        ImRatioChanged,
        MmRatioChanged,
        LiquidationRewardConfigChanged,
        ProtocolFeeRatioChanged,
        IsMarketAllowedChanged,
        FundingPaid,
        Swapped,
        PoolFeeRatioChanged,
        FundingMaxPremiumRatioChanged,
        FundingMaxElapsedSecChanged,
        FundingRolloverSecChanged,
        PriceLimitConfigChanged,
    )
}


@lru_cache(maxsize=None)
def _field_types(event_type: type[ChainEvent]) -> dict[str, Any]:
    return get_type_hints(event_type)


def _check_field(name: str, value: object, expected: Any) -> object:
    if expected is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedEventError(f"Field {name} must be an integer, got {value!r}")
        return value
    if expected is bool:
        if not isinstance(value, bool):
            raise MalformedEventError(f"Field {name} must be a boolean, got {value!r}")
        return value
    if expected is datetime:
        if not isinstance(value, datetime) or value.tzinfo is None:
            raise MalformedEventError(f"Field {name} must be a timezone-aware datetime, got {value!r}")
        return value
    if not isinstance(value, str) or not value:
        raise MalformedEventError(f"Field {name} must be a non-empty string, got {value!r}")
    if name in ADDRESS_FIELDS:
        if not Web3.is_address(value):
            raise MalformedEventError(f"Field {name} is not a valid address: {value!r}")
        return Web3.to_checksum_address(value)
    return value


@beartype
def validate_event(event: ChainEvent, order_key_multiplier: int) -> ChainEvent:
    """
    Check an event's structure and normalize its addresses.

    Args:
        event: Decoded event record
        order_key_multiplier: Order key multiplier; log indexes must stay below it

    Returns:
        Equivalent event with checksummed addresses

    Raises:
        MalformedEventError: If any field is missing, mistyped or out of range
    """
    if type(event) not in EVENT_TYPES.values():
        raise MalformedEventError(f"Unknown event kind: {event.kind}")

    field_types = _field_types(type(event))
    normalized: dict[str, object] = {}
    for f in dataclasses.fields(event):
        normalized[f.name] = _check_field(f.name, getattr(event, f.name), field_types[f.name])

    if event.block_number < 0:
        raise MalformedEventError(f"Negative block number: {event.block_number}")
    if not 0 <= event.log_index < order_key_multiplier:
        raise MalformedEventError(
            f"Log index {event.log_index} outside [0, {order_key_multiplier})",
        )

    return dataclasses.replace(event, **normalized)


def _coerce(name: str, raw: object, expected: Any) -> object:
    """Convert a JSON value to the field's Python type."""
    try:
        if expected is int and isinstance(raw, str):
            return int(raw, 0)
        if expected is datetime:
            if isinstance(raw, bool):
                raise MalformedEventError(f"Field {name} must be a timestamp, got {raw!r}")
            if isinstance(raw, int):
                return from_millis(raw)
            if isinstance(raw, str):
                parsed = datetime.fromisoformat(raw)
                return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError as e:
        raise MalformedEventError(f"Field {name} has an invalid value {raw!r}: {e}") from e
    return raw


@beartype
def event_from_dict(doc: dict[str, Any]) -> ChainEvent:
    """
    Build a typed event from a JSON document.

    The document names its kind under ``"kind"`` and carries every envelope and
    payload field by name. Integers may be JSON numbers or decimal/hex strings;
    ``block_timestamp`` may be milliseconds or an ISO-8601 string.

    Raises:
        MalformedEventError: If the kind is unknown or fields are missing/unexpected
    """
    kind = doc.get("kind")
    event_type = EVENT_TYPES.get(kind) if isinstance(kind, str) else None
    if event_type is None:
        raise MalformedEventError(f"Unknown event kind: {kind!r}")

    field_types = _field_types(event_type)
    field_names = [f.name for f in dataclasses.fields(event_type)]

    missing = [name for name in field_names if name not in doc]
    if missing:
        raise MalformedEventError(f"{kind} is missing fields: {', '.join(missing)}")
    unexpected = sorted(set(doc) - set(field_names) - {"kind"})
    if unexpected:
        raise MalformedEventError(f"{kind} has unexpected fields: {', '.join(unexpected)}")

    values = {name: _coerce(name, doc[name], field_types[name]) for name in field_names}
    return event_type(**values)


@beartype
def event_to_dict(event: ChainEvent) -> dict[str, Any]:
    """JSON-ready form of an event (inverse of ``event_from_dict``)."""
    doc: dict[str, Any] = {"kind": event.kind}
    for f in dataclasses.fields(event):
        value = getattr(event, f.name)
        doc[f.name] = to_millis(value) if isinstance(value, datetime) else value
    return doc

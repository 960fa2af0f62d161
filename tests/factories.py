"""Addresses and an event builder shared by the test modules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from perpdex_indexer.engine.events import ChainEvent

TRADER = "0x1111111111111111111111111111111111111111"
LIQUIDATOR = "0x2222222222222222222222222222222222222222"
MARKET = "0x3333333333333333333333333333333333333333"
EXCHANGE = "0x4444444444444444444444444444444444444444"

START_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class EventFactory:
    """Builds events with increasing (block_number, log_index) envelopes."""

    def __init__(self) -> None:
        self.block_number = 100
        self.log_index = 0
        self.block_timestamp = START_TIME

    def __call__(
        self,
        event_type: type[ChainEvent],
        block_timestamp: datetime | None = None,
        contract_address: str = EXCHANGE,
        **payload: Any,
    ) -> ChainEvent:
        self.log_index += 1
        return event_type(
            tx_hash=f"0x{self.block_number:032x}{self.log_index:032x}",
            block_number=self.block_number,
            log_index=self.log_index,
            block_timestamp=block_timestamp or self.block_timestamp,
            contract_address=contract_address,
            **payload,
        )

    def next_block(self, seconds: int = 12) -> None:
        self.block_number += 1
        self.log_index = 0
        self.block_timestamp += timedelta(seconds=seconds)

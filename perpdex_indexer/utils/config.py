"""Configuration constants for the PerpDEX indexer."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# Database configuration
DB_DIR = Path(__file__).parent.parent.parent / "data"
DB_PATH = DB_DIR / "perpdex.db"

# Logging configuration
LOGS_DIR = Path(__file__).parent.parent.parent / "logs"
LOG_FILE_NAME = "indexer.log"

# Protocol metadata recorded on the singleton Protocol row
PROTOCOL_ID = "perpdex"
NETWORK = "shibuya"
CHAIN_ID = 81
CONTRACT_VERSION = "v1"

# Order key = block_number * ORDER_KEY_MULTIPLIER + log_index
ORDER_KEY_MULTIPLIER = 10_000

# Candle resolutions in seconds (5m, 15m, 1h, 1d)
M5 = 300
M15 = 900
H1 = 3600
D1 = 86400
CANDLE_RESOLUTIONS: tuple[int, ...] = (M5, M15, H1, D1)

# Day summary bucket length (milliseconds)
DAY_MS = 86_400_000

# Which protocol balance a ProtocolFeeTransferred event is paid out of
FEE_SOURCE_PROTOCOL_FEE = "protocol_fee"
FEE_SOURCE_INSURANCE_FUND = "insurance_fund"
PROTOCOL_FEE_TRANSFER_SOURCE = FEE_SOURCE_PROTOCOL_FEE

# Batch replay settings
PROGRESS_LOG_INTERVAL = 1000  # Log progress every N events


@dataclass(frozen=True)
class EngineConfig:
    """Settings threaded through every event handler."""

    protocol_id: str = PROTOCOL_ID
    network: str = NETWORK
    chain_id: int = CHAIN_ID
    contract_version: str = CONTRACT_VERSION
    order_key_multiplier: int = ORDER_KEY_MULTIPLIER
    candle_resolutions: tuple[int, ...] = CANDLE_RESOLUTIONS
    day_ms: int = DAY_MS
    protocol_fee_transfer_source: str = PROTOCOL_FEE_TRANSFER_SOURCE
    enforce_ordering: bool = True

    def __post_init__(self) -> None:
        if self.protocol_fee_transfer_source not in (FEE_SOURCE_PROTOCOL_FEE, FEE_SOURCE_INSURANCE_FUND):
            raise ValueError(
                f"Unknown protocol fee transfer source: {self.protocol_fee_transfer_source}",
            )
        if self.order_key_multiplier <= 0:
            raise ValueError("order_key_multiplier must be positive")

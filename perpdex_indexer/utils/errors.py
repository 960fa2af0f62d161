"""Exception types raised while applying events."""

from __future__ import annotations


class IndexerError(Exception):
    """Base class for indexer failures."""


class MalformedEventError(IndexerError, ValueError):
    """An event record failed structural validation."""


class OutOfOrderEventError(IndexerError):
    """An event arrived with an order key at or below the last applied one."""

    def __init__(self, order_key: int, last_order_key: int) -> None:
        super().__init__(
            f"Event order key {order_key} is not after last applied order key {last_order_key}",
        )
        self.order_key = order_key
        self.last_order_key = last_order_key


class StoreUnavailableError(IndexerError):
    """The persistence layer failed; the event was rolled back."""


class EntryPriceUndefinedError(IndexerError, ArithmeticError):
    """Entry price requested for a flat (zero base balance) position."""

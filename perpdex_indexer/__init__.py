"""PerpDEX protocol indexer: derives trader, market and protocol state from on-chain events."""

__version__ = "0.1.0"

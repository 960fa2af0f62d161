"""Event-to-state accounting engine for the PerpDEX protocol."""

from __future__ import annotations

from perpdex_indexer.engine.engine import AccountingEngine
from perpdex_indexer.engine.events import EVENT_TYPES, ChainEvent, event_from_dict, validate_event
from perpdex_indexer.engine.handlers import HANDLERS

__all__ = ["EVENT_TYPES", "HANDLERS", "AccountingEngine", "ChainEvent", "event_from_dict", "validate_event"]

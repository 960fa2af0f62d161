"""Sequential, idempotent, all-or-nothing application of events."""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable, Iterable

from beartype import beartype

from perpdex_indexer.database.models import EventLog
from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.engine.events import ChainEvent, IsMarketAllowedChanged, validate_event
from perpdex_indexer.engine.handlers import HANDLERS
from perpdex_indexer.utils.config import PROGRESS_LOG_INTERVAL, EngineConfig
from perpdex_indexer.utils.errors import MalformedEventError, OutOfOrderEventError, StoreUnavailableError
from perpdex_indexer.utils.logger import get_logger

logger = get_logger(__name__)


class AccountingEngine:
    """Applies decoded events to the entity store one at a time."""

    def __init__(
        self,
        store: EntityStore,
        config: EngineConfig | None = None,
        on_market_allowed: Callable[[str], None] | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            store: Entity store the engine reads and writes
            config: Engine settings (defaults from utils.config)
            on_market_allowed: Called with a market address after an
                IsMarketAllowedChanged(allowed=True) event commits, so the
                caller can start watching that market's events
        """
        self.store = store
        self.config = config or EngineConfig()
        self.on_market_allowed = on_market_allowed

    @beartype
    def apply(self, event: ChainEvent) -> bool:
        """
        Apply one event.

        Returns:
            True if the event was applied, False if it had already been applied

        Raises:
            MalformedEventError: If the event fails validation
            OutOfOrderEventError: If ordering is enforced and the event is not
                after the last applied one
            StoreUnavailableError: If the database fails; nothing is written
        """
        event = validate_event(event, self.config.order_key_multiplier)
        handler = HANDLERS.get(type(event))
        if handler is None:
            raise MalformedEventError(f"No handler registered for {event.kind}")

        order_key = event.order_key(self.config.order_key_multiplier)

        try:
            if self.store.event_exists(event.event_id):
                logger.debug(f"Skipping already applied {event.kind} {event.event_id}")
                return False

            if self.config.enforce_ordering:
                last_order_key = self.store.last_order_key()
                if last_order_key is not None and order_key <= last_order_key:
                    raise OutOfOrderEventError(order_key, last_order_key)

            with self.store.transaction():
                handler(self.store, self.config, event)
                self.store.save_event_log(
                    EventLog(
                        id=event.event_id,
                        kind=event.kind,
                        order_key=order_key,
                        tx_hash=event.tx_hash,
                        block_number=event.block_number,
                        log_index=event.log_index,
                        contract_address=event.contract_address,
                        timestamp=event.timestamp,
                        payload=event.payload_json(),
                    ),
                )
        except sqlite3.Error as e:
            logger.exception(f"Store failure applying {event.kind} {event.event_id}; rolled back")
            raise StoreUnavailableError(f"Failed to apply {event.kind} {event.event_id}: {e}") from e

        logger.debug(f"Applied {event.kind} {event.event_id} (order key {order_key})")

        if isinstance(event, IsMarketAllowedChanged) and event.is_market_allowed and self.on_market_allowed:
            self.on_market_allowed(event.market)
        return True

    def apply_all(self, events: Iterable[ChainEvent], total: int | None = None) -> tuple[int, int]:
        """
        Apply events in order, stopping at the first failure.

        Args:
            events: Events in non-decreasing (block_number, log_index) order
            total: Expected number of events, for progress logging

        Returns:
            Tuple of (applied count, skipped duplicate count)
        """
        applied = 0
        skipped = 0
        start_time = time.time()

        for index, event in enumerate(events, start=1):
            if self.apply(event):
                applied += 1
            else:
                skipped += 1
                logger.warning(f"Event {event.event_id} was already applied, skipped")
            if total:
                logger.log_progress(index, total, "events", update_interval=PROGRESS_LOG_INTERVAL)

        elapsed = time.time() - start_time
        logger.record_metric("events_applied", applied)
        logger.record_metric("events_skipped", skipped)
        if elapsed > 0:
            logger.record_metric("events_per_sec", applied / elapsed)
        logger.log_summary()
        return applied, skipped

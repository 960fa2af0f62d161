"""Replay a JSON-lines file of decoded events into the indexer database."""

from __future__ import annotations

import json
import sys
from pathlib import Path

from beartype import beartype

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.engine.engine import AccountingEngine
from perpdex_indexer.engine.events import ChainEvent, event_from_dict
from perpdex_indexer.utils.config import DB_PATH
from perpdex_indexer.utils.errors import IndexerError


@beartype
def load_events(events_path: Path) -> list[ChainEvent]:
    """
    Parse one event per non-empty line.

    Args:
        events_path: Path to a JSONL file of event documents

    Returns:
        Events in file order
    """
    events: list[ChainEvent] = []
    with events_path.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                events.append(event_from_dict(json.loads(line)))
            except (json.JSONDecodeError, IndexerError) as e:
                raise IndexerError(f"{events_path}:{line_number}: {e}") from e
    return events


def _print_market_allowed(market: str) -> None:
    print(f"Market allowed: {market} (start watching its events)")


@beartype
def main(events_path: Path, db_path: Path = DB_PATH) -> None:
    """
    Replay events into the database.

    Args:
        events_path: JSONL file of decoded events
        db_path: SQLite database to write
    """
    print("PerpDEX event replay")
    print(f"Events: {events_path}")
    print(f"Database: {db_path}")
    print("-" * 50)

    try:
        events = load_events(events_path)
        print(f"Loaded {len(events)} events.")

        with EntityStore.open(db_path) as store:
            engine = AccountingEngine(store, on_market_allowed=_print_market_allowed)
            applied, skipped = engine.apply_all(events, total=len(events))
            print(f"\nApplied {applied} events, skipped {skipped} already applied.")
            print(f"Total events in database: {store.event_log_count()}")
    except IndexerError as e:
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python scripts/replay_events.py <events.jsonl> [db_path]")
        print("Example: python scripts/replay_events.py data/events.jsonl data/perpdex.db")
        sys.exit(1)

    events_file = Path(sys.argv[1])
    database = Path(sys.argv[2]) if len(sys.argv) > 2 else DB_PATH
    main(events_file, database)

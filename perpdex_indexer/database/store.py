"""Entity persistence on top of SQLite.

The store maps entity dataclasses to rows and back. Inside ``transaction()``
an identity map guarantees that two lookups of the same key return the same
object, so a handler touching one row through two names (a trader liquidating
itself) cannot lose an update.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from sqlite3 import Connection
from typing import Any, TypeVar

from beartype import beartype

from perpdex_indexer.database.connection import open_database
from perpdex_indexer.database.models import EventLog, entity_columns
from perpdex_indexer.utils.config import DB_PATH
from perpdex_indexer.utils.errors import StoreUnavailableError

EntityT = TypeVar("EntityT")


def _encode(value: Any, column_type: Any) -> Any:
    if column_type is bool:
        return int(value)
    if column_type is int:
        return str(value)
    if column_type is str:
        return value
    return json.dumps(value)


def _decode(raw: Any, column_type: Any) -> Any:
    if column_type is bool:
        return bool(raw)
    if column_type is int:
        return int(raw)
    if column_type is str:
        return raw
    return json.loads(raw)


class EntityStore:
    """Get/save primitives for entities and the event log."""

    def __init__(self, conn: Connection) -> None:
        """
        Initialize the store.

        Args:
            conn: Connection to an initialized database
        """
        self.conn = conn
        self._in_transaction = False
        self._identity_map: dict[tuple[type, str], object] = {}

    @classmethod
    def open(cls, db_path: Path | str = DB_PATH) -> EntityStore:
        """Open a store on a database file (or ``":memory:"``)."""
        try:
            return cls(open_database(db_path))
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open database {db_path}: {e}") from e

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Group writes into one all-or-nothing unit.

        Commits when the block exits normally and rolls back on any exception.
        """
        if self._in_transaction:
            raise RuntimeError("EntityStore transactions cannot be nested")
        self._in_transaction = True
        try:
            yield
            self.conn.commit()
        except BaseException:
            self.conn.rollback()
            raise
        finally:
            self._in_transaction = False
            self._identity_map.clear()

    def _commit_if_autonomous(self) -> None:
        if not self._in_transaction:
            self.conn.commit()

    def _row_to_entity(self, entity_type: type[EntityT], row: sqlite3.Row) -> EntityT:
        values = {name: _decode(row[name], column_type) for name, column_type in entity_columns(entity_type)}
        return entity_type(**values)

    @beartype
    def get(self, entity_type: type[EntityT], entity_id: str) -> EntityT | None:
        """
        Load an entity by id.

        Returns:
            The entity, or None if no row exists
        """
        cache_key = (entity_type, entity_id)
        if self._in_transaction and cache_key in self._identity_map:
            return self._identity_map[cache_key]  # type: ignore[return-value]

        cursor = self.conn.execute(
            f"SELECT * FROM {entity_type.TABLE} WHERE id = ?",
            (entity_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None

        entity = self._row_to_entity(entity_type, row)
        if self._in_transaction:
            self._identity_map[cache_key] = entity
        return entity

    @beartype
    def save(self, entity: object) -> None:
        """Insert or replace the row for an entity."""
        entity_type = type(entity)
        columns = entity_columns(entity_type)
        names = [name for name, _ in columns]
        values = [_encode(getattr(entity, name), column_type) for name, column_type in columns]
        placeholders = ", ".join("?" for _ in names)

        self.conn.execute(
            f"INSERT OR REPLACE INTO {entity_type.TABLE} ({', '.join(names)}) VALUES ({placeholders})",
            values,
        )
        if self._in_transaction:
            self._identity_map[(entity_type, entity.id)] = entity
        self._commit_if_autonomous()

    @beartype
    def find(self, entity_type: type[EntityT], **filters: str | int) -> list[EntityT]:
        """
        Load every entity whose columns equal the given values.

        Args:
            entity_type: Entity class to query
            **filters: Column name to value (e.g. ``market="0x..."``)

        Returns:
            Matching entities ordered by id
        """
        column_types = dict(entity_columns(entity_type))
        clauses = []
        params = []
        for name, value in filters.items():
            if name not in column_types:
                raise ValueError(f"{entity_type.__name__} has no column {name!r}")
            clauses.append(f"{name} = ?")
            params.append(_encode(value, column_types[name]))

        query = f"SELECT * FROM {entity_type.TABLE}"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id"

        entities: list[EntityT] = []
        for row in self.conn.execute(query, params).fetchall():
            cache_key = (entity_type, row["id"])
            if self._in_transaction and cache_key in self._identity_map:
                entities.append(self._identity_map[cache_key])  # type: ignore[arg-type]
                continue
            entity = self._row_to_entity(entity_type, row)
            if self._in_transaction:
                self._identity_map[cache_key] = entity
            entities.append(entity)
        return entities

    @beartype
    def count(self, entity_type: type) -> int:
        """Number of rows of an entity type."""
        result = self.conn.execute(f"SELECT COUNT(*) FROM {entity_type.TABLE}").fetchone()
        return result[0] if result else 0

    @beartype
    def event_exists(self, event_id: str) -> bool:
        """True when an event log row with this id was already written."""
        cursor = self.conn.execute("SELECT 1 FROM event_logs WHERE id = ?", (event_id,))
        return cursor.fetchone() is not None

    @beartype
    def save_event_log(self, log: EventLog) -> None:
        """Append the immutable log row of an applied event."""
        self.conn.execute(
            """
            INSERT INTO event_logs
                (id, kind, order_key, tx_hash, block_number, log_index, contract_address, timestamp, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                log.id,
                log.kind,
                log.order_key,
                log.tx_hash,
                log.block_number,
                log.log_index,
                log.contract_address,
                log.timestamp,
                log.payload,
            ),
        )
        self._commit_if_autonomous()

    @beartype
    def get_event_log(self, event_id: str) -> EventLog | None:
        """Load an event log row by id."""
        row = self.conn.execute(
            """
            SELECT id, kind, order_key, tx_hash, block_number, log_index, contract_address, timestamp, payload
            FROM event_logs WHERE id = ?
            """,
            (event_id,),
        ).fetchone()
        if row is None:
            return None
        return EventLog(**dict(row))

    @beartype
    def event_log_count(self, kind: str | None = None) -> int:
        """Number of applied events, optionally of one kind."""
        if kind:
            result = self.conn.execute("SELECT COUNT(*) FROM event_logs WHERE kind = ?", (kind,)).fetchone()
        else:
            result = self.conn.execute("SELECT COUNT(*) FROM event_logs").fetchone()
        return result[0] if result else 0

    @beartype
    def last_order_key(self) -> int | None:
        """Highest order key applied so far, or None on an empty database."""
        result = self.conn.execute("SELECT MAX(order_key) FROM event_logs").fetchone()
        return result[0] if result and result[0] is not None else None

    def close(self) -> None:
        """Close the underlying connection."""
        self.conn.close()

    def __enter__(self) -> EntityStore:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Context manager exit."""
        self.close()

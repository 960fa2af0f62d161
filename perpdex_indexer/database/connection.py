"""Database connection management and initialization."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from sqlite3 import Connection

from beartype import beartype

from perpdex_indexer.database.models import (
    ENTITY_TYPES,
    EVENT_LOGS_INDEXES,
    EVENT_LOGS_TABLE_SCHEMA,
    table_indexes,
    table_schema,
)
from perpdex_indexer.utils.config import DB_PATH


@beartype
def get_connection(db_path: Path | str = DB_PATH) -> Connection:
    """Create and return a database connection."""
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn


@beartype
def initialize_database(conn: Connection) -> None:
    """Create entity and event log tables with their indexes."""
    cursor = conn.cursor()

    # Create event log table
    cursor.execute(EVENT_LOGS_TABLE_SCHEMA)
    for index_sql in EVENT_LOGS_INDEXES:
        cursor.execute(index_sql)

    # Create one table per entity type
    for entity_type in ENTITY_TYPES:
        cursor.execute(table_schema(entity_type))
        for index_sql in table_indexes(entity_type):
            cursor.execute(index_sql)

    conn.commit()


@beartype
def open_database(db_path: Path | str = DB_PATH) -> Connection:
    """Open (creating if needed) an initialized database."""
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    initialize_database(conn)
    return conn


@beartype
def database_exists(db_path: Path = DB_PATH) -> bool:
    """Check if the database file exists."""
    return db_path.exists()

"""
Database loaders - replace an instrument table with the contents of a source file.
Thin IO layer with focus on data integrity and idempotence.
"""

import logging
import sqlite3
import threading
import weakref
from pathlib import Path
from typing import List, Tuple, Union

from ingestion.providers.csv_file_adapter import read_price_rows, CSVReadError
from ingestion.transforms.normalizers import (
    derive_table_name,
    normalize_price_rows,
    DateFormatError,
)
from ingestion.transforms.validators import InstrumentNameError
from storage.connection import StoreConnectionError, ensure_connection

logger = logging.getLogger(__name__)

# One lock per instrument identifier; loads of the same table never interleave.
# Entries drop out once no load holds a reference to the lock.
_load_locks = weakref.WeakValueDictionary()
_load_locks_guard = threading.Lock()


def _lock_for(table_name: str) -> threading.Lock:
    with _load_locks_guard:
        lock = _load_locks.get(table_name)
        if lock is None:
            lock = threading.Lock()
            _load_locks[table_name] = lock
        return lock


def reset_instrument_table(conn: sqlite3.Connection, table_name: str) -> None:
    """
    Drop and recreate an instrument table with the fixed price schema.

    Args:
        conn: SQLite connection (autocommit mode)
        table_name: Allow-listed table name
    """
    conn.execute(f'DROP TABLE IF EXISTS "{table_name}"')
    conn.execute(f"""
        CREATE TABLE "{table_name}" (
            Date TEXT,
            Open REAL,
            High REAL,
            Low REAL,
            Close REAL,
            Volume REAL
        )
    """)


def insert_price_batch(conn: sqlite3.Connection, table_name: str, rows: List[Tuple]) -> int:
    """
    Insert one batch of rows inside a single explicit transaction.

    Either every row commits or none does.

    Args:
        conn: SQLite connection (autocommit mode)
        table_name: Allow-listed table name
        rows: Insert tuples (Date, Open, High, Low, Close, Volume)

    Returns:
        Number of rows inserted
    """
    if not rows:
        return 0

    conn.execute("BEGIN")
    try:
        conn.executemany(
            f'INSERT INTO "{table_name}" VALUES (?, ?, ?, ?, ?, ?)',
            rows
        )
    except sqlite3.Error:
        conn.execute("ROLLBACK")
        raise

    conn.execute("COMMIT")
    return len(rows)


def load_instrument(conn: sqlite3.Connection, source_file: Union[str, Path]) -> bool:
    """
    Replace the instrument table named after a source file with its rows.

    Destructive: the table is dropped and recreated before the file is
    read, so a failed load leaves an empty table rather than stale data.
    Reloading the same file always yields the same table.

    Args:
        conn: SQLite connection
        source_file: Path to a CSV file with Date,Open,High,Low,Close,Volume

    Returns:
        True if every row was loaded, False on any ingestion error

    Raises:
        StoreConnectionError: If the connection is closed or unusable
    """
    try:
        table_name = derive_table_name(source_file)
    except InstrumentNameError as e:
        logger.error(f"Rejected source file {source_file}: {e}")
        return False

    ensure_connection(conn)

    with _lock_for(table_name):
        # Suspend implicit transactions; restored on every exit path
        previous_isolation = conn.isolation_level
        conn.isolation_level = None
        try:
            try:
                reset_instrument_table(conn, table_name)
            except sqlite3.Error as e:
                raise StoreConnectionError(f"Cannot reset table {table_name}: {str(e)}") from e

            try:
                raw_rows = read_price_rows(source_file)
                rows = normalize_price_rows(raw_rows)
            except (CSVReadError, DateFormatError) as e:
                logger.error(f"Failed to load {source_file} into {table_name}: {e}")
                return False

            try:
                inserted = insert_price_batch(conn, table_name, rows)
            except sqlite3.DatabaseError as e:
                logger.error(f"Batch insert into {table_name} failed: {e}")
                return False
        finally:
            conn.isolation_level = previous_isolation

    logger.info(f"Loaded {inserted} rows from {source_file} into {table_name}")
    return True

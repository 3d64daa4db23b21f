"""
Instrument registry - the live set of instrument tables in the store.
Doubles as the injection gate: only names listed here reach query text.
"""

import sqlite3
from typing import Any, List

from storage.connection import StoreConnectionError


def list_instruments(conn: sqlite3.Connection) -> List[str]:
    """
    List every instrument table currently present in the store.

    Read fresh on every call; SQLite's internal tables are excluded.

    Args:
        conn: SQLite connection

    Returns:
        Sorted list of instrument identifiers (empty for an empty store)

    Raises:
        StoreConnectionError: If the store cannot be queried
    """
    if conn is None:
        raise StoreConnectionError("No database connection")

    try:
        cursor = conn.execute("""
            SELECT name
            FROM sqlite_master
            WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'
            ORDER BY name
        """)
        rows = cursor.fetchall()
    except sqlite3.Error as e:
        raise StoreConnectionError(f"Cannot list instruments: {str(e)}") from e

    return [row[0] for row in rows]


def is_valid_instrument(conn: sqlite3.Connection, instrument: Any) -> bool:
    """
    Check whether an identifier names an existing instrument table.

    Args:
        conn: SQLite connection
        instrument: Candidate identifier

    Returns:
        True iff the identifier is in list_instruments()

    Raises:
        StoreConnectionError: If the store cannot be queried
    """
    if not isinstance(instrument, str):
        return False

    return instrument in list_instruments(conn)
